"""
Hybrid Processor
================

Combines the text layer and OCR for one document.

Every selected page is read from the page source and scored; pages whose
text layer is unreliable are sent to the OCR gateway in a single batched
call, and the results are merged back in page order.

Usage:
    processor = HybridProcessor(
        page_source=PyMuPDFPageSource(),
        gateway=MistralOCRGateway(),
    )
    result = processor.process_hybrid(DocumentRef(path=pdf_path, url=url))
    print(result.ocr_pages, result.cost_savings_percent)
"""

import logging
import time
from dataclasses import replace

from hybrid_extraction import quality
from hybrid_extraction.backends.base import BaseOCRGateway
from hybrid_extraction.deadline import Deadline
from hybrid_extraction.errors import OCRError, SourceError, ValidationError, sanitize_error
from hybrid_extraction.formatting import DEFAULT_PAGE_SEPARATOR, clean_text, combine_pages
from hybrid_extraction.models import (
    DocumentRef,
    ExtractionMethod,
    ExtractionResult,
    HybridOptions,
    PageEvaluation,
    PageExtractionResult,
    PreviewResult,
)
from hybrid_extraction.router import (
    ContentRouter,
    RoutingDecision,
    cost_savings_percent,
    select_pages,
)
from hybrid_extraction.sources.base import BasePageSource

logger = logging.getLogger(__name__)

DEFAULT_OPTIONS = HybridOptions(
    min_words_threshold=20,
    ocr_trigger_ratio=0.25,
    page_separator=DEFAULT_PAGE_SEPARATOR,
    include_page_numbers=True,
)


class HybridProcessor:
    """Text-layer-first document processor with batched OCR."""

    def __init__(
        self,
        page_source: BasePageSource,
        gateway: BaseOCRGateway,
        defaults: HybridOptions = DEFAULT_OPTIONS,
        router: ContentRouter | None = None,
    ):
        """
        Initialize the HybridProcessor.

        Args:
            page_source: Text-layer reader
            gateway: OCR provider gateway
            defaults: Values for options a request leaves unset
            router: OCR scope policy
        """
        self.page_source = page_source
        self.gateway = gateway
        self.defaults = defaults
        self.router = router or ContentRouter()

    def apply_defaults(self, options: HybridOptions | None = None) -> HybridOptions:
        """
        Fill unset options from the processor defaults and validate them.

        Args:
            options: Request options, possibly partial

        Returns:
            A new, fully populated HybridOptions

        Raises:
            ValidationError: If a value is out of range
        """
        options = options or HybridOptions()
        defaults = self.defaults

        resolved = replace(
            options,
            min_words_threshold=(
                options.min_words_threshold
                if options.min_words_threshold is not None
                else defaults.min_words_threshold
            ),
            ocr_trigger_ratio=(
                options.ocr_trigger_ratio
                if options.ocr_trigger_ratio is not None
                else defaults.ocr_trigger_ratio
            ),
            page_separator=options.page_separator or defaults.page_separator,
            include_page_numbers=(
                options.include_page_numbers
                if options.include_page_numbers is not None
                else defaults.include_page_numbers
            ),
            pages=tuple(options.pages or ()),
            ocr_model=options.ocr_model or defaults.ocr_model,
        )

        min_words = resolved.min_words_threshold
        if isinstance(min_words, bool) or not isinstance(min_words, int) or min_words <= 0:
            raise ValidationError("minWordsThreshold must be a positive integer")

        ratio = resolved.ocr_trigger_ratio
        if isinstance(ratio, bool) or not isinstance(ratio, (int, float)) or not 0 < ratio <= 1:
            raise ValidationError("ocrTriggerRatio must be in (0, 1]")

        if any(isinstance(p, bool) or not isinstance(p, int) for p in resolved.pages):
            raise ValidationError("pages must be integers")

        return resolved

    def process_hybrid(
        self,
        document: DocumentRef,
        options: HybridOptions | None = None,
        deadline: Deadline | None = None,
    ) -> ExtractionResult:
        """
        Extract text from a document, using OCR only where needed.

        Page-count failures and OCR failures return a failed result with no
        pages. A failed text extraction for a single page degrades to empty
        text, which the scorer flags for OCR.

        Args:
            document: Document to process
            options: Extraction options (defaults applied here)
            deadline: Optional request deadline

        Returns:
            ExtractionResult with pages in ascending order

        Raises:
            DeadlineExceededError: If the deadline expires mid-document
        """
        opts = self.apply_defaults(options)
        start_time = time.time()

        total_pages, error = self._page_count(document, deadline)
        if error:
            return ExtractionResult.failure(error)

        selected = select_pages(opts.pages, total_pages)
        evaluations = self._evaluate_pages(
            document, selected, opts.min_words_threshold, deadline
        )
        decision = self.router.route(evaluations, opts.ocr_trigger_ratio)
        logger.info("Routing %s: %s", document.path.name, decision.reasoning)

        ocr_text: dict[int, str] = {}
        if decision.needs_ocr:
            try:
                ocr_text = self._run_ocr(document, decision, opts, deadline)
            except OCRError as e:
                logger.error("OCR failed for %s: %s", document.path.name, e)
                return ExtractionResult.failure(f"ocr failed: {sanitize_error(e)}")

        pages = self._merge(evaluations, ocr_text)
        ocr_count = sum(1 for p in pages if p.method == ExtractionMethod.OCR)

        result = ExtractionResult(
            success=True,
            text=combine_pages(pages, opts.page_separator, opts.include_page_numbers),
            pages=pages,
            total_pages=total_pages,
            text_layer_pages=len(pages) - ocr_count,
            ocr_pages=ocr_count,
            cost_savings_percent=cost_savings_percent(ocr_count, len(pages)),
        )

        logger.info(
            "Extracted %s: %d pages (%d text-layer, %d OCR), savings=%d%%, time=%.0fms",
            document.path.name,
            len(pages),
            result.text_layer_pages,
            result.ocr_pages,
            result.cost_savings_percent,
            (time.time() - start_time) * 1000,
        )
        return result

    def process_preview(
        self,
        document: DocumentRef,
        options: HybridOptions | None = None,
        deadline: Deadline | None = None,
    ) -> PreviewResult:
        """
        Report whether a document would need OCR, without calling OCR.

        ``needs_ocr`` is true when at least one page is flagged and the
        flagged share exceeds the trigger ratio.

        Args:
            document: Document to inspect
            options: Extraction options (defaults applied here)
            deadline: Optional request deadline

        Returns:
            PreviewResult with page counts
        """
        opts = self.apply_defaults(options)

        total_pages, error = self._page_count(document, deadline)
        if error:
            return PreviewResult(success=False, needs_ocr=True, error=error)

        selected = select_pages(opts.pages, total_pages)
        evaluations = self._evaluate_pages(
            document, selected, opts.min_words_threshold, deadline
        )
        decision = self.router.route(evaluations, opts.ocr_trigger_ratio)

        return PreviewResult(
            success=True,
            needs_ocr=bool(decision.flagged_pages)
            and decision.ocr_ratio > opts.ocr_trigger_ratio,
            total_pages=total_pages,
            text_layer_pages=len(selected) - len(decision.flagged_pages),
        )

    def _page_count(
        self,
        document: DocumentRef,
        deadline: Deadline | None,
    ) -> tuple[int, str | None]:
        """Return (page count, error message)."""
        try:
            total = self.page_source.page_count(document, deadline)
        except SourceError as e:
            logger.warning("Page count failed for %s: %s", document.path.name, e)
            return 0, f"page count failed: {sanitize_error(e)}"

        if total <= 0:
            return 0, "page count failed: document has no pages"
        return total, None

    def _evaluate_pages(
        self,
        document: DocumentRef,
        pages: list[int],
        min_words: int,
        deadline: Deadline | None,
    ) -> list[PageEvaluation]:
        """Score each page's text layer, in page order."""
        evaluations: list[PageEvaluation] = []

        for page_number in pages:
            if deadline is not None:
                deadline.check(f"page {page_number}")

            try:
                raw = self.page_source.extract_page_text(document, page_number, deadline)
            except SourceError as e:
                logger.warning(
                    "Text layer extraction failed for page %d, treating as empty: %s",
                    page_number,
                    e,
                )
                raw = ""

            evaluations.append(
                quality.score(clean_text(raw), min_words, page_number=page_number)
            )

        return evaluations

    def _run_ocr(
        self,
        document: DocumentRef,
        decision: RoutingDecision,
        opts: HybridOptions,
        deadline: Deadline | None,
    ) -> dict[int, str]:
        """Issue the single OCR call; return markdown keyed by 1-indexed page."""
        response = self.gateway.run_ocr(
            document,
            model=opts.ocr_model or self.gateway.default_model,
            pages=decision.zero_indexed_pages,
            extract_header=opts.extract_header,
            extract_footer=opts.extract_footer,
            deadline=deadline,
        )

        wanted = set(decision.ocr_pages)
        by_page: dict[int, str] = {}
        for page in response:
            page_number = page.index + 1
            if page_number in wanted:
                by_page[page_number] = clean_text(page.markdown)
        return by_page

    def _merge(
        self,
        evaluations: list[PageEvaluation],
        ocr_text: dict[int, str],
    ) -> list[PageExtractionResult]:
        """Prefer non-empty OCR text, otherwise keep the text layer."""
        pages: list[PageExtractionResult] = []

        for ev in evaluations:
            markdown = ocr_text.get(ev.page_number, "")
            if markdown.strip():
                pages.append(
                    PageExtractionResult(
                        page_number=ev.page_number,
                        text=markdown,
                        method=ExtractionMethod.OCR,
                        word_count=quality.count_words(markdown),
                    )
                )
            else:
                pages.append(
                    PageExtractionResult(
                        page_number=ev.page_number,
                        text=ev.raw_text,
                        method=ExtractionMethod.TEXT_LAYER,
                        word_count=ev.word_count,
                    )
                )

        return pages
