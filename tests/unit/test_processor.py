"""
Unit Tests for HybridProcessor
==============================

Tests for the text-layer-first pipeline with batched OCR, using in-memory
page sources and gateways.
"""

import pytest

from hybrid_extraction import (
    Deadline,
    DeadlineExceededError,
    ExtractionMethod,
    HybridOptions,
    HybridProcessor,
    ValidationError,
)
from hybrid_extraction.formatting import DEFAULT_PAGE_SEPARATOR

from conftest import PROSE_TEXT, SPARSE_TEXT, FakeGateway, FakePageSource


def _assert_result_invariants(result, selected_count):
    assert len(result.pages) == selected_count
    assert result.text_layer_pages + result.ocr_pages == len(result.pages)
    assert [p.page_number for p in result.pages] == sorted(p.page_number for p in result.pages)
    assert 0 <= result.cost_savings_percent <= 100


# =============================================================================
# TestApplyDefaults
# =============================================================================


@pytest.mark.unit
class TestApplyDefaults:
    """Option defaults and validation."""

    def test_defaults(self):
        processor = HybridProcessor(FakePageSource([]), FakeGateway())
        opts = processor.apply_defaults()

        assert opts.min_words_threshold == 20
        assert opts.ocr_trigger_ratio == 0.25
        assert opts.page_separator == DEFAULT_PAGE_SEPARATOR
        assert opts.include_page_numbers is True
        assert opts.pages == ()
        assert opts.extract_header is False
        assert opts.extract_footer is False

    def test_explicit_values_kept(self):
        processor = HybridProcessor(FakePageSource([]), FakeGateway())
        opts = processor.apply_defaults(
            HybridOptions(
                min_words_threshold=5,
                ocr_trigger_ratio=0.5,
                page_separator="\n===\n",
                include_page_numbers=False,
                pages=(3, 1),
            )
        )

        assert opts.min_words_threshold == 5
        assert opts.ocr_trigger_ratio == 0.5
        assert opts.page_separator == "\n===\n"
        assert opts.include_page_numbers is False
        assert opts.pages == (3, 1)

    @pytest.mark.parametrize(
        "options",
        [
            HybridOptions(min_words_threshold=0),
            HybridOptions(min_words_threshold=-3),
            HybridOptions(ocr_trigger_ratio=0.0),
            HybridOptions(ocr_trigger_ratio=1.5),
        ],
    )
    def test_invalid_options_rejected(self, options):
        processor = HybridProcessor(FakePageSource([]), FakeGateway())
        with pytest.raises(ValidationError):
            processor.apply_defaults(options)


# =============================================================================
# TestProcessHybrid
# =============================================================================


@pytest.mark.unit
class TestProcessHybrid:
    """End-to-end hybrid extraction with fakes."""

    def test_clean_document_skips_ocr(self, document, mixed_pages):
        gateway = FakeGateway()
        processor = HybridProcessor(FakePageSource(mixed_pages(4)), gateway)

        result = processor.process_hybrid(document)

        assert result.success is True
        assert gateway.calls == []
        assert result.ocr_pages == 0
        assert result.text_layer_pages == 4
        assert result.cost_savings_percent == 100
        assert all(p.method == ExtractionMethod.TEXT_LAYER for p in result.pages)
        _assert_result_invariants(result, 4)

    def test_flagged_pages_only(self, document, mixed_pages):
        gateway = FakeGateway()
        processor = HybridProcessor(FakePageSource(mixed_pages(10, sparse=[1, 2])), gateway)

        result = processor.process_hybrid(document)

        assert result.success is True
        assert len(gateway.calls) == 1
        assert gateway.calls[0]["pages"] == [0, 1]
        assert result.text_layer_pages == 8
        assert result.ocr_pages == 2
        assert result.cost_savings_percent == 80
        assert result.total_pages == 10
        assert [p.method for p in result.pages[:3]] == [
            ExtractionMethod.OCR,
            ExtractionMethod.OCR,
            ExtractionMethod.TEXT_LAYER,
        ]
        assert result.pages[0].text == "OCR page 1"
        _assert_result_invariants(result, 10)

    def test_escalates_to_whole_document(self, document, mixed_pages):
        gateway = FakeGateway()
        pages = mixed_pages(10, sparse=[1, 2, 3, 4, 5, 6])
        processor = HybridProcessor(FakePageSource(pages), gateway)

        result = processor.process_hybrid(document)

        assert len(gateway.calls) == 1
        assert gateway.calls[0]["pages"] == list(range(10))
        assert result.ocr_pages == 10
        assert result.text_layer_pages == 0
        assert result.cost_savings_percent == 0
        _assert_result_invariants(result, 10)

    def test_ocr_request_options(self, document, mixed_pages):
        gateway = FakeGateway()
        processor = HybridProcessor(FakePageSource(mixed_pages(4, sparse=[4])), gateway)

        processor.process_hybrid(
            document,
            HybridOptions(extract_header=True, extract_footer=True, ocr_model="custom-ocr"),
        )

        call = gateway.calls[0]
        assert call["model"] == "custom-ocr"
        assert call["extract_header"] is True
        assert call["extract_footer"] is True
        assert call["document"] == document

    def test_gateway_default_model(self, document, mixed_pages):
        gateway = FakeGateway()
        processor = HybridProcessor(FakePageSource(mixed_pages(4, sparse=[4])), gateway)

        processor.process_hybrid(document)

        assert gateway.calls[0]["model"] == "fake-ocr"

    def test_page_subset(self, document, mixed_pages):
        gateway = FakeGateway()
        source = FakePageSource(mixed_pages(10, sparse=[2]))
        processor = HybridProcessor(source, gateway)

        result = processor.process_hybrid(document, HybridOptions(pages=(5, 2, 2, 999)))

        assert source.extract_calls == [2, 5]
        assert [p.page_number for p in result.pages] == [2, 5]
        assert result.total_pages == 10
        # 1 of 2 selected pages flagged is above the default trigger
        assert gateway.calls[0]["pages"] == [1, 4]
        _assert_result_invariants(result, 2)

    def test_empty_ocr_output_keeps_text_layer(self, document, mixed_pages):
        gateway = FakeGateway(markdown={0: "   "})
        processor = HybridProcessor(FakePageSource(mixed_pages(10, sparse=[1])), gateway)

        result = processor.process_hybrid(document)

        assert result.pages[0].method == ExtractionMethod.TEXT_LAYER
        assert result.pages[0].text == SPARSE_TEXT
        assert result.ocr_pages == 0
        assert result.cost_savings_percent == 100

    def test_extra_ocr_pages_ignored(self, document, mixed_pages):
        class ChattyGateway(FakeGateway):
            def run_ocr(self, document, model=None, pages=(), **kwargs):
                return super().run_ocr(document, model, list(pages) + [7, 8], **kwargs)

        processor = HybridProcessor(FakePageSource(mixed_pages(10, sparse=[1])), ChattyGateway())
        result = processor.process_hybrid(document)

        assert result.ocr_pages == 1
        assert [p.method for p in result.pages[7:9]] == [ExtractionMethod.TEXT_LAYER] * 2

    def test_combined_text(self, document):
        source = FakePageSource([PROSE_TEXT, ""])
        gateway = FakeGateway(markdown={1: "Scanned *contract* page"})
        processor = HybridProcessor(source, gateway)

        result = processor.process_hybrid(document, HybridOptions(ocr_trigger_ratio=1.0))

        assert result.text == (
            "[Page 1]\n\n" + PROSE_TEXT + DEFAULT_PAGE_SEPARATOR
            + "[Page 2]\n\nScanned *contract* page"
        )

    def test_combined_text_without_page_numbers(self, document):
        processor = HybridProcessor(FakePageSource([PROSE_TEXT, PROSE_TEXT]), FakeGateway())

        result = processor.process_hybrid(
            document, HybridOptions(include_page_numbers=False, page_separator="|")
        )

        assert result.text == PROSE_TEXT + "|" + PROSE_TEXT

    def test_page_extraction_failure_degrades_to_empty(self, document, mixed_pages):
        gateway = FakeGateway()
        source = FakePageSource(mixed_pages(10), fail_pages=[3])
        processor = HybridProcessor(source, gateway)

        result = processor.process_hybrid(document)

        assert result.success is True
        assert gateway.calls[0]["pages"] == [2]
        assert result.pages[2].method == ExtractionMethod.OCR


# =============================================================================
# TestProcessHybridFailures
# =============================================================================


@pytest.mark.unit
class TestProcessHybridFailures:
    """Failures produce a failed result, never partial success."""

    def test_page_count_failure(self, document):
        gateway = FakeGateway()
        processor = HybridProcessor(FakePageSource([], count_error="damaged"), gateway)

        result = processor.process_hybrid(document)

        assert result.success is False
        assert result.error.startswith("page count failed")
        assert result.pages == []
        assert gateway.calls == []

    def test_zero_pages(self, document):
        result = HybridProcessor(FakePageSource([]), FakeGateway()).process_hybrid(document)

        assert result.success is False
        assert result.pages == []

    def test_ocr_failure(self, document, mixed_pages):
        gateway = FakeGateway(error="mistral ocr error 500: upstream")
        processor = HybridProcessor(FakePageSource(mixed_pages(10, sparse=[1])), gateway)

        result = processor.process_hybrid(document)

        assert result.success is False
        assert result.error.startswith("ocr failed")
        assert "upstream" in result.error
        assert result.pages == []
        assert result.text == ""

    def test_expired_deadline_raises(self, document, mixed_pages):
        deadline = Deadline(0.0)
        processor = HybridProcessor(FakePageSource(mixed_pages(3)), FakeGateway())

        with pytest.raises(DeadlineExceededError):
            processor.process_hybrid(document, deadline=deadline)

    def test_cancelled_deadline_raises(self, document, mixed_pages):
        deadline = Deadline(None)
        deadline.cancel()
        processor = HybridProcessor(FakePageSource(mixed_pages(3)), FakeGateway())

        with pytest.raises(DeadlineExceededError, match="cancelled"):
            processor.process_hybrid(document, deadline=deadline)


# =============================================================================
# TestProcessPreview
# =============================================================================


@pytest.mark.unit
class TestProcessPreview:
    """OCR-free preview."""

    def test_preview_never_calls_ocr(self, document, mixed_pages):
        gateway = FakeGateway()
        processor = HybridProcessor(FakePageSource(mixed_pages(10, sparse=range(1, 7))), gateway)

        preview = processor.process_preview(document)

        assert preview.success is True
        assert preview.needs_ocr is True
        assert preview.total_pages == 10
        assert preview.text_layer_pages == 4
        assert gateway.calls == []

    def test_preview_below_trigger(self, document, mixed_pages):
        processor = HybridProcessor(FakePageSource(mixed_pages(10, sparse=[1, 2])), FakeGateway())

        preview = processor.process_preview(document)

        assert preview.needs_ocr is False
        assert preview.text_layer_pages == 8

    def test_preview_clean_document(self, document, mixed_pages):
        preview = HybridProcessor(
            FakePageSource(mixed_pages(3)), FakeGateway()
        ).process_preview(document)

        assert preview.needs_ocr is False
        assert preview.text_layer_pages == 3

    def test_preview_failure(self, document):
        processor = HybridProcessor(FakePageSource([], count_error="encrypted"), FakeGateway())

        preview = processor.process_preview(document)

        assert preview.success is False
        assert preview.needs_ocr is True
        assert "encrypted" in preview.error
