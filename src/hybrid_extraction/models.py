"""
Data Models for Hybrid Extraction
=================================

Shared data models for the hybrid extraction service.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class ExtractionMethod(str, Enum):
    """Method used to produce a page's final text."""

    TEXT_LAYER = "text-layer"  # Embedded PDF text
    OCR = "ocr"  # OCR provider markdown


class ReasonCode(str, Enum):
    """Signals applied by the quality scorer, in application order."""

    EMPTY_TEXT = "empty_text"

    # Penalties
    LOW_WORD_COUNT = "low_word_count"
    VERY_LOW_WORD_COUNT = "very_low_word_count"
    LOW_ALPHA_RATIO = "low_alpha_ratio"
    GARBAGE_CHARS = "garbage_chars"
    FRAGMENTED_LINES = "fragmented_lines"
    LOW_UNIQUE_WORDS = "low_unique_words"
    REPEATED_CHARS = "repeated_chars"
    EXCESS_PUNCTUATION = "excess_punctuation"
    ABNORMAL_SPACING = "abnormal_spacing"
    SCRAMBLED_WORDS = "scrambled_words"

    # Bonuses
    NUMERIC_HEAVY = "numeric_heavy"
    PROSE_LIKE = "prose_like"
    STRUCTURED_CONTENT = "structured_content"
    MIXED_CONTENT = "mixed_content"


@dataclass(frozen=True)
class DocumentRef:
    """
    A document available to the pipeline.

    ``path`` is the local copy read by page sources; ``url`` is the remote
    location handed to OCR providers that fetch documents themselves.
    """

    path: Path
    url: str | None = None


@dataclass(frozen=True)
class PageEvaluation:
    """Quality evaluation of one page's text layer."""

    page_number: int  # 1-indexed
    raw_text: str
    word_count: int
    quality_score: float
    reasons: tuple[ReasonCode, ...] = ()
    needs_ocr: bool = False
    maybe_ocr: bool = False


@dataclass(frozen=True)
class HybridOptions:
    """
    Per-request extraction options.

    ``None`` means "use the processor default"; see
    ``HybridProcessor.apply_defaults``.
    """

    min_words_threshold: int | None = None
    ocr_trigger_ratio: float | None = None
    page_separator: str | None = None
    include_page_numbers: bool | None = None
    pages: tuple[int, ...] = ()
    ocr_model: str | None = None
    extract_header: bool = False
    extract_footer: bool = False


@dataclass(frozen=True)
class OCRPage:
    """One page of OCR output."""

    index: int  # 0-indexed
    markdown: str


@dataclass
class PageExtractionResult:
    """Final text for one selected page."""

    page_number: int
    text: str
    method: ExtractionMethod
    word_count: int = 0


@dataclass
class ExtractionResult:
    """Result of ``HybridProcessor.process_hybrid``."""

    success: bool
    text: str = ""
    pages: list[PageExtractionResult] = field(default_factory=list)
    total_pages: int = 0
    text_layer_pages: int = 0
    ocr_pages: int = 0
    cost_savings_percent: int = 0
    error: str | None = None

    @classmethod
    def failure(cls, error: str) -> "ExtractionResult":
        return cls(success=False, error=error)


@dataclass
class PreviewResult:
    """Result of ``HybridProcessor.process_preview``. No page text."""

    success: bool
    needs_ocr: bool = False
    total_pages: int = 0
    text_layer_pages: int = 0
    error: str | None = None


@dataclass
class ImageExtractionResult:
    """Result of OCR on a single image URL."""

    success: bool
    text: str = ""
    error: str | None = None
