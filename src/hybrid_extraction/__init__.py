"""
Hybrid Extraction Service
=========================

PDF text extraction that reads the embedded text layer first and sends only
the pages it cannot trust to an OCR provider.

Features:
- Per-page text quality scoring with reason codes
- One batched OCR call per document, scoped to the flagged pages or the
  whole document
- Cost savings reporting (share of pages that skipped OCR)
- Admission control and per-client rate limiting for the HTTP service

Basic Usage:
    from pathlib import Path

    from hybrid_extraction import DocumentRef, HybridProcessor
    from hybrid_extraction.backends import MistralOCRGateway
    from hybrid_extraction.sources import PyMuPDFPageSource

    processor = HybridProcessor(
        page_source=PyMuPDFPageSource(),
        gateway=MistralOCRGateway(api_key="..."),
    )
    result = processor.process_hybrid(
        DocumentRef(path=Path("document.pdf"), url="https://...")
    )
    print(result.text)

Scoring only:
    from hybrid_extraction import quality

    evaluation = quality.score(page_text, min_words_threshold=20)
    print(evaluation.quality_score, evaluation.reasons)
"""

__version__ = "0.1.0"

from .admission import AdmissionController, Lease, ResourcePool
from .config import ServiceConfig
from .deadline import Deadline
from .errors import (
    CapacityError,
    DeadlineExceededError,
    DownloadError,
    ExtractionServiceError,
    OCRError,
    SourceError,
    ValidationError,
    sanitize_error,
)
from .models import (
    DocumentRef,
    ExtractionMethod,
    ExtractionResult,
    HybridOptions,
    ImageExtractionResult,
    OCRPage,
    PageEvaluation,
    PageExtractionResult,
    PreviewResult,
    ReasonCode,
)
from .processor import DEFAULT_OPTIONS, HybridProcessor
from .ratelimit import RateLimiter, TokenBucket
from .router import ContentRouter, OCRScope, RoutingDecision

__all__ = [
    # Version
    "__version__",
    # Models
    "DocumentRef",
    "ExtractionMethod",
    "ExtractionResult",
    "HybridOptions",
    "ImageExtractionResult",
    "OCRPage",
    "PageEvaluation",
    "PageExtractionResult",
    "PreviewResult",
    "ReasonCode",
    # Routing
    "ContentRouter",
    "OCRScope",
    "RoutingDecision",
    # Processing
    "DEFAULT_OPTIONS",
    "HybridProcessor",
    "Deadline",
    # Service plumbing
    "AdmissionController",
    "Lease",
    "ResourcePool",
    "RateLimiter",
    "TokenBucket",
    "ServiceConfig",
    # Errors
    "CapacityError",
    "DeadlineExceededError",
    "DownloadError",
    "ExtractionServiceError",
    "OCRError",
    "SourceError",
    "ValidationError",
    "sanitize_error",
]
