"""
Page Sources
============

Text-layer readers used by the hybrid processor.

Available Sources:
- PyMuPDFPageSource: In-process extraction with PyMuPDF (default)
- PopplerPageSource: pdfinfo/pdftotext child processes with hard timeouts

Usage:
    from hybrid_extraction.sources import PyMuPDFPageSource

    source = PyMuPDFPageSource()
    total = source.page_count(document)
    text = source.extract_page_text(document, page_number=1)
"""

from .base import BasePageSource
from .poppler import PopplerPageSource
from .pymupdf import PyMuPDFPageSource

__all__ = [
    "BasePageSource",
    "PopplerPageSource",
    "PyMuPDFPageSource",
    "create_page_source",
]


def create_page_source(kind: str = "pymupdf", pdftotext_timeout: float = 10.0) -> BasePageSource:
    """
    Build a page source by name.

    Args:
        kind: "pymupdf" or "poppler"
        pdftotext_timeout: Per-page timeout for the poppler source

    Returns:
        A page source instance
    """
    if kind == "poppler":
        return PopplerPageSource(pdftotext_timeout=pdftotext_timeout)
    return PyMuPDFPageSource()
