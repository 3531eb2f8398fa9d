"""
Page Text Combination
=====================

Joins per-page results into one document string and applies light-touch
cleanup to text-layer and OCR output.
"""

import re
from typing import Iterable

from hybrid_extraction.models import PageExtractionResult

DEFAULT_PAGE_SEPARATOR = "\n\n---\n\n"

_ZERO_WIDTH = re.compile("[\u200b-\u200d\ufeff\u00ad\u2060]")
_STANDALONE_IMAGE_NAME = re.compile(
    r"(?mi)^[\w-]*(?:img|image|figure|fig|photo|pic)[\w-]*"
    r"\.(?:jpeg|jpg|png|gif|webp|svg|bmp|tiff?)[ \t]*$"
)
_STANDALONE_FILE_NAME = re.compile(
    r"(?mi)^[\w-]+\.(?:jpeg|jpg|png|gif|webp|svg|bmp|tiff?)[ \t]*$"
)
_TRAILING_SPACES = re.compile(r"(?m)[ \t]+$")
_EXCESS_NEWLINES = re.compile(r"\n{4,}")


def clean_text(text: str) -> str:
    """Normalize line endings and trim."""
    return text.replace("\r\n", "\n").replace("\r", "\n").strip()


def clean_ocr_text(text: str) -> str:
    """
    Clean raw OCR markdown.

    Strips zero-width characters and lines that are only an image file
    name, drops trailing spaces and collapses runs of blank lines.
    """
    if not text:
        return ""

    text = _ZERO_WIDTH.sub("", text)
    text = _STANDALONE_IMAGE_NAME.sub("", text)
    text = _STANDALONE_FILE_NAME.sub("", text)
    text = clean_text(text)
    text = _TRAILING_SPACES.sub("", text)
    text = _EXCESS_NEWLINES.sub("\n\n\n", text)

    return text.strip()


def page_marker(page_number: int) -> str:
    return f"[Page {page_number}]"


def combine_pages(
    pages: Iterable[PageExtractionResult],
    separator: str = DEFAULT_PAGE_SEPARATOR,
    include_page_numbers: bool = True,
) -> str:
    """
    Combine page results into one document.

    Pages with no text after trimming contribute no segment, so no empty
    separator-delimited block is produced.

    Args:
        pages: Page results in page order
        separator: String placed between page segments
        include_page_numbers: Prefix each segment with ``[Page N]``

    Returns:
        Combined document text
    """
    parts: list[str] = []

    for page in pages:
        text = _TRAILING_SPACES.sub("", clean_text(page.text))
        if not text:
            continue

        if include_page_numbers:
            parts.append(f"{page_marker(page.page_number)}\n\n{text}")
        else:
            parts.append(text)

    if not parts:
        return ""

    return (separator or DEFAULT_PAGE_SEPARATOR).join(parts)
