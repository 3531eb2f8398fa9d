"""
Image OCR
=========

OCR for a single publicly reachable image. The URL is passed straight to
the OCR provider; nothing is downloaded locally.
"""

import logging

from hybrid_extraction.backends.base import BaseOCRGateway
from hybrid_extraction.deadline import Deadline
from hybrid_extraction.errors import OCRError, ValidationError, sanitize_error
from hybrid_extraction.formatting import clean_ocr_text
from hybrid_extraction.models import ImageExtractionResult

logger = logging.getLogger(__name__)

IMAGE_PAGE_SEPARATOR = "\n\n-----\n\n"


def is_pdf_url(url: str) -> bool:
    lower = url.lower()
    return lower.endswith(".pdf") or ".pdf?" in lower


def validate_url(url: str | None, field: str, max_length: int = 2048) -> str:
    """
    Check a remote document URL.

    Returns:
        The stripped URL

    Raises:
        ValidationError: If missing, not http(s) or too long
    """
    url = (url or "").strip()
    if not url:
        raise ValidationError(f"{field} required")
    if not url.lower().startswith(("http://", "https://")):
        raise ValidationError(f"{field} must be http/https")
    if len(url) > max_length:
        raise ValidationError(f"{field} too long")
    return url


def validate_image_url(url: str | None, max_length: int = 2048) -> str:
    url = validate_url(url, "imageUrl", max_length)
    if is_pdf_url(url):
        raise ValidationError(
            "PDF files should use the /pdf/extract endpoint, not /image/extract"
        )
    return url


def user_facing_ocr_error(err: Exception) -> str:
    """Map provider failures to short messages for API callers."""
    msg = str(err)
    lower = msg.lower()

    if "404" in msg or "not found" in lower:
        return "Image URL not accessible (404)"
    if "403" in msg or "forbidden" in lower:
        return "Access denied to image URL"
    if "timeout" in lower or "timed out" in lower:
        return "Request timeout, try again later"
    if "network" in lower or "connection" in lower:
        return "Network error, check connectivity"

    return sanitize_error(msg)


def process_image(
    gateway: BaseOCRGateway,
    image_url: str,
    model: str | None = None,
    deadline: Deadline | None = None,
) -> ImageExtractionResult:
    """
    OCR one image URL and return cleaned markdown.

    Args:
        gateway: OCR gateway supporting image OCR
        image_url: Validated http(s) image URL
        model: Provider model, None for the gateway default
        deadline: Optional request deadline

    Returns:
        ImageExtractionResult
    """
    try:
        pages = gateway.run_image_ocr(image_url, model=model, deadline=deadline)
    except OCRError as e:
        logger.error("Image OCR failed: %s", e)
        return ImageExtractionResult(success=False, error=user_facing_ocr_error(e))

    parts = [
        page.markdown.strip()
        for page in pages
        if page.markdown.strip() not in ("", ".")
    ]
    if not parts:
        return ImageExtractionResult(success=False, error="no content extracted from image")

    return ImageExtractionResult(
        success=True,
        text=clean_ocr_text(IMAGE_PAGE_SEPARATOR.join(parts)),
    )
