"""
OCR Gateways
============

OCR provider gateways used by the hybrid processor.

Available Gateways:
- MistralOCRGateway: Batched document OCR via the Mistral OCR API
- TesseractOCRGateway: Local Tesseract OCR (offline, free)

Usage:
    from hybrid_extraction.backends import MistralOCRGateway

    gateway = MistralOCRGateway(api_key="...")
    if gateway.is_available():
        pages = gateway.run_ocr(document, pages=[0, 1])
"""

import logging

from .base import BaseOCRGateway
from .mistral import MistralOCRGateway
from .tesseract import TesseractOCRGateway

logger = logging.getLogger(__name__)

__all__ = [
    "BaseOCRGateway",
    "MistralOCRGateway",
    "TesseractOCRGateway",
    "create_gateway",
]


def create_gateway(
    api_key: str | None = None,
    model: str | None = None,
    url: str | None = None,
) -> BaseOCRGateway:
    """
    Pick the OCR gateway for this process.

    Mistral when an API key is configured, otherwise local Tesseract when it
    is installed. Falls back to an unconfigured Mistral gateway, whose calls
    fail with a missing-credential OCRError.
    """
    mistral = MistralOCRGateway(api_key=api_key, model=model, url=url)
    if mistral.is_available():
        return mistral

    tesseract = TesseractOCRGateway()
    if tesseract.is_available():
        logger.warning("MISTRAL_API_KEY not set, using local Tesseract OCR")
        return tesseract

    logger.warning("MISTRAL_API_KEY not set and Tesseract not found (OCR will fail)")
    return mistral
