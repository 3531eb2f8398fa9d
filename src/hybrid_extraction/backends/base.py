"""
Base OCR Gateway
================

Abstract base class for OCR provider gateways.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from hybrid_extraction.deadline import Deadline
from hybrid_extraction.errors import OCRError
from hybrid_extraction.models import DocumentRef, OCRPage


class BaseOCRGateway(ABC):
    """
    Abstract base class for OCR gateways.

    All gateways must implement:
    - run_ocr(): One batched OCR call over a set of pages
    - is_available(): Check if the gateway is configured

    Optional overrides:
    - run_image_ocr(): OCR a single remote image

    A gateway never splits a call into chunks and never retries; failures
    raise ``OCRError``.
    """

    DEFAULT_MODEL = "default"

    def __init__(self, name: str = "BaseOCR", default_model: str | None = None):
        """
        Initialize gateway.

        Args:
            name: Human-readable name for the gateway
            default_model: Model used when a request does not name one
        """
        self.name = name
        self.default_model = default_model or self.DEFAULT_MODEL

    @abstractmethod
    def run_ocr(
        self,
        document: DocumentRef,
        model: str | None = None,
        pages: Sequence[int] = (),
        extract_header: bool = False,
        extract_footer: bool = False,
        deadline: Deadline | None = None,
    ) -> list[OCRPage]:
        """
        OCR a set of pages in one call.

        Args:
            document: Document to OCR
            model: Provider model, ``None`` for the gateway default
            pages: 0-indexed pages; empty means the provider's default
            extract_header: Ask the provider to extract page headers
            extract_footer: Ask the provider to extract page footers
            deadline: Optional request deadline

        Returns:
            One OCRPage per page the provider returned
        """

    @abstractmethod
    def is_available(self) -> bool:
        """
        Check if this gateway is available and configured.

        Returns:
            True if the gateway can be used, False otherwise
        """

    def run_image_ocr(
        self,
        image_url: str,
        model: str | None = None,
        deadline: Deadline | None = None,
    ) -> list[OCRPage]:
        """OCR a remote image. Not every gateway supports this."""
        raise OCRError(f"{self.name} does not support image OCR")

    def __repr__(self) -> str:
        available = "available" if self.is_available() else "unavailable"
        return f"{self.__class__.__name__}(name='{self.name}', {available})"
