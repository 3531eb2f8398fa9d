"""
Mistral OCR Gateway
===================

Batched document OCR via the Mistral OCR API. The provider fetches the
document itself from a URL, so only page indices travel in the request.
"""

import base64
import logging
import os
import time
from typing import Any, Sequence

import requests

from hybrid_extraction.deadline import Deadline
from hybrid_extraction.errors import DeadlineExceededError, OCRError
from hybrid_extraction.models import DocumentRef, OCRPage

from .base import BaseOCRGateway

logger = logging.getLogger(__name__)


class MistralOCRGateway(BaseOCRGateway):
    """
    OCR gateway using the Mistral OCR endpoint.

    Environment variables:
        MISTRAL_API_KEY: API key for Mistral
        MISTRAL_OCR_URL: OCR endpoint (default: https://api.mistral.ai/v1/ocr)
        DEFAULT_OCR_MODEL: Model to use (default: mistral-ocr-latest)
    """

    DEFAULT_URL = "https://api.mistral.ai/v1/ocr"
    DEFAULT_MODEL = "mistral-ocr-latest"

    MAX_ERROR_BODY = 64 << 10

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        url: str | None = None,
        timeout: float = 120.0,
    ):
        """
        Initialize Mistral gateway.

        Args:
            api_key: Mistral API key (or MISTRAL_API_KEY env var)
            model: Default model (or DEFAULT_OCR_MODEL env var)
            url: OCR endpoint URL (or MISTRAL_OCR_URL env var)
            timeout: Upper bound for one OCR call in seconds
        """
        super().__init__(
            name="Mistral",
            default_model=model or os.getenv("DEFAULT_OCR_MODEL", self.DEFAULT_MODEL),
        )

        self.api_key = api_key or os.getenv("MISTRAL_API_KEY")
        self.url = url or os.getenv("MISTRAL_OCR_URL", self.DEFAULT_URL)
        self.timeout = timeout

    def is_available(self) -> bool:
        """Check if the Mistral API key is configured."""
        return bool(self.api_key)

    def run_ocr(
        self,
        document: DocumentRef,
        model: str | None = None,
        pages: Sequence[int] = (),
        extract_header: bool = False,
        extract_footer: bool = False,
        deadline: Deadline | None = None,
    ) -> list[OCRPage]:
        body: dict[str, Any] = {
            "model": model or self.default_model,
            "document": self._document_payload(document),
            "extract_header": extract_header,
            "extract_footer": extract_footer,
        }
        if pages:
            body["pages"] = sorted(set(pages))

        return self._call(body, deadline)

    def run_image_ocr(
        self,
        image_url: str,
        model: str | None = None,
        deadline: Deadline | None = None,
    ) -> list[OCRPage]:
        body = {
            "model": model or self.default_model,
            "document": {"type": "image_url", "image_url": image_url},
        }
        return self._call(body, deadline)

    def _document_payload(self, document: DocumentRef) -> dict[str, str]:
        """Reference the document by URL, or inline it when there is none."""
        if document.url:
            return {"type": "document_url", "document_url": document.url}

        try:
            encoded = base64.b64encode(document.path.read_bytes()).decode("ascii")
        except OSError as e:
            raise OCRError(f"cannot read document for OCR: {e}") from e
        return {
            "type": "document_url",
            "document_url": f"data:application/pdf;base64,{encoded}",
        }

    def _call(self, body: dict[str, Any], deadline: Deadline | None) -> list[OCRPage]:
        if not self.is_available():
            raise OCRError("missing MISTRAL_API_KEY")

        timeout = self.timeout
        if deadline is not None:
            deadline.check("ocr")
            timeout = deadline.timeout_for(self.timeout)

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        start_time = time.time()
        try:
            response = requests.post(
                self.url,
                headers=headers,
                json=body,
                timeout=timeout,
            )
        except requests.Timeout as e:
            if deadline is not None and deadline.expired:
                raise DeadlineExceededError("ocr timed out") from e
            raise OCRError("mistral ocr request timed out") from e
        except requests.RequestException as e:
            raise OCRError(f"mistral ocr request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            detail = response.text[: self.MAX_ERROR_BODY]
            raise OCRError(f"mistral ocr error {response.status_code}: {detail}")

        try:
            pages = self._parse_pages(response.json())
        except (ValueError, KeyError, TypeError) as e:
            raise OCRError(f"malformed mistral ocr response: {e}") from e

        logger.info(
            "Mistral OCR completed: model=%s, pages=%d, time=%.0fms",
            body["model"],
            len(pages),
            (time.time() - start_time) * 1000,
        )
        return pages

    def _parse_pages(self, data: dict[str, Any]) -> list[OCRPage]:
        """Extract pages from a Mistral OCR response."""
        if not isinstance(data, dict) or "pages" not in data:
            raise ValueError("no 'pages' in response")

        pages = []
        for item in data["pages"] or []:
            pages.append(
                OCRPage(
                    index=int(item["index"]),
                    markdown=str(item.get("markdown") or ""),
                )
            )
        return pages
