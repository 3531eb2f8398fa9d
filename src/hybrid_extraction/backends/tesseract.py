"""
Tesseract OCR Gateway
=====================

Local OCR using Tesseract. Free, offline, good for simple documents.
Pages are rendered with PyMuPDF and recognized one after another inside a
single gateway call.
"""

import logging
import os
import time
from typing import Sequence

import fitz  # PyMuPDF
import pytesseract
from PIL import Image

from hybrid_extraction.deadline import Deadline
from hybrid_extraction.errors import OCRError
from hybrid_extraction.models import DocumentRef, OCRPage

from .base import BaseOCRGateway

logger = logging.getLogger(__name__)


class TesseractOCRGateway(BaseOCRGateway):
    """
    OCR gateway using a local Tesseract installation.

    Environment variables:
        TESSERACT_PATH: Path to tesseract binary (default: /usr/bin/tesseract)
        TESSERACT_LANG: Languages to use (default: eng)
    """

    DEFAULT_MODEL = "tesseract"

    def __init__(
        self,
        tesseract_path: str | None = None,
        lang: str | None = None,
        dpi: int = 300,
    ):
        """
        Initialize Tesseract gateway.

        Args:
            tesseract_path: Path to tesseract binary
            lang: OCR languages (e.g., "deu+eng")
            dpi: DPI for PDF to image conversion
        """
        super().__init__(name="Tesseract")

        self.tesseract_path = tesseract_path or os.getenv(
            "TESSERACT_PATH", "/usr/bin/tesseract"
        )
        self.lang = lang or os.getenv("TESSERACT_LANG", "eng")
        self.dpi = dpi

        pytesseract.pytesseract.tesseract_cmd = self.tesseract_path

    def is_available(self) -> bool:
        """Check if Tesseract is installed and accessible."""
        try:
            pytesseract.get_tesseract_version()
            return True
        except (pytesseract.TesseractNotFoundError, OSError):
            return False

    def run_ocr(
        self,
        document: DocumentRef,
        model: str | None = None,
        pages: Sequence[int] = (),
        extract_header: bool = False,
        extract_footer: bool = False,
        deadline: Deadline | None = None,
    ) -> list[OCRPage]:
        if not self.is_available():
            raise OCRError("Tesseract is not available")

        start_time = time.time()
        try:
            doc = fitz.open(document.path)
        except Exception as e:
            raise OCRError(f"cannot open document for OCR: {e}") from e

        results: list[OCRPage] = []
        try:
            indices = sorted(set(pages)) if pages else list(range(doc.page_count))
            for index in indices:
                if deadline is not None:
                    deadline.check("ocr")
                if not 0 <= index < doc.page_count:
                    raise OCRError(f"page index {index} out of range")

                image = self._render(doc[index])
                text = pytesseract.image_to_string(image, lang=self.lang)
                results.append(OCRPage(index=index, markdown=text.strip()))
        except pytesseract.TesseractError as e:
            raise OCRError(f"tesseract failed: {e}") from e
        finally:
            doc.close()

        logger.info(
            "Tesseract OCR completed: pages=%d, time=%.0fms",
            len(results),
            (time.time() - start_time) * 1000,
        )
        return results

    def _render(self, page: fitz.Page) -> Image.Image:
        """Convert a PDF page to a PIL Image."""
        # PDF default is 72 DPI
        zoom = self.dpi / 72
        pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom))
        return Image.frombytes("RGB", [pix.width, pix.height], pix.samples)
