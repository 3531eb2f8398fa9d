"""
Test Configuration and Fixtures for hybrid-extraction-service

Shared fixtures and fakes for all tests. Markers are registered in pyproject.toml.
"""

import tempfile
from pathlib import Path
from typing import Generator, Sequence

import pytest

from hybrid_extraction.backends.base import BaseOCRGateway
from hybrid_extraction.errors import OCRError, SourceError
from hybrid_extraction.models import DocumentRef, OCRPage
from hybrid_extraction.sources.base import BasePageSource


# =============================================================================
# Sample Text
# =============================================================================

PROSE_LINES = [
    "The quarterly report describes revenue growth across all regions.",
    "Operating costs declined while customer retention improved steadily.",
    "Management expects continued demand for the new product line next year.",
    "Several risks remain, including supply delays and currency movements.",
]

PROSE_TEXT = "\n".join(PROSE_LINES)

SPARSE_TEXT = "Scanned page 3"


# =============================================================================
# Path Fixtures
# =============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory(prefix="hybrid_extraction_test_") as tmpdir:
        yield Path(tmpdir)


# =============================================================================
# Sample PDF Creation Fixtures
# =============================================================================

@pytest.fixture
def create_pdf(temp_dir: Path):
    """
    Factory fixture to create a PDF from per-page text.

    An empty string produces a blank page (no text layer).
    """
    def _create(pages: Sequence[str], filename: str = "doc.pdf") -> Path:
        try:
            import fitz
        except ImportError:
            pytest.skip("PyMuPDF not installed")

        pdf_path = temp_dir / filename
        doc = fitz.open()
        for content in pages:
            page = doc.new_page()
            y_pos = 72
            for line in content.split("\n") if content else []:
                page.insert_text((72, y_pos), line, fontsize=10)
                y_pos += 16
        doc.save(str(pdf_path))
        doc.close()
        return pdf_path
    return _create


@pytest.fixture
def create_image_pdf(temp_dir: Path):
    """Factory fixture to create a PDF with only images (simulates scanned)."""
    def _create(filename: str = "image.pdf", pages: int = 1) -> Path:
        try:
            import fitz
            from PIL import Image
            import io
        except ImportError:
            pytest.skip("PyMuPDF or Pillow not installed")

        pdf_path = temp_dir / filename

        img = Image.new("RGB", (200, 100), color="white")
        img_bytes = io.BytesIO()
        img.save(img_bytes, format="PNG")

        doc = fitz.open()
        for _ in range(pages):
            page = doc.new_page()
            page.insert_image(fitz.Rect(72, 72, 300, 200), stream=img_bytes.getvalue())
        doc.save(str(pdf_path))
        doc.close()
        return pdf_path
    return _create


@pytest.fixture
def create_mixed_pdf(create_pdf):
    """Factory fixture: prose pages with blank (scanned-like) pages at given numbers."""
    def _create(total: int, blank_pages: Sequence[int], filename: str = "mixed.pdf") -> Path:
        blank = set(blank_pages)
        return create_pdf(
            ["" if n in blank else PROSE_TEXT for n in range(1, total + 1)],
            filename=filename,
        )
    return _create


# =============================================================================
# Collaborator Fakes
# =============================================================================

class FakePageSource(BasePageSource):
    """In-memory page source keyed by 1-indexed page number."""

    def __init__(
        self,
        pages: Sequence[str],
        fail_pages: Sequence[int] = (),
        count_error: str | None = None,
    ):
        super().__init__(name="Fake")
        self.pages = list(pages)
        self.fail_pages = set(fail_pages)
        self.count_error = count_error
        self.extract_calls: list[int] = []

    def page_count(self, document: DocumentRef, deadline=None) -> int:
        if self.count_error:
            raise SourceError(self.count_error)
        return len(self.pages)

    def extract_page_text(self, document: DocumentRef, page_number: int, deadline=None) -> str:
        self.extract_calls.append(page_number)
        if page_number in self.fail_pages:
            raise SourceError(f"cannot read page {page_number}")
        return self.pages[page_number - 1]


class FakeGateway(BaseOCRGateway):
    """OCR gateway returning ``OCR page N`` for every requested index."""

    DEFAULT_MODEL = "fake-ocr"

    def __init__(
        self,
        markdown: dict[int, str] | None = None,
        error: str | None = None,
        available: bool = True,
    ):
        super().__init__(name="FakeOCR")
        self.markdown = markdown or {}
        self.error = error
        self.available = available
        self.calls: list[dict] = []
        self.image_calls: list[str] = []

    def is_available(self) -> bool:
        return self.available

    def run_ocr(
        self,
        document,
        model=None,
        pages=(),
        extract_header=False,
        extract_footer=False,
        deadline=None,
    ) -> list[OCRPage]:
        self.calls.append({
            "document": document,
            "model": model,
            "pages": list(pages),
            "extract_header": extract_header,
            "extract_footer": extract_footer,
        })
        if self.error:
            raise OCRError(self.error)
        return [
            OCRPage(index=i, markdown=self.markdown.get(i, f"OCR page {i + 1}"))
            for i in pages
        ]

    def run_image_ocr(self, image_url, model=None, deadline=None) -> list[OCRPage]:
        self.image_calls.append(image_url)
        if self.error:
            raise OCRError(self.error)
        return [OCRPage(index=0, markdown=self.markdown.get(0, "# Receipt\n\nTotal 12.50"))]


@pytest.fixture
def document(temp_dir: Path) -> DocumentRef:
    return DocumentRef(path=temp_dir / "doc.pdf", url="https://files.example.com/doc.pdf")


@pytest.fixture
def mixed_pages():
    """Factory for page text lists: prose everywhere except ``sparse`` pages."""
    def _pages(total: int, sparse: Sequence[int] = ()) -> list[str]:
        sparse_set = set(sparse)
        return [SPARSE_TEXT if n in sparse_set else PROSE_TEXT for n in range(1, total + 1)]
    return _pages


# =============================================================================
# Environment Fixtures
# =============================================================================

@pytest.fixture
def tesseract_available() -> bool:
    """Check if Tesseract is available."""
    try:
        import pytesseract
        pytesseract.get_tesseract_version()
        return True
    except Exception:
        return False


@pytest.fixture
def skip_if_no_tesseract(tesseract_available):
    """Skip test if Tesseract is not available."""
    if not tesseract_available:
        pytest.skip("Tesseract not installed or not accessible")
