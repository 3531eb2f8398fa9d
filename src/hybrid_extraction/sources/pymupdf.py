"""
PyMuPDF Page Source
===================

Reads the embedded text layer in-process with PyMuPDF.
"""

import logging

import fitz  # PyMuPDF

from hybrid_extraction.deadline import Deadline
from hybrid_extraction.errors import SourceError
from hybrid_extraction.models import DocumentRef

from .base import BasePageSource

logger = logging.getLogger(__name__)

MAX_PAGE_COUNT = 50000


class PyMuPDFPageSource(BasePageSource):
    """
    Page source backed by PyMuPDF.

    Opens the document for each call; PyMuPDF documents are not safe to
    share between request threads.
    """

    def __init__(self):
        super().__init__(name="PyMuPDF")

    def _open(self, document: DocumentRef) -> fitz.Document:
        try:
            doc = fitz.open(document.path)
        except Exception as e:
            raise SourceError(f"cannot open document: {e}") from e

        if doc.needs_pass:
            doc.close()
            raise SourceError("PDF is password protected")
        return doc

    def page_count(
        self,
        document: DocumentRef,
        deadline: Deadline | None = None,
    ) -> int:
        if deadline is not None:
            deadline.check("page count")

        doc = self._open(document)
        try:
            count = doc.page_count
        finally:
            doc.close()

        if count <= 0 or count > MAX_PAGE_COUNT:
            raise SourceError(f"unreasonable page count: {count}")
        return count

    def extract_page_text(
        self,
        document: DocumentRef,
        page_number: int,
        deadline: Deadline | None = None,
    ) -> str:
        if page_number < 1:
            raise SourceError(f"invalid page number: {page_number} (must be >= 1)")
        if deadline is not None:
            deadline.check(f"page {page_number}")

        doc = self._open(document)
        try:
            if page_number > doc.page_count:
                raise SourceError(f"page {page_number} out of range")
            # page_number is 1-indexed, fitz uses 0-indexed
            return doc[page_number - 1].get_text()
        except SourceError:
            raise
        except Exception as e:
            raise SourceError(f"text extraction failed on page {page_number}: {e}") from e
        finally:
            doc.close()
