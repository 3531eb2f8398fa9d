"""
Base Page Source
================

Abstract base class for text-layer page sources.
"""

from abc import ABC, abstractmethod

from hybrid_extraction.deadline import Deadline
from hybrid_extraction.models import DocumentRef


class BasePageSource(ABC):
    """
    Abstract base class for page sources.

    All page sources must implement:
    - page_count(): Total number of pages in a document
    - extract_page_text(): Text layer of one page

    Both raise ``SourceError`` on failure.
    """

    def __init__(self, name: str = "BasePageSource"):
        """
        Initialize page source.

        Args:
            name: Human-readable name for the source
        """
        self.name = name

    @abstractmethod
    def page_count(
        self,
        document: DocumentRef,
        deadline: Deadline | None = None,
    ) -> int:
        """
        Count the pages of a document.

        Args:
            document: Document to inspect
            deadline: Optional request deadline

        Returns:
            Number of pages (> 0)
        """

    @abstractmethod
    def extract_page_text(
        self,
        document: DocumentRef,
        page_number: int,
        deadline: Deadline | None = None,
    ) -> str:
        """
        Extract the text layer of one page.

        Args:
            document: Document to read
            page_number: 1-indexed page number
            deadline: Optional request deadline

        Returns:
            Raw page text (may be empty)
        """

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"
