"""
Poppler Page Source
===================

Reads the text layer with the poppler-utils command line tools
(``pdfinfo`` and ``pdftotext``). Each call runs in a child process with a
timeout, so an expired request deadline kills a stuck extraction.

Environment variables:
    PDFINFO_PATH: Path to pdfinfo (default: pdfinfo on PATH)
    PDFTOTEXT_PATH: Path to pdftotext (default: pdftotext on PATH)
"""

import logging
import os
import re
import shutil
import subprocess

from hybrid_extraction.deadline import Deadline
from hybrid_extraction.errors import DeadlineExceededError, SourceError
from hybrid_extraction.models import DocumentRef

from .base import BasePageSource

logger = logging.getLogger(__name__)

_PAGES_LINE = re.compile(r"(?m)^Pages:\s+(\d+)\s*$")

MAX_PAGE_COUNT = 50000
MAX_PAGE_TEXT_BYTES = 10 << 20


class PopplerPageSource(BasePageSource):
    """Page source backed by pdfinfo/pdftotext."""

    def __init__(
        self,
        pdfinfo_path: str | None = None,
        pdftotext_path: str | None = None,
        pdfinfo_timeout: float = 5.0,
        pdftotext_timeout: float = 10.0,
    ):
        """
        Initialize Poppler page source.

        Args:
            pdfinfo_path: Path to the pdfinfo binary
            pdftotext_path: Path to the pdftotext binary
            pdfinfo_timeout: Upper bound for one pdfinfo call in seconds
            pdftotext_timeout: Upper bound for one pdftotext call in seconds
        """
        super().__init__(name="Poppler")

        self.pdfinfo_path = pdfinfo_path or os.getenv("PDFINFO_PATH", "pdfinfo")
        self.pdftotext_path = pdftotext_path or os.getenv("PDFTOTEXT_PATH", "pdftotext")
        self.pdfinfo_timeout = pdfinfo_timeout
        self.pdftotext_timeout = pdftotext_timeout

    def is_available(self) -> bool:
        """Check if both poppler tools are installed."""
        return bool(shutil.which(self.pdfinfo_path) and shutil.which(self.pdftotext_path))

    def _run(
        self,
        args: list[str],
        timeout: float | None,
        step: str,
        deadline: Deadline | None = None,
    ) -> str:
        try:
            completed = subprocess.run(
                args,
                capture_output=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            if deadline is not None and deadline.expired:
                raise DeadlineExceededError(f"{step} timed out") from e
            raise SourceError(f"{step} timed out after {timeout}s") from e
        except OSError as e:
            raise SourceError(f"{step} failed: {e}") from e

        if completed.returncode != 0:
            stderr = completed.stderr.decode("utf-8", errors="replace").strip()
            if "Incorrect password" in stderr:
                raise SourceError("PDF is password protected")
            if "damaged" in stderr:
                raise SourceError("PDF file is damaged or corrupted")
            raise SourceError(f"{step} failed: {stderr or completed.returncode}")

        if len(completed.stdout) > MAX_PAGE_TEXT_BYTES:
            raise SourceError(f"{step} output too large: {len(completed.stdout)} bytes")

        return completed.stdout.decode("utf-8", errors="replace")

    def page_count(
        self,
        document: DocumentRef,
        deadline: Deadline | None = None,
    ) -> int:
        timeout = self.pdfinfo_timeout
        if deadline is not None:
            deadline.check("page count")
            timeout = deadline.timeout_for(self.pdfinfo_timeout)

        output = self._run(
            [self.pdfinfo_path, str(document.path)], timeout, "pdfinfo", deadline
        )

        match = _PAGES_LINE.search(output)
        if not match:
            raise SourceError("pdfinfo: pages field not found in output")

        count = int(match.group(1))
        if count <= 0 or count > MAX_PAGE_COUNT:
            raise SourceError(f"pdfinfo: unreasonable page count: {count}")
        return count

    def extract_page_text(
        self,
        document: DocumentRef,
        page_number: int,
        deadline: Deadline | None = None,
    ) -> str:
        if page_number < 1:
            raise SourceError(f"invalid page number: {page_number} (must be >= 1)")

        timeout = self.pdftotext_timeout
        if deadline is not None:
            deadline.check(f"page {page_number}")
            timeout = deadline.timeout_for(self.pdftotext_timeout)

        args = [
            self.pdftotext_path,
            "-f", str(page_number),
            "-l", str(page_number),
            "-layout",
            "-nopgbrk",
            "-enc", "UTF-8",
            str(document.path),
            "-",
        ]
        return self._run(args, timeout, f"pdftotext page {page_number}", deadline)
