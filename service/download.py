"""
PDF download to a private temp directory.
"""

import logging
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import requests

from hybrid_extraction.deadline import Deadline
from hybrid_extraction.errors import DeadlineExceededError, DownloadError

logger = logging.getLogger(__name__)

MIN_PDF_BYTES = 100
PDF_MAGIC = b"%PDF"
CHUNK_SIZE = 64 * 1024
USER_AGENT = "hybrid-extraction/0.1"


def _check_content_type(content_type: str) -> None:
    ct = content_type.lower()
    if ct and "pdf" not in ct and "octet-stream" not in ct:
        raise DownloadError(f"invalid content-type: {ct}")


def _check_magic(path: Path) -> None:
    """Reject files that do not start with %PDF (XML or HTML error pages)."""
    with open(path, "rb") as f:
        header = f.read(len(PDF_MAGIC))
    if header != PDF_MAGIC:
        raise DownloadError("downloaded file is not a PDF")


def fetch_pdf(
    url: str,
    dest: Path,
    max_bytes: int,
    timeout: float,
    deadline: Deadline | None = None,
) -> int:
    """
    Stream ``url`` into ``dest``.

    Args:
        url: Presigned http(s) URL
        dest: Target file path
        max_bytes: Size limit
        timeout: Per-download timeout in seconds
        deadline: Optional request deadline

    Returns:
        Number of bytes written

    Raises:
        DownloadError: On HTTP, content-type, size or magic-byte failure
        DeadlineExceededError: If the request deadline expired
    """
    if deadline is not None:
        deadline.check("download")
        timeout = deadline.timeout_for(timeout)

    try:
        response = requests.get(
            url,
            headers={"User-Agent": USER_AGENT},
            stream=True,
            timeout=timeout,
        )
    except requests.Timeout as e:
        if deadline is not None and deadline.expired:
            raise DeadlineExceededError("download timed out") from e
        raise DownloadError("download timed out") from e
    except requests.RequestException as e:
        raise DownloadError(f"download: {e}") from e

    with response:
        if response.status_code != 200:
            raise DownloadError(f"download failed: HTTP {response.status_code}")

        _check_content_type(response.headers.get("Content-Type", ""))

        written = 0
        try:
            with open(dest, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if not chunk:
                        continue
                    written += len(chunk)
                    if written > max_bytes:
                        raise DownloadError(
                            f"PDF exceeds {max_bytes // (1024 * 1024)}MB limit"
                        )
                    f.write(chunk)
                    if deadline is not None:
                        deadline.check("download")
        except requests.RequestException as e:
            raise DownloadError(f"download: {e}") from e

    if written < MIN_PDF_BYTES:
        raise DownloadError("PDF too small (likely invalid)")

    _check_magic(dest)
    return written


@contextmanager
def downloaded_pdf(
    url: str,
    max_bytes: int,
    timeout: float,
    deadline: Deadline | None = None,
) -> Iterator[Path]:
    """
    Download a PDF for the duration of a ``with`` block.

    The temp directory is removed on exit, whether the download or the
    body failed.

    Usage:
        with downloaded_pdf(url, max_bytes, timeout=25) as pdf_path:
            ...
    """
    tmp_dir = Path(tempfile.mkdtemp(prefix="pdfproc-"))
    try:
        path = tmp_dir / "doc.pdf"
        size = fetch_pdf(url, path, max_bytes, timeout, deadline)
        logger.debug("Downloaded %d bytes", size)
        yield path
    finally:
        shutil.rmtree(tmp_dir, ignore_errors=True)
