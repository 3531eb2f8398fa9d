"""
Error Taxonomy
==============

Exceptions raised across the hybrid extraction pipeline.

Every error carries a machine-readable ``code`` and the HTTP status the
service layer maps it to. Messages are passed through ``sanitize_error``
before they leave the process.
"""

import re
import tempfile

MAX_ERROR_LENGTH = 300

_SECRET_PATTERNS = [
    re.compile(r"(?i)bearer\s+[A-Za-z0-9._\-]+"),
    re.compile(r"(?i)(api[_-]?key|token|secret)=([^&\s]+)"),
]


class ExtractionServiceError(Exception):
    """Base error for the extraction service."""

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(ExtractionServiceError):
    """Malformed or missing request input."""

    code = "validation_failed"
    status_code = 400


class AuthenticationError(ExtractionServiceError):
    """Missing or wrong internal auth header."""

    code = "unauthorized"
    status_code = 401


class RateLimitError(ExtractionServiceError):
    """Client exceeded its request rate."""

    code = "rate_limit"
    status_code = 429
    retry_after = 60


class CapacityError(ExtractionServiceError):
    """A bounded resource pool had no free slot in time."""

    status_code = 503

    def __init__(self, message: str = "", kind: str = "capacity"):
        super().__init__(message)
        self.kind = kind

    @property
    def code(self) -> str:  # type: ignore[override]
        return self.kind


class SourceError(ExtractionServiceError):
    """Document fetch or text-layer parsing failed."""

    code = "source_failed"
    status_code = 422


class DownloadError(SourceError):
    """The remote PDF could not be fetched or is not a PDF."""

    code = "download_failed"
    status_code = 400


class OCRError(ExtractionServiceError):
    """OCR provider failure, missing credential or malformed response."""

    code = "ocr_failed"
    status_code = 502


class DeadlineExceededError(ExtractionServiceError):
    """The request ran out of time or was cancelled."""

    code = "timeout"
    status_code = 504


class InternalError(ExtractionServiceError):
    """Unexpected fault, reported generically."""


def sanitize_error(err: BaseException | str | None) -> str:
    """
    Produce a user-facing error message.

    Removes temp directory paths and credentials, then truncates.

    Args:
        err: Exception or raw message

    Returns:
        Sanitized message (empty string for None)
    """
    if err is None:
        return ""

    msg = err.message if isinstance(err, ExtractionServiceError) else str(err)
    msg = msg.replace(tempfile.gettempdir(), "[tmp]")
    for pattern in _SECRET_PATTERNS:
        msg = pattern.sub("[redacted]", msg)
    msg = msg.replace("\n", " ").strip()

    if len(msg) > MAX_ERROR_LENGTH:
        msg = msg[:MAX_ERROR_LENGTH] + "..."
    return msg
