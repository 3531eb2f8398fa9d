"""
Service Configuration
=====================

Settings read from the environment. Call ``load_dotenv()`` before
``ServiceConfig.from_env()`` to pick up a local ``.env`` file.

Numeric values that fail to parse, or are not positive, fall back to their
defaults with a warning.
"""

import logging
import os
from dataclasses import dataclass

from hybrid_extraction.formatting import DEFAULT_PAGE_SEPARATOR
from hybrid_extraction.models import HybridOptions

logger = logging.getLogger(__name__)

MIB = 1024 * 1024


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using default %d", name, raw, default)
        return default
    if value <= 0:
        logger.warning("Non-positive %s=%r, using default %d", name, raw, default)
        return default
    return value


def _env_float(name: str, default: float, allow_zero: bool = False) -> float:
    """Read a float; durations are given in seconds."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using default %s", name, raw, default)
        return default
    if value < 0 or (value == 0 and not allow_zero):
        logger.warning("Out of range %s=%r, using default %s", name, raw, default)
        return default
    return value


@dataclass(frozen=True)
class ServiceConfig:
    """Process-wide settings for the extraction service."""

    internal_secret: str = ""
    mistral_api_key: str = ""
    mistral_ocr_url: str = "https://api.mistral.ai/v1/ocr"
    max_pdf_bytes: int = 200 * MIB
    max_concurrent_requests: int = 15
    max_ocr_concurrent: int = 3
    request_slot_wait: float = 0.0
    extract_timeout: float = 160.0
    preview_timeout: float = 60.0
    image_extract_timeout: float = 120.0
    download_timeout: float = 25.0
    pdftotext_timeout: float = 10.0
    rate_limit_every: float = 0.6
    rate_limit_burst: int = 20
    cleanup_interval: float = 300.0
    health_degrade_ratio: float = 0.9
    max_url_len: int = 2048
    default_min_words: int = 20
    default_ocr_trigger_ratio: float = 0.25
    default_page_separator: str = DEFAULT_PAGE_SEPARATOR
    default_ocr_model: str = "mistral-ocr-latest"
    page_source: str = "pymupdf"

    @property
    def auth_enabled(self) -> bool:
        return bool(self.internal_secret)

    def default_options(self) -> HybridOptions:
        """Processor defaults derived from this configuration."""
        return HybridOptions(
            min_words_threshold=self.default_min_words,
            ocr_trigger_ratio=self.default_ocr_trigger_ratio,
            page_separator=self.default_page_separator,
            include_page_numbers=True,
            ocr_model=self.default_ocr_model,
        )

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """
        Build a configuration from environment variables.

        Returns:
            ServiceConfig with defaults for anything unset or invalid
        """
        defaults = cls()

        ratio = _env_float("DEFAULT_OCR_TRIGGER_RATIO", defaults.default_ocr_trigger_ratio)
        if ratio > 1:
            logger.warning("DEFAULT_OCR_TRIGGER_RATIO must be <= 1, using default")
            ratio = defaults.default_ocr_trigger_ratio

        degrade = _env_float("HEALTH_DEGRADE_RATIO", defaults.health_degrade_ratio)
        if degrade > 1:
            logger.warning("HEALTH_DEGRADE_RATIO must be <= 1, using default")
            degrade = defaults.health_degrade_ratio

        page_source = _env_str("PAGE_SOURCE", defaults.page_source).lower()
        if page_source not in ("pymupdf", "poppler"):
            logger.warning("Unknown PAGE_SOURCE=%r, using pymupdf", page_source)
            page_source = defaults.page_source

        separator = os.getenv("DEFAULT_PAGE_SEPARATOR")
        if separator:
            separator = separator.encode("utf-8").decode("unicode_escape")

        config = cls(
            internal_secret=os.getenv("INTERNAL_SHARED_SECRET", ""),
            mistral_api_key=os.getenv("MISTRAL_API_KEY", ""),
            mistral_ocr_url=_env_str("MISTRAL_OCR_URL", defaults.mistral_ocr_url),
            max_pdf_bytes=_env_int("MAX_PDF_BYTES", defaults.max_pdf_bytes),
            max_concurrent_requests=_env_int(
                "MAX_CONCURRENT_REQUESTS", defaults.max_concurrent_requests
            ),
            max_ocr_concurrent=_env_int("MAX_OCR_CONCURRENT", defaults.max_ocr_concurrent),
            request_slot_wait=_env_float(
                "REQUEST_SLOT_WAIT", defaults.request_slot_wait, allow_zero=True
            ),
            extract_timeout=_env_float("EXTRACT_TIMEOUT", defaults.extract_timeout),
            preview_timeout=_env_float("PREVIEW_TIMEOUT", defaults.preview_timeout),
            image_extract_timeout=_env_float(
                "IMAGE_EXTRACT_TIMEOUT", defaults.image_extract_timeout
            ),
            download_timeout=_env_float("DOWNLOAD_TIMEOUT", defaults.download_timeout),
            pdftotext_timeout=_env_float("PDFTOTEXT_TIMEOUT", defaults.pdftotext_timeout),
            rate_limit_every=_env_float("RATE_LIMIT_EVERY", defaults.rate_limit_every),
            rate_limit_burst=_env_int("RATE_LIMIT_BURST", defaults.rate_limit_burst),
            cleanup_interval=_env_float("CLEANUP_INTERVAL", defaults.cleanup_interval),
            health_degrade_ratio=degrade,
            max_url_len=_env_int("MAX_URL_LEN", defaults.max_url_len),
            default_min_words=_env_int("DEFAULT_MIN_WORDS", defaults.default_min_words),
            default_ocr_trigger_ratio=ratio,
            default_page_separator=separator or defaults.default_page_separator,
            default_ocr_model=_env_str("DEFAULT_OCR_MODEL", defaults.default_ocr_model),
            page_source=page_source,
        )

        if not config.auth_enabled:
            logger.warning("INTERNAL_SHARED_SECRET not set, authentication disabled")

        return config
