"""
Hybrid Extraction Service - FastAPI Application

REST API for hybrid PDF text extraction, OCR previews and image OCR.
"""

import asyncio
import hmac
import logging
import threading
import time
from contextlib import asynccontextmanager

import pydantic
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

load_dotenv()
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

from hybrid_extraction import (
    AdmissionController,
    Deadline,
    DocumentRef,
    ExtractionServiceError,
    HybridOptions,
    HybridProcessor,
    RateLimiter,
    ServiceConfig,
    __version__,
)
from hybrid_extraction.backends import BaseOCRGateway, create_gateway
from hybrid_extraction.errors import (
    AuthenticationError,
    CapacityError,
    InternalError,
    RateLimitError,
    ValidationError,
    sanitize_error,
)
from hybrid_extraction.image import process_image, validate_image_url, validate_url
from hybrid_extraction.ratelimit import client_key
from hybrid_extraction.sources import create_page_source

from service.download import downloaded_pdf

logger = logging.getLogger(__name__)

MAX_JSON_BODY_BYTES = 1 << 20
MAX_LOG_PATH = 200


# ============================================================================
# Pydantic Models
# ============================================================================


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class ExtractOptions(CamelModel):
    """Per-request extraction options. Unset fields use service defaults."""

    min_words_threshold: int | None = None
    page_separator: str | None = None
    include_page_numbers: bool | None = None
    ocr_trigger_ratio: float | None = None
    pages: list[int] = []
    extract_header: bool = False
    extract_footer: bool = False
    ocr_model: str | None = None

    def to_options(self) -> HybridOptions:
        return HybridOptions(
            min_words_threshold=self.min_words_threshold,
            ocr_trigger_ratio=self.ocr_trigger_ratio,
            page_separator=self.page_separator,
            include_page_numbers=self.include_page_numbers,
            pages=tuple(self.pages),
            ocr_model=self.ocr_model,
            extract_header=self.extract_header,
            extract_footer=self.extract_footer,
        )


class ExtractRequest(CamelModel):
    presigned_url: str = ""
    options: ExtractOptions = ExtractOptions()


class ImageExtractRequest(CamelModel):
    image_url: str = ""


class PageResponse(CamelModel):
    page_number: int
    text: str
    method: str
    word_count: int


class ExtractionResponse(CamelModel):
    """Hybrid extraction response."""

    success: bool
    text: str = ""
    pages: list[PageResponse] = []
    total_pages: int = 0
    text_layer_pages: int = 0
    ocr_pages: int = 0
    cost_savings_percent: int = 0
    error: str | None = None


class PreviewResponse(CamelModel):
    """OCR preview response."""

    success: bool
    needs_ocr: bool = False
    total_pages: int = 0
    text_layer_pages: int = 0
    error: str | None = None


class ImageExtractionResponse(CamelModel):
    success: bool
    text: str = ""
    error: str | None = None


class HealthResponse(CamelModel):
    """Health check response."""

    status: str = "healthy"
    active: int = 0
    version: str = __version__


# ============================================================================
# Request metrics
# ============================================================================


class RequestMetrics:
    """Counters for admitted requests."""

    def __init__(self):
        self._lock = threading.Lock()
        self.total = 0
        self.started_at = time.time()

    def record(self) -> None:
        with self._lock:
            self.total += 1


def _parse_body(model: type[CamelModel], body: bytes) -> CamelModel:
    if len(body) > MAX_JSON_BODY_BYTES:
        raise ValidationError("request body too large")
    try:
        return model.model_validate_json(body or b"{}")
    except pydantic.ValidationError as e:
        errors = e.errors()
        detail = errors[0].get("msg", "invalid") if errors else "invalid"
        loc = ".".join(str(p) for p in errors[0].get("loc", ())) if errors else ""
        raise ValidationError(f"invalid request body: {loc} {detail}".strip()) from e


def _log_path(path: str) -> str:
    path = path.replace("\n", "").replace("\r", "")
    if len(path) > MAX_LOG_PATH:
        path = path[:MAX_LOG_PATH] + "..."
    return path


def _discard_result(work: asyncio.Future) -> None:
    if work.cancelled():
        return
    exc = work.exception()
    if exc is not None:
        logger.info("Abandoned request stopped: %s", sanitize_error(str(exc)))


async def run_cancellable(func, body: bytes, deadline: Deadline):
    """
    Run a blocking handler in the threadpool, tied to the calling request.

    When the awaiting request is cancelled (client disconnected), the
    deadline is cancelled so the worker stops at its next blocking point
    and releases its slots.

    Args:
        func: Blocking handler called as ``func(body, deadline)``
        body: Raw request body
        deadline: Request deadline shared with the worker

    Returns:
        The handler's return value
    """
    work = asyncio.ensure_future(run_in_threadpool(func, body, deadline))
    try:
        return await asyncio.shield(work)
    except asyncio.CancelledError:
        deadline.cancel()
        work.add_done_callback(_discard_result)
        raise


# ============================================================================
# Application factory
# ============================================================================


def create_app(
    config: ServiceConfig | None = None,
    processor: HybridProcessor | None = None,
    gateway: BaseOCRGateway | None = None,
    admission: AdmissionController | None = None,
    limiter: RateLimiter | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Components not passed in are built from ``config``.

    Args:
        config: Service configuration (default: from environment)
        processor: Hybrid processor
        gateway: OCR gateway, shared with the processor when both are built here
        admission: Request and OCR slot pools
        limiter: Per-client rate limiter

    Returns:
        Configured FastAPI app
    """
    config = config or ServiceConfig.from_env()

    if gateway is None:
        gateway = processor.gateway if processor is not None else create_gateway(
            api_key=config.mistral_api_key,
            model=config.default_ocr_model,
            url=config.mistral_ocr_url,
        )
    if processor is None:
        processor = HybridProcessor(
            page_source=create_page_source(config.page_source, config.pdftotext_timeout),
            gateway=gateway,
            defaults=config.default_options(),
        )
    if admission is None:
        admission = AdmissionController(
            request_capacity=config.max_concurrent_requests,
            ocr_capacity=config.max_ocr_concurrent,
            request_wait=config.request_slot_wait,
        )
    if limiter is None:
        limiter = RateLimiter(
            every=config.rate_limit_every,
            burst=config.rate_limit_burst,
        )
    metrics = RequestMetrics()

    def log_stats() -> None:
        usage = admission.snapshot()
        logger.info(
            "[stats] active=%d total=%d ocr=%d clients=%d",
            usage["requestsInUse"],
            metrics.total,
            usage["ocrInUse"],
            len(limiter),
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        limiter.start_cleanup(config.cleanup_interval, on_tick=log_stats)
        logger.info(
            "Hybrid extraction service started (max concurrent: %d, OCR: %d, gateway: %s)",
            config.max_concurrent_requests,
            config.max_ocr_concurrent,
            gateway.name,
        )
        yield
        limiter.stop_cleanup()

    app = FastAPI(
        title="Hybrid Extraction Service",
        description="PDF text extraction that only OCRs the pages that need it",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.processor = processor
    app.state.admission = admission
    app.state.limiter = limiter
    app.state.metrics = metrics

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def check_auth(request: Request) -> None:
        if not config.auth_enabled:
            return
        got = request.headers.get("x-internal-auth", "")
        if not hmac.compare_digest(got.encode("utf-8"), config.internal_secret.encode("utf-8")):
            raise AuthenticationError("Invalid authentication")

    def check_rate_limit(request: Request) -> None:
        host = request.client.host if request.client else None
        key = client_key(request.headers, host)
        if not limiter.allow(key):
            logger.warning("Rate limit exceeded for %s", key)
            raise RateLimitError("Rate limit exceeded")

    async def guarded_body(request: Request) -> bytes:
        check_auth(request)
        check_rate_limit(request)
        return await request.body()

    # ------------------------------------------------------------------
    # Blocking handlers (run in the threadpool)
    # ------------------------------------------------------------------

    def parse_extract(body: bytes) -> tuple[str, HybridOptions]:
        req = _parse_body(ExtractRequest, body)
        url = validate_url(req.presigned_url, "presignedUrl", config.max_url_len)
        return url, processor.apply_defaults(req.options.to_options())

    def run_extract(body: bytes, deadline: Deadline) -> ExtractionResponse:
        with admission.try_acquire_request_slot(deadline=deadline):
            metrics.record()
            url, opts = parse_extract(body)

            with downloaded_pdf(url, config.max_pdf_bytes, config.download_timeout, deadline) as path:
                # ocr_trigger_ratio > 0 here, enforced by apply_defaults
                with admission.try_acquire_ocr_slot(deadline=deadline):
                    result = processor.process_hybrid(DocumentRef(path=path, url=url), opts, deadline)

        return ExtractionResponse(
            success=result.success,
            text=result.text,
            pages=[
                PageResponse(
                    page_number=p.page_number,
                    text=p.text,
                    method=p.method.value,
                    word_count=p.word_count,
                )
                for p in result.pages
            ],
            total_pages=result.total_pages,
            text_layer_pages=result.text_layer_pages,
            ocr_pages=result.ocr_pages,
            cost_savings_percent=result.cost_savings_percent,
            error=result.error,
        )

    def run_preview(body: bytes, deadline: Deadline) -> PreviewResponse:
        with admission.try_acquire_request_slot(deadline=deadline):
            metrics.record()
            url, opts = parse_extract(body)

            with downloaded_pdf(url, config.max_pdf_bytes, config.download_timeout, deadline) as path:
                result = processor.process_preview(DocumentRef(path=path, url=url), opts, deadline)

        return PreviewResponse(
            success=result.success,
            needs_ocr=result.needs_ocr,
            total_pages=result.total_pages,
            text_layer_pages=result.text_layer_pages,
            error=result.error,
        )

    def run_image(body: bytes, deadline: Deadline) -> ImageExtractionResponse:
        with admission.try_acquire_request_slot(deadline=deadline):
            metrics.record()
            req = _parse_body(ImageExtractRequest, body)
            url = validate_image_url(req.image_url, config.max_url_len)

            with admission.try_acquire_ocr_slot(deadline=deadline):
                result = process_image(
                    gateway,
                    url,
                    model=config.default_ocr_model,
                    deadline=deadline,
                )

        return ImageExtractionResponse(
            success=result.success,
            text=result.text,
            error=result.error,
        )

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check():
        """Health check endpoint for container orchestration."""
        active = admission.requests.in_use
        ratio = config.health_degrade_ratio
        if ratio <= 0 or ratio > 1:
            ratio = 0.9

        if active >= int(config.max_concurrent_requests * ratio):
            return JSONResponse(
                status_code=503,
                content=HealthResponse(status="degraded", active=active).model_dump(by_alias=True),
            )
        return HealthResponse(status="healthy", active=active)

    @app.get("/metrics", tags=["System"])
    async def get_metrics(request: Request):
        """Request counters, pool usage and limiter size."""
        check_auth(request)
        usage = admission.snapshot()
        return {
            "activeRequests": usage["requestsInUse"],
            "totalRequests": metrics.total,
            "uptimeSeconds": round(time.time() - metrics.started_at, 1),
            "rateLimitClients": len(limiter),
            **usage,
        }

    @app.post(
        "/pdf/extract",
        response_model=ExtractionResponse,
        response_model_exclude_none=True,
        tags=["Extraction"],
    )
    async def extract_pdf(request: Request):
        """
        Extract text from a remote PDF.

        The text layer is used for every page it scores well on; the other
        pages go to OCR in one batched call.
        """
        body = await guarded_body(request)
        return await run_cancellable(run_extract, body, Deadline(config.extract_timeout))

    @app.post(
        "/pdf/preview",
        response_model=PreviewResponse,
        response_model_exclude_none=True,
        tags=["Extraction"],
    )
    async def preview_pdf(request: Request):
        """Report whether a PDF would need OCR, without calling OCR."""
        body = await guarded_body(request)
        return await run_cancellable(run_preview, body, Deadline(config.preview_timeout))

    @app.post(
        "/image/extract",
        response_model=ImageExtractionResponse,
        response_model_exclude_none=True,
        tags=["Extraction"],
    )
    async def extract_image(request: Request):
        """OCR a single image URL."""
        body = await guarded_body(request)
        return await run_cancellable(run_image, body, Deadline(config.image_extract_timeout))

    # ------------------------------------------------------------------
    # Middleware and error handlers
    # ------------------------------------------------------------------

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        logger.info(
            "%s %s -> %d (%.0fms)",
            request.method,
            _log_path(request.url.path),
            response.status_code,
            (time.time() - start_time) * 1000,
        )
        return response

    @app.exception_handler(ExtractionServiceError)
    async def service_error_handler(request, exc: ExtractionServiceError):
        """Map service errors to their status code and error code."""
        if isinstance(exc, CapacityError):
            logger.warning("Rejected %s: %s", _log_path(request.url.path), exc)

        headers = None
        if isinstance(exc, RateLimitError):
            headers = {"Retry-After": str(exc.retry_after)}

        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": sanitize_error(exc), "code": exc.code},
            headers=headers,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        """General exception handler."""
        logger.exception("Unhandled error on %s", _log_path(request.url.path))
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error", "code": InternalError.code},
        )

    return app


app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8080")))
