from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from buttonsynth.app.api.generate import router as generate_router
from buttonsynth.app.core.config import settings
from buttonsynth.app.core.http_client import init_http_client
from buttonsynth.app.core.logging import get_logger, mask_secret, setup_logging
from buttonsynth.app.exceptions import (
    ButtonSynthError,
    ErrorKind,
    InternalConfigError,
    RateLimitError,
    UpstreamError,
)
from buttonsynth.app.middleware.rate_limit import (
    InMemoryRateLimiter,
    RateLimitMiddleware,
    RateLimitSweeper,
    rate_limited_response,
)
from buttonsynth.app.middleware.request_id import RequestIdMiddleware
from buttonsynth.app.middleware.request_size import RequestSizeLimitMiddleware
from buttonsynth.app.providers.factory import get_provider, reset_provider


def check_startup_config() -> None:
    """Refuse to start without credentials for the real backend.

    Raises:
        InternalConfigError: If no API key is configured and the mock
            provider is disabled
    """
    if settings.mock_provider:
        return
    if not settings.api_key_configured:
        raise InternalConfigError("OPENAI_API_KEY is missing")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)

    global_limiter = InMemoryRateLimiter(
        capacity=settings.rate_limit_global_capacity,
        window_seconds=settings.rate_limit_window_seconds,
        max_buckets=settings.rate_limit_max_buckets,
        ttl_windows=settings.rate_limit_ttl_windows,
        name="global",
    )
    generate_limiter = InMemoryRateLimiter(
        capacity=settings.rate_limit_generate_capacity,
        window_seconds=settings.rate_limit_window_seconds,
        max_buckets=settings.rate_limit_max_buckets,
        ttl_windows=settings.rate_limit_ttl_windows,
        name="generate",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan context manager.

        Validates configuration, opens the shared HTTP client, builds the
        provider and starts the bucket sweeper; tears them down on exit.
        """
        try:
            check_startup_config()
        except InternalConfigError as e:
            logger.critical(f"Startup aborted: {e.message}")
            raise

        if settings.api_key_configured:
            logger.info(f"OPENAI_API_KEY loaded: {mask_secret(settings.openai_api_key)}")

        async with init_http_client() as http_client:
            reset_provider()
            provider = get_provider(http_client)

            sweeper = RateLimitSweeper([global_limiter, generate_limiter])
            await sweeper.start()

            logger.info(
                "Application startup complete",
                extra={"model": provider.model, "provider": provider.name},
            )
            try:
                yield
            finally:
                await sweeper.stop()
                reset_provider()

        logger.info("Application shutdown complete")

    app = FastAPI(
        title="ButtonSynth",
        description="Generates sanitized HTML buttons from styling hints using a language model",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.global_limiter = global_limiter
    app.state.generate_limiter = generate_limiter

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(RateLimitMiddleware, limiter=global_limiter)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware, max_body_size=settings.max_body_bytes)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=[
            "X-Request-ID",
            "RateLimit-Limit",
            "RateLimit-Remaining",
            "RateLimit-Reset",
            "Retry-After",
        ],
        max_age=600,
    )

    app.include_router(generate_router)

    @app.get("/health", response_class=PlainTextResponse)
    async def health() -> str:
        """Liveness marker."""
        return "ok"

    @app.get("/debug/env")
    async def debug_env() -> dict[str, Any]:
        """Non-secret configuration. The API key itself is never returned."""
        return {
            "keyPresent": settings.api_key_configured,
            "model": settings.openai_model,
            "apiPort": settings.api_port,
            "uiOrigin": settings.ui_origin,
        }

    @app.exception_handler(RateLimitError)
    async def rate_limit_handler(request: Request, exc: RateLimitError) -> JSONResponse:
        """Handle RateLimitError and return HTTP 429 with Retry-After."""
        return rate_limited_response(exc.retry_after, exc.limit, exc.reset_after, exc.message)

    @app.exception_handler(ButtonSynthError)
    async def service_error_handler(request: Request, exc: ButtonSynthError) -> JSONResponse:
        """Convert service errors to ``{ok: false, error}``.

        Upstream failures are logged with their full detail; the client
        only receives the short message.
        """
        request_id = getattr(request.state, "request_id", None)
        if isinstance(exc, UpstreamError):
            logger.error(
                f"Generation failed: {exc.detail}",
                exc_info=exc if exc.__cause__ is not None else None,
                extra={"request_id": request_id, "error_kind": exc.kind.value},
            )
        elif exc.kind is ErrorKind.VALIDATION:
            logger.warning(
                f"Rejected request: {exc.message}",
                extra={"request_id": request_id, "error_kind": exc.kind.value},
            )
        else:
            logger.error(
                f"Service error: {exc.message}",
                extra={"request_id": request_id, "error_kind": exc.kind.value},
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"ok": False, "error": exc.message},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Logs full details server-side; never returns a traceback.
        """
        request_id = getattr(request.state, "request_id", "unknown")
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
            },
        )
        message = str(exc) if settings.debug else "Internal server error"
        return JSONResponse(
            status_code=500,
            content={"ok": False, "error": message},
        )

    return app


# Create the application instance
app = create_app()
