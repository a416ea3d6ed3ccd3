"""FastAPI application configuration and setup.

Main entry point for the HTTP API with CORS, middleware,
exception handlers, and lifecycle management.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from latchkey import __version__
from latchkey.api.routes import api_router
from latchkey.exceptions import (
    ConfigurationError,
    InvalidAssertion,
    LatchkeyError,
    PasskeyError,
)
from latchkey.logging_config import configure_logging
from latchkey.passkey.orchestrator import PasskeyOrchestrator
from latchkey.passkey.verifier import PyWebAuthnVerifier
from latchkey.settings import Settings, get_settings
from latchkey.storage import build_record_store, close_db, init_db

# Context variable for correlation ID (thread-safe, async-safe)
_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Singleton app instance
_app: FastAPI | None = None

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    - Startup: configure logging, create the kv table for the database backend
    - Shutdown: close database connections
    """
    settings: Settings = app.state.settings
    configure_logging(settings.log_level)

    if settings.store_backend == "database":
        await init_db(settings)

    logger.info(
        "startup",
        environment=settings.environment,
        store_backend=settings.store_backend,
        rp_id=settings.webauthn_rp_id,
    )

    yield

    if settings.store_backend == "database":
        await close_db()


def build_orchestrator(settings: Settings) -> PasskeyOrchestrator:
    """Wire the orchestrator from settings.

    Raises:
        ConfigurationError: The database backend is selected without a URL
    """
    if settings.store_backend == "database" and not settings.database_url:
        raise ConfigurationError("store_backend=database requires DATABASE_URL")
    return PasskeyOrchestrator(
        build_record_store(settings),
        PyWebAuthnVerifier(settings.webauthn_rp_id),
        challenge_bytes=settings.challenge_bytes,
    )


def create_app(
    settings: Settings | None = None,
    orchestrator: PasskeyOrchestrator | None = None,
) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Args:
        settings: Optional settings override (uses get_settings() if not provided)
        orchestrator: Optional orchestrator override (built from settings if not provided)

    Returns:
        Configured FastAPI application
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="Latchkey",
        description="Passkey registration and login challenges",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator or build_orchestrator(settings)

    app.middleware("http")(_security_headers_middleware)

    # Add correlation ID middleware (must be before routes)
    app.middleware("http")(_correlation_middleware)

    # Add request tracing middleware (lazy import to avoid circular dependency)
    from latchkey.api.middleware import RequestTracingMiddleware

    app.add_middleware(RequestTracingMiddleware)

    # CORS is added last so it wraps every other middleware; preflight is answered here
    allowed_origins = get_allowed_origins(settings)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials="*" not in allowed_origins,
        allow_methods=_split_csv(settings.cors_allow_methods),
        allow_headers=_split_csv(settings.cors_allow_headers),
        expose_headers=["X-Correlation-ID"],
        max_age=settings.cors_max_age,
    )

    app.include_router(api_router)

    _register_exception_handlers(app)

    return app


def _split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def get_allowed_origins(settings: Settings) -> list[str]:
    """Parse the comma-separated CORS origin list (empty = same-origin only)."""
    return _split_csv(settings.allowed_origins)


def cors_error_headers(request: Request, settings: Settings) -> dict[str, str]:
    """CORS headers for responses rendered outside ``CORSMiddleware``.

    Unhandled exceptions are answered by Starlette's outermost error
    middleware, which sits outside the CORS layer.
    """
    origin = request.headers.get("origin")
    if not origin:
        return {}
    allowed_origins = get_allowed_origins(settings)
    if "*" in allowed_origins:
        return {"Access-Control-Allow-Origin": "*"}
    if origin in allowed_origins:
        return {
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Credentials": "true",
            "Vary": "Origin",
        }
    return {}


async def _security_headers_middleware(request: Request, call_next):
    """Middleware to add security-related HTTP headers.

    Args:
        request: FastAPI request object
        call_next: Next middleware/handler

    Returns:
        Response with security headers
    """
    settings: Settings = request.app.state.settings
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    if settings.environment in ("production", "staging"):
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
    # Challenges must never be served from a cache
    response.headers["Cache-Control"] = "no-store"

    return response


async def _correlation_middleware(request: Request, call_next):
    """Middleware to generate and propagate correlation IDs.

    Args:
        request: FastAPI request object
        call_next: Next middleware/handler in the chain

    Returns:
        Response with X-Correlation-ID header
    """
    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
    _correlation_id.set(correlation_id)

    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


def get_correlation_id() -> str | None:
    """Get the current request's correlation ID from context.

    Returns:
        Correlation ID string or None if not in request context
    """
    return _correlation_id.get()


def _error_response(
    status_code: int,
    message: Any,
    error_type: str,
    correlation_id: str,
    extra_headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": status_code,
                "message": message,
                "type": error_type,
                "correlation_id": correlation_id,
            }
        },
        headers={"X-Correlation-ID": correlation_id, **(extra_headers or {})},
    )


def _register_exception_handlers(app: FastAPI) -> None:
    """Register custom exception handlers.

    Args:
        app: FastAPI application
    """

    @app.exception_handler(PasskeyError)
    async def passkey_error_handler(request: Request, exc: PasskeyError) -> JSONResponse:
        """Render protocol failures with their mapped status code."""
        correlation_id = get_correlation_id() or exc.correlation_id
        logger.info(
            "passkey_rejected",
            error_type=exc.error_type,
            status=exc.status_code,
            path=request.url.path,
            correlation_id=correlation_id,
        )

        if isinstance(exc, InvalidAssertion):
            content: dict[str, Any] = {"name": exc.kind, "message": str(exc)}
            if exc.details:
                content["details"] = exc.details
            return JSONResponse(
                status_code=exc.status_code,
                content=content,
                headers={"X-Correlation-ID": correlation_id},
            )

        return _error_response(exc.status_code, str(exc), exc.error_type, correlation_id)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Malformed bodies are plain 400s."""
        correlation_id = get_correlation_id() or str(uuid.uuid4())
        return _error_response(400, "Malformed request body.", "bad_request", correlation_id)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle HTTP exceptions with consistent format."""
        correlation_id = get_correlation_id() or str(uuid.uuid4())
        return _error_response(exc.status_code, exc.detail, "http_error", correlation_id)

    @app.exception_handler(LatchkeyError)
    async def latchkey_error_handler(request: Request, exc: LatchkeyError) -> JSONResponse:
        """Store and configuration failures are fatal for the request."""
        correlation_id = get_correlation_id() or exc.correlation_id
        error_type = exc.__class__.__name__.replace("Error", "_error").lower()
        logger.error(
            "Latchkey error",
            error_type=error_type,
            correlation_id=correlation_id,
            exc_info=exc,
        )
        message = str(exc) if app.state.settings.debug else (
            f"An error occurred. Correlation ID: {correlation_id}"
        )
        return _error_response(500, message, error_type, correlation_id)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        correlation_id = get_correlation_id() or str(uuid.uuid4())
        logger.exception(
            "Unhandled exception",
            correlation_id=correlation_id,
            exc_info=exc,
        )
        detail = str(exc) if app.state.settings.debug else "Internal server error"
        return _error_response(
            500,
            detail,
            "internal_error",
            correlation_id,
            cors_error_headers(request, app.state.settings),
        )


def get_app() -> FastAPI:
    """Get or create the singleton FastAPI application.

    Returns:
        FastAPI application instance
    """
    global _app
    if _app is None:
        _app = create_app()
    return _app


# For uvicorn: use "latchkey.api.main:get_app" with --factory flag,
# or "latchkey.api.main:app" which lazily initializes on first access.
def __getattr__(name: str) -> Any:
    """Module-level __getattr__ for lazy app initialization."""
    if name == "app":
        return get_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
