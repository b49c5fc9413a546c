"""Premium Billing: FastAPI application entry point."""

import signal
import uuid
from contextlib import asynccontextmanager

# CRITICAL ORDER: configure_structlog MUST be called before all other package imports
# (structlog caches the processor chain on first use).
from premium_billing.core.logging import configure_structlog
from premium_billing.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from premium_billing.api.routes import api_router
from premium_billing.core.config import get_settings
from premium_billing.core.wiring import build_paystack_client, wire_services
from premium_billing.core.logging import get_correlation_id, setup_correlation_middleware
from premium_billing.db import close_db, close_redis, get_redis, get_session_factory, init_db, init_redis

logger = structlog.get_logger(__name__)


def validate_settings() -> None:
    """Fail fast if the Paystack secret is missing outside debug mode."""
    settings = get_settings()
    if settings.debug:
        return  # Skip in dev/test mode
    if not settings.paystack_secret_key:
        raise RuntimeError("Missing PAYSTACK_SECRET_KEY at startup")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # SIGTERM flips this so the health check returns 503 while connections drain
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)

    # Startup
    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    validate_settings()

    # Migrations own the schema; debug runs create it directly
    await init_db(create_schema=settings.debug)
    logger.info("db_initialized")

    await init_redis()
    logger.info("redis_initialized")

    provider = build_paystack_client(settings)
    wire_services(app, settings, get_session_factory(), get_redis(), provider)
    logger.info(
        "webhook_pipeline_ready",
        reverification=settings.provider_reverification_enabled,
        extension_policy=settings.subscription_extension_policy,
    )

    yield

    # Shutdown
    logger.info("shutdown_begin")
    await provider.aclose()
    await close_redis()
    await close_db()
    logger.info("shutdown_complete")


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Global exception handler for HTTPException with debug_id tracking.

    Logs errors server-side with full context, returns sanitized response to client.
    """
    debug_id = str(uuid.uuid4())

    logger.error(
        "http_exception",
        status_code=exc.status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        detail=exc.detail,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "debug_id": debug_id},
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors with debug_id tracking.

    Logs full exception with traceback, returns generic 500 to client.
    """
    debug_id = str(uuid.uuid4())

    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "debug_id": debug_id},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Paystack webhook receiver and premium subscription billing",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.frontend_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware (runs first on incoming requests)
    setup_correlation_middleware(app)

    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "premium_billing.main:app",
        host="0.0.0.0",
        port=10000,
        proxy_headers=True,
    )
