"""
Main FastAPI application entry point.

This module sets up the FastAPI app with all middleware, routes, and lifecycle events.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from .api import admin_router, healthz_router, metrics_router, public_router
from .api.deps import get_client_ip
from .config import Settings, get_settings
from .core.auth import AdminGate
from .core.exceptions import HoneytrapException, SessionRequiredError
from .core.health import HealthChecker
from .core.ingestion import IngestionPipeline
from .core.metrics import MetricsCollector
from .core.ratelimit import build_admin_limiter, build_login_limiter
from .core.stats import StatsAggregator
from .core.store import PersistenceStore
from .core.trap import CredentialTrap
from .models.records import ADMIN_PIN_KEY, build_request_log

# Operational endpoints are not attacker traffic
UNCAPTURED_PATHS = frozenset({"/health", "/metrics"})


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured logging for the application."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper()),
    )

    # Silence the verbose watchfiles logger
    logging.getLogger("watchfiles").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def create_lifespan_handler(settings: Settings) -> Any:
    """Create a lifespan handler with access to settings."""
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        FastAPI lifespan context manager.

        Builds the store, limiters and background writers, and drains
        pending captures on shutdown.
        """
        logger = structlog.get_logger(__name__)
        logger.info("Starting honeytrap service", version=app.version, environment=settings.environment)

        metrics = MetricsCollector()
        app.state.metrics = metrics

        store = PersistenceStore(settings.database.url, echo=settings.database.echo)
        store.create_all()
        if settings.database.seed_defaults:
            store.ensure_config(
                ADMIN_PIN_KEY,
                settings.database.default_admin_pin,
                description="Admin panel access PIN - change this in production",
            )
        app.state.store = store

        pipeline = IngestionPipeline(
            store=store,
            metrics=metrics,
            workers=settings.ingestion.workers,
            queue_max_size=settings.ingestion.queue_max_size,
            shutdown_timeout_seconds=settings.ingestion.shutdown_timeout_seconds,
        )
        app.state.pipeline = pipeline
        await pipeline.start()

        app.state.login_limiter = build_login_limiter(
            window_seconds=settings.security.login_rate_window_seconds,
            max_requests=settings.security.login_rate_max,
        )
        app.state.admin_limiter = build_admin_limiter(
            window_seconds=settings.security.admin_rate_window_seconds,
            max_requests=settings.security.admin_rate_max,
        )

        app.state.trap = CredentialTrap(
            pipeline=pipeline,
            metrics=metrics,
            max_field_length=settings.trap.max_field_length,
            delay_min_seconds=settings.trap.delay_min_ms / 1000,
            delay_max_seconds=settings.trap.delay_max_ms / 1000,
        )
        app.state.gate = AdminGate(
            store=store,
            pipeline=pipeline,
            metrics=metrics,
            session_ttl_seconds=settings.security.session_max_age_seconds,
        )
        app.state.stats = StatsAggregator(store=store, metrics=metrics)
        app.state.health_checker = HealthChecker(store=store, pipeline=pipeline)

        try:
            logger.info("Honeytrap service started successfully", admin_path=settings.admin.path)
            yield
        finally:
            logger.info("Shutting down honeytrap service")
            await pipeline.stop()
            store.dispose()
            logger.info("Honeytrap service shutdown complete")

    return lifespan


async def capture_request(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    """
    Submit a request log record for every inbound request.

    Runs before routing so 404s and rate-limited calls are captured too.
    Capture problems are logged and never affect the response.
    """
    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is not None and request.url.path not in UNCAPTURED_PATHS:
        try:
            pipeline.record(
                build_request_log(
                    ip_address=get_client_ip(request),
                    user_agent=request.headers.get("user-agent"),
                    method=request.method,
                    path=request.url.path,
                    referer=request.headers.get("referer"),
                )
            )
            metrics = getattr(request.app.state, "metrics", None)
            if metrics:
                metrics.record_request(request.method)
        except Exception as e:
            structlog.get_logger(__name__).error(
                "Request capture failed",
                path=request.url.path,
                error=str(e),
                exc_info=True,
            )
    return await call_next(request)


async def honeytrap_exception_handler(request: Request, exc: HoneytrapException) -> Response:
    """Handle custom honeytrap exceptions."""
    if isinstance(exc, SessionRequiredError):
        return RedirectResponse(url=exc.details["redirect_to"], status_code=302)

    logger = structlog.get_logger(__name__)
    logger.info(
        "Request rejected",
        error_code=exc.error_code,
        status_code=exc.status_code,
        path=request.url.path,
        method=request.method,
    )

    headers = {}
    if exc.status_code == 429 and "retry_after" in exc.details:
        headers["Retry-After"] = str(exc.details["retry_after"])

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc)},
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """Plain 404s look like any other web server's."""
    if exc.status_code == 404:
        return PlainTextResponse("Not Found", status_code=404)
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


async def general_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle unexpected exceptions without leaking details."""
    logger = structlog.get_logger(__name__)
    logger.error(
        "Unexpected exception occurred",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    return PlainTextResponse("Internal Server Error", status_code=500)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory function ensures all configuration is applied
    whether running via uvicorn or direct execution.
    """
    settings = settings or get_settings()

    configure_logging(settings.log_level)

    app = FastAPI(
        title="Honeytrap",
        description="Credential capture honeypot with PIN-gated analytics",
        version="0.1.0",
        docs_url=None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=create_lifespan_handler(settings),
    )
    app.state.settings = settings
    app.state.admin_path = settings.admin.path.rstrip("/")
    app.state.trust_proxy = settings.trust_proxy
    app.state.trusted_proxy_hops = settings.trusted_proxy_hops

    app.middleware("http")(capture_request)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.security.session_secret,
        session_cookie=settings.security.session_cookie,
        max_age=settings.security.session_max_age_seconds,
        same_site="lax",
        https_only=settings.is_production,
    )

    app.add_exception_handler(HoneytrapException, honeytrap_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(public_router, tags=["trap"])
    app.include_router(admin_router, prefix=app.state.admin_path, tags=["admin"])
    app.include_router(healthz_router, tags=["health"])
    if settings.metrics_enabled:
        app.include_router(metrics_router, tags=["metrics"])

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "honeytrap.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
        proxy_headers=settings.trust_proxy,
    )
