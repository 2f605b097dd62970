from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from asgi_correlation_id import CorrelationIdMiddleware, correlation_id
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import RequestResponseEndpoint

from src.flowsmith.api.v1.router import api_router
from src.flowsmith.core.config import get_settings
from src.flowsmith.core.db import dispose_engine
from src.flowsmith.core.exceptions import setup_exception_handlers
from src.flowsmith.core.health import setup_health_endpoint, setup_metrics
from src.flowsmith.core.logging import (
    bind_request_context,
    clear_request_context,
    get_logger,
    setup_logging,
)
from src.flowsmith.services.execution_service import get_stop_watchdog
from src.flowsmith.temporal.client import close_temporal_client

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan - startup and shutdown."""
    settings = get_settings()
    setup_logging(settings.debug)
    logger.info(f"Starting {settings.app_name}")

    yield

    watchdog = get_stop_watchdog()
    if watchdog.armed_count:
        # Runs still stopping are force-closed by their workflow's grace period
        logger.warning("Cancelling pending stop timers", count=watchdog.armed_count)
    await watchdog.drain()

    logger.info("Closing connections...")
    await close_temporal_client()
    await dispose_engine()
    logger.info("Shutdown complete")


OPENAPI_TAGS = [
    {"name": "automations", "description": "Automation documents, edits and runs"},
    {"name": "versions", "description": "Version history, diffs and rollback"},
    {"name": "executions", "description": "Execution history ledger and logs"},
    {"name": "schedules", "description": "Cron schedules"},
    {"name": "vcs", "description": "Version-control mirroring"},
]


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Automation lifecycle engine: versions, runs, schedules and history",
        version="0.1.0",
        openapi_tags=OPENAPI_TAGS,
        lifespan=lifespan,
        docs_url="/docs" if settings.enable_openapi else None,
        redoc_url="/redoc" if settings.enable_openapi else None,
        openapi_url="/openapi.json" if settings.enable_openapi else None,
    )

    setup_exception_handlers(app)

    # Add correlation ID middleware first (outermost middleware)
    app.add_middleware(CorrelationIdMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=[
            "Content-Type",
            "X-Request-ID",
            "X-User-ID",
            "X-User-Name",
            "X-User-Email",
            "X-API-Key",
        ],
    )

    @app.middleware("http")
    async def logging_context_middleware(
        request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Bind request_id to log context for all requests."""
        clear_request_context()
        bind_request_context(correlation_id.get())
        try:
            return await call_next(request)
        finally:
            clear_request_context()

    app.include_router(api_router)
    setup_metrics(app)
    setup_health_endpoint(app)

    return app


app = create_app()
