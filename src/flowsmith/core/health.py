"""Health and metrics endpoints."""

import secrets
import time
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.security import APIKeyHeader
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import text

from src.flowsmith.core.config import get_settings
from src.flowsmith.core.db import get_session
from src.flowsmith.services.execution_service import get_stop_watchdog
from src.flowsmith.temporal.client import get_temporal_client

_health_cache: dict[str, Any] | None = None
_health_cache_time: float = 0
HEALTH_CACHE_TTL = 10  # seconds


def reset_health_cache() -> None:
    """Reset health cache (for testing)."""
    global _health_cache, _health_cache_time
    _health_cache = None
    _health_cache_time = 0


async def check_database() -> str:
    try:
        async with get_session() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        return f"unhealthy: {e!s}"
    return "healthy"


async def check_temporal() -> str:
    try:
        await get_temporal_client()
    except Exception as e:
        return f"unhealthy: {e!s}"
    return "healthy"


def setup_health_endpoint(app: FastAPI) -> None:
    """Configure the health check endpoint."""

    @app.get("/health")
    async def health() -> JSONResponse:
        """Database is required; Temporal being down only degrades the service."""
        global _health_cache, _health_cache_time

        now = time.time()
        if _health_cache and (now - _health_cache_time) < HEALTH_CACHE_TTL:
            cached_response = _health_cache.copy()
            cached_response["cached"] = True
            cached_response["cache_age_seconds"] = round(now - _health_cache_time, 1)
            status_code = 200 if cached_response["status"] == "healthy" else 503
            return JSONResponse(content=cached_response, status_code=status_code)

        health_status: dict[str, Any] = {
            "status": "healthy",
            "database": await check_database(),
            "temporal": await check_temporal(),
            "pending_stop_timers": get_stop_watchdog().armed_count,
            "cached": False,
            "timestamp": now,
        }
        if health_status["database"] != "healthy":
            health_status["status"] = "unhealthy"
        elif health_status["temporal"] != "healthy":
            health_status["status"] = "degraded"

        _health_cache = health_status
        _health_cache_time = now

        status_code = 200 if health_status["status"] == "healthy" else 503
        return JSONResponse(content=health_status, status_code=status_code)


def setup_metrics(app: FastAPI) -> None:
    """Configure Prometheus metrics with optional API key protection."""
    settings = get_settings()
    instrumentator = Instrumentator().instrument(app)

    if settings.metrics_api_key:
        api_key_header = APIKeyHeader(name="X-Metrics-Key", auto_error=False)

        async def verify_metrics_key(
            api_key: str | None = Depends(api_key_header),
        ) -> None:
            if (
                api_key is None
                or settings.metrics_api_key is None
                or not secrets.compare_digest(api_key, settings.metrics_api_key)
            ):
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid or missing metrics API key",
                )

        instrumentator.expose(app, endpoint="/metrics", dependencies=[Depends(verify_metrics_key)])
    else:
        instrumentator.expose(app, endpoint="/metrics")
