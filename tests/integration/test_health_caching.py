"""Tests for health check caching and status reporting."""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from src.flowsmith.core.health import reset_health_cache
from src.flowsmith.main import create_app

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


@pytest.fixture(autouse=True)
def clear_health_cache():
    """Reset health cache before each test."""
    reset_health_cache()
    yield
    reset_health_cache()


@pytest.fixture
def checks():
    """Patch the dependency checks; tests flip their return values."""
    database = AsyncMock(return_value="healthy")
    temporal = AsyncMock(return_value="healthy")
    with (
        patch("src.flowsmith.core.health.check_database", database),
        patch("src.flowsmith.core.health.check_temporal", temporal),
    ):
        yield database, temporal


@pytest.fixture
async def health_client(checks) -> AsyncGenerator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test") as c:
        yield c


async def test_health_check_caching(health_client: AsyncClient, checks):
    """Results are cached for 10 seconds."""
    database, _ = checks

    response1 = await health_client.get("/health")
    data1 = response1.json()

    assert response1.status_code == 200
    assert data1["status"] == "healthy"
    assert data1["cached"] is False
    assert "cache_age_seconds" not in data1

    response2 = await health_client.get("/health")
    data2 = response2.json()

    assert data2["cached"] is True
    assert data2["cache_age_seconds"] < 10
    assert database.await_count == 1, "Cache should prevent a new database check"


async def test_health_check_cache_expiry(health_client: AsyncClient, checks):
    """The cache expires after its TTL."""

    class MockTime:
        def __init__(self):
            self.current_time = 0.0

        def __call__(self):
            return self.current_time

    mock_time = MockTime()

    with patch("src.flowsmith.core.health.time.time", mock_time):
        mock_time.current_time = 1000.0
        assert (await health_client.get("/health")).json()["cached"] is False

        mock_time.current_time = 1001.0
        assert (await health_client.get("/health")).json()["cached"] is True

        mock_time.current_time = 1015.0
        assert (await health_client.get("/health")).json()["cached"] is False


async def test_database_down_is_unhealthy(health_client: AsyncClient, checks):
    database, _ = checks
    database.return_value = "unhealthy: connection refused"

    response = await health_client.get("/health")

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"


async def test_temporal_down_is_degraded(health_client: AsyncClient, checks):
    _, temporal = checks
    temporal.return_value = "unhealthy: no route to host"

    response = await health_client.get("/health")
    data = response.json()

    assert response.status_code == 503
    assert data["status"] == "degraded"
    assert data["database"] == "healthy"


async def test_health_check_includes_status_fields(health_client: AsyncClient):
    data = (await health_client.get("/health")).json()

    for key in ("status", "database", "temporal", "pending_stop_timers", "cached", "timestamp"):
        assert key in data
    assert data["pending_stop_timers"] == 0
    assert isinstance(data["timestamp"], int | float)
