"""Root test fixtures shared across all test types.

This conftest contains fixtures that can be used by both unit and integration tests.
Database-specific fixtures are in tests/integration/conftest.py.
"""

import os
import tempfile

# Point every test at a throwaway SQLite file before any app imports
_TEST_DB_DIR = tempfile.mkdtemp(prefix="flowsmith-tests-")
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DB_DIR}/flowsmith.db")
os.environ["RESEND_API_KEY"] = ""
os.environ["METRICS_API_KEY"] = ""

# ruff: noqa: E402 - Imports must be after env var setup
from collections.abc import AsyncGenerator

import pytest

from src.flowsmith.core.config import get_settings
from src.flowsmith.services.execution_service import get_stop_watchdog
from tests.fakes import FakePublisher, FakeRunner, FakeVcsClient, RecordingEmailSender

# Clear settings cache to ensure test environment variables are picked up
get_settings.cache_clear()


@pytest.fixture(autouse=True)
async def _drain_stop_timers() -> AsyncGenerator[None]:
    """Cancel stop timers armed during a test.

    Timers are tasks on the test's event loop; left alone they would fire into
    a closed loop after the test ends.
    """
    yield
    await get_stop_watchdog().drain()


# --- Integration fakes (shared) ---


@pytest.fixture
def runner() -> FakeRunner:
    """Runner that records requests instead of starting workflows."""
    return FakeRunner()


@pytest.fixture
def publisher() -> FakePublisher:
    """Version publisher that records VersionCreated events."""
    return FakePublisher()


@pytest.fixture
def vcs_client() -> FakeVcsClient:
    """In-memory version-control provider."""
    return FakeVcsClient()


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    """Email sender that records notifications and reports success."""
    return RecordingEmailSender()
