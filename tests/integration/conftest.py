"""Integration test fixtures for database and HTTP client operations.

Tests run against a SQLite file migrated with Alembic, the same way deployments
migrate PostgreSQL. Runner, version publisher, VCS provider and email sender are
replaced by the in-memory fakes from tests/fakes.py.
"""

import asyncio
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from src.flowsmith.api.dependencies import (
    get_db_session,
    get_email_sender,
    get_runner,
    get_session_scope,
    get_vcs_client,
    get_version_publisher,
)
from src.flowsmith.core import db
from src.flowsmith.core.config import get_settings
from src.flowsmith.core.db import SessionScope, get_session, run_migrations_sync, session_scope
from src.flowsmith.main import create_app
from src.flowsmith.models import Automation
from src.flowsmith.services import (
    AutomationService,
    ExecutionLedger,
    ExecutionStateMachine,
    SchedulerService,
    SyncCoordinator,
    VersionStore,
)
from src.flowsmith.services.wiring import (
    build_automation_service,
    build_ledger,
    build_scheduler,
    build_state_machine,
    build_sync_coordinator,
    build_version_store,
)
from tests.fakes import FakePublisher, FakeRunner, FakeVcsClient, RecordingEmailSender

USER_HEADERS = {
    "X-User-ID": "user-1",
    "X-User-Name": "Ada Lovelace",
    "X-User-Email": "ada@example.com",
}


@pytest.fixture(scope="function")
async def engine() -> AsyncGenerator[AsyncEngine]:
    """Create test database engine and ensure migrations are applied."""
    await db.dispose_engine()

    settings = get_settings()
    test_engine = create_async_engine(settings.database_url, poolclass=NullPool)

    await asyncio.to_thread(run_migrations_sync)

    yield test_engine

    # Empty every table so tests stay independent
    async with test_engine.begin() as conn:
        for table in reversed(SQLModel.metadata.sorted_tables):
            await conn.execute(table.delete())
    await test_engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession]:
    """Provide an async session configured like the application's sessions.

    Services commit for themselves; tests that add rows directly must call
    `await session.commit()`.
    """
    async with AsyncSession(engine, expire_on_commit=False, autoflush=False) as session:
        yield session


@pytest.fixture
def scope(engine: AsyncEngine) -> SessionScope:
    """Opens fresh sessions on the test engine, for background work and re-reads."""
    return session_scope(engine)


# --- Services wired with fakes ---


@pytest.fixture
def automation_service(db_session: AsyncSession, publisher: FakePublisher) -> AutomationService:
    return build_automation_service(db_session, publisher)


@pytest.fixture
def version_store(db_session: AsyncSession, publisher: FakePublisher) -> VersionStore:
    return build_version_store(db_session, publisher)


@pytest.fixture
def ledger(db_session: AsyncSession) -> ExecutionLedger:
    return build_ledger(db_session)


@pytest.fixture
def machine(
    db_session: AsyncSession,
    runner: FakeRunner,
    publisher: FakePublisher,
    email_sender: RecordingEmailSender,
    scope: SessionScope,
) -> ExecutionStateMachine:
    return build_state_machine(db_session, runner, publisher, email_sender, scope)


@pytest.fixture
def scheduler(
    db_session: AsyncSession,
    runner: FakeRunner,
    publisher: FakePublisher,
    email_sender: RecordingEmailSender,
    scope: SessionScope,
) -> SchedulerService:
    return build_scheduler(db_session, runner, publisher, email_sender, scope)


@pytest.fixture
def sync_coordinator(db_session: AsyncSession, vcs_client: FakeVcsClient) -> SyncCoordinator:
    return build_sync_coordinator(db_session, vcs_client)


@pytest.fixture
async def automation(automation_service: AutomationService) -> Automation:
    """Single-file automation owned by user-1, with version 0.0.1."""
    return await automation_service.create(
        owner_user_id="user-1",
        title="Nightly report",
        code="console.log('v1')",
        env_var_names=["API_TOKEN"],
    )


# --- HTTP client ---


@pytest.fixture
async def client(
    engine: AsyncEngine,
    runner: FakeRunner,
    publisher: FakePublisher,
    vcs_client: FakeVcsClient,
    email_sender: RecordingEmailSender,
) -> AsyncGenerator[AsyncClient]:
    """HTTP client against the app, with sessions on the test engine and fakes injected."""
    app = create_app()

    async def _get_db_session() -> AsyncGenerator[AsyncSession]:
        async with get_session(engine) as session:
            yield session

    app.dependency_overrides[get_db_session] = _get_db_session
    app.dependency_overrides[get_session_scope] = lambda: session_scope(engine)
    app.dependency_overrides[get_runner] = lambda: runner
    app.dependency_overrides[get_version_publisher] = lambda: publisher
    app.dependency_overrides[get_vcs_client] = lambda: vcs_client
    app.dependency_overrides[get_email_sender] = lambda: email_sender

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers=USER_HEADERS,
    ) as ac:
        yield ac


@pytest.fixture
async def created(client: AsyncClient) -> dict:
    """Automation created through the API, as returned by it."""
    response = await client.post(
        "/api/v1/automations",
        json={
            "title": "Nightly report",
            "code": "console.log('v1')",
            "env_var_names": ["API_TOKEN"],
        },
    )
    assert response.status_code == 201
    return response.json()
