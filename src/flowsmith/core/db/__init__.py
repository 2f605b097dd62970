"""Database utilities - engine, session, migrations."""

from src.flowsmith.core.db.engine import (
    dispose_engine,
    dispose_sync_engine,
    get_engine,
    get_sync_engine,
    sync_database_url,
)
from src.flowsmith.core.db.migrations import run_migrations_async, run_migrations_sync
from src.flowsmith.core.db.session import (
    SessionScope,
    get_session,
    get_session_factory,
    session_scope,
)

__all__ = [
    # Engine (async)
    "dispose_engine",
    "get_engine",
    # Engine (sync - for Alembic)
    "dispose_sync_engine",
    "get_sync_engine",
    "sync_database_url",
    # Session
    "SessionScope",
    "get_session",
    "get_session_factory",
    "session_scope",
    # Migrations
    "run_migrations_async",
    "run_migrations_sync",
]
