"""Database engine management."""

from typing import Any

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from src.flowsmith.core.config import get_settings

_engine: AsyncEngine | None = None
_sync_engine: Engine | None = None


def _engine_kwargs(url: str) -> dict[str, Any]:
    """Pool settings only apply to server databases; SQLite uses its default pool."""
    if make_url(url).get_backend_name() == "sqlite":
        return {"connect_args": {"check_same_thread": False}}
    settings = get_settings()
    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_pre_ping": True,
    }


def get_engine() -> AsyncEngine:
    """Get or create the database engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        url = settings.database_url
        _engine = create_async_engine(url, **_engine_kwargs(url))
    return _engine


async def dispose_engine() -> None:
    """Dispose the database engine. Call during shutdown."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None


def sync_database_url(url: str) -> str:
    """Convert an async driver URL to its sync counterpart (asyncpg -> psycopg2)."""
    return url.replace("+asyncpg", "").replace("+aiosqlite", "")


def get_sync_engine() -> Engine:
    """Get or create synchronous database engine singleton.

    Used by Alembic and one-off scripts that cannot run inside an event loop.
    """
    global _sync_engine
    if _sync_engine is None:
        settings = get_settings()
        _sync_engine = create_engine(sync_database_url(settings.database_url), pool_pre_ping=True)
    return _sync_engine


def dispose_sync_engine() -> None:
    """Dispose of the sync engine."""
    global _sync_engine
    if _sync_engine is not None:
        _sync_engine.dispose()
        _sync_engine = None
