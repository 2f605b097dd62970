"""Database session management."""

from collections.abc import AsyncGenerator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.flowsmith.core.db.engine import get_engine

SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def get_session_factory(engine: AsyncEngine | None = None) -> async_sessionmaker[AsyncSession]:
    """Build a session factory bound to the given (or default) engine."""
    return async_sessionmaker(
        bind=engine or get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def get_session(engine: AsyncEngine | None = None) -> AsyncGenerator[AsyncSession]:
    """Create a database session.

    Args:
        engine: Optional engine override for testing.
    """
    session_factory = get_session_factory(engine)
    async with session_factory() as session:
        yield session


def session_scope(engine: AsyncEngine | None = None) -> SessionScope:
    """Return a zero-argument callable opening fresh sessions on ``engine``.

    Background tasks outlive the request session, so they receive one of these
    instead of a session.
    """

    def _open() -> AbstractAsyncContextManager[AsyncSession]:
        return get_session(engine)

    return _open
