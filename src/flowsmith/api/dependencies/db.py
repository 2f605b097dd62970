"""Database session dependencies."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.flowsmith.core.db import SessionScope, get_session, session_scope


async def get_db_session() -> AsyncGenerator[AsyncSession]:
    """Request-scoped session; one per request, shared by every dependency."""
    async with get_session() as session:
        yield session


def get_session_scope() -> SessionScope:
    """Opens sessions that outlive the request (watchers, stop timers)."""
    return session_scope()


DBSession = Annotated[AsyncSession, Depends(get_db_session)]
Scope = Annotated[SessionScope, Depends(get_session_scope)]
