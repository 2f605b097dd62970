"""Caller identity from upstream headers.

Authentication happens in front of this service; requests arrive with the
caller in ``X-User-ID`` / ``X-User-Name`` / ``X-User-Email``.
"""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from src.flowsmith.core.logging import bind_user_context
from src.flowsmith.services.execution_service import Actor

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def get_actor(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_name: Annotated[str | None, Header()] = None,
    x_user_email: Annotated[str | None, Header()] = None,
) -> Actor:
    """Caller identity; anonymous when no headers are present."""
    if x_user_id:
        bind_user_context(x_user_id, x_user_email)
    return Actor(user_id=x_user_id or None, name=x_user_name, email=x_user_email)


async def require_actor(actor: Annotated[Actor, Depends(get_actor)]) -> Actor:
    if not actor.user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header is required",
        )
    return actor


async def require_user_id(actor: Annotated[Actor, Depends(require_actor)]) -> str:
    return actor.user_id or ""


CurrentActor = Annotated[Actor, Depends(get_actor)]
AuthenticatedActor = Annotated[Actor, Depends(require_actor)]
UserId = Annotated[str, Depends(require_user_id)]
ApiKey = Annotated[str | None, Security(api_key_header)]
