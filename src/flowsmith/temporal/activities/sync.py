"""Version sync activity."""

from uuid import UUID

from temporalio import activity

from src.flowsmith.core.db import session_scope
from src.flowsmith.services.wiring import build_sync_coordinator


@activity.defn
async def sync_version(version_id: str) -> str:
    """Push one version to its automation's linked repository.

    Failures are recorded on the version rather than raised; returns the
    resulting sync status.
    """
    async with session_scope()() as session:
        status = await build_sync_coordinator(session).handle_version_created(UUID(version_id))
    activity.logger.info(f"Version {version_id} sync finished: {status.value}")
    return status.value
