"""VersionCreated event and its publishers."""

from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from src.flowsmith.core.config import get_settings
from src.flowsmith.core.logging import get_logger
from src.flowsmith.temporal.client import get_temporal_client

logger = get_logger(__name__)

VERSION_SYNC_WORKFLOW = "VersionSyncWorkflow"


@dataclass(frozen=True)
class VersionCreated:
    automation_id: UUID
    version_id: UUID
    version: str


class VersionEventPublisher(Protocol):
    async def publish(self, event: VersionCreated) -> None: ...


class TemporalVersionPublisher:
    """Start one VersionSyncWorkflow per new version.

    Publishing never fails the save that produced the version: a version whose
    sync could not be scheduled simply stays ``unsynced`` and can be retried.
    """

    @staticmethod
    def get_workflow_id(version_id: UUID) -> str:
        return f"version-sync-{version_id}"

    async def publish(self, event: VersionCreated) -> None:
        settings = get_settings()
        try:
            client = await get_temporal_client()
            await client.start_workflow(
                VERSION_SYNC_WORKFLOW,
                str(event.version_id),
                id=self.get_workflow_id(event.version_id),
                task_queue=settings.temporal_task_queue,
            )
        except Exception as e:
            logger.warning(
                "Failed to schedule version sync",
                automation_id=str(event.automation_id),
                version_id=str(event.version_id),
                error=str(e),
            )
