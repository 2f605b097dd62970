"""Version endpoints - history, diffs, rollback and sync retry."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from src.flowsmith.api.dependencies import (
    AuthenticatedActor,
    SyncCoordinatorDep,
    VersionStoreDep,
)
from src.flowsmith.core.exceptions import NotFound
from src.flowsmith.schemas import (
    FileDiffRead,
    PendingRollbackRead,
    RollbackPlanRead,
    RollbackRequest,
    SyncResultRead,
    VersionRead,
    VersionStatsRead,
    VersionSummary,
)

router = APIRouter(tags=["versions"])


@router.get(
    "/automations/{automation_id}/versions",
    response_model=list[VersionSummary],
    summary="List versions",
    description="Versions of an automation, newest first.",
)
async def list_versions(
    automation_id: UUID,
    store: VersionStoreDep,
    limit: Annotated[int, Query(ge=1, le=200, description="Max items to return")] = 50,
) -> list[VersionSummary]:
    versions = await store.list_versions(automation_id, limit)
    return [VersionSummary.model_validate(v) for v in versions]


@router.get(
    "/automations/{automation_id}/versions/stats",
    response_model=VersionStatsRead,
    summary="Version statistics",
)
async def version_stats(automation_id: UUID, store: VersionStoreDep) -> VersionStatsRead:
    return VersionStatsRead.model_validate(await store.version_stats(automation_id))


@router.get(
    "/versions/diff",
    response_model=list[FileDiffRead],
    summary="Diff two versions",
    description="Per-file line diff from one version to another of the same automation.",
)
async def diff_versions(
    from_version_id: UUID,
    to_version_id: UUID,
    store: VersionStoreDep,
) -> list[FileDiffRead]:
    diffs = await store.diff(from_version_id, to_version_id)
    return [FileDiffRead.model_validate(d) for d in diffs]


@router.get(
    "/versions/{version_id}",
    response_model=VersionRead,
    summary="Get version",
    responses={404: {"description": "Version not found"}},
)
async def get_version(version_id: UUID, store: VersionStoreDep) -> VersionRead:
    return VersionRead.model_validate(await store.get_version(version_id))


@router.post(
    "/automations/{automation_id}/rollback",
    response_model=RollbackPlanRead,
    summary="Roll back to a version",
    description=(
        "Stages the target version's content. With auto_accept a new version is "
        "created right away; otherwise the rollback waits for accept or discard."
    ),
    responses={409: {"description": "Automation is busy or was modified concurrently"}},
)
async def rollback(
    automation_id: UUID,
    request: RollbackRequest,
    actor: AuthenticatedActor,
    store: VersionStoreDep,
) -> RollbackPlanRead:
    plan = await store.rollback(
        automation_id,
        request.target_version_id,
        auto_accept=request.auto_accept,
        created_by=actor.user_id,
        expected_doc_version=request.doc_version,
    )
    return RollbackPlanRead.model_validate(plan)


@router.get(
    "/automations/{automation_id}/rollback",
    response_model=PendingRollbackRead,
    summary="Get pending rollback",
    responses={404: {"description": "No pending rollback"}},
)
async def get_pending_rollback(
    automation_id: UUID, store: VersionStoreDep
) -> PendingRollbackRead:
    pending = await store.get_pending_rollback(automation_id)
    if pending is None:
        raise NotFound("No pending rollback", automation_id=str(automation_id))
    return PendingRollbackRead.model_validate(pending)


@router.post(
    "/automations/{automation_id}/rollback/accept",
    response_model=VersionRead,
    status_code=status.HTTP_201_CREATED,
    summary="Accept pending rollback",
)
async def accept_rollback(
    automation_id: UUID,
    actor: AuthenticatedActor,
    store: VersionStoreDep,
) -> VersionRead:
    version = await store.accept_rollback(automation_id, created_by=actor.user_id)
    return VersionRead.model_validate(version)


@router.delete(
    "/automations/{automation_id}/rollback",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Discard pending rollback",
)
async def discard_rollback(
    automation_id: UUID,
    _actor: AuthenticatedActor,
    store: VersionStoreDep,
) -> None:
    await store.discard_rollback(automation_id)


@router.post(
    "/versions/{version_id}/sync",
    response_model=SyncResultRead,
    summary="Retry version sync",
    description="Push the version to the linked repository again.",
)
async def retry_sync(
    version_id: UUID,
    actor: AuthenticatedActor,
    coordinator: SyncCoordinatorDep,
) -> SyncResultRead:
    result = await coordinator.retry(version_id, actor.user_id)
    return SyncResultRead(version_id=version_id, sync_status=result)
