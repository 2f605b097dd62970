"""Version-control endpoints - account connection and per-automation repositories."""

from uuid import UUID

from fastapi import APIRouter, status

from src.flowsmith.api.dependencies import SyncCoordinatorDep, UserId
from src.flowsmith.schemas import (
    ConnectionCreate,
    ConnectionRead,
    RepositoryCreate,
    RepositoryLinkRead,
    RepositoryLinkRequest,
    SyncStateRead,
)

router = APIRouter(tags=["vcs"])


@router.post(
    "/vcs/connections",
    response_model=ConnectionRead,
    status_code=status.HTTP_201_CREATED,
    summary="Connect GitHub account",
    description="Verifies the access token with the provider; reconnecting replaces it.",
    responses={422: {"description": "Token could not be verified"}},
)
async def connect_account(
    request: ConnectionCreate,
    user_id: UserId,
    coordinator: SyncCoordinatorDep,
) -> ConnectionRead:
    connection = await coordinator.connect(user_id, request.access_token)
    return ConnectionRead.model_validate(connection)


@router.delete(
    "/vcs/connections",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Disconnect GitHub account",
    description="Also unlinks every repository linked through this account.",
)
async def disconnect_account(user_id: UserId, coordinator: SyncCoordinatorDep) -> None:
    await coordinator.disconnect_account(user_id)


@router.get(
    "/automations/{automation_id}/vcs",
    response_model=SyncStateRead,
    summary="Sync state",
)
async def sync_state(
    automation_id: UUID, user_id: UserId, coordinator: SyncCoordinatorDep
) -> SyncStateRead:
    return SyncStateRead.model_validate(await coordinator.state(automation_id, user_id))


@router.post(
    "/automations/{automation_id}/vcs/repository",
    response_model=RepositoryLinkRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create and link repository",
    responses={502: {"description": "Provider rejected the request"}},
)
async def create_repository(
    automation_id: UUID,
    request: RepositoryCreate,
    user_id: UserId,
    coordinator: SyncCoordinatorDep,
) -> RepositoryLinkRead:
    link = await coordinator.create_repository(
        automation_id, user_id, request.name, request.description, request.private
    )
    return RepositoryLinkRead.model_validate(link)


@router.put(
    "/automations/{automation_id}/vcs/repository",
    response_model=RepositoryLinkRead,
    summary="Link existing repository",
    responses={502: {"description": "Repository not reachable with this account"}},
)
async def link_repository(
    automation_id: UUID,
    request: RepositoryLinkRequest,
    user_id: UserId,
    coordinator: SyncCoordinatorDep,
) -> RepositoryLinkRead:
    link = await coordinator.link_repository(
        automation_id, user_id, request.owner, request.name, request.branch
    )
    return RepositoryLinkRead.model_validate(link)


@router.delete(
    "/automations/{automation_id}/vcs/repository",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Unlink repository",
)
async def unlink_repository(
    automation_id: UUID, user_id: UserId, coordinator: SyncCoordinatorDep
) -> None:
    await coordinator.disconnect(automation_id, user_id)
