"""Automation endpoints - the document, its API key, edits, generation and runs."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from src.flowsmith.api.dependencies import (
    ApiKey,
    AuthenticatedActor,
    AutomationServiceDep,
    CurrentActor,
    NotificationServiceDep,
    StateMachineDep,
    UserId,
)
from src.flowsmith.core.logging import bind_automation_context
from src.flowsmith.models import TriggerType
from src.flowsmith.schemas import (
    ApiKeyResponse,
    AutomationCreate,
    AutomationRead,
    AutomationUpdate,
    EditRequest,
    EditResponse,
    GenerationResult,
    GenerationStart,
    NotificationRead,
    RunResponse,
    RunStart,
    StopResponse,
)
from src.flowsmith.schemas.pagination import PaginatedResponse
from src.flowsmith.services.execution_service import EditResult

router = APIRouter(prefix="/automations", tags=["automations"])


def _edit_response(result: EditResult) -> EditResponse:
    return EditResponse(
        status=result.status,
        doc_version=result.doc_version,
        version_id=result.version.id if result.version else None,
        version=result.version.version if result.version else None,
    )


@router.post(
    "",
    response_model=AutomationRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create automation",
    description="Create an automation. An initial code payload becomes version 0.0.1.",
)
async def create_automation(
    request: AutomationCreate,
    actor: AuthenticatedActor,
    user_id: UserId,
    service: AutomationServiceDep,
) -> AutomationRead:
    automation = await service.create(
        owner_user_id=user_id,
        title=request.title,
        description=request.description,
        runtime_environment=request.runtime_environment,
        trigger_mode=request.trigger_mode,
        admin_user_ids=request.admin_user_ids,
        created_by_name=actor.name,
        **request.payload_kwargs(),
    )
    return AutomationRead.model_validate(automation)


@router.get(
    "",
    response_model=PaginatedResponse[AutomationRead],
    summary="List automations",
    description="Automations owned by the caller, newest first.",
)
async def list_automations(
    user_id: UserId,
    service: AutomationServiceDep,
    cursor: Annotated[str | None, Query(description="Cursor for pagination")] = None,
    limit: Annotated[int, Query(ge=1, le=100, description="Max items to return")] = 50,
) -> PaginatedResponse[AutomationRead]:
    automations, next_cursor, has_more = await service.list_for_owner(
        user_id, cursor=cursor, limit=limit
    )
    return PaginatedResponse(
        items=[AutomationRead.model_validate(a) for a in automations],
        next_cursor=next_cursor,
        has_more=has_more,
    )


@router.get(
    "/{automation_id}",
    response_model=AutomationRead,
    summary="Get automation",
    responses={404: {"description": "Automation not found"}},
)
async def get_automation(automation_id: UUID, service: AutomationServiceDep) -> AutomationRead:
    return AutomationRead.model_validate(await service.get(automation_id))


@router.patch(
    "/{automation_id}",
    response_model=AutomationRead,
    summary="Update automation metadata",
    description="Fenced on doc_version; a stale doc_version returns 409.",
    responses={
        403: {"description": "Caller is not the owner or an admin"},
        409: {"description": "Automation was modified concurrently"},
    },
)
async def update_automation(
    automation_id: UUID,
    request: AutomationUpdate,
    actor: AuthenticatedActor,
    service: AutomationServiceDep,
) -> AutomationRead:
    automation = await service.update_metadata(
        automation_id, request.doc_version, actor.user_id, **request.changes()
    )
    return AutomationRead.model_validate(automation)


@router.delete(
    "/{automation_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete automation",
    responses={409: {"description": "A run is still active"}},
)
async def delete_automation(
    automation_id: UUID,
    actor: AuthenticatedActor,
    service: AutomationServiceDep,
) -> None:
    await service.delete(automation_id, actor.user_id)


@router.post(
    "/{automation_id}/api-key",
    response_model=ApiKeyResponse,
    summary="Regenerate API key",
    description="Replaces the key in one write; the previous key stops working immediately.",
    responses={403: {"description": "Caller is not the owner or an admin"}},
)
async def regenerate_api_key(
    automation_id: UUID,
    actor: AuthenticatedActor,
    service: AutomationServiceDep,
) -> ApiKeyResponse:
    return ApiKeyResponse(api_key=await service.regenerate_api_key(automation_id, actor.user_id))


@router.post(
    "/{automation_id}/trigger",
    response_model=RunResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Trigger run with API key",
    responses={
        403: {"description": "Missing or invalid X-API-Key"},
        409: {"description": "Automation is already running"},
    },
)
async def trigger_automation(
    automation_id: UUID,
    api_key: ApiKey,
    actor: CurrentActor,
    service: AutomationServiceDep,
    machine: StateMachineDep,
    request: RunStart | None = None,
) -> RunResponse:
    await service.verify_api_key(automation_id, api_key)
    bind_automation_context(automation_id)
    handle = await machine.run(
        automation_id,
        trigger_type=TriggerType.API,
        actor=actor,
        runtime_environment=request.runtime_environment if request else None,
    )
    return RunResponse(execution_id=handle.execution_id, resumed=handle.resumed)


@router.post(
    "/{automation_id}/edits",
    response_model=EditResponse,
    summary="Submit edit",
    description=(
        "Saves a new version, or defers the edit while a run is active. "
        "Fenced on doc_version."
    ),
    responses={
        409: {"description": "Stale doc_version or automation busy"},
        422: {"description": "Empty or malformed payload"},
    },
)
async def submit_edit(
    automation_id: UUID,
    request: EditRequest,
    actor: AuthenticatedActor,
    machine: StateMachineDep,
) -> EditResponse:
    bind_automation_context(automation_id)
    result = await machine.submit_edit(
        automation_id,
        request.doc_version,
        message=request.message,
        source=request.source,
        actor=actor,
        **request.payload_kwargs(),
    )
    return _edit_response(result)


@router.post(
    "/{automation_id}/generation",
    response_model=AutomationRead,
    summary="Begin code generation",
)
async def begin_generation(
    automation_id: UUID,
    request: GenerationStart,
    _actor: AuthenticatedActor,
    machine: StateMachineDep,
) -> AutomationRead:
    automation = await machine.begin_generation(automation_id, request.doc_version)
    return AutomationRead.model_validate(automation)


@router.post(
    "/{automation_id}/generation/result",
    response_model=EditResponse,
    summary="Complete code generation",
    description="Stores the generated payload as a new version.",
)
async def complete_generation(
    automation_id: UUID,
    request: GenerationResult,
    actor: AuthenticatedActor,
    machine: StateMachineDep,
) -> EditResponse:
    result = await machine.complete_generation(
        automation_id, message=request.message, actor=actor, **request.payload_kwargs()
    )
    return _edit_response(result)


@router.delete(
    "/{automation_id}/generation",
    response_model=AutomationRead,
    summary="Abort code generation",
)
async def abort_generation(
    automation_id: UUID,
    _actor: AuthenticatedActor,
    machine: StateMachineDep,
) -> AutomationRead:
    return AutomationRead.model_validate(await machine.abort_generation(automation_id))


@router.post(
    "/{automation_id}/runs",
    response_model=RunResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start or resume a run",
    description="Returns as soon as the run is handed to the runner.",
    responses={409: {"description": "Automation is already running or busy"}},
)
async def start_run(
    automation_id: UUID,
    actor: AuthenticatedActor,
    machine: StateMachineDep,
    request: RunStart | None = None,
) -> RunResponse:
    request = request or RunStart()
    bind_automation_context(automation_id)
    handle = await machine.run(
        automation_id,
        resume=request.resume,
        trigger_type=TriggerType.MANUAL,
        actor=actor,
        runtime_environment=request.runtime_environment,
    )
    return RunResponse(execution_id=handle.execution_id, resumed=handle.resumed)


@router.post(
    "/{automation_id}/stop",
    response_model=StopResponse,
    summary="Stop the active run",
    description=(
        "Cooperative stop with a bounded grace period. "
        "Stopping an already stopping run forces it closed."
    ),
)
async def stop_run(
    automation_id: UUID,
    actor: AuthenticatedActor,
    machine: StateMachineDep,
) -> StopResponse:
    bind_automation_context(automation_id)
    result = await machine.stop(automation_id, actor)
    return StopResponse(execution_id=result.execution_id, state=result.state, forced=result.forced)


@router.get(
    "/{automation_id}/notifications",
    response_model=list[NotificationRead],
    summary="List scheduled-run notifications",
)
async def list_notifications(
    automation_id: UUID,
    service: AutomationServiceDep,
    notifications: NotificationServiceDep,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[NotificationRead]:
    await service.get(automation_id)
    items = await notifications.list_for_automation(automation_id, limit)
    return [NotificationRead.model_validate(n) for n in items]
