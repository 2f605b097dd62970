"""Schedule endpoints - cron triggers and their next run times."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query, status

from src.flowsmith.api.dependencies import AuthenticatedActor, CurrentActor, SchedulerDep
from src.flowsmith.schemas import NextRunRead, ScheduleCreate, ScheduleRead, ScheduleUpdate
from src.flowsmith.schemas.pagination import PaginatedResponse

router = APIRouter(tags=["schedules"])


@router.get(
    "/schedules",
    response_model=PaginatedResponse[ScheduleRead],
    summary="List schedules",
    description=(
        "Schedules of the caller's automations, newest first. "
        "Search matches the automation title or the cron expression."
    ),
)
async def list_schedules(
    actor: CurrentActor,
    scheduler: SchedulerDep,
    search: Annotated[str | None, Query(max_length=200)] = None,
    cursor: Annotated[str | None, Query(description="Cursor for pagination")] = None,
    limit: Annotated[int, Query(ge=1, le=100, description="Max items to return")] = 50,
) -> PaginatedResponse[ScheduleRead]:
    schedules, next_cursor, has_more = await scheduler.list_schedules(
        owner_user_id=actor.user_id, search=search, cursor=cursor, limit=limit
    )
    return PaginatedResponse(
        items=[ScheduleRead.model_validate(s) for s in schedules],
        next_cursor=next_cursor,
        has_more=has_more,
    )


@router.post(
    "/schedules",
    response_model=ScheduleRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create schedule",
    responses={
        403: {"description": "Caller is not the owner or an admin"},
        422: {"description": "Invalid cron expression or timezone"},
    },
)
async def create_schedule(
    request: ScheduleCreate,
    actor: AuthenticatedActor,
    scheduler: SchedulerDep,
) -> ScheduleRead:
    schedule = await scheduler.create_schedule(
        **request.model_dump(), user_id=actor.user_id
    )
    return ScheduleRead.model_validate(schedule)


@router.get(
    "/schedules/{schedule_id}",
    response_model=ScheduleRead,
    summary="Get schedule",
    responses={
        403: {"description": "Caller is not the owner or an admin"},
        404: {"description": "Schedule not found"},
    },
)
async def get_schedule(
    schedule_id: UUID, actor: AuthenticatedActor, scheduler: SchedulerDep
) -> ScheduleRead:
    schedule, _ = await scheduler.get_schedule_for_user(schedule_id, actor.user_id)
    return ScheduleRead.model_validate(schedule)


@router.patch(
    "/schedules/{schedule_id}",
    response_model=ScheduleRead,
    summary="Update schedule",
    description="Partial update; omitted fields keep their value.",
)
async def update_schedule(
    schedule_id: UUID,
    request: ScheduleUpdate,
    actor: AuthenticatedActor,
    scheduler: SchedulerDep,
) -> ScheduleRead:
    schedule = await scheduler.update_schedule(
        schedule_id, actor.user_id, **request.model_dump(exclude_unset=True)
    )
    return ScheduleRead.model_validate(schedule)


@router.delete(
    "/schedules/{schedule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete schedule",
)
async def delete_schedule(
    schedule_id: UUID,
    actor: AuthenticatedActor,
    scheduler: SchedulerDep,
) -> None:
    await scheduler.delete_schedule(schedule_id, actor.user_id)


@router.get(
    "/schedules/{schedule_id}/next-run",
    response_model=NextRunRead,
    summary="Next run time",
    description="Disabled schedules still report the raw next time with applicable=false.",
)
async def next_run(schedule_id: UUID, scheduler: SchedulerDep) -> NextRunRead:
    return NextRunRead.model_validate(await scheduler.next_run(schedule_id))


@router.get(
    "/automations/{automation_id}/schedules",
    response_model=list[ScheduleRead],
    summary="List schedules of an automation",
)
async def list_automation_schedules(
    automation_id: UUID, scheduler: SchedulerDep
) -> list[ScheduleRead]:
    schedules = await scheduler.list_for_automation(automation_id)
    return [ScheduleRead.model_validate(s) for s in schedules]
