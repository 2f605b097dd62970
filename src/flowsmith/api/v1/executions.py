"""Execution history endpoints."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from src.flowsmith.api.dependencies import LedgerDep, Scope
from src.flowsmith.core.config import get_settings
from src.flowsmith.core.exceptions import ValidationError
from src.flowsmith.models import ExecutionStatus, TriggerType
from src.flowsmith.repositories import HistoryFilters
from src.flowsmith.schemas import (
    ExecutionCount,
    ExecutionDetail,
    ExecutionLogRead,
    ExecutionPage,
    ExecutionRead,
    ExecutionStatsRead,
)
from src.flowsmith.schemas.pagination import decode_offset_cursor
from src.flowsmith.services.watcher import ExecutionSnapshot, ExecutionWatcher
from src.flowsmith.services.wiring import build_ledger

router = APIRouter(prefix="/executions", tags=["executions"])


def history_filters(
    automation_id: Annotated[list[UUID] | None, Query()] = None,
    status: Annotated[list[ExecutionStatus] | None, Query()] = None,
    trigger_type: Annotated[list[TriggerType] | None, Query()] = None,
    started_from: datetime | None = None,
    started_to: datetime | None = None,
    search: Annotated[str | None, Query(max_length=200)] = None,
    schedule_id: UUID | None = None,
) -> HistoryFilters:
    """Query parameters shared by listing, counting and stats."""
    return HistoryFilters(
        automation_ids=automation_id or [],
        statuses=status or [],
        trigger_types=[t.value for t in trigger_type or []],
        started_from=started_from,
        started_to=started_to,
        search=search,
        schedule_id=schedule_id,
    )


Filters = Annotated[HistoryFilters, Depends(history_filters)]


@router.get(
    "",
    response_model=ExecutionPage,
    summary="List executions",
    description="Execution history, newest first. has_more is true iff the page is full.",
)
async def list_executions(
    filters: Filters,
    ledger: LedgerDep,
    cursor: Annotated[str | None, Query(description="Cursor for pagination")] = None,
    limit: Annotated[int | None, Query(ge=1, le=200, description="Max items to return")] = None,
) -> ExecutionPage:
    try:
        offset = decode_offset_cursor(cursor)
    except ValueError as e:
        raise ValidationError("Invalid cursor") from e
    page = await ledger.query(filters, limit or get_settings().history_page_size, offset)
    return ExecutionPage(
        items=[ExecutionRead.model_validate(r) for r in page.items],
        next_cursor=page.next_cursor,
        has_more=page.has_more,
        total_count=page.total_count,
    )


@router.get(
    "/count",
    response_model=ExecutionCount,
    summary="Count executions",
    description="Same filter semantics as the listing.",
)
async def count_executions(filters: Filters, ledger: LedgerDep) -> ExecutionCount:
    return ExecutionCount(count=await ledger.count(filters))


@router.get(
    "/stats",
    response_model=ExecutionStatsRead,
    summary="Execution statistics",
)
async def execution_stats(filters: Filters, ledger: LedgerDep) -> ExecutionStatsRead:
    return ExecutionStatsRead.model_validate(await ledger.stats(filters))


@router.get(
    "/{execution_id}",
    response_model=ExecutionDetail,
    summary="Get execution",
    description="Status plus log lines after after_seq; poll with the returned last_seq.",
    responses={404: {"description": "Execution not found"}},
)
async def get_execution(
    execution_id: UUID,
    ledger: LedgerDep,
    after_seq: Annotated[int, Query(ge=0)] = 0,
) -> ExecutionDetail:
    record = await ledger.get(execution_id)
    logs = await ledger.read_logs(execution_id, after_seq)
    return ExecutionDetail(
        execution=ExecutionRead.model_validate(record),
        logs=[ExecutionLogRead.model_validate(line) for line in logs],
        last_seq=logs[-1].seq if logs else after_seq,
    )


@router.get(
    "/{execution_id}/wait",
    response_model=ExecutionRead,
    summary="Wait for execution",
    description="Long-poll until the execution is terminal or the timeout passes.",
)
async def wait_for_execution(
    execution_id: UUID,
    ledger: LedgerDep,
    scope: Scope,
    timeout: Annotated[float, Query(gt=0, le=60)] = 30,
) -> ExecutionRead:
    await ledger.get(execution_id)

    async def fetch(target: UUID) -> ExecutionSnapshot:
        async with scope() as session:
            return ExecutionSnapshot.from_record(await build_ledger(session).get(target))

    await ExecutionWatcher(execution_id, fetch).wait(timeout)
    async with scope() as session:
        record = await build_ledger(session).get(execution_id)
    return ExecutionRead.model_validate(record)
