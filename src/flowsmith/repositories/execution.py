"""Repositories for the execution history ledger."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, cast
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.engine import CursorResult
from sqlmodel import col, or_, select

from src.flowsmith.models import ExecutionLog, ExecutionRecord, SchedulerNotification
from src.flowsmith.models.base import to_naive_utc, utc_now
from src.flowsmith.models.enums import ExecutionStatus
from src.flowsmith.repositories.base import BaseRepository, escape_like


@dataclass(frozen=True)
class HistoryFilters:
    """Filters shared by history paging, counting and stats."""

    automation_ids: list[UUID] = field(default_factory=list)
    statuses: list[ExecutionStatus] = field(default_factory=list)
    trigger_types: list[str] = field(default_factory=list)
    started_from: datetime | None = None
    started_to: datetime | None = None
    search: str | None = None
    schedule_id: UUID | None = None


def apply_filters(query: Any, filters: HistoryFilters) -> Any:
    """Add the WHERE clauses for ``filters`` to a select over ExecutionRecord."""
    if filters.automation_ids:
        query = query.where(col(ExecutionRecord.automation_id).in_(filters.automation_ids))
    if filters.statuses:
        query = query.where(col(ExecutionRecord.status).in_([s.value for s in filters.statuses]))
    if filters.trigger_types:
        query = query.where(col(ExecutionRecord.trigger_type).in_(filters.trigger_types))
    if filters.started_from is not None:
        query = query.where(col(ExecutionRecord.started_at) >= to_naive_utc(filters.started_from))
    if filters.started_to is not None:
        query = query.where(col(ExecutionRecord.started_at) <= to_naive_utc(filters.started_to))
    if filters.schedule_id is not None:
        query = query.where(ExecutionRecord.schedule_id == filters.schedule_id)
    if filters.search and filters.search.strip():
        pattern = f"%{escape_like(filters.search.strip())}%"
        query = query.where(
            or_(
                col(ExecutionRecord.automation_title).ilike(pattern, escape="\\"),
                col(ExecutionRecord.user_name).ilike(pattern, escape="\\"),
                col(ExecutionRecord.user_email).ilike(pattern, escape="\\"),
            )
        )
    return query


class ExecutionRecordRepository(BaseRepository[ExecutionRecord]):
    model = ExecutionRecord

    async def get_running(self, automation_id: UUID) -> ExecutionRecord | None:
        result = await self.session.execute(
            select(ExecutionRecord).where(
                ExecutionRecord.automation_id == automation_id,
                ExecutionRecord.status == ExecutionStatus.RUNNING.value,
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def close_running(self, execution_id: UUID, **values: Any) -> bool:
        """Move a running record to a terminal status.

        Returns False when the record was not running any more.
        """
        result = await self.session.execute(
            update(ExecutionRecord)
            .where(
                col(ExecutionRecord.id) == execution_id,
                col(ExecutionRecord.status) == ExecutionStatus.RUNNING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return cast(CursorResult[Any], result).rowcount == 1

    async def request_cancel(self, execution_id: UUID, requested_by: str | None) -> bool:
        result = await self.session.execute(
            update(ExecutionRecord)
            .where(
                col(ExecutionRecord.id) == execution_id,
                col(ExecutionRecord.status) == ExecutionStatus.RUNNING.value,
            )
            .values(
                cancel_requested=True,
                cancel_requested_at=utc_now(),
                cancel_requested_by=requested_by,
            )
            .execution_options(synchronize_session=False)
        )
        return cast(CursorResult[Any], result).rowcount == 1

    async def query(
        self, filters: HistoryFilters, limit: int, offset: int = 0
    ) -> list[ExecutionRecord]:
        """Newest first; ties broken by id so pages are stable."""
        query = apply_filters(select(ExecutionRecord), filters)
        query = (
            query.order_by(col(ExecutionRecord.started_at).desc(), col(ExecutionRecord.id).desc())
            .offset(offset)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def count(self, filters: HistoryFilters) -> int:
        query = apply_filters(select(func.count(col(ExecutionRecord.id))), filters)
        result = await self.session.execute(query)
        return int(result.scalar_one())

    async def counts_by_status(self, filters: HistoryFilters) -> dict[str, int]:
        query = apply_filters(
            select(ExecutionRecord.status, func.count(col(ExecutionRecord.id))), filters
        ).group_by(col(ExecutionRecord.status))
        result = await self.session.execute(query)
        return {status: int(total) for status, total in result.all()}


class ExecutionLogRepository(BaseRepository[ExecutionLog]):
    model = ExecutionLog

    async def last_seq(self, execution_id: UUID) -> int:
        result = await self.session.execute(
            select(func.max(col(ExecutionLog.seq))).where(
                ExecutionLog.execution_id == execution_id
            )
        )
        return int(result.scalar_one_or_none() or 0)

    async def append(self, execution_id: UUID, lines: list[str]) -> int:
        """Append lines after the current tail; returns the last seq written."""
        seq = await self.last_seq(execution_id)
        for line in lines:
            seq += 1
            self.add(ExecutionLog(execution_id=execution_id, seq=seq, line=line))
        await self.session.flush()
        return seq

    async def read(
        self, execution_id: UUID, after_seq: int = 0, limit: int = 1000
    ) -> list[ExecutionLog]:
        result = await self.session.execute(
            select(ExecutionLog)
            .where(ExecutionLog.execution_id == execution_id, col(ExecutionLog.seq) > after_seq)
            .order_by(col(ExecutionLog.seq))
            .limit(limit)
        )
        return list(result.scalars().all())

    async def tail(self, execution_id: UUID, lines: int) -> list[str]:
        result = await self.session.execute(
            select(ExecutionLog.line)
            .where(ExecutionLog.execution_id == execution_id)
            .order_by(col(ExecutionLog.seq).desc())
            .limit(lines)
        )
        return list(reversed(result.scalars().all()))


class NotificationRepository(BaseRepository[SchedulerNotification]):
    model = SchedulerNotification

    async def get_for_execution(self, execution_id: UUID) -> SchedulerNotification | None:
        result = await self.session.execute(
            select(SchedulerNotification).where(
                SchedulerNotification.execution_id == execution_id
            )
        )
        return result.scalar_one_or_none()

    async def list_for_automation(
        self, automation_id: UUID, limit: int = 50
    ) -> list[SchedulerNotification]:
        result = await self.session.execute(
            select(SchedulerNotification)
            .where(SchedulerNotification.automation_id == automation_id)
            .order_by(col(SchedulerNotification.created_at).desc())
            .limit(limit)
        )
        return list(result.scalars().all())
