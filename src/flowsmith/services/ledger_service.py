"""Execution History Ledger - append-only run records, history queries and logs."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.flowsmith.core.exceptions import AlreadyRunning, NotFound, ValidationError
from src.flowsmith.core.logging import get_logger
from src.flowsmith.models import ExecutionLog, ExecutionRecord, ExecutionStatus
from src.flowsmith.models.base import utc_now
from src.flowsmith.repositories import (
    ExecutionLogRepository,
    ExecutionRecordRepository,
    HistoryFilters,
)
from src.flowsmith.schemas.pagination import encode_cursor

logger = get_logger(__name__)


@dataclass
class HistoryPage:
    items: list[ExecutionRecord]
    has_more: bool
    total_count: int
    next_cursor: str | None = None


@dataclass(frozen=True)
class ExecutionStats:
    """Totals by status. ``total`` counts terminal records only."""

    total: int
    success: int
    failed: int
    stopped: int
    unknown: int
    running: int


class ExecutionLedger:
    """Owns ExecutionRecord lifecycle: created running, closed exactly once.

    The ledger flushes; committing is left to the caller so a close can share a
    transaction with the automation's state change.
    """

    def __init__(
        self,
        session: AsyncSession,
        record_repo: ExecutionRecordRepository,
        log_repo: ExecutionLogRepository,
    ):
        self.session = session
        self.record_repo = record_repo
        self.log_repo = log_repo

    async def get(self, execution_id: UUID) -> ExecutionRecord:
        record = await self.record_repo.get_by_id(execution_id)
        if record is None:
            raise NotFound("Execution not found", execution_id=str(execution_id))
        return record

    async def append(self, record: ExecutionRecord) -> ExecutionRecord:
        """Insert a new running record.

        Raises:
            AlreadyRunning: another record of the automation is running
        """
        record.status = ExecutionStatus.RUNNING.value
        self.record_repo.add(record)
        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            raise AlreadyRunning(
                "Automation already has a running execution",
                automation_id=str(record.automation_id),
            ) from e
        return record

    async def close(
        self,
        execution_id: UUID,
        status: ExecutionStatus,
        exit_code: int | None = None,
        error_message: str | None = None,
    ) -> ExecutionRecord | None:
        """Move a running record to ``status``.

        Returns the closed record, or None when it was already terminal; a
        record is never mutated after its terminal transition.
        """
        if not status.is_terminal:
            raise ValidationError("Records can only be closed with a terminal status")
        record = await self.get(execution_id)
        if record.is_terminal:
            logger.warning(
                "Execution already closed",
                execution_id=str(execution_id),
                status=record.status,
                requested_status=status.value,
            )
            return None

        ended_at = utc_now()
        duration_ms = max(0, int((ended_at - record.started_at).total_seconds() * 1000))
        closed = await self.record_repo.close_running(
            execution_id,
            status=status.value,
            ended_at=ended_at,
            duration_ms=duration_ms,
            exit_code=exit_code,
            error_message=error_message[:2000] if error_message else None,
        )
        if not closed:
            logger.warning("Execution closed concurrently", execution_id=str(execution_id))
            return None
        logger.info(
            "Execution closed",
            execution_id=str(execution_id),
            status=status.value,
            duration_ms=duration_ms,
        )
        return await self.get(execution_id)

    async def request_cancel(self, execution_id: UUID, requested_by: str | None) -> bool:
        return await self.record_repo.request_cancel(execution_id, requested_by)

    async def get_running(self, automation_id: UUID) -> ExecutionRecord | None:
        return await self.record_repo.get_running(automation_id)

    async def query(self, filters: HistoryFilters, limit: int, offset: int = 0) -> HistoryPage:
        """One page of history, newest first.

        ``has_more`` is true iff the page is full; a short page always ends paging.
        """
        if limit < 1:
            raise ValidationError("limit must be at least 1")
        if offset < 0:
            raise ValidationError("offset cannot be negative")
        items = await self.record_repo.query(filters, limit, offset)
        total = await self.record_repo.count(filters)
        has_more = len(items) == limit
        return HistoryPage(
            items=items,
            has_more=has_more,
            total_count=total,
            next_cursor=encode_cursor(str(offset + len(items))) if has_more else None,
        )

    async def count(self, filters: HistoryFilters) -> int:
        return await self.record_repo.count(filters)

    async def stats(self, filters: HistoryFilters) -> ExecutionStats:
        counts = await self.record_repo.counts_by_status(filters)
        terminal = {s: counts.get(s.value, 0) for s in ExecutionStatus if s.is_terminal}
        return ExecutionStats(
            total=sum(terminal.values()),
            success=terminal[ExecutionStatus.SUCCESS],
            failed=terminal[ExecutionStatus.FAILED],
            stopped=terminal[ExecutionStatus.STOPPED],
            unknown=terminal[ExecutionStatus.UNKNOWN],
            running=counts.get(ExecutionStatus.RUNNING.value, 0),
        )

    async def append_logs(self, execution_id: UUID, lines: Iterable[str]) -> int:
        return await self.log_repo.append(execution_id, list(lines))

    async def read_logs(self, execution_id: UUID, after_seq: int = 0) -> list[ExecutionLog]:
        return await self.log_repo.read(execution_id, after_seq)

    async def tail_logs(self, execution_id: UUID, lines: int) -> list[str]:
        return await self.log_repo.tail(execution_id, lines)


@dataclass
class HistoryPageMerger:
    """Client-side accumulation of history pages.

    Records are de-duplicated by id. A page shorter than ``limit``, an empty
    page, or a page made only of known ids marks the history exhausted; the
    transition is reported exactly once.
    """

    limit: int
    items: list[ExecutionRecord] = field(default_factory=list)
    exhausted: bool = False
    _seen: set[UUID] = field(default_factory=set, repr=False)

    def merge(self, page: list[ExecutionRecord]) -> tuple[int, bool]:
        """Merge a page; returns ``(added, exhausted_now)``."""
        if self.exhausted:
            return 0, False
        added = 0
        for record in page:
            if record.id in self._seen:
                continue
            self._seen.add(record.id)
            self.items.append(record)
            added += 1
        if len(page) < self.limit or added == 0:
            self.exhausted = True
            return added, True
        return added, False

    @property
    def offset(self) -> int:
        return len(self.items)
