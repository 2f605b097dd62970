"""Cancellable polling subscription over one execution's status."""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from src.flowsmith.core.config import get_settings
from src.flowsmith.core.logging import get_logger
from src.flowsmith.models import ExecutionRecord, ExecutionStatus

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExecutionSnapshot:
    execution_id: UUID
    status: ExecutionStatus
    started_at: datetime
    ended_at: datetime | None
    exit_code: int | None
    error_message: str | None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @classmethod
    def from_record(cls, record: ExecutionRecord) -> "ExecutionSnapshot":
        return cls(
            execution_id=record.id,
            status=record.status_enum,
            started_at=record.started_at,
            ended_at=record.ended_at,
            exit_code=record.exit_code,
            error_message=record.error_message,
        )


Fetcher = Callable[[UUID], Awaitable[ExecutionSnapshot]]


class ExecutionWatcher:
    """Yield status snapshots of an execution at a bounded rate.

    Iteration ends after the first terminal snapshot, after ``close()``, or
    when the consuming task is cancelled. A watcher holds no timer between
    polls, so abandoned watchers leave nothing running.

    Usage:
        async for snapshot in ExecutionWatcher(execution_id, fetch):
            ...
    """

    def __init__(
        self,
        execution_id: UUID,
        fetch: Fetcher,
        interval: float | None = None,
    ):
        settings = get_settings()
        self.execution_id = execution_id
        self._fetch = fetch
        self.interval = max(
            interval if interval is not None else settings.execution_poll_interval_seconds,
            settings.execution_poll_min_interval_seconds,
        )
        self._closed = asyncio.Event()
        self.polls = 0

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        self._closed.set()

    def __aiter__(self) -> AsyncIterator[ExecutionSnapshot]:
        return self._poll()

    async def _poll(self) -> AsyncIterator[ExecutionSnapshot]:
        try:
            while not self.closed:
                snapshot = await self._fetch(self.execution_id)
                self.polls += 1
                yield snapshot
                if snapshot.is_terminal:
                    break
                try:
                    await asyncio.wait_for(self._closed.wait(), timeout=self.interval)
                except TimeoutError:
                    continue
        finally:
            self._closed.set()
            logger.debug("Execution watcher stopped", execution_id=str(self.execution_id))

    async def wait(self, timeout: float | None = None) -> ExecutionSnapshot | None:
        """Poll until terminal; returns the last snapshot seen (None if never polled)."""
        last: ExecutionSnapshot | None = None

        async def _consume() -> None:
            nonlocal last
            async for snapshot in self:
                last = snapshot

        try:
            await asyncio.wait_for(_consume(), timeout=timeout)
        except TimeoutError:
            self.close()
        return last
