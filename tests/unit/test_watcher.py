"""Tests for the execution status watcher."""

import asyncio
from datetime import UTC, datetime
from uuid import UUID

import pytest

from src.flowsmith.models import ExecutionStatus
from src.flowsmith.services.watcher import ExecutionSnapshot, ExecutionWatcher
from tests.factories import ExecutionRecordFactory, generate_uuid

pytestmark = [pytest.mark.unit, pytest.mark.asyncio]


def _snapshot(execution_id: UUID, status: ExecutionStatus) -> ExecutionSnapshot:
    return ExecutionSnapshot(
        execution_id=execution_id,
        status=status,
        started_at=datetime.now(UTC),
        ended_at=None,
        exit_code=None,
        error_message=None,
    )


class ScriptedFetch:
    """Returns the given statuses in order, repeating the last one."""

    def __init__(self, *statuses: ExecutionStatus):
        self.statuses = list(statuses)
        self.calls = 0

    async def __call__(self, execution_id: UUID) -> ExecutionSnapshot:
        status = self.statuses[min(self.calls, len(self.statuses) - 1)]
        self.calls += 1
        return _snapshot(execution_id, status)


class TestExecutionWatcher:
    async def test_stops_after_terminal_snapshot(self):
        fetch = ScriptedFetch(ExecutionStatus.RUNNING, ExecutionStatus.SUCCESS)
        watcher = ExecutionWatcher(generate_uuid(), fetch, interval=0.01)

        seen = [snapshot.status async for snapshot in watcher]

        assert seen == [ExecutionStatus.RUNNING, ExecutionStatus.SUCCESS]
        assert watcher.closed
        assert fetch.calls == 2

    async def test_interval_is_clamped_to_minimum(self):
        watcher = ExecutionWatcher(generate_uuid(), ScriptedFetch(ExecutionStatus.RUNNING), 0)
        assert watcher.interval >= 0.2

    async def test_wait_returns_terminal_snapshot(self):
        fetch = ScriptedFetch(ExecutionStatus.RUNNING, ExecutionStatus.FAILED)
        watcher = ExecutionWatcher(generate_uuid(), fetch, interval=0.01)

        snapshot = await watcher.wait(timeout=5)

        assert snapshot is not None
        assert snapshot.status is ExecutionStatus.FAILED

    async def test_wait_timeout_returns_last_seen(self):
        watcher = ExecutionWatcher(generate_uuid(), ScriptedFetch(ExecutionStatus.RUNNING))

        snapshot = await watcher.wait(timeout=0.05)

        assert snapshot is not None
        assert snapshot.status is ExecutionStatus.RUNNING
        assert watcher.closed

    async def test_close_ends_iteration_without_another_poll(self):
        fetch = ScriptedFetch(ExecutionStatus.RUNNING)
        watcher = ExecutionWatcher(generate_uuid(), fetch, interval=10)

        async def consume() -> int:
            count = 0
            async for _ in watcher:
                count += 1
            return count

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.05)
        watcher.close()
        count = await asyncio.wait_for(task, timeout=1)

        assert count == 1
        assert fetch.calls == 1

    async def test_cancelled_consumer_leaves_nothing_running(self):
        watcher = ExecutionWatcher(generate_uuid(), ScriptedFetch(ExecutionStatus.RUNNING), 10)

        async def consume() -> None:
            async for _ in watcher:
                pass

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert watcher.closed

    async def test_snapshot_from_record(self):
        record = ExecutionRecordFactory.build(
            automation_id=generate_uuid(), status="failed", exit_code=2
        )
        snapshot = ExecutionSnapshot.from_record(record)
        assert snapshot.status is ExecutionStatus.FAILED
        assert snapshot.is_terminal
        assert snapshot.exit_code == 2
