"""Scheduler tick activity."""

from dataclasses import dataclass

from temporalio import activity

from src.flowsmith.core.db import session_scope
from src.flowsmith.services.wiring import build_scheduler


@dataclass
class TickSummary:
    evaluated: int
    fired: int
    skipped: int


@activity.defn
async def run_scheduler_tick() -> TickSummary:
    """Fire every schedule due in the current minute.

    Idempotent within a minute: schedules that already fired are skipped.
    """
    scope = session_scope()
    async with scope() as session:
        result = await build_scheduler(session, scope=scope).tick()
    return TickSummary(
        evaluated=result.evaluated, fired=len(result.fired), skipped=result.skipped
    )
