"""
Temporal Activities - the side-effecting half of each workflow.

Activities open their own database sessions and go through the same services
as the API, so fencing and state rules apply identically.
"""

from src.flowsmith.temporal.activities.execution import (
    LogSink,
    execute_automation,
    report_execution_outcome,
)
from src.flowsmith.temporal.activities.scheduling import TickSummary, run_scheduler_tick
from src.flowsmith.temporal.activities.sync import sync_version

__all__ = [
    # Dataclasses
    "LogSink",
    "TickSummary",
    # Activities
    "execute_automation",
    "report_execution_outcome",
    "run_scheduler_tick",
    "sync_version",
]
