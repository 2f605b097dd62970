"""
Schedule Tick Workflow.

Started once a minute by a Temporal schedule. Fires every automation schedule
due in the current minute.
"""

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from src.flowsmith.temporal.activities import TickSummary, run_scheduler_tick


@workflow.defn(name="ScheduleTickWorkflow")
class ScheduleTickWorkflow:
    @workflow.run
    async def run(self) -> TickSummary:
        summary = await workflow.execute_activity(
            run_scheduler_tick,
            start_to_close_timeout=timedelta(seconds=50),
            retry_policy=RetryPolicy(
                maximum_attempts=3,
                initial_interval=timedelta(seconds=2),
            ),
        )
        workflow.logger.info(
            f"Scheduler tick: {summary.evaluated} evaluated, "
            f"{summary.fired} fired, {summary.skipped} skipped"
        )
        return summary
