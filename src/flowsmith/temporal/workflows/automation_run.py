"""
Automation Run Workflow.

One workflow per execution leg. Executes the snapshot in an activity and
reports the outcome back to the state machine.

The ``request_stop`` signal cancels the running activity; the activity
terminates its process before the cancellation completes, and the outcome is
reported as stopped.
"""

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ActivityError, CancelledError

with workflow.unsafe.imports_passed_through():
    from src.flowsmith.services.runner import RunOutcome, RunRequest
    from src.flowsmith.temporal.activities import execute_automation, report_execution_outcome


@workflow.defn(name="AutomationRunWorkflow")
class AutomationRunWorkflow:
    def __init__(self) -> None:
        self._stop_requested = False

    @workflow.signal
    def request_stop(self) -> None:
        self._stop_requested = True

    @workflow.run
    async def run(self, request: RunRequest) -> RunOutcome:
        workflow.logger.info(f"Starting execution {request.execution_id}")

        handle = workflow.start_activity(
            execute_automation,
            request,
            start_to_close_timeout=timedelta(minutes=request.timeout_minutes),
            heartbeat_timeout=timedelta(seconds=request.heartbeat_seconds * 3),
            cancellation_type=workflow.ActivityCancellationType.WAIT_CANCELLATION_COMPLETED,
            # Never re-run automation code
            retry_policy=RetryPolicy(maximum_attempts=1),
        )
        await workflow.wait_condition(lambda: self._stop_requested or handle.done())

        if not handle.done():
            workflow.logger.info(f"Stop requested for execution {request.execution_id}")
            handle.cancel()

        try:
            outcome = await handle
        except ActivityError as e:
            if isinstance(e.cause, CancelledError):
                outcome = RunOutcome(execution_id=request.execution_id, stopped=True)
            else:
                message = str(e.cause) if e.cause else str(e)
                outcome = RunOutcome(execution_id=request.execution_id, error_message=message)

        if self._stop_requested:
            outcome.stopped = True

        await workflow.execute_activity(
            report_execution_outcome,
            outcome,
            start_to_close_timeout=timedelta(minutes=2),
            retry_policy=RetryPolicy(
                maximum_attempts=5,
                initial_interval=timedelta(seconds=2),
                backoff_coefficient=2.0,
            ),
        )

        workflow.logger.info(
            f"Execution {request.execution_id} reported "
            f"(exit_code={outcome.exit_code}, stopped={outcome.stopped}, "
            f"checkpointed={outcome.checkpointed})"
        )
        return outcome
