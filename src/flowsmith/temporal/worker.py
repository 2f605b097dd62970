"""
Temporal Worker - Separate process from API.

Run with:
    uv run python -m src.flowsmith.temporal.worker
    uv run python -m src.flowsmith.temporal.worker --no-scheduler  # skip the tick schedule
"""

import argparse
import asyncio
from collections.abc import Sequence

import uvicorn
from fastapi import FastAPI
from temporalio.client import (
    Client,
    Schedule,
    ScheduleActionStartWorkflow,
    ScheduleAlreadyRunningError,
    ScheduleOverlapPolicy,
    SchedulePolicy,
    ScheduleSpec,
)
from temporalio.worker import Worker

from src.flowsmith.core.config import get_settings
from src.flowsmith.core.db import dispose_engine
from src.flowsmith.core.logging import get_logger, setup_logging
from src.flowsmith.services.execution_service import get_stop_watchdog
from src.flowsmith.temporal.activities import (
    execute_automation,
    report_execution_outcome,
    run_scheduler_tick,
    sync_version,
)
from src.flowsmith.temporal.workflows import (
    AutomationRunWorkflow,
    ScheduleTickWorkflow,
    VersionSyncWorkflow,
)

logger = get_logger(__name__)

WORKER_HEALTH_PORT = 8001
SCHEDULE_TICK_ID = "flowsmith-schedule-tick"


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Flowsmith Temporal worker")
    parser.add_argument(
        "--no-scheduler",
        action="store_true",
        help="Do not create the per-minute scheduler tick schedule",
    )
    return parser.parse_args()


async def create_worker(
    client: Client,
    task_queue: str,
    workflows: Sequence[type],
    activities: Sequence[object],  # type: ignore[type-arg]
    *,
    max_concurrent_activities: int = 100,
    max_concurrent_workflow_tasks: int = 100,
) -> Worker:
    """Create a worker with tuned settings."""
    return Worker(
        client,
        task_queue=task_queue,
        workflows=list(workflows),
        activities=list(activities),  # type: ignore[arg-type]
        max_concurrent_activities=max_concurrent_activities,
        max_concurrent_workflow_tasks=max_concurrent_workflow_tasks,
    )


async def ensure_tick_schedule(client: Client) -> None:
    """Create the Temporal schedule driving ScheduleTickWorkflow, if missing.

    Overlapping ticks are skipped; a tick that overruns its minute delays the next.
    """
    settings = get_settings()
    try:
        await client.create_schedule(
            SCHEDULE_TICK_ID,
            Schedule(
                action=ScheduleActionStartWorkflow(
                    ScheduleTickWorkflow.run,
                    id=f"{SCHEDULE_TICK_ID}-run",
                    task_queue=settings.temporal_task_queue,
                ),
                spec=ScheduleSpec(cron_expressions=[settings.scheduler_cron]),
                policy=SchedulePolicy(overlap=ScheduleOverlapPolicy.SKIP),
            ),
        )
        logger.info("Created scheduler tick schedule", cron=settings.scheduler_cron)
    except ScheduleAlreadyRunningError:
        logger.info("Scheduler tick schedule already exists")


async def run_health_server(task_queue: str, port: int = WORKER_HEALTH_PORT) -> None:
    """Run a lightweight health server for K8s liveness checks."""
    health_app = FastAPI(title="Flowsmith Worker Health")

    @health_app.get("/health")
    async def health() -> dict[str, str]:
        return {
            "status": "healthy",
            "service": "temporal-worker",
            "task_queue": task_queue,
        }

    @health_app.get("/ready")
    async def ready() -> dict[str, str]:
        return {"status": "ready"}

    config = uvicorn.Config(
        health_app,
        host="0.0.0.0",
        port=port,
        log_level="warning",
    )
    server = uvicorn.Server(config)
    logger.info(f"Starting health server on port {port}")
    await server.serve()


async def main() -> None:
    args = parse_args()
    settings = get_settings()
    setup_logging(settings.debug)

    client = await Client.connect(
        settings.temporal_host,
        namespace=settings.temporal_namespace,
    )

    if settings.scheduler_enabled and not args.no_scheduler:
        await ensure_tick_schedule(client)

    worker = await create_worker(
        client,
        settings.temporal_task_queue,
        workflows=[AutomationRunWorkflow, ScheduleTickWorkflow, VersionSyncWorkflow],
        activities=[
            execute_automation,
            report_execution_outcome,
            run_scheduler_tick,
            sync_version,
        ],
        max_concurrent_activities=50,
        max_concurrent_workflow_tasks=50,
    )
    logger.info(f"Polling task queue: {settings.temporal_task_queue}")

    try:
        health_task = asyncio.create_task(run_health_server(settings.temporal_task_queue))
        await worker.run()
        await health_task
    finally:
        await get_stop_watchdog().drain()
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
