"""Automation run activities."""

import asyncio
import json
import tempfile
from pathlib import Path
from uuid import UUID

from temporalio import activity

from src.flowsmith.core.config import get_settings
from src.flowsmith.core.db import session_scope
from src.flowsmith.services.runner import (
    EnvironmentSecretStore,
    RunOutcome,
    RunRequest,
    run_process,
    write_workspace,
)
from src.flowsmith.services.wiring import build_ledger, build_state_machine

LOG_FLUSH_LINES = 50


class LogSink:
    """Buffer output lines and append them to the execution's log in batches.

    Each flush uses its own short session so logs are visible while the run
    is still going.
    """

    def __init__(self, execution_id: UUID, checkpoint_marker: str):
        self.execution_id = execution_id
        self.checkpoint_marker = checkpoint_marker
        self.checkpointed = False
        self._buffer: list[str] = []
        self._scope = session_scope()

    async def write(self, line: str) -> None:
        if self.checkpoint_marker and line.strip() == self.checkpoint_marker:
            self.checkpointed = True
            return
        self._buffer.append(line)
        if len(self._buffer) >= LOG_FLUSH_LINES:
            await self.flush()

    async def flush(self) -> None:
        if not self._buffer:
            return
        lines, self._buffer = self._buffer, []
        async with self._scope() as session:
            await build_ledger(session).append_logs(self.execution_id, lines)
            await session.commit()


def _write_manifest(request: RunRequest, directory: Path) -> None:
    if not request.dependencies:
        return
    manifest = {
        "name": f"automation-{request.automation_id}",
        "private": True,
        "dependencies": {d["name"]: d.get("version") or "latest" for d in request.dependencies},
    }
    (directory / "package.json").write_text(json.dumps(manifest, indent=2))


async def _heartbeat(interval: float) -> None:
    while True:
        activity.heartbeat()
        await asyncio.sleep(interval)


@activity.defn
async def execute_automation(request: RunRequest) -> RunOutcome:
    """
    Run one execution leg of an automation snapshot.

    The snapshot is written to a scratch directory and run with the configured
    runner command. Output lines go to the execution log; a line equal to the
    checkpoint marker marks the leg as checkpointed instead.

    Cancellation (the workflow's stop signal) terminates the process and
    propagates, so the workflow can report the run as stopped.
    """
    settings = get_settings()
    execution_id = UUID(request.execution_id)
    activity.logger.info(
        f"Executing automation {request.automation_id} (execution {request.execution_id})"
    )

    secrets = await EnvironmentSecretStore().get_values(
        request.automation_id, request.env_var_names
    )
    sink = LogSink(execution_id, settings.checkpoint_marker)
    heartbeat = asyncio.create_task(_heartbeat(request.heartbeat_seconds))
    try:
        with tempfile.TemporaryDirectory(prefix="flowsmith-") as tmp:
            workspace = Path(tmp)
            entry_point = write_workspace(request, workspace)
            _write_manifest(request, workspace)
            env = {
                **secrets,
                "PATH": "/usr/local/bin:/usr/bin:/bin",
                "FLOWSMITH_EXECUTION_ID": request.execution_id,
                "FLOWSMITH_RUNTIME_ENVIRONMENT": request.runtime_environment,
                "FLOWSMITH_RESUME": "1" if request.resume else "0",
            }
            try:
                exit_code = await run_process(
                    [*settings.runner_command, str(entry_point)], workspace, env, sink.write
                )
            except OSError as e:
                await sink.write(f"Failed to start runner: {e}")
                return RunOutcome(
                    execution_id=request.execution_id, exit_code=None, error_message=str(e)
                )
    finally:
        heartbeat.cancel()
        await asyncio.shield(sink.flush())

    activity.logger.info(
        f"Execution {request.execution_id} exited with code {exit_code}"
        + (" (checkpointed)" if sink.checkpointed else "")
    )
    return RunOutcome(
        execution_id=request.execution_id,
        exit_code=exit_code,
        checkpointed=sink.checkpointed,
    )


@activity.defn
async def report_execution_outcome(outcome: RunOutcome) -> None:
    """
    Hand the leg's outcome to the state machine.

    Idempotent: an outcome for an already closed execution is ignored.
    """
    async with session_scope()() as session:
        machine = build_state_machine(session)
        await machine.report_outcome(
            UUID(outcome.execution_id),
            outcome.exit_code,
            outcome.error_message,
            checkpointed=outcome.checkpointed,
            stopped=outcome.stopped,
        )
