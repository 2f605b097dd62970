"""Runner contract and its Temporal-backed implementation.

The runner executes a code snapshot out of band. ``start`` returns as soon as
the run is scheduled; the outcome is reported back to the state machine.
"""

import asyncio
import os
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Protocol

from src.flowsmith.core.config import get_settings
from src.flowsmith.core.diff import SINGLE_FILE_NAME
from src.flowsmith.core.exceptions import ExecutionFailure
from src.flowsmith.core.logging import get_logger
from src.flowsmith.temporal.client import get_temporal_client

logger = get_logger(__name__)

AUTOMATION_RUN_WORKFLOW = "AutomationRunWorkflow"
STOP_SIGNAL = "request_stop"


@dataclass
class RunRequest:
    """Everything a runner needs; ids are strings so the payload is plain JSON."""

    execution_id: str
    automation_id: str
    runtime_environment: str
    version: str | None = None
    code: str | None = None
    files: list[dict[str, Any]] | None = None
    dependencies: list[dict[str, Any]] = field(default_factory=list)
    env_var_names: list[str] = field(default_factory=list)
    resume: bool = False
    timeout_minutes: int = 60
    heartbeat_seconds: int = 10


@dataclass
class RunOutcome:
    execution_id: str
    exit_code: int | None = None
    error_message: str | None = None
    checkpointed: bool = False
    stopped: bool = False


class Runner(Protocol):
    async def start(self, request: RunRequest) -> None: ...

    async def request_stop(self, execution_id: str) -> None: ...


class TemporalRunner:
    """Run each execution leg as an AutomationRunWorkflow.

    The workflow id is derived from the execution id, so a resumed leg reuses
    it once the previous leg has closed.
    """

    @staticmethod
    def get_workflow_id(execution_id: str) -> str:
        return f"automation-run-{execution_id}"

    async def start(self, request: RunRequest) -> None:
        settings = get_settings()
        try:
            client = await get_temporal_client()
            await client.start_workflow(
                AUTOMATION_RUN_WORKFLOW,
                replace(
                    request,
                    timeout_minutes=settings.runner_timeout_minutes,
                    heartbeat_seconds=settings.runner_heartbeat_seconds,
                ),
                id=self.get_workflow_id(request.execution_id),
                task_queue=settings.temporal_task_queue,
            )
        except Exception as e:
            raise ExecutionFailure(
                f"Failed to start execution: {e}", execution_id=request.execution_id
            ) from e

    async def request_stop(self, execution_id: str) -> None:
        client = await get_temporal_client()
        handle = client.get_workflow_handle(self.get_workflow_id(execution_id))
        await handle.signal(STOP_SIGNAL)


class SecretStore(Protocol):
    """Source of environment variable values; values never reach a version."""

    async def get_values(self, automation_id: str, names: list[str]) -> dict[str, str]: ...


class EnvironmentSecretStore:
    """Resolve ``NAME`` from ``<prefix>NAME`` in the worker's environment.

    Names with no configured value resolve to an empty string.
    """

    def __init__(self, prefix: str | None = None, environ: Mapping[str, str] | None = None):
        self.prefix = prefix if prefix is not None else get_settings().runner_secret_prefix
        self._environ = environ if environ is not None else os.environ

    async def get_values(self, automation_id: str, names: list[str]) -> dict[str, str]:
        return {name: self._environ.get(f"{self.prefix}{name}", "") for name in names}


def _script_name(name: str) -> str:
    return name if name.endswith(".js") else f"{name}.js"


def write_workspace(request: RunRequest, directory: Path) -> Path:
    """Write the snapshot into ``directory`` and return the entry script.

    Multi-file snapshots run their first file by ``order``.
    """
    if request.files:
        ordered = sorted(request.files, key=lambda f: f.get("order") or 0)
        for entry in ordered:
            (directory / _script_name(entry["name"])).write_text(entry["code"])
        return directory / _script_name(ordered[0]["name"])
    entry_point = directory / SINGLE_FILE_NAME
    entry_point.write_text(request.code or "")
    return entry_point


async def run_process(
    command: list[str],
    cwd: Path,
    env: Mapping[str, str],
    on_line: Callable[[str], Awaitable[None]],
) -> int:
    """Run ``command`` and feed each output line to ``on_line``.

    stderr is merged into stdout. Cancelling the caller terminates the process.
    """
    process = await asyncio.create_subprocess_exec(
        *command,
        cwd=str(cwd),
        env=dict(env),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    assert process.stdout is not None
    try:
        while True:
            raw = await process.stdout.readline()
            if not raw:
                break
            await on_line(raw.decode(errors="replace").rstrip("\n"))
        return await process.wait()
    except asyncio.CancelledError:
        if process.returncode is None:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), timeout=5)
            except TimeoutError:
                process.kill()
        raise
