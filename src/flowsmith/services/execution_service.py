"""Execution State Machine - the per-automation run controller.

States live on the automation row (``run_state``) and every transition is a
fenced write on ``doc_version``. Edits that arrive while a run is active are
buffered as deferred edits and folded into one version when the run reaches a
checkpoint or a terminal state, so a version never describes code that did not
run.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.flowsmith.core.config import get_settings
from src.flowsmith.core.exceptions import (
    AlreadyRunning,
    ConcurrentModification,
    ExecutionFailure,
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from src.flowsmith.core.logging import get_logger
from src.flowsmith.core.snapshot import (
    content_hash,
    is_empty_payload,
    is_generic_message,
    normalize_dependencies,
    normalize_env_var_names,
    normalize_files,
    require_payload,
)
from src.flowsmith.models import (
    Automation,
    CodeVersion,
    DeferredEdit,
    EditSource,
    ExecutionRecord,
    ExecutionStatus,
    RunState,
    TriggerType,
)
from src.flowsmith.repositories import AutomationRepository, DeferredEditRepository
from src.flowsmith.services.ledger_service import ExecutionLedger
from src.flowsmith.services.notification_service import RunNotifier
from src.flowsmith.services.runner import Runner, RunRequest
from src.flowsmith.services.version_store import VersionStore

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.IDLE: frozenset({RunState.SAVING, RunState.GENERATING, RunState.RUNNING}),
    RunState.RESUMABLE: frozenset(
        {RunState.SAVING, RunState.GENERATING, RunState.RUNNING, RunState.IDLE}
    ),
    RunState.SAVING: frozenset({RunState.IDLE, RunState.RESUMABLE, RunState.GENERATING}),
    RunState.GENERATING: frozenset({RunState.SAVING, RunState.IDLE, RunState.RESUMABLE}),
    RunState.RUNNING: frozenset({RunState.RESUMABLE, RunState.STOPPING, RunState.IDLE}),
    RunState.STOPPING: frozenset({RunState.IDLE}),
}

ACTIVE_STATES = frozenset({RunState.RUNNING, RunState.STOPPING})
EDITABLE_STATES = frozenset({RunState.IDLE, RunState.RESUMABLE})

SUPERSEDED_MESSAGE = "Superseded by a new run"
FORCE_STOP_MESSAGE = "Stop was not acknowledged within the grace period"


def can_transition(current: RunState, target: RunState) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


@dataclass(frozen=True)
class Actor:
    """The caller on whose behalf a transition happens."""

    user_id: str | None = None
    name: str | None = None
    email: str | None = None


@dataclass(frozen=True)
class RunHandle:
    execution_id: UUID
    resumed: bool = False


@dataclass(frozen=True)
class StopResult:
    execution_id: UUID
    state: RunState
    forced: bool = False


@dataclass(frozen=True)
class EditResult:
    """``status`` is ``saved`` or ``deferred``."""

    status: str
    doc_version: int
    version: CodeVersion | None = None


@dataclass(frozen=True)
class Payload:
    code: str | None
    files: list[dict[str, Any]] | None
    dependencies: list[dict[str, Any]]
    env_var_names: list[str]


StopTimeout = Callable[[UUID], Awaitable[Any]]


class StopWatchdog:
    """One timer per stopping execution; expiry force-closes the record.

    Re-arming replaces the previous timer and disarming cancels it, so repeated
    start/stop cycles never accumulate timers.
    """

    def __init__(self) -> None:
        self._tasks: dict[UUID, asyncio.Task[None]] = {}

    def arm(self, execution_id: UUID, delay: float, on_timeout: StopTimeout) -> None:
        self.disarm(execution_id)
        self._tasks[execution_id] = asyncio.create_task(
            self._expire(execution_id, delay, on_timeout),
            name=f"stop-watchdog-{execution_id}",
        )

    def disarm(self, execution_id: UUID) -> bool:
        task = self._tasks.pop(execution_id, None)
        if task is None or task.done():
            return False
        if task is not asyncio.current_task():
            task.cancel()
        return True

    def is_armed(self, execution_id: UUID) -> bool:
        task = self._tasks.get(execution_id)
        return task is not None and not task.done()

    @property
    def armed_count(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    async def _expire(self, execution_id: UUID, delay: float, on_timeout: StopTimeout) -> None:
        await asyncio.sleep(delay)
        self._tasks.pop(execution_id, None)
        try:
            await on_timeout(execution_id)
        except Exception:
            logger.exception("Stop watchdog failed", execution_id=str(execution_id))

    async def drain(self) -> None:
        """Cancel every pending timer. Call during shutdown."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


_watchdog: StopWatchdog | None = None


def get_stop_watchdog() -> StopWatchdog:
    global _watchdog
    if _watchdog is None:
        _watchdog = StopWatchdog()
    return _watchdog


class ExecutionStateMachine:
    """Coordinates runs, stops, edits and generation on one automation.

    Transitions triggered by the system (checkpoints, completion, watchdog) re-read
    the automation and retry on a stale fence; client edits carry their own
    expected ``doc_version`` and fail with ConcurrentModification instead.
    """

    def __init__(
        self,
        session: AsyncSession,
        automation_repo: AutomationRepository,
        deferred_repo: DeferredEditRepository,
        version_store: VersionStore,
        ledger: ExecutionLedger,
        runner: Runner,
        notifier: RunNotifier | None = None,
        watchdog: StopWatchdog | None = None,
        on_stop_timeout: StopTimeout | None = None,
    ):
        self.session = session
        self.automation_repo = automation_repo
        self.deferred_repo = deferred_repo
        self.version_store = version_store
        self.ledger = ledger
        self.runner = runner
        self.notifier = notifier
        self.watchdog = watchdog or get_stop_watchdog()
        self.on_stop_timeout = on_stop_timeout or self.force_stop
        self.settings = get_settings()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_automation(self, automation_id: UUID) -> Automation:
        automation = await self.automation_repo.get_active(automation_id)
        if automation is None:
            raise NotFound("Automation not found", automation_id=str(automation_id))
        return automation

    @staticmethod
    def _settled_state(automation: Automation) -> RunState:
        """Where saving and generation return to."""
        return RunState.RESUMABLE if automation.current_execution_id else RunState.IDLE

    async def _write(
        self, automation: Automation, target: RunState, expected: int | None = None, **values: Any
    ) -> Automation:
        """Fenced state change from the automation's current state."""
        current = automation.run_state_enum
        if current is not target and not can_transition(current, target):
            raise InvalidStateTransition(
                f"Cannot move from {current.value} to {target.value}",
                automation_id=str(automation.id),
            )
        fence = automation.doc_version if expected is None else expected
        if not await self.automation_repo.fenced_update(
            automation.id, fence, run_state=target.value, **values
        ):
            raise ConcurrentModification(
                "Automation was modified concurrently", automation_id=str(automation.id)
            )
        return await self.automation_repo.refresh(automation)

    async def _transition(
        self,
        automation_id: UUID,
        allowed: frozenset[RunState],
        target: RunState | Callable[[Automation], RunState],
        **values: Any,
    ) -> Automation:
        """System transition: re-read and retry on a stale fence."""
        for attempt in range(self.settings.fence_retry_attempts):
            automation = await self._get_automation(automation_id)
            if automation.run_state_enum not in allowed:
                raise InvalidStateTransition(
                    f"Automation is {automation.run_state}",
                    automation_id=str(automation_id),
                )
            state = target(automation) if callable(target) else target
            try:
                return await self._write(automation, state, **values)
            except ConcurrentModification:
                logger.info(
                    "Stale doc_version, retrying transition",
                    automation_id=str(automation_id),
                    attempt=attempt + 1,
                )
        raise ConcurrentModification(
            "Automation kept changing during transition", automation_id=str(automation_id)
        )

    def _merge_payload(
        self,
        automation: Automation,
        code: str | None,
        files: list[dict[str, Any]] | None,
        dependencies: list[Any] | None,
        env_var_names: list[Any] | None,
    ) -> Payload:
        if code is not None and files is not None:
            raise ValidationError("Provide either code or files, not both")
        if files is not None:
            new_code, new_files = None, normalize_files(files)
        elif code is not None:
            new_code, new_files = code, None
        else:
            new_code, new_files = automation.code, automation.files
        payload = Payload(
            code=new_code,
            files=new_files,
            dependencies=(
                normalize_dependencies(dependencies)
                if dependencies is not None
                else list(automation.dependencies)
            ),
            env_var_names=(
                normalize_env_var_names(env_var_names)
                if env_var_names is not None
                else list(automation.env_var_names)
            ),
        )
        require_payload(payload.code, payload.files)
        return payload

    async def _build(
        self,
        automation_id: UUID,
        payload: Payload,
        message: str | None,
        created_by: str | None,
    ) -> CodeVersion | None:
        version, created = await self.version_store.build_version(
            automation_id,
            code=payload.code,
            files=payload.files,
            dependencies=payload.dependencies,
            env_var_names=payload.env_var_names,
            message=message,
            created_by=created_by,
        )
        return version if created else None

    async def _apply_deferred(self, automation: Automation) -> CodeVersion | None:
        """Fold buffered edits into one version; last payload wins."""
        edits = await self.deferred_repo.list_for_automation(automation.id)
        if not edits:
            return None

        code, files = automation.code, automation.files
        dependencies, env_names = automation.dependencies, automation.env_var_names
        message: str | None = None
        created_by: str | None = None
        for edit in edits:
            if edit.files is not None:
                code, files = None, edit.files
            elif edit.code is not None:
                code, files = edit.code, None
            if edit.dependencies is not None:
                dependencies = edit.dependencies
            if edit.env_var_names is not None:
                env_names = edit.env_var_names
            if not is_generic_message(edit.message):
                message = edit.message
            created_by = edit.created_by or created_by
        if message is None and len(edits) > 1:
            message = f"Applied {len(edits)} queued edits"

        payload = Payload(code, files, list(dependencies), list(env_names))
        automation = await self._write(
            automation,
            automation.run_state_enum,
            code=payload.code,
            files=payload.files,
            dependencies=payload.dependencies,
            env_var_names=payload.env_var_names,
        )
        version = await self._build(automation.id, payload, message, created_by)
        await self.deferred_repo.clear(automation.id, edits[-1].sequence)
        logger.info(
            "Deferred edits applied",
            automation_id=str(automation.id),
            edits=len(edits),
            version=version.version if version else None,
        )
        return version

    async def _after_commit(
        self, closed: list[ExecutionRecord], versions: list[CodeVersion | None]
    ) -> None:
        for version in versions:
            if version is not None:
                await self.version_store.publish(version)
        for record in closed:
            self.watchdog.disarm(record.id)
            if self.notifier is not None:
                await self.notifier.notify(record)

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    async def run(
        self,
        automation_id: UUID,
        *,
        resume: bool = False,
        trigger_type: TriggerType = TriggerType.MANUAL,
        actor: Actor | None = None,
        schedule_id: UUID | None = None,
        runtime_environment: str | None = None,
    ) -> RunHandle:
        """Start (or resume) the automation's single execution slot.

        Returns as soon as the runner has the request.

        Raises:
            AlreadyRunning: a run is active or a running record exists
            InvalidStateTransition: the automation is saving or generating
        """
        actor = actor or Actor()
        automation = await self._get_automation(automation_id)
        state = automation.run_state_enum
        if state in ACTIVE_STATES:
            raise AlreadyRunning(
                "Automation is already running", automation_id=str(automation_id)
            )
        if state not in EDITABLE_STATES:
            raise InvalidStateTransition(
                f"Cannot run while automation is {state.value}", automation_id=str(automation_id)
            )
        if is_empty_payload(automation.code, automation.files):
            raise ValidationError("Automation has no code to run", automation_id=str(automation_id))

        running = await self.ledger.get_running(automation_id)
        paused = (
            running
            if state is RunState.RESUMABLE
            and running is not None
            and running.id == automation.current_execution_id
            else None
        )
        if paused is not None and resume:
            return await self._resume(automation, paused)
        if running is not None and paused is None:
            raise AlreadyRunning(
                "Automation already has a running execution",
                automation_id=str(automation_id),
                execution_id=str(running.id),
            )

        closed: list[ExecutionRecord] = []
        if paused is not None:
            record = await self.ledger.close(
                paused.id, ExecutionStatus.STOPPED, error_message=SUPERSEDED_MESSAGE
            )
            if record is not None:
                closed.append(record)
        return await self._start(
            automation,
            trigger_type=trigger_type,
            actor=actor,
            schedule_id=schedule_id,
            runtime_environment=runtime_environment,
            closed=closed,
        )

    async def _start(
        self,
        automation: Automation,
        *,
        trigger_type: TriggerType,
        actor: Actor,
        schedule_id: UUID | None,
        runtime_environment: str | None,
        closed: list[ExecutionRecord],
    ) -> RunHandle:
        version = await self._attributed_version(automation)
        environment = (
            runtime_environment
            or automation.runtime_environment
            or self.settings.default_runtime_environment
        )

        record = ExecutionRecord(
            automation_id=automation.id,
            schedule_id=schedule_id,
            trigger_type=trigger_type.value,
            automation_title=automation.title,
            user_id=actor.user_id,
            user_name=actor.name,
            user_email=actor.email,
            runtime_environment=environment,
            version=version,
        )
        await self.ledger.append(record)
        try:
            automation = await self._write(
                automation, RunState.RUNNING, current_execution_id=record.id
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        await self._after_commit(closed, [])

        logger.info(
            "Execution started",
            automation_id=str(automation.id),
            execution_id=str(record.id),
            trigger_type=trigger_type.value,
            runtime_environment=environment,
            version=version,
        )
        await self._dispatch(
            automation,
            RunRequest(
                execution_id=str(record.id),
                automation_id=str(automation.id),
                runtime_environment=environment,
                version=version,
                code=automation.code,
                files=automation.files,
                dependencies=list(automation.dependencies),
                env_var_names=list(automation.env_var_names),
            ),
        )
        return RunHandle(execution_id=record.id)

    async def _attributed_version(self, automation: Automation) -> str | None:
        """Latest version label, only when it matches the content about to run."""
        latest = await self.version_store.latest_version(automation.id)
        executed_hash = content_hash(automation.code, automation.files)
        return latest.version if latest and latest.code_hash == executed_hash else None

    async def _resume(self, automation: Automation, record: ExecutionRecord) -> RunHandle:
        # Edits applied at the checkpoint change what the next leg runs
        record.version = await self._attributed_version(automation)
        automation = await self._write(automation, RunState.RUNNING)
        await self.session.commit()
        logger.info(
            "Execution resumed",
            automation_id=str(automation.id),
            execution_id=str(record.id),
            version=record.version,
        )
        await self._dispatch(
            automation,
            RunRequest(
                execution_id=str(record.id),
                automation_id=str(automation.id),
                runtime_environment=record.runtime_environment,
                version=record.version,
                code=automation.code,
                files=automation.files,
                dependencies=list(automation.dependencies),
                env_var_names=list(automation.env_var_names),
                resume=True,
            ),
        )
        return RunHandle(execution_id=record.id, resumed=True)

    async def _dispatch(self, automation: Automation, request: RunRequest) -> None:
        """Hand the request to the runner; a failed start closes the record as failed."""
        try:
            await self.runner.start(request)
        except ExecutionFailure as e:
            logger.error(
                "Runner failed to start execution",
                automation_id=str(automation.id),
                execution_id=request.execution_id,
                error=e.message,
            )
            await self.complete(UUID(request.execution_id), exit_code=None, error_message=e.message)

    async def _finish(
        self,
        execution_id: UUID,
        status: ExecutionStatus,
        exit_code: int | None = None,
        error_message: str | None = None,
    ) -> ExecutionRecord | None:
        """Close the record, release the slot and apply deferred edits in one commit."""
        record = await self.ledger.close(execution_id, status, exit_code, error_message)
        if record is None:
            return None

        version = None
        automation = await self.automation_repo.get_active(record.automation_id)
        if automation is None:
            automation = await self.automation_repo.get_by_id(record.automation_id)
        if automation is not None and automation.current_execution_id == record.id:
            for attempt in range(self.settings.fence_retry_attempts):
                try:
                    automation = await self._write(
                        automation, RunState.IDLE, current_execution_id=None
                    )
                    break
                except ConcurrentModification:
                    if attempt + 1 == self.settings.fence_retry_attempts:
                        raise
                    automation = await self.automation_repo.refresh(automation)
            if not automation.is_deleted:
                version = await self._apply_deferred(automation)

        await self.session.commit()
        await self._after_commit([record], [version])
        return record

    async def checkpoint(self, execution_id: UUID) -> Automation:
        """Running -> Resumable; the record stays running and deferred edits are applied.

        A checkpoint while stopping counts as the stop acknowledgement.
        """
        record = await self.ledger.get(execution_id)
        if record.is_terminal:
            raise InvalidStateTransition(
                "Execution already finished", execution_id=str(execution_id)
            )
        automation = await self._get_automation(record.automation_id)
        if automation.current_execution_id != record.id:
            raise InvalidStateTransition(
                "Execution is not the automation's current run", execution_id=str(execution_id)
            )
        if automation.run_state_enum is RunState.STOPPING:
            await self.acknowledge_stop(execution_id)
            return await self._get_automation(record.automation_id)

        automation = await self._transition(
            automation.id, frozenset({RunState.RUNNING}), RunState.RESUMABLE
        )
        version = await self._apply_deferred(automation)
        await self.session.commit()
        await self._after_commit([], [version])
        logger.info("Execution checkpointed", execution_id=str(execution_id))
        return await self._get_automation(record.automation_id)

    async def complete(
        self, execution_id: UUID, exit_code: int | None, error_message: str | None = None
    ) -> ExecutionRecord | None:
        """Natural end of a run: exit code 0 is success, anything else failure.

        Returns None if the record was already closed (for example force-stopped).
        """
        status = ExecutionStatus.SUCCESS if exit_code == 0 else ExecutionStatus.FAILED
        if status is ExecutionStatus.FAILED and error_message is None and exit_code is not None:
            error_message = f"Process exited with code {exit_code}"
        return await self._finish(execution_id, status, exit_code, error_message)

    async def report_outcome(
        self,
        execution_id: UUID,
        exit_code: int | None,
        error_message: str | None = None,
        checkpointed: bool = False,
        stopped: bool = False,
    ) -> None:
        """Entry point for the runner when an execution leg ends."""
        record = await self.ledger.get(execution_id)
        if record.is_terminal:
            logger.info("Outcome for closed execution ignored", execution_id=str(execution_id))
            return
        automation = await self.automation_repo.get_by_id(record.automation_id)
        stopping = automation is not None and automation.run_state_enum is RunState.STOPPING
        if stopped or stopping or record.cancel_requested:
            await self.acknowledge_stop(execution_id)
        elif checkpointed and exit_code == 0:
            await self.checkpoint(execution_id)
        else:
            await self.complete(execution_id, exit_code, error_message)

    # ------------------------------------------------------------------
    # Stop
    # ------------------------------------------------------------------

    async def stop(self, automation_id: UUID, actor: Actor | None = None) -> StopResult:
        """Cooperative stop.

        Running: flag the record, move to Stopping, signal the runner and arm the
        watchdog. Stopping: a second stop force-closes. Resumable: the paused record
        is closed right away.
        """
        actor = actor or Actor()
        automation = await self._get_automation(automation_id)
        state = automation.run_state_enum
        execution_id = automation.current_execution_id
        if execution_id is None or state not in (
            RunState.RUNNING,
            RunState.STOPPING,
            RunState.RESUMABLE,
        ):
            raise InvalidStateTransition(
                "No active execution to stop", automation_id=str(automation_id)
            )

        if state is RunState.STOPPING:
            await self.force_stop(execution_id, reason="Stop requested again")
            return StopResult(execution_id=execution_id, state=RunState.IDLE, forced=True)

        if state is RunState.RESUMABLE:
            await self._finish(execution_id, ExecutionStatus.STOPPED)
            return StopResult(execution_id=execution_id, state=RunState.IDLE)

        await self.ledger.request_cancel(execution_id, actor.user_id)
        await self._write(automation, RunState.STOPPING)
        await self.session.commit()
        logger.info(
            "Stop requested",
            automation_id=str(automation_id),
            execution_id=str(execution_id),
            requested_by=actor.user_id,
        )
        try:
            await self.runner.request_stop(str(execution_id))
        except Exception as e:
            logger.warning(
                "Failed to signal runner, waiting for grace period",
                execution_id=str(execution_id),
                error=str(e),
            )
        self.watchdog.arm(
            execution_id, self.settings.stop_grace_period_seconds, self.on_stop_timeout
        )
        return StopResult(execution_id=execution_id, state=RunState.STOPPING)

    async def acknowledge_stop(self, execution_id: UUID) -> ExecutionRecord | None:
        """The runner confirmed the stop."""
        return await self._finish(execution_id, ExecutionStatus.STOPPED)

    async def force_stop(
        self, execution_id: UUID, reason: str | None = None
    ) -> ExecutionRecord | None:
        record = await self._finish(
            execution_id, ExecutionStatus.STOPPED, error_message=FORCE_STOP_MESSAGE
        )
        if record is not None:
            logger.warning(
                "Execution force-stopped",
                execution_id=str(execution_id),
                automation_id=str(record.automation_id),
                reason=reason or FORCE_STOP_MESSAGE,
            )
        return record

    # ------------------------------------------------------------------
    # Edits and generation
    # ------------------------------------------------------------------

    async def submit_edit(
        self,
        automation_id: UUID,
        expected_doc_version: int,
        *,
        code: str | None = None,
        files: list[dict[str, Any]] | None = None,
        dependencies: list[Any] | None = None,
        env_var_names: list[Any] | None = None,
        message: str | None = None,
        source: EditSource = EditSource.MANUAL,
        actor: Actor | None = None,
    ) -> EditResult:
        """Accept an edit: saved as a version now, or deferred while a run is active."""
        actor = actor or Actor()
        if code is None and files is None and dependencies is None and env_var_names is None:
            raise ValidationError("Edit contains no changes")
        automation = await self._get_automation(automation_id)
        payload = self._merge_payload(automation, code, files, dependencies, env_var_names)
        if automation.doc_version != expected_doc_version:
            raise ConcurrentModification(
                "Automation was modified concurrently",
                automation_id=str(automation_id),
                expected=expected_doc_version,
                actual=automation.doc_version,
            )

        state = automation.run_state_enum
        if state in ACTIVE_STATES:
            return await self._defer(
                automation,
                code=code,
                files=payload.files if files is not None else None,
                dependencies=payload.dependencies if dependencies is not None else None,
                env_var_names=payload.env_var_names if env_var_names is not None else None,
                message=message,
                source=source,
                actor=actor,
            )
        if state not in EDITABLE_STATES:
            raise InvalidStateTransition(
                f"Cannot edit while automation is {state.value}",
                automation_id=str(automation_id),
            )

        settled = self._settled_state(automation)
        await self._write(
            automation,
            RunState.SAVING,
            expected=expected_doc_version,
            code=payload.code,
            files=payload.files,
            dependencies=payload.dependencies,
            env_var_names=payload.env_var_names,
        )
        await self.session.commit()
        return await self._save(automation_id, payload, message, actor, settled)

    async def _defer(
        self,
        automation: Automation,
        *,
        code: str | None,
        files: list[dict[str, Any]] | None,
        dependencies: list[dict[str, Any]] | None,
        env_var_names: list[str] | None,
        message: str | None,
        source: EditSource,
        actor: Actor,
    ) -> EditResult:
        """Buffer an edit; only the fields it carries override earlier edits."""
        sequence = await self.deferred_repo.next_sequence(automation.id)
        self.deferred_repo.add(
            DeferredEdit(
                automation_id=automation.id,
                sequence=sequence,
                code=code,
                files=files,
                dependencies=dependencies,
                env_var_names=env_var_names,
                message=message,
                source=source.value,
                created_by=actor.user_id,
            )
        )
        # Keep the fence moving so clients see their edit was accepted
        automation = await self._write(
            automation, automation.run_state_enum, expected=automation.doc_version
        )
        await self.session.commit()
        logger.info(
            "Edit deferred until run settles",
            automation_id=str(automation.id),
            sequence=sequence,
            source=source.value,
        )
        return EditResult(status="deferred", doc_version=automation.doc_version)

    async def _save(
        self,
        automation_id: UUID,
        payload: Payload,
        message: str | None,
        actor: Actor,
        settled: RunState,
    ) -> EditResult:
        """Second phase of a save: version the payload and leave Saving."""
        try:
            version = await self._build(automation_id, payload, message, actor.user_id)
            automation = await self._transition(
                automation_id, frozenset({RunState.SAVING}), settled
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            await self._transition(automation_id, frozenset({RunState.SAVING}), settled)
            await self.session.commit()
            raise
        await self._after_commit([], [version])
        latest = version or await self.version_store.latest_version(automation_id)
        return EditResult(status="saved", doc_version=automation.doc_version, version=latest)

    async def begin_generation(self, automation_id: UUID, expected_doc_version: int) -> Automation:
        automation = await self._get_automation(automation_id)
        if automation.run_state_enum in ACTIVE_STATES:
            raise InvalidStateTransition(
                "Cannot generate code while a run is active", automation_id=str(automation_id)
            )
        automation = await self._write(
            automation, RunState.GENERATING, expected=expected_doc_version
        )
        await self.session.commit()
        return automation

    async def complete_generation(
        self,
        automation_id: UUID,
        *,
        code: str | None = None,
        files: list[dict[str, Any]] | None = None,
        dependencies: list[Any] | None = None,
        env_var_names: list[Any] | None = None,
        message: str | None = None,
        actor: Actor | None = None,
    ) -> EditResult:
        """Generating -> Saving -> Idle/Resumable with the generated payload versioned."""
        actor = actor or Actor()
        automation = await self._get_automation(automation_id)
        if automation.run_state_enum is not RunState.GENERATING:
            raise InvalidStateTransition(
                "No generation in progress", automation_id=str(automation_id)
            )
        payload = self._merge_payload(automation, code, files, dependencies, env_var_names)
        settled = self._settled_state(automation)
        await self._transition(
            automation_id,
            frozenset({RunState.GENERATING}),
            RunState.SAVING,
            code=payload.code,
            files=payload.files,
            dependencies=payload.dependencies,
            env_var_names=payload.env_var_names,
        )
        await self.session.commit()
        return await self._save(automation_id, payload, message, actor, settled)

    async def abort_generation(self, automation_id: UUID) -> Automation:
        automation = await self._transition(
            automation_id, frozenset({RunState.GENERATING}), self._settled_state
        )
        await self.session.commit()
        return automation
