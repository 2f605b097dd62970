"""Service construction shared by the API, the worker activities and background timers."""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.flowsmith.core.db import SessionScope, session_scope
from src.flowsmith.core.notifications import send_run_notification_email
from src.flowsmith.core.vcs import GitHubClient, VcsClient
from src.flowsmith.models import ExecutionRecord
from src.flowsmith.repositories import (
    AutomationRepository,
    DeferredEditRepository,
    ExecutionLogRepository,
    ExecutionRecordRepository,
    NotificationRepository,
    PendingRollbackRepository,
    RepositoryLinkRepository,
    ScheduleRepository,
    VcsConnectionRepository,
    VersionRepository,
)
from src.flowsmith.services.automation_service import AutomationService
from src.flowsmith.services.events import TemporalVersionPublisher, VersionEventPublisher
from src.flowsmith.services.execution_service import ExecutionStateMachine, StopTimeout
from src.flowsmith.services.ledger_service import ExecutionLedger
from src.flowsmith.services.notification_service import EmailSender, NotificationService
from src.flowsmith.services.runner import Runner, TemporalRunner
from src.flowsmith.services.scheduler_service import SchedulerService
from src.flowsmith.services.sync_coordinator import SyncCoordinator
from src.flowsmith.services.version_store import VersionStore


def build_version_store(
    session: AsyncSession, publisher: VersionEventPublisher | None = None
) -> VersionStore:
    return VersionStore(
        session,
        AutomationRepository(session),
        VersionRepository(session),
        PendingRollbackRepository(session),
        publisher or TemporalVersionPublisher(),
    )


def build_automation_service(
    session: AsyncSession, publisher: VersionEventPublisher | None = None
) -> AutomationService:
    return AutomationService(
        session, AutomationRepository(session), build_version_store(session, publisher)
    )


def build_ledger(session: AsyncSession) -> ExecutionLedger:
    return ExecutionLedger(
        session, ExecutionRecordRepository(session), ExecutionLogRepository(session)
    )


def build_notifier(
    session: AsyncSession, sender: EmailSender = send_run_notification_email
) -> NotificationService:
    return NotificationService(
        session,
        ScheduleRepository(session),
        NotificationRepository(session),
        ExecutionLogRepository(session),
        sender,
    )


def background_force_stop(
    scope: SessionScope,
    runner: Runner,
    publisher: VersionEventPublisher | None = None,
    sender: EmailSender = send_run_notification_email,
) -> StopTimeout:
    """Force-stop callback for the stop watchdog.

    The timer outlives the request that armed it, so it opens its own session.
    """

    async def _force_stop(execution_id: UUID) -> ExecutionRecord | None:
        async with scope() as session:
            machine = build_state_machine(
                session, runner=runner, publisher=publisher, sender=sender, scope=scope
            )
            return await machine.force_stop(execution_id)

    return _force_stop


def build_state_machine(
    session: AsyncSession,
    runner: Runner | None = None,
    publisher: VersionEventPublisher | None = None,
    sender: EmailSender = send_run_notification_email,
    scope: SessionScope | None = None,
) -> ExecutionStateMachine:
    runner = runner or TemporalRunner()
    return ExecutionStateMachine(
        session,
        AutomationRepository(session),
        DeferredEditRepository(session),
        build_version_store(session, publisher),
        build_ledger(session),
        runner,
        notifier=build_notifier(session, sender),
        on_stop_timeout=background_force_stop(
            scope or session_scope(), runner, publisher, sender
        ),
    )


def build_scheduler(
    session: AsyncSession,
    runner: Runner | None = None,
    publisher: VersionEventPublisher | None = None,
    sender: EmailSender = send_run_notification_email,
    scope: SessionScope | None = None,
) -> SchedulerService:
    return SchedulerService(
        session,
        ScheduleRepository(session),
        AutomationRepository(session),
        build_state_machine(session, runner, publisher, sender, scope),
        build_ledger(session),
    )


def build_sync_coordinator(
    session: AsyncSession, client: VcsClient | None = None
) -> SyncCoordinator:
    return SyncCoordinator(
        session,
        AutomationRepository(session),
        VersionRepository(session),
        VcsConnectionRepository(session),
        RepositoryLinkRepository(session),
        client or GitHubClient(),
    )
