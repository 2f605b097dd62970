"""Service factory dependencies.

Integrations (runner, version publisher, VCS client, email sender) are their
own dependencies so tests and alternative deployments can override them.
"""

from typing import Annotated

from fastapi import Depends

from src.flowsmith.api.dependencies.db import DBSession, Scope
from src.flowsmith.core.notifications import send_run_notification_email
from src.flowsmith.core.vcs import GitHubClient, VcsClient
from src.flowsmith.services import (
    AutomationService,
    ExecutionLedger,
    ExecutionStateMachine,
    NotificationService,
    SchedulerService,
    SyncCoordinator,
    VersionStore,
)
from src.flowsmith.services.events import TemporalVersionPublisher, VersionEventPublisher
from src.flowsmith.services.notification_service import EmailSender
from src.flowsmith.services.runner import Runner, TemporalRunner
from src.flowsmith.services.wiring import (
    build_automation_service,
    build_ledger,
    build_notifier,
    build_scheduler,
    build_state_machine,
    build_sync_coordinator,
    build_version_store,
)


def get_runner() -> Runner:
    return TemporalRunner()


def get_version_publisher() -> VersionEventPublisher:
    return TemporalVersionPublisher()


def get_vcs_client() -> VcsClient:
    return GitHubClient()


def get_email_sender() -> EmailSender:
    return send_run_notification_email


RunnerDep = Annotated[Runner, Depends(get_runner)]
PublisherDep = Annotated[VersionEventPublisher, Depends(get_version_publisher)]
VcsClientDep = Annotated[VcsClient, Depends(get_vcs_client)]
EmailSenderDep = Annotated[EmailSender, Depends(get_email_sender)]


def get_version_store(session: DBSession, publisher: PublisherDep) -> VersionStore:
    return build_version_store(session, publisher)


def get_automation_service(session: DBSession, publisher: PublisherDep) -> AutomationService:
    return build_automation_service(session, publisher)


def get_ledger(session: DBSession) -> ExecutionLedger:
    return build_ledger(session)


def get_notification_service(session: DBSession, sender: EmailSenderDep) -> NotificationService:
    return build_notifier(session, sender)


def get_state_machine(
    session: DBSession,
    runner: RunnerDep,
    publisher: PublisherDep,
    sender: EmailSenderDep,
    scope: Scope,
) -> ExecutionStateMachine:
    return build_state_machine(session, runner, publisher, sender, scope)


def get_scheduler(
    session: DBSession,
    runner: RunnerDep,
    publisher: PublisherDep,
    sender: EmailSenderDep,
    scope: Scope,
) -> SchedulerService:
    return build_scheduler(session, runner, publisher, sender, scope)


def get_sync_coordinator(session: DBSession, client: VcsClientDep) -> SyncCoordinator:
    return build_sync_coordinator(session, client)


VersionStoreDep = Annotated[VersionStore, Depends(get_version_store)]
AutomationServiceDep = Annotated[AutomationService, Depends(get_automation_service)]
LedgerDep = Annotated[ExecutionLedger, Depends(get_ledger)]
NotificationServiceDep = Annotated[NotificationService, Depends(get_notification_service)]
StateMachineDep = Annotated[ExecutionStateMachine, Depends(get_state_machine)]
SchedulerDep = Annotated[SchedulerService, Depends(get_scheduler)]
SyncCoordinatorDep = Annotated[SyncCoordinator, Depends(get_sync_coordinator)]
