"""FastAPI dependency injection definitions."""

from src.flowsmith.api.dependencies.db import DBSession, Scope, get_db_session, get_session_scope
from src.flowsmith.api.dependencies.identity import (
    ApiKey,
    AuthenticatedActor,
    CurrentActor,
    UserId,
    get_actor,
    require_actor,
)
from src.flowsmith.api.dependencies.services import (
    AutomationServiceDep,
    LedgerDep,
    NotificationServiceDep,
    SchedulerDep,
    StateMachineDep,
    SyncCoordinatorDep,
    VersionStoreDep,
    get_email_sender,
    get_runner,
    get_vcs_client,
    get_version_publisher,
)

__all__ = [
    # Database
    "DBSession",
    "Scope",
    "get_db_session",
    "get_session_scope",
    # Identity
    "ApiKey",
    "AuthenticatedActor",
    "CurrentActor",
    "UserId",
    "get_actor",
    "require_actor",
    # Integrations
    "get_email_sender",
    "get_runner",
    "get_vcs_client",
    "get_version_publisher",
    # Services
    "AutomationServiceDep",
    "LedgerDep",
    "NotificationServiceDep",
    "SchedulerDep",
    "StateMachineDep",
    "SyncCoordinatorDep",
    "VersionStoreDep",
]
