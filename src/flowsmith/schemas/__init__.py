from src.flowsmith.schemas.automation import (
    ApiKeyResponse,
    AutomationCreate,
    AutomationRead,
    AutomationUpdate,
    EditRequest,
    EditResponse,
    GenerationResult,
    GenerationStart,
    RunResponse,
    RunStart,
    StopResponse,
)
from src.flowsmith.schemas.execution import (
    ExecutionCount,
    ExecutionDetail,
    ExecutionLogRead,
    ExecutionPage,
    ExecutionRead,
    ExecutionStatsRead,
    NotificationRead,
)
from src.flowsmith.schemas.schedule import NextRunRead, ScheduleCreate, ScheduleRead, ScheduleUpdate
from src.flowsmith.schemas.vcs import (
    ConnectionCreate,
    ConnectionRead,
    RepositoryCreate,
    RepositoryLinkRead,
    RepositoryLinkRequest,
    SyncStateRead,
)
from src.flowsmith.schemas.version import (
    FileDiffRead,
    PendingRollbackRead,
    RollbackPlanRead,
    RollbackRequest,
    SyncResultRead,
    VersionRead,
    VersionStatsRead,
    VersionSummary,
)

__all__ = [
    # Automation
    "ApiKeyResponse",
    "AutomationCreate",
    "AutomationRead",
    "AutomationUpdate",
    "EditRequest",
    "EditResponse",
    "GenerationResult",
    "GenerationStart",
    "RunResponse",
    "RunStart",
    "StopResponse",
    # Execution
    "ExecutionCount",
    "ExecutionDetail",
    "ExecutionLogRead",
    "ExecutionPage",
    "ExecutionRead",
    "ExecutionStatsRead",
    "NotificationRead",
    # Schedule
    "NextRunRead",
    "ScheduleCreate",
    "ScheduleRead",
    "ScheduleUpdate",
    # VCS
    "ConnectionCreate",
    "ConnectionRead",
    "RepositoryCreate",
    "RepositoryLinkRead",
    "RepositoryLinkRequest",
    "SyncStateRead",
    # Version
    "FileDiffRead",
    "PendingRollbackRead",
    "RollbackPlanRead",
    "RollbackRequest",
    "SyncResultRead",
    "VersionRead",
    "VersionStatsRead",
    "VersionSummary",
]
