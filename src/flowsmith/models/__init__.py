"""Model exports.

Import from here: `from src.flowsmith.models import Automation, CodeVersion`
"""

from src.flowsmith.models.automation import Automation
from src.flowsmith.models.enums import (
    AutomationStatus,
    ConnectionState,
    EditSource,
    ExecutionStatus,
    FileChange,
    RunState,
    SyncStatus,
    TriggerMode,
    TriggerType,
    VersionBump,
)
from src.flowsmith.models.execution import ExecutionLog, ExecutionRecord, SchedulerNotification
from src.flowsmith.models.schedule import Schedule
from src.flowsmith.models.vcs import RepositoryLink, VcsConnection
from src.flowsmith.models.version import CodeVersion, DeferredEdit, PendingRollback

__all__ = [
    # Enums
    "AutomationStatus",
    "ConnectionState",
    "EditSource",
    "ExecutionStatus",
    "FileChange",
    "RunState",
    "SyncStatus",
    "TriggerMode",
    "TriggerType",
    "VersionBump",
    # Models
    "Automation",
    "CodeVersion",
    "DeferredEdit",
    "ExecutionLog",
    "ExecutionRecord",
    "PendingRollback",
    "RepositoryLink",
    "Schedule",
    "SchedulerNotification",
    "VcsConnection",
]
