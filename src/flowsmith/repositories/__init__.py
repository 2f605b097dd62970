"""Repository layer - data access abstraction."""

from src.flowsmith.repositories.automation import AutomationRepository
from src.flowsmith.repositories.base import BaseRepository
from src.flowsmith.repositories.execution import (
    ExecutionLogRepository,
    ExecutionRecordRepository,
    HistoryFilters,
    NotificationRepository,
)
from src.flowsmith.repositories.schedule import ScheduleRepository
from src.flowsmith.repositories.vcs import RepositoryLinkRepository, VcsConnectionRepository
from src.flowsmith.repositories.version import (
    DeferredEditRepository,
    PendingRollbackRepository,
    VersionRepository,
)

__all__ = [
    "AutomationRepository",
    "BaseRepository",
    "DeferredEditRepository",
    "ExecutionLogRepository",
    "ExecutionRecordRepository",
    "HistoryFilters",
    "NotificationRepository",
    "PendingRollbackRepository",
    "RepositoryLinkRepository",
    "ScheduleRepository",
    "VcsConnectionRepository",
    "VersionRepository",
]
