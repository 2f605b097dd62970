from src.flowsmith.services.automation_service import AutomationService
from src.flowsmith.services.execution_service import ExecutionStateMachine
from src.flowsmith.services.ledger_service import ExecutionLedger
from src.flowsmith.services.notification_service import NotificationService
from src.flowsmith.services.scheduler_service import SchedulerService
from src.flowsmith.services.sync_coordinator import SyncCoordinator
from src.flowsmith.services.version_store import VersionStore

__all__ = [
    "AutomationService",
    "ExecutionLedger",
    "ExecutionStateMachine",
    "NotificationService",
    "SchedulerService",
    "SyncCoordinator",
    "VersionStore",
]
