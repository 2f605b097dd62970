"""Temporal Workflows - Re-exports for worker registration."""

from src.flowsmith.temporal.workflows.automation_run import AutomationRunWorkflow
from src.flowsmith.temporal.workflows.schedule_tick import ScheduleTickWorkflow
from src.flowsmith.temporal.workflows.version_sync import VersionSyncWorkflow

__all__ = [
    "AutomationRunWorkflow",
    "ScheduleTickWorkflow",
    "VersionSyncWorkflow",
]
