"""Shared enums for models."""

from enum import Enum


class AutomationStatus(str, Enum):
    """Publication status of an automation."""

    DRAFT = "draft"
    LIVE = "live"
    NOT_IN_USE = "not_in_use"


class TriggerMode(str, Enum):
    MANUAL = "manual"
    TIME_BASED = "time-based"


class RunState(str, Enum):
    """Execution state machine states, persisted on the automation."""

    IDLE = "idle"
    SAVING = "saving"
    GENERATING = "generating"
    RUNNING = "running"
    RESUMABLE = "resumable"
    STOPPING = "stopping"


class ExecutionStatus(str, Enum):
    """Execution record status. Everything except RUNNING is terminal."""

    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    STOPPED = "stopped"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.RUNNING


class TriggerType(str, Enum):
    """Trigger provenance of an execution."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"
    API = "api"


class SyncStatus(str, Enum):
    UNSYNCED = "unsynced"
    SYNCED = "synced"
    SYNC_FAILED = "sync_failed"


class FileChange(str, Enum):
    """Per-file status inside a multi-file snapshot or diff."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    UNCHANGED = "unchanged"


class VersionBump(str, Enum):
    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"


class EditSource(str, Enum):
    MANUAL = "manual"
    GENERATED = "generated"
    ROLLBACK = "rollback"


class ConnectionState(str, Enum):
    """Externally observable VCS sync state of one automation."""

    NOT_CONNECTED = "not_connected"
    CONNECTED_NO_REPOSITORY = "connected_no_repository"
    SYNCING = "syncing"
