"""Version, diff and rollback schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from src.flowsmith.models import FileChange, SyncStatus


class VersionSummary(BaseModel):
    """Version without its content, for listings."""

    id: UUID
    automation_id: UUID
    version: str
    message: str
    code_hash: str
    total_files: int
    changed_files: int
    created_by: str | None
    created_at: datetime
    sync_status: SyncStatus
    sync_error: str | None
    synced_at: datetime | None
    remote_sha: str | None

    model_config = {"from_attributes": True}


class VersionRead(VersionSummary):
    code: str | None
    files: list[dict[str, Any]] | None
    dependencies: list[dict[str, Any]]
    env_var_names: list[str]


class VersionStatsRead(BaseModel):
    total_versions: int
    first_version_at: datetime | None
    last_version_at: datetime | None
    change_frequency: str

    model_config = {"from_attributes": True}


class DiffLineRead(BaseModel):
    op: str
    text: str
    old_lineno: int | None
    new_lineno: int | None

    model_config = {"from_attributes": True}


class FileDiffRead(BaseModel):
    file_id: str
    name: str
    change: FileChange
    additions: int
    deletions: int
    lines: list[DiffLineRead]

    model_config = {"from_attributes": True}


class RollbackRequest(BaseModel):
    target_version_id: UUID
    auto_accept: bool = False
    doc_version: int | None = Field(default=None, ge=1)


class EnvRestorationRead(BaseModel):
    name: str
    source: str

    model_config = {"from_attributes": True}


class RollbackPlanRead(BaseModel):
    automation_id: UUID
    target_version_id: UUID
    target_version: str
    message: str
    code: str | None
    files: list[dict[str, Any]] | None
    dependencies: list[dict[str, Any]]
    env_var_names: list[str]
    env_restoration: list[EnvRestorationRead]
    pending: bool
    version: VersionSummary | None = None

    model_config = {"from_attributes": True}


class PendingRollbackRead(BaseModel):
    automation_id: UUID
    target_version_id: UUID
    message: str
    created_by: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class SyncResultRead(BaseModel):
    version_id: UUID
    sync_status: SyncStatus
