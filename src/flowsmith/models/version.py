"""Immutable code snapshots and the per-automation pending rollback slot."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Column, Index, UniqueConstraint
from sqlmodel import Field, SQLModel

from src.flowsmith.models.base import JSONType, utc_now
from src.flowsmith.models.enums import SyncStatus


class CodeVersion(SQLModel, table=True):
    """One immutable version of an automation.

    Only the sync_* columns and remote_sha change after insert.
    """

    __tablename__ = "code_versions"
    __table_args__ = (
        UniqueConstraint("automation_id", "sequence", name="uq_code_versions_automation_sequence"),
        Index("ix_code_versions_automation_created", "automation_id", "created_at"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    automation_id: UUID = Field(foreign_key="automations.id", index=True)
    sequence: int
    major: int
    minor: int
    patch: int
    version: str = Field(max_length=50)

    code: str | None = Field(default=None)
    files: list[dict[str, Any]] | None = Field(default=None, sa_column=Column(JSONType))
    dependencies: list[dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSONType, nullable=False)
    )
    env_var_names: list[str] = Field(
        default_factory=list, sa_column=Column(JSONType, nullable=False)
    )
    message: str = Field(max_length=1000)
    code_hash: str = Field(max_length=64)
    total_files: int = Field(default=1)
    changed_files: int = Field(default=0)
    created_by: str | None = Field(default=None, max_length=100)
    created_at: datetime = Field(default_factory=utc_now)

    sync_status: str = Field(default=SyncStatus.UNSYNCED.value, max_length=20)
    sync_error: str | None = Field(default=None, max_length=1000)
    synced_at: datetime | None = Field(default=None)
    remote_sha: str | None = Field(default=None, max_length=64)


class PendingRollback(SQLModel, table=True):
    """At most one unaccepted rollback per automation (primary key = automation_id)."""

    __tablename__ = "pending_rollbacks"

    automation_id: UUID = Field(foreign_key="automations.id", primary_key=True)
    target_version_id: UUID = Field(foreign_key="code_versions.id")
    message: str = Field(max_length=1000)
    created_by: str | None = Field(default=None, max_length=100)
    created_at: datetime = Field(default_factory=utc_now)


class DeferredEdit(SQLModel, table=True):
    """An edit received while a run was active, applied once the run settles."""

    __tablename__ = "deferred_edits"
    __table_args__ = (Index("ix_deferred_edits_automation_sequence", "automation_id", "sequence"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    automation_id: UUID = Field(foreign_key="automations.id")
    sequence: int
    code: str | None = Field(default=None)
    files: list[dict[str, Any]] | None = Field(default=None, sa_column=Column(JSONType))
    dependencies: list[dict[str, Any]] | None = Field(default=None, sa_column=Column(JSONType))
    env_var_names: list[str] | None = Field(default=None, sa_column=Column(JSONType))
    message: str | None = Field(default=None, max_length=1000)
    source: str = Field(max_length=20)
    created_by: str | None = Field(default=None, max_length=100)
    created_at: datetime = Field(default_factory=utc_now)
