"""Automation aggregate - the single mutable document of the lifecycle engine."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Column, Index
from sqlmodel import Field, SQLModel

from src.flowsmith.models.base import JSONType, utc_now
from src.flowsmith.models.enums import AutomationStatus, RunState, TriggerMode


class Automation(SQLModel, table=True):
    """Automation document guarded by the ``doc_version`` fence.

    The code payload is either ``code`` (single blob) or ``files`` (ordered list of
    ``{id, name, code, order}``), never both. Only environment variable *names*
    are kept here; values live in the secret store.
    """

    __tablename__ = "automations"
    __table_args__ = (Index("ix_automations_owner_created", "owner_user_id", "created_at"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    title: str = Field(max_length=200, index=True)
    description: str | None = Field(default=None, max_length=2000)
    status: str = Field(default=AutomationStatus.DRAFT.value, max_length=20)
    trigger_mode: str = Field(default=TriggerMode.MANUAL.value, max_length=20)
    trigger_enabled: bool = Field(default=False)

    code: str | None = Field(default=None)
    files: list[dict[str, Any]] | None = Field(default=None, sa_column=Column(JSONType))
    dependencies: list[dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSONType, nullable=False)
    )
    env_var_names: list[str] = Field(
        default_factory=list, sa_column=Column(JSONType, nullable=False)
    )
    runtime_environment: str | None = Field(default=None, max_length=50)
    cost: float | None = Field(default=None)

    api_key_hash: str | None = Field(default=None, max_length=64, index=True)
    owner_user_id: str = Field(max_length=100, index=True)
    admin_user_ids: list[str] = Field(
        default_factory=list, sa_column=Column(JSONType, nullable=False)
    )

    doc_version: int = Field(default=1)
    run_state: str = Field(default=RunState.IDLE.value, max_length=20)
    current_execution_id: UUID | None = Field(default=None)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    deleted_at: datetime | None = Field(default=None)

    @property
    def run_state_enum(self) -> RunState:
        return RunState(self.run_state)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def has_api_key(self) -> bool:
        return self.api_key_hash is not None

    @property
    def is_multi_file(self) -> bool:
        return self.files is not None

    def can_administer(self, user_id: str | None) -> bool:
        """Owner and listed admins may manage keys and repositories."""
        return user_id is not None and (
            user_id == self.owner_user_id or user_id in self.admin_user_ids
        )
