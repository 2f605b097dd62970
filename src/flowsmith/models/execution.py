"""Execution history ledger models."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Index, UniqueConstraint, text
from sqlmodel import Field, SQLModel

from src.flowsmith.models.base import utc_now
from src.flowsmith.models.enums import ExecutionStatus, TriggerType

_RUNNING_ONLY = text("status = 'running'")


class ExecutionRecord(SQLModel, table=True):
    """One run of an automation.

    Created ``running``; moves exactly once to a terminal status. The partial
    unique index keeps at most one running record per automation.
    """

    __tablename__ = "execution_records"
    __table_args__ = (
        Index("ix_execution_records_automation_started", "automation_id", "started_at"),
        Index("ix_execution_records_status_started", "status", "started_at"),
        Index(
            "uq_execution_records_one_running",
            "automation_id",
            unique=True,
            sqlite_where=_RUNNING_ONLY,
            postgresql_where=_RUNNING_ONLY,
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    automation_id: UUID = Field(foreign_key="automations.id", index=True)
    schedule_id: UUID | None = Field(
        default=None, foreign_key="schedules.id", ondelete="SET NULL"
    )
    status: str = Field(default=ExecutionStatus.RUNNING.value, max_length=20)
    trigger_type: str = Field(default=TriggerType.MANUAL.value, max_length=20)

    started_at: datetime = Field(default_factory=utc_now)
    ended_at: datetime | None = Field(default=None)
    duration_ms: int | None = Field(default=None)
    exit_code: int | None = Field(default=None)
    error_message: str | None = Field(default=None, max_length=2000)

    # Denormalised for free-text search
    automation_title: str = Field(max_length=200)
    user_id: str | None = Field(default=None, max_length=100)
    user_name: str | None = Field(default=None, max_length=200)
    user_email: str | None = Field(default=None, max_length=320)

    runtime_environment: str = Field(default="dev", max_length=50)
    version: str | None = Field(default=None, max_length=50)

    cancel_requested: bool = Field(default=False)
    cancel_requested_at: datetime | None = Field(default=None)
    cancel_requested_by: str | None = Field(default=None, max_length=100)

    @property
    def status_enum(self) -> ExecutionStatus:
        return ExecutionStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.status_enum.is_terminal


class ExecutionLog(SQLModel, table=True):
    """A line of output from a run; ``seq`` is monotonic per execution."""

    __tablename__ = "execution_logs"
    __table_args__ = (
        UniqueConstraint("execution_id", "seq", name="uq_execution_logs_execution_seq"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    execution_id: UUID = Field(foreign_key="execution_records.id", index=True)
    seq: int
    line: str
    created_at: datetime = Field(default_factory=utc_now)


class SchedulerNotification(SQLModel, table=True):
    """Notification event emitted when a scheduled run reaches a terminal state."""

    __tablename__ = "scheduler_notifications"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    automation_id: UUID = Field(foreign_key="automations.id", index=True)
    execution_id: UUID = Field(foreign_key="execution_records.id", unique=True)
    schedule_id: UUID | None = Field(
        default=None, foreign_key="schedules.id", ondelete="SET NULL"
    )
    status: str = Field(max_length=20)
    recipient: str | None = Field(default=None, max_length=320)
    email_sent: bool = Field(default=False)
    email_disabled: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now)
