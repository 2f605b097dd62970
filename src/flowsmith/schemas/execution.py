"""Execution history schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from src.flowsmith.models import ExecutionStatus, TriggerType
from src.flowsmith.schemas.pagination import PaginatedResponse


class ExecutionRead(BaseModel):
    id: UUID
    automation_id: UUID
    schedule_id: UUID | None
    status: ExecutionStatus
    trigger_type: TriggerType
    started_at: datetime
    ended_at: datetime | None
    duration_ms: int | None
    exit_code: int | None
    error_message: str | None
    automation_title: str
    user_id: str | None
    user_name: str | None
    user_email: str | None
    runtime_environment: str
    version: str | None
    cancel_requested: bool

    model_config = {"from_attributes": True}


class ExecutionLogRead(BaseModel):
    seq: int
    line: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ExecutionDetail(BaseModel):
    """Status plus the log lines after ``after_seq``."""

    execution: ExecutionRead
    logs: list[ExecutionLogRead]
    last_seq: int


class ExecutionPage(PaginatedResponse[ExecutionRead]):
    total_count: int = Field(description="Records matching the filters across all pages.")


class ExecutionCount(BaseModel):
    count: int


class ExecutionStatsRead(BaseModel):
    total: int = Field(description="Terminal records only; running ones are reported apart.")
    success: int
    failed: int
    stopped: int
    unknown: int
    running: int

    model_config = {"from_attributes": True}


class NotificationRead(BaseModel):
    id: UUID
    automation_id: UUID
    execution_id: UUID
    schedule_id: UUID | None
    status: ExecutionStatus
    recipient: str | None
    email_sent: bool
    email_disabled: bool
    created_at: datetime

    model_config = {"from_attributes": True}
