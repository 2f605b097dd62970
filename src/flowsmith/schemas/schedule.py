"""Schedule schemas for API request/response."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class ScheduleCreate(BaseModel):
    automation_id: UUID
    cron_expression: str = Field(min_length=1, max_length=120)
    timezone: str | None = Field(default=None, max_length=64)
    runtime_environment: str | None = Field(default=None, max_length=50)
    schedule_description: str | None = Field(default=None, max_length=500)
    email_notifications_enabled: bool = True
    email_on_completed: bool = True
    email_on_failed: bool = True
    notification_email: str | None = Field(default=None, max_length=320)

    @field_validator("cron_expression")
    @classmethod
    def strip_cron(cls, v: str) -> str:
        return " ".join(v.split())


class ScheduleUpdate(BaseModel):
    """Partial update; omitted fields keep their value."""

    cron_expression: str | None = Field(default=None, min_length=1, max_length=120)
    timezone: str | None = Field(default=None, max_length=64)
    runtime_environment: str | None = Field(default=None, max_length=50)
    schedule_description: str | None = Field(default=None, max_length=500)
    email_notifications_enabled: bool | None = None
    email_on_completed: bool | None = None
    email_on_failed: bool | None = None
    notification_email: str | None = Field(default=None, max_length=320)


class ScheduleRead(BaseModel):
    id: UUID
    automation_id: UUID
    cron_expression: str
    timezone: str
    runtime_environment: str | None
    schedule_description: str | None
    email_notifications_enabled: bool
    email_on_completed: bool
    email_on_failed: bool
    notification_email: str | None
    created_by: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class NextRunRead(BaseModel):
    next_run_at: datetime
    previous_run_at: datetime | None
    timezone: str
    state: str
    applicable: bool

    model_config = {"from_attributes": True}
