"""Cron schedule bound to one automation."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from src.flowsmith.models.base import utc_now


class Schedule(SQLModel, table=True):
    """Cron trigger. Next/previous run times are always recomputed, never stored."""

    __tablename__ = "schedules"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    automation_id: UUID = Field(foreign_key="automations.id", index=True)
    cron_expression: str = Field(max_length=120)
    timezone: str = Field(default="UTC", max_length=64)
    runtime_environment: str | None = Field(default=None, max_length=50)
    schedule_description: str | None = Field(default=None, max_length=500)
    email_notifications_enabled: bool = Field(default=True)
    email_on_completed: bool = Field(default=True)
    email_on_failed: bool = Field(default=True)
    notification_email: str | None = Field(default=None, max_length=320)
    created_by: str | None = Field(default=None, max_length=100)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
