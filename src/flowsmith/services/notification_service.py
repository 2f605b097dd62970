"""Scheduled-run notifications."""

import asyncio
from collections.abc import Callable
from typing import Protocol
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.flowsmith.core.config import get_settings
from src.flowsmith.core.logging import get_logger
from src.flowsmith.core.notifications import RunNotification, send_run_notification_email
from src.flowsmith.models import (
    ExecutionRecord,
    ExecutionStatus,
    Schedule,
    SchedulerNotification,
    TriggerType,
)
from src.flowsmith.repositories import (
    ExecutionLogRepository,
    NotificationRepository,
    ScheduleRepository,
)

logger = get_logger(__name__)

EmailSender = Callable[[RunNotification], bool]


class RunNotifier(Protocol):
    async def notify(self, record: ExecutionRecord) -> SchedulerNotification | None: ...


def should_notify(schedule: Schedule, status: ExecutionStatus) -> bool:
    """Success needs email_on_completed, failure email_on_failed; nothing else notifies."""
    if not schedule.email_notifications_enabled:
        return False
    if status is ExecutionStatus.SUCCESS:
        return schedule.email_on_completed
    if status is ExecutionStatus.FAILED:
        return schedule.email_on_failed
    return False


class NotificationService:
    """Emit at most one notification per closed scheduled execution."""

    def __init__(
        self,
        session: AsyncSession,
        schedule_repo: ScheduleRepository,
        notification_repo: NotificationRepository,
        log_repo: ExecutionLogRepository,
        sender: EmailSender = send_run_notification_email,
    ):
        self.session = session
        self.schedule_repo = schedule_repo
        self.notification_repo = notification_repo
        self.log_repo = log_repo
        self.sender = sender

    async def notify(self, record: ExecutionRecord) -> SchedulerNotification | None:
        if record.trigger_type != TriggerType.SCHEDULED.value or record.schedule_id is None:
            return None
        if not record.is_terminal:
            return None
        schedule = await self.schedule_repo.get_by_id(record.schedule_id)
        if schedule is None or not should_notify(schedule, record.status_enum):
            return None

        existing = await self.notification_repo.get_for_execution(record.id)
        if existing is not None:
            return existing

        recipient = schedule.notification_email
        notification = SchedulerNotification(
            automation_id=record.automation_id,
            execution_id=record.id,
            schedule_id=schedule.id,
            status=record.status,
            recipient=recipient,
            email_disabled=recipient is None,
        )
        self.notification_repo.add(notification)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            return await self.notification_repo.get_for_execution(record.id)

        if recipient:
            tail = await self.log_repo.tail(record.id, get_settings().log_tail_on_notification)
            sent = await asyncio.to_thread(
                self.sender,
                RunNotification(
                    to=recipient,
                    automation_id=str(record.automation_id),
                    automation_title=record.automation_title,
                    execution_id=str(record.id),
                    status=record.status,
                    duration_ms=record.duration_ms,
                    error_message=record.error_message,
                    schedule_description=schedule.schedule_description,
                    log_tail=tail,
                ),
            )
            if sent:
                notification.email_sent = True
                await self.session.commit()

        logger.info(
            "Scheduled run notification emitted",
            execution_id=str(record.id),
            status=record.status,
            email_sent=notification.email_sent,
        )
        return notification

    async def list_for_automation(
        self, automation_id: UUID, limit: int = 50
    ) -> list[SchedulerNotification]:
        return await self.notification_repo.list_for_automation(automation_id, limit)
