"""Scheduler - cron schedules, due checks and the per-minute tick."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.flowsmith.core.config import get_settings
from src.flowsmith.core.cron import (
    floor_minute,
    matches_minute,
    next_run,
    previous_run,
    validate_cron,
    validate_timezone,
)
from src.flowsmith.core.exceptions import (
    AlreadyRunning,
    ConcurrentModification,
    InvalidStateTransition,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from src.flowsmith.core.logging import get_logger
from src.flowsmith.models import Automation, AutomationStatus, Schedule, TriggerType
from src.flowsmith.models.base import utc_now
from src.flowsmith.repositories import AutomationRepository, HistoryFilters, ScheduleRepository
from src.flowsmith.services.execution_service import Actor, ExecutionStateMachine
from src.flowsmith.services.ledger_service import ExecutionLedger

logger = get_logger(__name__)

SCHEDULER_ACTOR_NAME = "Scheduler"

UPDATABLE_FIELDS = frozenset(
    {
        "cron_expression",
        "timezone",
        "runtime_environment",
        "schedule_description",
        "email_notifications_enabled",
        "email_on_completed",
        "email_on_failed",
        "notification_email",
    }
)

# Columns that cannot be cleared
REQUIRED_SCHEDULE_FIELDS = frozenset(
    {
        "cron_expression",
        "timezone",
        "email_notifications_enabled",
        "email_on_completed",
        "email_on_failed",
    }
)


def schedule_permits(automation: Automation) -> bool:
    """Whether any schedule of the automation may fire at all."""
    return (
        automation.trigger_enabled
        and not automation.is_deleted
        and automation.status != AutomationStatus.NOT_IN_USE.value
    )


def is_due(automation: Automation, schedule: Schedule, now: datetime) -> bool:
    """True when firing is permitted and the cron matches ``now``'s minute."""
    if not schedule_permits(automation):
        return False
    return matches_minute(schedule.cron_expression, schedule.timezone, now)


@dataclass(frozen=True)
class NextRunInfo:
    """Next/previous fire times. Disabled schedules still report the raw times."""

    next_run_at: datetime
    previous_run_at: datetime | None
    timezone: str
    state: str
    applicable: bool


def describe_next_run(automation: Automation, schedule: Schedule, now: datetime) -> NextRunInfo:
    try:
        previous = previous_run(schedule.cron_expression, schedule.timezone, before=now)
    except ValidationError:
        previous = None
    enabled = schedule_permits(automation)
    return NextRunInfo(
        next_run_at=next_run(schedule.cron_expression, schedule.timezone, after=now),
        previous_run_at=previous,
        timezone=schedule.timezone,
        state="scheduled" if enabled else "disabled",
        applicable=enabled,
    )


@dataclass
class TickResult:
    evaluated: int = 0
    fired: list[UUID] = field(default_factory=list)
    skipped: int = 0


class SchedulerService:
    def __init__(
        self,
        session: AsyncSession,
        schedule_repo: ScheduleRepository,
        automation_repo: AutomationRepository,
        state_machine: ExecutionStateMachine,
        ledger: ExecutionLedger,
    ):
        self.session = session
        self.schedule_repo = schedule_repo
        self.automation_repo = automation_repo
        self.state_machine = state_machine
        self.ledger = ledger

    async def _get_automation(self, automation_id: UUID, user_id: str | None) -> Automation:
        automation = await self.automation_repo.get_active(automation_id)
        if automation is None:
            raise NotFound("Automation not found", automation_id=str(automation_id))
        if not automation.can_administer(user_id):
            raise PermissionDenied(
                "Only the owner or an admin can manage schedules",
                automation_id=str(automation_id),
            )
        return automation

    async def get_schedule(self, schedule_id: UUID) -> Schedule:
        schedule = await self.schedule_repo.get_by_id(schedule_id)
        if schedule is None:
            raise NotFound("Schedule not found", schedule_id=str(schedule_id))
        return schedule

    async def get_schedule_for_user(
        self, schedule_id: UUID, user_id: str | None
    ) -> tuple[Schedule, Automation]:
        schedule = await self.get_schedule(schedule_id)
        automation = await self._get_automation(schedule.automation_id, user_id)
        return schedule, automation

    async def create_schedule(
        self,
        automation_id: UUID,
        cron_expression: str,
        timezone: str | None = None,
        runtime_environment: str | None = None,
        schedule_description: str | None = None,
        email_notifications_enabled: bool = True,
        email_on_completed: bool = True,
        email_on_failed: bool = True,
        notification_email: str | None = None,
        user_id: str | None = None,
    ) -> Schedule:
        expression = validate_cron(cron_expression)
        zone = validate_timezone(timezone or get_settings().default_timezone)
        await self._get_automation(automation_id, user_id)

        schedule = Schedule(
            automation_id=automation_id,
            cron_expression=expression,
            timezone=zone,
            runtime_environment=runtime_environment,
            schedule_description=schedule_description,
            email_notifications_enabled=email_notifications_enabled,
            email_on_completed=email_on_completed,
            email_on_failed=email_on_failed,
            notification_email=notification_email,
            created_by=user_id,
        )
        self.schedule_repo.add(schedule)
        await self.session.commit()
        logger.info(
            "Schedule created",
            schedule_id=str(schedule.id),
            automation_id=str(automation_id),
            cron_expression=expression,
            timezone=zone,
        )
        return schedule

    async def update_schedule(
        self, schedule_id: UUID, user_id: str | None, **changes: Any
    ) -> Schedule:
        """Partial update; only the given fields change."""
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        cleared = sorted(n for n in REQUIRED_SCHEDULE_FIELDS & set(changes) if changes[n] is None)
        if cleared:
            raise ValidationError(f"Fields cannot be null: {', '.join(cleared)}")
        if "cron_expression" in changes:
            changes["cron_expression"] = validate_cron(changes["cron_expression"])
        if "timezone" in changes:
            changes["timezone"] = validate_timezone(changes["timezone"])
        schedule, _ = await self.get_schedule_for_user(schedule_id, user_id)

        for name, value in changes.items():
            setattr(schedule, name, value)
        schedule.updated_at = utc_now()
        await self.session.commit()
        return schedule

    async def delete_schedule(self, schedule_id: UUID, user_id: str | None) -> None:
        schedule, _ = await self.get_schedule_for_user(schedule_id, user_id)
        await self.schedule_repo.delete(schedule)
        await self.session.commit()
        logger.info("Schedule deleted", schedule_id=str(schedule_id))

    async def list_schedules(
        self,
        owner_user_id: str | None = None,
        search: str | None = None,
        cursor: str | None = None,
        limit: int = 50,
    ) -> tuple[list[Schedule], str | None, bool]:
        return await self.schedule_repo.list_paginated(owner_user_id, search, cursor, limit)

    async def list_for_automation(self, automation_id: UUID) -> list[Schedule]:
        return await self.schedule_repo.list_for_automation(automation_id)

    async def next_run(self, schedule_id: UUID, now: datetime | None = None) -> NextRunInfo:
        schedule = await self.get_schedule(schedule_id)
        automation = await self.automation_repo.get_by_id(schedule.automation_id)
        if automation is None:
            raise NotFound("Automation not found", automation_id=str(schedule.automation_id))
        return describe_next_run(automation, schedule, now or datetime.now(UTC))

    async def _already_fired(self, schedule: Schedule, minute: datetime) -> bool:
        return (
            await self.ledger.count(HistoryFilters(schedule_id=schedule.id, started_from=minute))
            > 0
        )

    async def tick(self, now: datetime | None = None) -> TickResult:
        """Fire every due schedule for ``now``'s minute.

        A schedule fires at most once per minute. Busy automations are skipped,
        never queued.
        """
        now = now or datetime.now(UTC)
        minute = floor_minute(now if now.tzinfo else now.replace(tzinfo=UTC))
        batch_size = get_settings().scheduler_batch_size
        result = TickResult()

        offset = 0
        while True:
            batch = await self.schedule_repo.batch_with_automations(offset, batch_size)
            # Detached rows stay readable if a failed fire rolls the session back
            self.session.expunge_all()
            for schedule, automation in batch:
                result.evaluated += 1
                if not is_due(automation, schedule, minute):
                    continue
                if await self._already_fired(schedule, minute):
                    result.skipped += 1
                    continue
                await self._fire(schedule, automation, result)
            offset += len(batch)
            if len(batch) < batch_size:
                break

        logger.info(
            "Scheduler tick finished",
            minute=minute.isoformat(),
            evaluated=result.evaluated,
            fired=len(result.fired),
            skipped=result.skipped,
        )
        return result

    async def _fire(self, schedule: Schedule, automation: Automation, result: TickResult) -> None:
        try:
            handle = await self.state_machine.run(
                automation.id,
                resume=False,
                trigger_type=TriggerType.SCHEDULED,
                actor=Actor(
                    user_id=schedule.created_by,
                    name=SCHEDULER_ACTOR_NAME,
                    email=schedule.notification_email,
                ),
                schedule_id=schedule.id,
                runtime_environment=schedule.runtime_environment,
            )
        except (
            AlreadyRunning,
            InvalidStateTransition,
            ConcurrentModification,
            ValidationError,
        ) as e:
            result.skipped += 1
            logger.info(
                "Scheduled run skipped",
                schedule_id=str(schedule.id),
                automation_id=str(automation.id),
                reason=e.message,
                code=e.code,
            )
            return
        result.fired.append(handle.execution_id)
        logger.info(
            "Scheduled run started",
            schedule_id=str(schedule.id),
            automation_id=str(automation.id),
            execution_id=str(handle.execution_id),
        )
