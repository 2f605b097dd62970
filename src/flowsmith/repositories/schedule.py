"""Repository for cron schedules."""

from uuid import UUID

from sqlmodel import col, or_, select

from src.flowsmith.models import Automation, Schedule
from src.flowsmith.repositories.base import BaseRepository, escape_like


class ScheduleRepository(BaseRepository[Schedule]):
    model = Schedule

    async def list_for_automation(self, automation_id: UUID) -> list[Schedule]:
        result = await self.session.execute(
            select(Schedule)
            .where(Schedule.automation_id == automation_id)
            .order_by(col(Schedule.created_at))
        )
        return list(result.scalars().all())

    async def batch_with_automations(
        self, offset: int, limit: int
    ) -> list[tuple[Schedule, Automation]]:
        """Stable page of schedules joined to their automation, for the tick loop."""
        result = await self.session.execute(
            select(Schedule, Automation)
            .join(Automation, col(Automation.id) == col(Schedule.automation_id))
            .order_by(col(Schedule.created_at), col(Schedule.id))
            .offset(offset)
            .limit(limit)
        )
        return [(schedule, automation) for schedule, automation in result.all()]

    async def list_paginated(
        self,
        owner_user_id: str | None = None,
        search: str | None = None,
        cursor: str | None = None,
        limit: int = 50,
    ) -> tuple[list[Schedule], str | None, bool]:
        """Schedules newest first, optionally filtered by owner and search text.

        Search matches the automation title or the cron expression.
        """
        query = select(Schedule).join(
            Automation, col(Automation.id) == col(Schedule.automation_id)
        )
        query = query.where(col(Automation.deleted_at).is_(None))
        if owner_user_id is not None:
            query = query.where(Automation.owner_user_id == owner_user_id)
        if search and search.strip():
            pattern = f"%{escape_like(search.strip())}%"
            query = query.where(
                or_(
                    col(Automation.title).ilike(pattern, escape="\\"),
                    col(Schedule.cron_expression).ilike(pattern, escape="\\"),
                )
            )
        return await self.paginate(query, cursor, limit, Schedule.created_at)
