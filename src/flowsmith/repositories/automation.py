"""Repository for the Automation aggregate."""

from typing import Any, cast
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.engine import CursorResult
from sqlmodel import select

from src.flowsmith.models import Automation
from src.flowsmith.models.base import utc_now
from src.flowsmith.repositories.base import BaseRepository


class AutomationRepository(BaseRepository[Automation]):
    model = Automation

    async def get_active(self, automation_id: UUID) -> Automation | None:
        """Get a non-deleted automation."""
        result = await self.session.execute(
            select(Automation).where(
                Automation.id == automation_id,
                Automation.deleted_at.is_(None),  # type: ignore[union-attr]
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_api_key_hash(self, key_hash: str) -> Automation | None:
        result = await self.session.execute(
            select(Automation).where(
                Automation.api_key_hash == key_hash,
                Automation.deleted_at.is_(None),  # type: ignore[union-attr]
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_owner(
        self, owner_user_id: str, cursor: str | None = None, limit: int = 50
    ) -> tuple[list[Automation], str | None, bool]:
        """Automations owned by the user, newest first."""
        query = select(Automation).where(
            Automation.owner_user_id == owner_user_id,
            Automation.deleted_at.is_(None),  # type: ignore[union-attr]
        )
        return await self.paginate(query, cursor, limit, Automation.created_at)

    async def fenced_update(
        self, automation_id: UUID, expected_doc_version: int, **values: Any
    ) -> bool:
        """Apply ``values`` only if ``doc_version`` still equals the expected one.

        Increments doc_version. Returns False when the fence rejected the write.
        In-session instances are not synchronised; callers refresh them.
        """
        statement = (
            update(Automation)
            .where(
                Automation.id == automation_id,  # type: ignore[arg-type]
                Automation.doc_version == expected_doc_version,  # type: ignore[arg-type]
            )
            .values(doc_version=Automation.doc_version + 1, updated_at=utc_now(), **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(statement)
        return cast(CursorResult[Any], result).rowcount == 1

    async def refresh(self, automation: Automation) -> Automation:
        await self.session.refresh(automation)
        return automation
