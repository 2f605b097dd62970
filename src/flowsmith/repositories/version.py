"""Repositories for code versions, pending rollbacks and deferred edits."""

from datetime import datetime
from typing import Any, cast
from uuid import UUID

from sqlalchemy import delete, func, update
from sqlalchemy.engine import CursorResult
from sqlmodel import select

from src.flowsmith.models import CodeVersion, DeferredEdit, PendingRollback
from src.flowsmith.repositories.base import BaseRepository


class VersionRepository(BaseRepository[CodeVersion]):
    model = CodeVersion

    async def get_latest(self, automation_id: UUID) -> CodeVersion | None:
        result = await self.session.execute(
            select(CodeVersion)
            .where(CodeVersion.automation_id == automation_id)
            .order_by(CodeVersion.sequence.desc())  # type: ignore[attr-defined]
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_for_automation(self, automation_id: UUID, limit: int = 50) -> list[CodeVersion]:
        """Versions newest first."""
        result = await self.session.execute(
            select(CodeVersion)
            .where(CodeVersion.automation_id == automation_id)
            .order_by(CodeVersion.sequence.desc())  # type: ignore[attr-defined]
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def get_for_automation(self, automation_id: UUID, version_id: UUID) -> CodeVersion | None:
        result = await self.session.execute(
            select(CodeVersion).where(
                CodeVersion.id == version_id,
                CodeVersion.automation_id == automation_id,
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def stats(self, automation_id: UUID) -> tuple[int, datetime | None, datetime | None]:
        """Return (count, first created_at, last created_at)."""
        result = await self.session.execute(
            select(
                func.count(CodeVersion.id),  # type: ignore[arg-type]
                func.min(CodeVersion.created_at),
                func.max(CodeVersion.created_at),
            ).where(CodeVersion.automation_id == automation_id)
        )
        count, first, last = result.one()
        return int(count or 0), first, last

    async def set_sync_result(self, version_id: UUID, **values: Any) -> None:
        await self.session.execute(
            update(CodeVersion)
            .where(CodeVersion.id == version_id)  # type: ignore[arg-type]
            .values(**values)
            .execution_options(synchronize_session=False)
        )


class PendingRollbackRepository(BaseRepository[PendingRollback]):
    model = PendingRollback

    async def get(self, automation_id: UUID) -> PendingRollback | None:
        return await self.session.get(PendingRollback, automation_id)

    async def upsert(
        self, automation_id: UUID, target_version_id: UUID, message: str, created_by: str | None
    ) -> PendingRollback:
        """Replace any pending rollback of this automation."""
        pending = await self.get(automation_id)
        if pending is None:
            pending = PendingRollback(
                automation_id=automation_id,
                target_version_id=target_version_id,
                message=message,
                created_by=created_by,
            )
            self.add(pending)
        else:
            pending.target_version_id = target_version_id
            pending.message = message
            pending.created_by = created_by
        await self.session.flush()
        return pending

    async def remove(self, automation_id: UUID) -> bool:
        result = await self.session.execute(
            delete(PendingRollback).where(
                PendingRollback.automation_id == automation_id  # type: ignore[arg-type]
            )
        )
        return cast(CursorResult[Any], result).rowcount > 0


class DeferredEditRepository(BaseRepository[DeferredEdit]):
    model = DeferredEdit

    async def list_for_automation(self, automation_id: UUID) -> list[DeferredEdit]:
        """Buffered edits in arrival order."""
        result = await self.session.execute(
            select(DeferredEdit)
            .where(DeferredEdit.automation_id == automation_id)
            .order_by(DeferredEdit.sequence)  # type: ignore[arg-type]
        )
        return list(result.scalars().all())

    async def next_sequence(self, automation_id: UUID) -> int:
        result = await self.session.execute(
            select(func.max(DeferredEdit.sequence)).where(
                DeferredEdit.automation_id == automation_id
            )
        )
        return int(result.scalar_one_or_none() or 0) + 1

    async def count(self, automation_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count(DeferredEdit.id)).where(  # type: ignore[arg-type]
                DeferredEdit.automation_id == automation_id
            )
        )
        return int(result.scalar_one())

    async def clear(self, automation_id: UUID, up_to_sequence: int) -> int:
        result = await self.session.execute(
            delete(DeferredEdit).where(
                DeferredEdit.automation_id == automation_id,  # type: ignore[arg-type]
                DeferredEdit.sequence <= up_to_sequence,  # type: ignore[arg-type]
            )
        )
        return cast(CursorResult[Any], result).rowcount
