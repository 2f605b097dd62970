"""Repositories for VCS connections and repository links."""

from uuid import UUID

from sqlmodel import select

from src.flowsmith.models import RepositoryLink, VcsConnection
from src.flowsmith.repositories.base import BaseRepository


class VcsConnectionRepository(BaseRepository[VcsConnection]):
    model = VcsConnection

    async def get_for_user(self, user_id: str) -> VcsConnection | None:
        result = await self.session.execute(
            select(VcsConnection).where(VcsConnection.user_id == user_id)
        )
        return result.scalar_one_or_none()


class RepositoryLinkRepository(BaseRepository[RepositoryLink]):
    model = RepositoryLink

    async def get(self, automation_id: UUID) -> RepositoryLink | None:
        return await self.session.get(RepositoryLink, automation_id)

    async def list_for_connection(self, connection_id: UUID) -> list[RepositoryLink]:
        result = await self.session.execute(
            select(RepositoryLink).where(RepositoryLink.connection_id == connection_id)
        )
        return list(result.scalars().all())
