"""Base repository with common CRUD operations."""

from datetime import datetime
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from src.flowsmith.schemas.pagination import decode_cursor, encode_cursor


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so search text matches literally (escape char is a backslash)."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseRepository(Generic[ModelType]):
    """Base repository providing common database operations.

    Repositories handle data access only. Transaction control (commit)
    should be done in the service layer.
    """

    model: type[ModelType]

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, id: UUID) -> ModelType | None:
        """Get a record by its primary key."""
        result = await self.session.execute(
            select(self.model)
            .where(self.model.id == id)  # type: ignore[attr-defined]
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    def add(self, entity: ModelType) -> None:
        """Add entity to session (no flush/commit)."""
        self.session.add(entity)

    async def delete(self, entity: ModelType) -> None:
        await self.session.delete(entity)

    async def paginate(
        self,
        query: Any,  # SelectOfScalar or Select - SQLModel/SQLAlchemy query
        cursor: str | None,
        limit: int,
        cursor_field: Any,
    ) -> tuple[list[ModelType], str | None, bool]:
        """Execute cursor-based pagination on a query.

        Args:
            query: The base SQLAlchemy query to paginate
            cursor: Optional cursor from previous page (base64-encoded)
            limit: Maximum number of items to return
            cursor_field: The field to use for cursor (e.g., created_at)

        Returns:
            Tuple of (items, next_cursor, has_more)
        """
        if cursor:
            try:
                cursor_str = decode_cursor(cursor)
                cursor_value: datetime | UUID | str
                try:
                    cursor_value = datetime.fromisoformat(cursor_str)
                except ValueError:
                    try:
                        cursor_value = UUID(cursor_str)
                    except ValueError:
                        cursor_value = cursor_str
                query = query.where(cursor_field < cursor_value)
            except (ValueError, TypeError):
                # Invalid cursor - ignore and start from beginning
                pass

        query = query.order_by(cursor_field.desc()).limit(limit + 1)

        result = await self.session.execute(query)
        items = list(result.scalars().all())

        has_more = len(items) > limit
        if has_more:
            items = items[:limit]

        next_cursor = None
        if has_more and items:
            value = getattr(items[-1], cursor_field.key)
            if isinstance(value, datetime):
                next_cursor = encode_cursor(value.isoformat())
            elif value is not None:
                next_cursor = encode_cursor(str(value))

        return items, next_cursor, has_more
