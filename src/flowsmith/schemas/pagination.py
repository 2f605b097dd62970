"""Pagination schemas for cursor-based pagination."""

import base64
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """Page of items with an opaque cursor for the next page.

    Clients treat the cursor as a token and pass it back unchanged.
    """

    items: list[T]
    next_cursor: str | None = Field(
        default=None,
        description="Opaque cursor for fetching the next page. None if no more pages.",
    )
    has_more: bool = Field(
        default=False,
        description="Whether another page may follow this one.",
    )


def encode_cursor(value: str) -> str:
    """Encode a cursor value (a timestamp, an id or an offset) to base64."""
    return base64.urlsafe_b64encode(value.encode()).decode()


def decode_cursor(cursor: str) -> str:
    """Decode a base64 cursor value.

    Raises:
        ValueError: If cursor is invalid
    """
    try:
        return base64.urlsafe_b64decode(cursor.encode()).decode()
    except Exception as e:
        raise ValueError("Invalid cursor") from e


def decode_offset_cursor(cursor: str | None) -> int:
    """Offset encoded in a history cursor; 0 for no cursor."""
    if not cursor:
        return 0
    value = decode_cursor(cursor)
    if not value.isdigit():
        raise ValueError("Invalid cursor")
    return int(value)
