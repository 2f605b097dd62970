"""External version-control connection models."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from src.flowsmith.models.base import utc_now


class VcsConnection(SQLModel, table=True):
    """Account-level connection to a VCS provider (one per user and provider)."""

    __tablename__ = "vcs_connections"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: str = Field(max_length=100, index=True, unique=True)
    provider: str = Field(default="github", max_length=20)
    account_login: str = Field(max_length=200)
    access_token: str = Field(max_length=500)
    connected_at: datetime = Field(default_factory=utc_now)


class RepositoryLink(SQLModel, table=True):
    """Repository that mirrors one automation's versions."""

    __tablename__ = "repository_links"

    automation_id: UUID = Field(foreign_key="automations.id", primary_key=True)
    connection_id: UUID = Field(foreign_key="vcs_connections.id", index=True)
    owner: str = Field(max_length=200)
    name: str = Field(max_length=200)
    branch: str = Field(default="main", max_length=200)
    is_private: bool = Field(default=True)
    html_url: str | None = Field(default=None, max_length=500)
    linked_at: datetime = Field(default_factory=utc_now)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"
