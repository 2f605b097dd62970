"""Version-control sync schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from src.flowsmith.models import ConnectionState


class ConnectionCreate(BaseModel):
    access_token: str = Field(min_length=1, max_length=500)


class ConnectionRead(BaseModel):
    id: UUID
    provider: str
    account_login: str
    connected_at: datetime

    model_config = {"from_attributes": True}


class RepositoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100, pattern=r"^[A-Za-z0-9._-]+$")
    description: str | None = Field(default=None, max_length=350)
    private: bool = True


class RepositoryLinkRequest(BaseModel):
    owner: str = Field(min_length=1, max_length=200)
    name: str = Field(min_length=1, max_length=200)
    branch: str | None = Field(default=None, max_length=200)


class RepositoryLinkRead(BaseModel):
    automation_id: UUID
    owner: str
    name: str
    full_name: str
    branch: str
    is_private: bool
    html_url: str | None
    linked_at: datetime

    model_config = {"from_attributes": True}


class SyncStateRead(BaseModel):
    state: ConnectionState
    account_login: str | None
    repository: str | None
    branch: str | None
    html_url: str | None

    model_config = {"from_attributes": True}
