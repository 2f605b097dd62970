"""Contract between the sync coordinator and an external version-control provider."""

from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID


@dataclass(frozen=True)
class AccountInfo:
    login: str


@dataclass(frozen=True)
class RepoRef:
    owner: str
    name: str
    branch: str = "main"
    private: bool = True
    html_url: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class PushRequest:
    """Content of one version, laid out under ``<prefix>/<automation_id>/``."""

    automation_id: UUID
    automation_name: str
    version: str
    message: str
    code: str | None = None
    files: list[dict[str, Any]] | None = None
    dependencies: list[dict[str, Any]] = field(default_factory=list)
    env_var_names: list[str] = field(default_factory=list)

    @property
    def tag(self) -> str:
        return f"{self.automation_id}-v{self.version}"


@dataclass(frozen=True)
class PushResult:
    sha: str
    already_synced: bool = False


class VcsClient(Protocol):
    """Provider operations. Every call is safe to retry."""

    async def get_account(self, access_token: str) -> AccountInfo: ...

    async def create_repository(
        self, access_token: str, name: str, description: str | None, private: bool
    ) -> RepoRef: ...

    async def get_repository(
        self, access_token: str, owner: str, name: str, branch: str | None = None
    ) -> RepoRef: ...

    async def push(self, access_token: str, repo: RepoRef, request: PushRequest) -> PushResult: ...
