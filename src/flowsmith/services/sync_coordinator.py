"""Sync Coordinator - one-way mirror of versions to an external repository.

Local versioning is authoritative: a failed push is recorded on the version as
``sync_failed`` and retried only when a user asks.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.flowsmith.core.exceptions import NotFound, PermissionDenied, SyncFailure, ValidationError
from src.flowsmith.core.logging import get_logger
from src.flowsmith.core.vcs import PushRequest, RepoRef, VcsClient
from src.flowsmith.models import (
    Automation,
    CodeVersion,
    ConnectionState,
    RepositoryLink,
    SyncStatus,
    VcsConnection,
)
from src.flowsmith.models.base import utc_now
from src.flowsmith.repositories import (
    AutomationRepository,
    RepositoryLinkRepository,
    VcsConnectionRepository,
    VersionRepository,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class SyncState:
    state: ConnectionState
    account_login: str | None = None
    repository: str | None = None
    branch: str | None = None
    html_url: str | None = None


class SyncCoordinator:
    def __init__(
        self,
        session: AsyncSession,
        automation_repo: AutomationRepository,
        version_repo: VersionRepository,
        connection_repo: VcsConnectionRepository,
        link_repo: RepositoryLinkRepository,
        client: VcsClient,
    ):
        self.session = session
        self.automation_repo = automation_repo
        self.version_repo = version_repo
        self.connection_repo = connection_repo
        self.link_repo = link_repo
        self.client = client

    async def _get_automation(self, automation_id: UUID, user_id: str | None) -> Automation:
        automation = await self.automation_repo.get_active(automation_id)
        if automation is None:
            raise NotFound("Automation not found", automation_id=str(automation_id))
        if not automation.can_administer(user_id):
            raise PermissionDenied(
                "Only the owner or an admin can manage repositories",
                automation_id=str(automation_id),
            )
        return automation

    async def _require_connection(self, user_id: str) -> VcsConnection:
        connection = await self.connection_repo.get_for_user(user_id)
        if connection is None:
            raise ValidationError("Connect a GitHub account first")
        return connection

    async def state(self, automation_id: UUID, user_id: str) -> SyncState:
        """Externally observable sync state for one automation."""
        link = await self.link_repo.get(automation_id)
        if link is not None:
            connection = await self.connection_repo.get_by_id(link.connection_id)
            return SyncState(
                state=ConnectionState.SYNCING,
                account_login=connection.account_login if connection else None,
                repository=link.full_name,
                branch=link.branch,
                html_url=link.html_url,
            )
        connection = await self.connection_repo.get_for_user(user_id)
        if connection is not None:
            return SyncState(
                state=ConnectionState.CONNECTED_NO_REPOSITORY,
                account_login=connection.account_login,
            )
        return SyncState(state=ConnectionState.NOT_CONNECTED)

    async def connect(self, user_id: str, access_token: str) -> VcsConnection:
        """Verify the token and store the account connection; reconnecting replaces it."""
        try:
            account = await self.client.get_account(access_token)
        except SyncFailure as e:
            raise ValidationError(f"Could not verify access token: {e.message}") from e

        connection = await self.connection_repo.get_for_user(user_id)
        if connection is None:
            connection = VcsConnection(
                user_id=user_id, account_login=account.login, access_token=access_token
            )
            self.connection_repo.add(connection)
        else:
            connection.account_login = account.login
            connection.access_token = access_token
            connection.connected_at = utc_now()
        await self.session.commit()
        logger.info("VCS account connected", user_id=user_id, account=account.login)
        return connection

    async def disconnect_account(self, user_id: str) -> None:
        connection = await self.connection_repo.get_for_user(user_id)
        if connection is None:
            return
        for link in await self.link_repo.list_for_connection(connection.id):
            await self.link_repo.delete(link)
        await self.connection_repo.delete(connection)
        await self.session.commit()
        logger.info("VCS account disconnected", user_id=user_id)

    async def _save_link(
        self, automation_id: UUID, connection: VcsConnection, repo: RepoRef
    ) -> RepositoryLink:
        link = await self.link_repo.get(automation_id)
        if link is None:
            link = RepositoryLink(
                automation_id=automation_id,
                connection_id=connection.id,
                owner=repo.owner,
                name=repo.name,
            )
            self.link_repo.add(link)
        link.connection_id = connection.id
        link.owner = repo.owner
        link.name = repo.name
        link.branch = repo.branch
        link.is_private = repo.private
        link.html_url = repo.html_url
        link.linked_at = utc_now()
        await self.session.commit()
        logger.info("Repository linked", automation_id=str(automation_id), repo=repo.full_name)
        return link

    async def create_repository(
        self,
        automation_id: UUID,
        user_id: str,
        name: str,
        description: str | None = None,
        private: bool = True,
    ) -> RepositoryLink:
        await self._get_automation(automation_id, user_id)
        connection = await self._require_connection(user_id)
        repo = await self.client.create_repository(
            connection.access_token, name, description, private
        )
        return await self._save_link(automation_id, connection, repo)

    async def link_repository(
        self,
        automation_id: UUID,
        user_id: str,
        owner: str,
        name: str,
        branch: str | None = None,
    ) -> RepositoryLink:
        await self._get_automation(automation_id, user_id)
        connection = await self._require_connection(user_id)
        repo = await self.client.get_repository(connection.access_token, owner, name, branch)
        return await self._save_link(automation_id, connection, repo)

    async def disconnect(self, automation_id: UUID, user_id: str) -> None:
        """Unlink the automation's repository; versions keep their sync status."""
        await self._get_automation(automation_id, user_id)
        link = await self.link_repo.get(automation_id)
        if link is None:
            return
        await self.link_repo.delete(link)
        await self.session.commit()
        logger.info("Repository unlinked", automation_id=str(automation_id))

    async def handle_version_created(self, version_id: UUID) -> SyncStatus:
        """Push one version to the linked repository and record the outcome."""
        version = await self.version_repo.get_by_id(version_id)
        if version is None:
            raise NotFound("Version not found", version_id=str(version_id))
        if version.sync_status == SyncStatus.SYNCED.value:
            return SyncStatus.SYNCED

        link = await self.link_repo.get(version.automation_id)
        if link is None:
            logger.info("No repository linked, version left unsynced", version_id=str(version_id))
            return SyncStatus(version.sync_status)
        connection = await self.connection_repo.get_by_id(link.connection_id)
        automation = await self.automation_repo.get_by_id(version.automation_id)
        if connection is None or automation is None:
            return await self._record_failure(version, "Repository connection no longer exists")

        try:
            result = await self.client.push(
                connection.access_token,
                RepoRef(owner=link.owner, name=link.name, branch=link.branch),
                self._push_request(automation, version),
            )
        except SyncFailure as e:
            return await self._record_failure(version, e.message)

        await self.version_repo.set_sync_result(
            version.id,
            sync_status=SyncStatus.SYNCED.value,
            sync_error=None,
            synced_at=utc_now(),
            remote_sha=result.sha,
        )
        await self.session.commit()
        logger.info(
            "Version synced",
            version_id=str(version.id),
            version=version.version,
            sha=result.sha,
            already_synced=result.already_synced,
        )
        return SyncStatus.SYNCED

    async def retry(self, version_id: UUID, user_id: str | None) -> SyncStatus:
        version = await self.version_repo.get_by_id(version_id)
        if version is None:
            raise NotFound("Version not found", version_id=str(version_id))
        await self._get_automation(version.automation_id, user_id)
        return await self.handle_version_created(version_id)

    @staticmethod
    def _push_request(automation: Automation, version: CodeVersion) -> PushRequest:
        return PushRequest(
            automation_id=automation.id,
            automation_name=automation.title,
            version=version.version,
            message=version.message,
            code=version.code,
            files=version.files,
            dependencies=list(version.dependencies),
            env_var_names=list(version.env_var_names),
        )

    async def _record_failure(self, version: CodeVersion, error: str) -> SyncStatus:
        await self.version_repo.set_sync_result(
            version.id, sync_status=SyncStatus.SYNC_FAILED.value, sync_error=error[:1000]
        )
        await self.session.commit()
        logger.warning(
            "Version sync failed",
            version_id=str(version.id),
            version=version.version,
            error=error,
        )
        return SyncStatus.SYNC_FAILED
