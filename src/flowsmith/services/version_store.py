"""Version Store - semantic versioning, snapshots and rollback of automation code."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.flowsmith.core.diff import FileDiff, diff_snapshots
from src.flowsmith.core.exceptions import (
    ConcurrentModification,
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from src.flowsmith.core.logging import get_logger
from src.flowsmith.core.semver import SemVer, next_version
from src.flowsmith.core.snapshot import (
    build_snapshot,
    content_hash,
    is_generic_message,
    live_file_ids,
    live_files,
    normalize_dependencies,
    normalize_env_var_names,
    normalize_files,
    require_payload,
    summarize_changes,
)
from src.flowsmith.models import Automation, CodeVersion, PendingRollback, RunState, VersionBump
from src.flowsmith.repositories import (
    AutomationRepository,
    PendingRollbackRepository,
    VersionRepository,
)
from src.flowsmith.services.events import VersionCreated, VersionEventPublisher

logger = get_logger(__name__)

# States in which the automation document may not be restaged
_ROLLBACK_BLOCKED_STATES = frozenset(
    {RunState.SAVING, RunState.GENERATING, RunState.RUNNING, RunState.STOPPING}
)
MAX_MESSAGE_LENGTH = 1000


@dataclass(frozen=True)
class EnvRestoration:
    """How one environment variable is restored after a rollback.

    ``current`` keeps the value configured now, ``blank`` means the name was
    reintroduced by the rollback and needs a value.
    """

    name: str
    source: str


@dataclass
class RollbackPlan:
    automation_id: UUID
    target_version_id: UUID
    target_version: str
    message: str
    code: str | None
    files: list[dict[str, Any]] | None
    dependencies: list[dict[str, Any]]
    env_var_names: list[str]
    env_restoration: list[EnvRestoration] = field(default_factory=list)
    version: CodeVersion | None = None

    @property
    def pending(self) -> bool:
        return self.version is None


@dataclass(frozen=True)
class VersionStats:
    total_versions: int
    first_version_at: datetime | None
    last_version_at: datetime | None
    change_frequency: str


def change_frequency(total: int, first: datetime | None, last: datetime | None) -> str:
    """Human label for how often an automation changes."""
    if total == 0 or first is None or last is None:
        return "No versions yet"
    if total == 1:
        return "Single version"
    days = max(1, (last - first).days)
    per_day = total / days
    if per_day >= 10:
        return "Very active (10+ changes/day)"
    if per_day >= 5:
        return "Active (5+ changes/day)"
    if days <= 2:
        return "Recent changes"
    return f"{total} versions over {days} days"


def plan_env_restoration(current_names: list[str], target_names: list[str]) -> list[EnvRestoration]:
    current = set(current_names)
    return [
        EnvRestoration(name=name, source="current" if name in current else "blank")
        for name in target_names
    ]


class VersionStore:
    """Creates immutable versions and stages rollbacks.

    ``build_version`` only flushes so callers can make version creation part of
    a larger transaction; ``create_version`` commits and publishes.
    """

    def __init__(
        self,
        session: AsyncSession,
        automation_repo: AutomationRepository,
        version_repo: VersionRepository,
        pending_repo: PendingRollbackRepository,
        publisher: VersionEventPublisher,
    ):
        self.session = session
        self.automation_repo = automation_repo
        self.version_repo = version_repo
        self.pending_repo = pending_repo
        self.publisher = publisher

    async def _get_automation(self, automation_id: UUID) -> Automation:
        automation = await self.automation_repo.get_active(automation_id)
        if automation is None:
            raise NotFound("Automation not found", automation_id=str(automation_id))
        return automation

    async def build_version(
        self,
        automation_id: UUID,
        *,
        code: str | None = None,
        files: list[dict[str, Any]] | None = None,
        dependencies: list[Any] | None = None,
        env_var_names: list[Any] | None = None,
        message: str | None = None,
        bump: VersionBump | None = None,
        created_by: str | None = None,
        force: bool = False,
    ) -> tuple[CodeVersion, bool]:
        """Add the next version to the session.

        Returns ``(version, created)``. Without ``force``, content identical to the
        latest version returns that version with ``created=False``. ``bump=None``
        picks MINOR when the file set changed and PATCH otherwise.
        """
        require_payload(code, files)
        normalized_files = normalize_files(live_files(files)) if files else None
        deps = normalize_dependencies(dependencies)
        names = normalize_env_var_names(env_var_names)
        latest = await self.version_repo.get_latest(automation_id)

        code_hash = content_hash(None if normalized_files else code, normalized_files)
        if (
            not force
            and latest is not None
            and latest.code_hash == code_hash
            and latest.dependencies == deps
            and latest.env_var_names == names
        ):
            logger.info("No changes detected, keeping latest version", version=latest.version)
            return latest, False

        if normalized_files is not None:
            previous = latest.files if latest is not None else None
            snapshot, changed = build_snapshot(normalized_files, previous)
            stored_code, stored_files = None, snapshot
            total = len(normalized_files)
        else:
            changed = 0 if latest is not None and latest.code == code else 1
            stored_code, stored_files = code, None
            total = 1

        if bump is None:
            bump = self._default_bump(latest, normalized_files)
        latest_semver = (
            SemVer(latest.major, latest.minor, latest.patch) if latest is not None else None
        )
        semver = next_version(latest_semver, bump)

        if message is None or is_generic_message(message):
            if stored_files is not None:
                message = summarize_changes(stored_files)
            else:
                message = "Initial version" if latest is None else "Code updated"

        version = CodeVersion(
            automation_id=automation_id,
            sequence=(latest.sequence if latest is not None else 0) + 1,
            major=semver.major,
            minor=semver.minor,
            patch=semver.patch,
            version=str(semver),
            code=stored_code,
            files=stored_files,
            dependencies=deps,
            env_var_names=names,
            message=message.strip()[:MAX_MESSAGE_LENGTH],
            code_hash=code_hash,
            total_files=total,
            changed_files=changed,
            created_by=created_by,
        )
        self.version_repo.add(version)
        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            raise ConcurrentModification(
                "Another version was created concurrently", automation_id=str(automation_id)
            ) from e
        logger.info("Version created", version=version.version, sequence=version.sequence)
        return version, True

    @staticmethod
    def _default_bump(
        latest: CodeVersion | None, files: list[dict[str, Any]] | None
    ) -> VersionBump:
        if latest is None:
            return VersionBump.PATCH
        if (latest.files is None) != (files is None):
            return VersionBump.MINOR
        if files is not None and live_file_ids(latest.files) != live_file_ids(files):
            return VersionBump.MINOR
        return VersionBump.PATCH

    async def publish(self, version: CodeVersion) -> None:
        await self.publisher.publish(
            VersionCreated(
                automation_id=version.automation_id,
                version_id=version.id,
                version=version.version,
            )
        )

    async def create_version(
        self,
        automation_id: UUID,
        code: str | None = None,
        files: list[dict[str, Any]] | None = None,
        dependencies: list[Any] | None = None,
        env_var_names: list[Any] | None = None,
        message: str | None = None,
        bump: VersionBump | None = None,
        created_by: str | None = None,
    ) -> CodeVersion:
        """Create, commit and publish the next version of an automation."""
        await self._get_automation(automation_id)
        version, created = await self.build_version(
            automation_id,
            code=code,
            files=files,
            dependencies=dependencies,
            env_var_names=env_var_names,
            message=message,
            bump=bump,
            created_by=created_by,
        )
        await self.session.commit()
        if created:
            await self.publish(version)
        return version

    async def list_versions(self, automation_id: UUID, limit: int = 50) -> list[CodeVersion]:
        await self._get_automation(automation_id)
        return await self.version_repo.list_for_automation(automation_id, limit)

    async def get_version(self, version_id: UUID) -> CodeVersion:
        version = await self.version_repo.get_by_id(version_id)
        if version is None:
            raise NotFound("Version not found", version_id=str(version_id))
        return version

    async def latest_version(self, automation_id: UUID) -> CodeVersion | None:
        return await self.version_repo.get_latest(automation_id)

    async def diff(self, from_version_id: UUID, to_version_id: UUID) -> list[FileDiff]:
        """Per-file line diff from one version to another of the same automation."""
        old = await self.get_version(from_version_id)
        new = await self.get_version(to_version_id)
        if old.automation_id != new.automation_id:
            raise ValidationError("Versions belong to different automations")
        return diff_snapshots(old.code, old.files, new.code, new.files)

    async def version_stats(self, automation_id: UUID) -> VersionStats:
        await self._get_automation(automation_id)
        total, first, last = await self.version_repo.stats(automation_id)
        return VersionStats(
            total_versions=total,
            first_version_at=first,
            last_version_at=last,
            change_frequency=change_frequency(total, first, last),
        )

    async def _stage(
        self, automation: Automation, target: CodeVersion, expected_doc_version: int | None
    ) -> None:
        if automation.run_state_enum in _ROLLBACK_BLOCKED_STATES:
            raise InvalidStateTransition(
                f"Cannot roll back while automation is {automation.run_state}",
                automation_id=str(automation.id),
            )
        expected = automation.doc_version if expected_doc_version is None else expected_doc_version
        staged = await self.automation_repo.fenced_update(
            automation.id,
            expected,
            code=target.code,
            files=live_files(target.files) if target.files is not None else None,
            dependencies=target.dependencies,
            env_var_names=target.env_var_names,
        )
        if not staged:
            raise ConcurrentModification(
                "Automation was modified concurrently", automation_id=str(automation.id)
            )

    async def _build_from_target(
        self, target: CodeVersion, message: str, created_by: str | None
    ) -> CodeVersion:
        version, _ = await self.build_version(
            target.automation_id,
            code=target.code,
            files=live_files(target.files) if target.files is not None else None,
            dependencies=target.dependencies,
            env_var_names=target.env_var_names,
            message=message,
            created_by=created_by,
            force=True,
        )
        return version

    async def rollback(
        self,
        automation_id: UUID,
        target_version_id: UUID,
        auto_accept: bool = False,
        created_by: str | None = None,
        expected_doc_version: int | None = None,
    ) -> RollbackPlan:
        """Stage a prior version's content into the automation.

        With ``auto_accept`` the new version is created immediately. Otherwise the
        automation's single pending rollback slot is overwritten.
        """
        automation = await self._get_automation(automation_id)
        target = await self.version_repo.get_for_automation(automation_id, target_version_id)
        if target is None:
            raise NotFound("Version not found", version_id=str(target_version_id))

        message = f"Rolled back to {target.version}"
        plan = RollbackPlan(
            automation_id=automation_id,
            target_version_id=target.id,
            target_version=target.version,
            message=message,
            code=target.code,
            files=live_files(target.files) if target.files is not None else None,
            dependencies=list(target.dependencies),
            env_var_names=list(target.env_var_names),
            env_restoration=plan_env_restoration(automation.env_var_names, target.env_var_names),
        )

        await self._stage(automation, target, expected_doc_version)
        if auto_accept:
            plan.version = await self._build_from_target(target, message, created_by)
            await self.pending_repo.remove(automation_id)
        else:
            await self.pending_repo.upsert(automation_id, target.id, message, created_by)
        await self.session.commit()

        if plan.version is not None:
            await self.publish(plan.version)
        logger.info(
            "Rollback staged",
            automation_id=str(automation_id),
            target_version=target.version,
            auto_accept=auto_accept,
        )
        return plan

    async def get_pending_rollback(self, automation_id: UUID) -> PendingRollback | None:
        return await self.pending_repo.get(automation_id)

    async def accept_rollback(
        self, automation_id: UUID, created_by: str | None = None
    ) -> CodeVersion:
        """Create the version for the pending rollback and clear the slot."""
        pending = await self.pending_repo.get(automation_id)
        if pending is None:
            raise NotFound("No pending rollback", automation_id=str(automation_id))
        target = await self.get_version(pending.target_version_id)
        automation = await self._get_automation(automation_id)

        await self._stage(automation, target, None)
        version = await self._build_from_target(
            target, pending.message, created_by or pending.created_by
        )
        await self.pending_repo.remove(automation_id)
        await self.session.commit()
        await self.publish(version)
        return version

    async def discard_rollback(self, automation_id: UUID) -> None:
        removed = await self.pending_repo.remove(automation_id)
        if not removed:
            raise NotFound("No pending rollback", automation_id=str(automation_id))
        await self.session.commit()
