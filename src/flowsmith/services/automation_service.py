"""Automation document service - creation, metadata edits, deletion and API keys."""

import hashlib
import secrets
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.flowsmith.core.exceptions import (
    ConcurrentModification,
    InvalidStateTransition,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from src.flowsmith.core.logging import get_logger
from src.flowsmith.core.snapshot import (
    is_empty_payload,
    normalize_dependencies,
    normalize_env_var_names,
    normalize_files,
)
from src.flowsmith.models import Automation, AutomationStatus, RunState, TriggerMode
from src.flowsmith.models.base import utc_now
from src.flowsmith.repositories import AutomationRepository
from src.flowsmith.services.version_store import VersionStore

logger = get_logger(__name__)

API_KEY_PREFIX = "fsk_"

# Fields a user may change directly; code/deps/env names go through the state machine
METADATA_FIELDS = frozenset(
    {
        "title",
        "description",
        "status",
        "trigger_mode",
        "trigger_enabled",
        "runtime_environment",
        "cost",
        "admin_user_ids",
    }
)

# Columns that cannot be cleared
REQUIRED_METADATA_FIELDS = frozenset(
    {"title", "status", "trigger_mode", "trigger_enabled", "admin_user_ids"}
)


def hash_api_key(api_key: str) -> str:
    return hashlib.sha256(api_key.encode()).hexdigest()


def generate_api_key() -> str:
    return f"{API_KEY_PREFIX}{secrets.token_urlsafe(32)}"


class AutomationService:
    def __init__(
        self,
        session: AsyncSession,
        automation_repo: AutomationRepository,
        version_store: VersionStore,
    ):
        self.session = session
        self.automation_repo = automation_repo
        self.version_store = version_store

    async def get(self, automation_id: UUID) -> Automation:
        automation = await self.automation_repo.get_active(automation_id)
        if automation is None:
            raise NotFound("Automation not found", automation_id=str(automation_id))
        return automation

    async def get_for_admin(self, automation_id: UUID, user_id: str | None) -> Automation:
        """Get an automation the user owns or administers."""
        automation = await self.get(automation_id)
        if not automation.can_administer(user_id):
            raise PermissionDenied(
                "Only the owner or an admin can manage this automation",
                automation_id=str(automation_id),
            )
        return automation

    async def list_for_owner(
        self, owner_user_id: str, cursor: str | None = None, limit: int = 50
    ) -> tuple[list[Automation], str | None, bool]:
        return await self.automation_repo.list_for_owner(owner_user_id, cursor, limit)

    async def create(
        self,
        owner_user_id: str,
        title: str,
        description: str | None = None,
        code: str | None = None,
        files: list[dict[str, Any]] | None = None,
        dependencies: list[Any] | None = None,
        env_var_names: list[Any] | None = None,
        runtime_environment: str | None = None,
        trigger_mode: TriggerMode = TriggerMode.MANUAL,
        admin_user_ids: list[str] | None = None,
        created_by_name: str | None = None,
    ) -> Automation:
        """Create an automation; an initial payload becomes version 0.0.1."""
        if code and files:
            raise ValidationError("Provide either code or files, not both")
        normalized_files = normalize_files(files) if files else None
        automation = Automation(
            title=title,
            description=description,
            code=None if normalized_files else code,
            files=normalized_files,
            dependencies=normalize_dependencies(dependencies),
            env_var_names=normalize_env_var_names(env_var_names),
            runtime_environment=runtime_environment,
            trigger_mode=trigger_mode.value,
            owner_user_id=owner_user_id,
            admin_user_ids=list(admin_user_ids or []),
        )
        self.automation_repo.add(automation)
        await self.session.flush()

        version = None
        if not is_empty_payload(automation.code, automation.files):
            version, _ = await self.version_store.build_version(
                automation.id,
                code=automation.code,
                files=automation.files,
                dependencies=automation.dependencies,
                env_var_names=automation.env_var_names,
                message="Initial version",
                created_by=owner_user_id,
            )
        await self.session.commit()
        if version is not None:
            await self.version_store.publish(version)

        logger.info(
            "Automation created",
            automation_id=str(automation.id),
            created_by=created_by_name or owner_user_id,
        )
        return automation

    async def update_metadata(
        self,
        automation_id: UUID,
        expected_doc_version: int,
        user_id: str | None,
        **changes: Any,
    ) -> Automation:
        """Fenced update of title, description, status, trigger settings and cost."""
        unknown = set(changes) - METADATA_FIELDS
        if unknown:
            raise ValidationError(f"Fields cannot be updated here: {', '.join(sorted(unknown))}")
        cleared = sorted(n for n in REQUIRED_METADATA_FIELDS & set(changes) if changes[n] is None)
        if cleared:
            raise ValidationError(f"Fields cannot be null: {', '.join(cleared)}")
        automation = await self.get_for_admin(automation_id, user_id)

        values: dict[str, Any] = {}
        for name, value in changes.items():
            if name == "status" and value is not None:
                value = AutomationStatus(value).value
            elif name == "trigger_mode" and value is not None:
                value = TriggerMode(value).value
            elif name == "title" and (value is None or not str(value).strip()):
                raise ValidationError("Title cannot be empty")
            values[name] = value
        if not values:
            return automation

        if not await self.automation_repo.fenced_update(
            automation_id, expected_doc_version, **values
        ):
            raise ConcurrentModification(
                "Automation was modified concurrently", automation_id=str(automation_id)
            )
        await self.session.commit()
        return await self.automation_repo.refresh(automation)

    async def delete(self, automation_id: UUID, user_id: str | None) -> None:
        """Soft delete of an idle automation; history stays referenced.

        A paused (resumable) run must be stopped first so its record is closed.
        """
        automation = await self.get_for_admin(automation_id, user_id)
        if automation.run_state_enum is not RunState.IDLE:
            raise InvalidStateTransition(
                f"Cannot delete while automation is {automation.run_state}",
                automation_id=str(automation_id),
            )
        if not await self.automation_repo.fenced_update(
            automation_id,
            automation.doc_version,
            deleted_at=utc_now(),
            trigger_enabled=False,
            api_key_hash=None,
        ):
            raise ConcurrentModification(
                "Automation was modified concurrently", automation_id=str(automation_id)
            )
        await self.session.commit()
        logger.info("Automation deleted", automation_id=str(automation_id))

    async def regenerate_api_key(self, automation_id: UUID, user_id: str | None) -> str:
        """Replace the API key in one fenced write and return the new plaintext once.

        The previous key stops working in the same UPDATE that installs the new one.
        """
        automation = await self.get_for_admin(automation_id, user_id)
        api_key = generate_api_key()
        if not await self.automation_repo.fenced_update(
            automation_id, automation.doc_version, api_key_hash=hash_api_key(api_key)
        ):
            raise ConcurrentModification(
                "Automation was modified concurrently", automation_id=str(automation_id)
            )
        await self.session.commit()
        logger.info("API key regenerated", automation_id=str(automation_id))
        return api_key

    async def verify_api_key(self, automation_id: UUID, api_key: str | None) -> Automation:
        if not api_key:
            raise PermissionDenied("API key required")
        automation = await self.automation_repo.get_by_api_key_hash(hash_api_key(api_key))
        if automation is None or automation.id != automation_id:
            raise PermissionDenied("Invalid API key", automation_id=str(automation_id))
        return automation
