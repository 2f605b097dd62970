"""Tests for immutable versions, diffs and rollback."""

import pytest

from src.flowsmith.core.exceptions import (
    ConcurrentModification,
    InvalidPayload,
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from src.flowsmith.models import Automation, FileChange, VersionBump
from src.flowsmith.services import AutomationService, ExecutionStateMachine, VersionStore
from tests.fakes import FakePublisher

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


def _files(**codes: str) -> list[dict]:
    return [{"id": name, "name": f"{name}.js", "code": code} for name, code in codes.items()]


class TestCreateVersion:
    async def test_initial_version_from_create(
        self, automation: Automation, version_store: VersionStore, publisher: FakePublisher
    ):
        versions = await version_store.list_versions(automation.id)

        assert [v.version for v in versions] == ["0.0.1"]
        assert versions[0].message == "Initial version"
        assert versions[0].env_var_names == ["API_TOKEN"]
        assert versions[0].sync_status == "unsynced"
        assert [e.version for e in publisher.events] == ["0.0.1"]

    async def test_patch_bump_for_code_change(
        self, automation: Automation, version_store: VersionStore
    ):
        version = await version_store.create_version(automation.id, code="console.log('v2')")

        assert version.version == "0.0.2"
        assert version.sequence == 2
        assert version.message == "Code updated"
        assert version.changed_files == 1

    async def test_identical_content_creates_nothing(
        self, automation: Automation, version_store: VersionStore, publisher: FakePublisher
    ):
        version = await version_store.create_version(
            automation.id, code="console.log('v1')", env_var_names=["API_TOKEN"]
        )

        assert version.version == "0.0.1"
        assert len(await version_store.list_versions(automation.id)) == 1
        assert len(publisher.events) == 1

    async def test_dependency_change_is_a_new_version(
        self, automation: Automation, version_store: VersionStore
    ):
        version = await version_store.create_version(
            automation.id,
            code="console.log('v1')",
            dependencies=["axios"],
            env_var_names=["API_TOKEN"],
        )
        assert version.version == "0.0.2"
        assert version.dependencies == [{"name": "axios", "version": "latest"}]

    async def test_file_set_changes_bump_minor(
        self, automation: Automation, version_store: VersionStore
    ):
        to_files = await version_store.create_version(automation.id, files=_files(main="a()"))
        assert to_files.version == "0.1.0"
        assert to_files.message == "Added 1 file: main.js"

        edited = await version_store.create_version(automation.id, files=_files(main="b()"))
        assert edited.version == "0.1.1"
        assert edited.message == "Modified 1 file: main.js"

        grown = await version_store.create_version(
            automation.id, files=_files(main="b()", util="u()"), message="Add helpers"
        )
        assert grown.version == "0.2.0"
        assert grown.message == "Add helpers"
        assert grown.total_files == 2
        assert grown.changed_files == 1

    async def test_deleted_files_kept_in_snapshot(
        self, automation: Automation, version_store: VersionStore
    ):
        await version_store.create_version(automation.id, files=_files(main="a()", util="u()"))
        shrunk = await version_store.create_version(automation.id, files=_files(main="a()"))

        statuses = {f["id"]: f["status"] for f in shrunk.files}
        assert statuses == {"main": "unchanged", "util": "deleted"}
        assert shrunk.message == "Deleted 1 file: util.js"

    async def test_explicit_major_bump(self, automation: Automation, version_store: VersionStore):
        version = await version_store.create_version(
            automation.id, code="rewrite()", bump=VersionBump.MAJOR
        )
        assert version.version == "1.0.0"

    async def test_empty_payload_rejected(
        self, automation: Automation, version_store: VersionStore
    ):
        with pytest.raises(InvalidPayload):
            await version_store.create_version(automation.id, code="   ")

    async def test_versions_are_newest_first_and_unchanged_by_later_saves(
        self, automation: Automation, version_store: VersionStore
    ):
        first = (await version_store.list_versions(automation.id))[0]
        await version_store.create_version(automation.id, code="console.log('v2')")
        await version_store.create_version(automation.id, code="console.log('v3')")

        versions = await version_store.list_versions(automation.id)
        assert [v.version for v in versions] == ["0.0.3", "0.0.2", "0.0.1"]
        reread = await version_store.get_version(first.id)
        assert reread.code == "console.log('v1')"
        assert reread.code_hash == first.code_hash

    async def test_stats(self, automation: Automation, version_store: VersionStore):
        stats = await version_store.version_stats(automation.id)
        assert stats.total_versions == 1
        assert stats.change_frequency == "Single version"


class TestDiff:
    async def test_diff_between_versions(
        self, automation: Automation, version_store: VersionStore
    ):
        old = (await version_store.list_versions(automation.id))[0]
        new = await version_store.create_version(
            automation.id, code="console.log('v1')\nconsole.log('more')"
        )

        (diff,) = await version_store.diff(old.id, new.id)

        assert diff.change is FileChange.MODIFIED
        assert diff.additions == 1
        assert diff.deletions == 0

    async def test_diff_across_automations_rejected(
        self,
        automation: Automation,
        automation_service: AutomationService,
        version_store: VersionStore,
    ):
        other = await automation_service.create(owner_user_id="user-1", title="Other", code="x()")
        mine = (await version_store.list_versions(automation.id))[0]
        theirs = (await version_store.list_versions(other.id))[0]

        with pytest.raises(ValidationError):
            await version_store.diff(mine.id, theirs.id)


class TestRollback:
    async def test_auto_accept_creates_new_version(
        self,
        automation: Automation,
        automation_service: AutomationService,
        version_store: VersionStore,
    ):
        target = (await version_store.list_versions(automation.id))[0]
        await version_store.create_version(
            automation.id, code="console.log('v2')", env_var_names=["API_TOKEN", "NEW_KEY"]
        )

        plan = await version_store.rollback(automation.id, target.id, auto_accept=True)

        assert not plan.pending
        assert plan.version.version == "0.0.3"
        assert plan.version.message == "Rolled back to 0.0.1"
        assert plan.version.code == "console.log('v1')"
        refreshed = await automation_service.get(automation.id)
        assert refreshed.code == "console.log('v1')"
        assert refreshed.env_var_names == ["API_TOKEN"]
        # History is preserved: the rolled-back-from version still exists
        versions = await version_store.list_versions(automation.id)
        assert [v.version for v in versions] == ["0.0.3", "0.0.2", "0.0.1"]

    async def test_env_restoration_plan(
        self, automation: Automation, version_store: VersionStore
    ):
        target = await version_store.create_version(
            automation.id, code="console.log('v2')", env_var_names=["API_TOKEN", "NEW_KEY"]
        )

        plan = await version_store.rollback(automation.id, target.id)

        assert [(r.name, r.source) for r in plan.env_restoration] == [
            ("API_TOKEN", "current"),
            ("NEW_KEY", "blank"),
        ]

    async def test_pending_rollback_accept(
        self, automation: Automation, version_store: VersionStore, publisher: FakePublisher
    ):
        target = (await version_store.list_versions(automation.id))[0]
        await version_store.create_version(
            automation.id, code="console.log('v2')", dependencies=["axios"]
        )

        plan = await version_store.rollback(automation.id, target.id, created_by="user-1")

        assert plan.pending
        assert len(await version_store.list_versions(automation.id)) == 2
        pending = await version_store.get_pending_rollback(automation.id)
        assert pending.target_version_id == target.id

        version = await version_store.accept_rollback(automation.id)

        assert version.version == "0.0.3"
        assert version.created_by == "user-1"
        assert version.message == "Rolled back to 0.0.1"
        assert version.code == "console.log('v1')"
        assert version.dependencies == target.dependencies
        assert await version_store.get_pending_rollback(automation.id) is None
        assert publisher.events[-1].version_id == version.id

    async def test_new_rollback_overwrites_pending_slot(
        self, automation: Automation, version_store: VersionStore
    ):
        first = (await version_store.list_versions(automation.id))[0]
        second = await version_store.create_version(automation.id, code="console.log('v2')")
        await version_store.create_version(automation.id, code="console.log('v3')")

        await version_store.rollback(automation.id, first.id)
        await version_store.rollback(automation.id, second.id)

        pending = await version_store.get_pending_rollback(automation.id)
        assert pending.target_version_id == second.id
        assert pending.message == "Rolled back to 0.0.2"

    async def test_pending_slot_is_per_automation(
        self,
        automation: Automation,
        automation_service: AutomationService,
        version_store: VersionStore,
    ):
        other = await automation_service.create(owner_user_id="user-1", title="Other", code="x()")
        mine = (await version_store.list_versions(automation.id))[0]
        theirs = (await version_store.list_versions(other.id))[0]
        await version_store.create_version(automation.id, code="console.log('v2')")
        await version_store.create_version(other.id, code="y()")

        await version_store.rollback(automation.id, mine.id)
        assert await version_store.get_pending_rollback(other.id) is None

        await version_store.rollback(other.id, theirs.id)
        accepted = await version_store.accept_rollback(automation.id)

        assert accepted.automation_id == automation.id
        pending = await version_store.get_pending_rollback(other.id)
        assert pending.target_version_id == theirs.id
        assert (await automation_service.get(other.id)).code == "x()"

    async def test_discard(self, automation: Automation, version_store: VersionStore):
        target = (await version_store.list_versions(automation.id))[0]
        await version_store.create_version(automation.id, code="console.log('v2')")
        await version_store.rollback(automation.id, target.id)

        await version_store.discard_rollback(automation.id)

        assert await version_store.get_pending_rollback(automation.id) is None
        with pytest.raises(NotFound):
            await version_store.discard_rollback(automation.id)

    async def test_stale_fence_rejected(
        self, automation: Automation, version_store: VersionStore
    ):
        target = (await version_store.list_versions(automation.id))[0]
        with pytest.raises(ConcurrentModification):
            await version_store.rollback(
                automation.id, target.id, expected_doc_version=automation.doc_version + 5
            )

    async def test_blocked_while_running(
        self,
        automation: Automation,
        version_store: VersionStore,
        machine: ExecutionStateMachine,
    ):
        target = (await version_store.list_versions(automation.id))[0]
        await machine.run(automation.id)

        with pytest.raises(InvalidStateTransition):
            await version_store.rollback(automation.id, target.id, auto_accept=True)

    async def test_unknown_target(self, automation: Automation, version_store: VersionStore):
        other_version_id = automation.id
        with pytest.raises(NotFound):
            await version_store.rollback(automation.id, other_version_id)
