"""Tests for the runner's workspace, secrets and process helpers."""

import sys

import pytest

from src.flowsmith.services.events import TemporalVersionPublisher
from src.flowsmith.services.runner import (
    EnvironmentSecretStore,
    RunRequest,
    TemporalRunner,
    run_process,
    write_workspace,
)
from tests.factories import generate_uuid

pytestmark = [pytest.mark.unit, pytest.mark.asyncio]


def _request(**overrides) -> RunRequest:
    values = {
        "execution_id": str(generate_uuid()),
        "automation_id": str(generate_uuid()),
        "runtime_environment": "dev",
    }
    values.update(overrides)
    return RunRequest(**values)


class TestWriteWorkspace:
    async def test_single_file(self, tmp_path):
        entry = write_workspace(_request(code="console.log(1)"), tmp_path)
        assert entry == tmp_path / "code.js"
        assert entry.read_text() == "console.log(1)"

    async def test_multi_file_runs_first_by_order(self, tmp_path):
        files = [
            {"id": "b", "name": "helpers", "code": "module.exports = {}", "order": 1},
            {"id": "a", "name": "main.js", "code": "require('./helpers')", "order": 0},
        ]
        entry = write_workspace(_request(files=files), tmp_path)
        assert entry == tmp_path / "main.js"
        assert (tmp_path / "helpers.js").read_text() == "module.exports = {}"


class TestEnvironmentSecretStore:
    async def test_resolves_prefixed_names(self):
        store = EnvironmentSecretStore(
            prefix="FLOWSMITH_SECRET_", environ={"FLOWSMITH_SECRET_API_TOKEN": "s3cret"}
        )
        values = await store.get_values("a1", ["API_TOKEN", "MISSING"])
        assert values == {"API_TOKEN": "s3cret", "MISSING": ""}


class TestRunProcess:
    async def test_streams_lines_and_returns_exit_code(self, tmp_path):
        lines: list[str] = []

        async def on_line(line: str) -> None:
            lines.append(line)

        code = await run_process(
            [sys.executable, "-c", "print('one'); print('two'); raise SystemExit(3)"],
            tmp_path,
            {},
            on_line,
        )

        assert code == 3
        assert lines == ["one", "two"]


class TestWorkflowIds:
    async def test_ids_derive_from_entity_ids(self):
        version_id = generate_uuid()
        assert TemporalRunner.get_workflow_id("e1") == "automation-run-e1"
        assert TemporalVersionPublisher.get_workflow_id(version_id) == (
            f"version-sync-{version_id}"
        )
