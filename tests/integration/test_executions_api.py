"""Tests for the execution history endpoints."""

from uuid import UUID

import pytest
from httpx import AsyncClient

from src.flowsmith.core.db import SessionScope
from src.flowsmith.services.wiring import build_ledger, build_state_machine
from tests.fakes import FakePublisher, FakeRunner, RecordingEmailSender

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


@pytest.fixture
def report(
    scope: SessionScope,
    runner: FakeRunner,
    publisher: FakePublisher,
    email_sender: RecordingEmailSender,
):
    """Report a runner outcome the way the worker activity does."""

    async def _report(execution_id: str, exit_code: int, error_message: str | None = None):
        async with scope() as session:
            machine = build_state_machine(session, runner, publisher, email_sender, scope)
            await machine.report_outcome(
                UUID(execution_id), exit_code=exit_code, error_message=error_message
            )

    return _report


async def _run(client: AsyncClient, automation_id: str) -> str:
    response = await client.post(f"/api/v1/automations/{automation_id}/runs")
    assert response.status_code == 202
    return response.json()["execution_id"]


class TestHistory:
    async def test_list_count_and_stats(self, client: AsyncClient, created: dict, report):
        first = await _run(client, created["id"])
        await report(first, 0)
        second = await _run(client, created["id"])
        await report(second, 1, "Boom")
        running = await _run(client, created["id"])

        page = (await client.get("/api/v1/executions")).json()
        assert [item["id"] for item in page["items"]] == [running, second, first]
        assert page["total_count"] == 3
        assert page["has_more"] is False

        failed = await client.get("/api/v1/executions", params={"status": "failed"})
        assert [item["id"] for item in failed.json()["items"]] == [second]
        assert failed.json()["items"][0]["error_message"] == "Boom"

        count = await client.get("/api/v1/executions/count", params={"status": "success"})
        assert count.json() == {"count": 1}

        stats = (await client.get("/api/v1/executions/stats")).json()
        assert stats == {
            "total": 2,
            "success": 1,
            "failed": 1,
            "stopped": 0,
            "unknown": 0,
            "running": 1,
        }

    async def test_paging_with_cursor(self, client: AsyncClient, created: dict, report):
        for _ in range(3):
            await report(await _run(client, created["id"]), 0)

        first = (await client.get("/api/v1/executions", params={"limit": 2})).json()
        assert len(first["items"]) == 2
        assert first["has_more"] is True

        rest = await client.get(
            "/api/v1/executions", params={"limit": 2, "cursor": first["next_cursor"]}
        )
        assert len(rest.json()["items"]) == 1
        assert rest.json()["has_more"] is False

    async def test_filter_by_automation(self, client: AsyncClient, created: dict):
        other = await client.post(
            "/api/v1/automations", json={"title": "Other", "code": "console.log('other')"}
        )
        mine = await _run(client, created["id"])
        await _run(client, other.json()["id"])

        response = await client.get(
            "/api/v1/executions", params={"automation_id": created["id"]}
        )

        assert [item["id"] for item in response.json()["items"]] == [mine]

    async def test_search_matches_title(self, client: AsyncClient, created: dict):
        await _run(client, created["id"])

        hit = await client.get("/api/v1/executions", params={"search": "nightly"})
        miss = await client.get("/api/v1/executions", params={"search": "weekly"})

        assert len(hit.json()["items"]) == 1
        assert miss.json()["items"] == []

    async def test_invalid_cursor(self, client: AsyncClient):
        # base64 of "not-a-number"
        response = await client.get("/api/v1/executions", params={"cursor": "bm90LWEtbnVtYmVy"})

        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"


class TestDetail:
    async def test_logs_after_sequence(
        self, client: AsyncClient, created: dict, scope: SessionScope
    ):
        execution_id = await _run(client, created["id"])
        async with scope() as session:
            await build_ledger(session).append_logs(
                UUID(execution_id), ["starting", "fetching", "done"]
            )
            await session.commit()

        everything = (await client.get(f"/api/v1/executions/{execution_id}")).json()
        assert [line["line"] for line in everything["logs"]] == ["starting", "fetching", "done"]
        assert everything["execution"]["status"] == "running"
        assert everything["execution"]["user_name"] == "Ada Lovelace"

        tail = await client.get(
            f"/api/v1/executions/{execution_id}",
            params={"after_seq": everything["logs"][0]["seq"]},
        )
        assert [line["line"] for line in tail.json()["logs"]] == ["fetching", "done"]
        assert tail.json()["last_seq"] == everything["last_seq"]

    async def test_unknown_execution(self, client: AsyncClient):
        response = await client.get("/api/v1/executions/00000000-0000-0000-0000-000000000000")

        assert response.status_code == 404


class TestWait:
    async def test_terminal_execution_returns_immediately(
        self, client: AsyncClient, created: dict, report
    ):
        execution_id = await _run(client, created["id"])
        await report(execution_id, 0)

        response = await client.get(
            f"/api/v1/executions/{execution_id}/wait", params={"timeout": 5}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "success"
        assert response.json()["exit_code"] == 0

    async def test_timeout_returns_current_status(self, client: AsyncClient, created: dict):
        execution_id = await _run(client, created["id"])

        response = await client.get(
            f"/api/v1/executions/{execution_id}/wait", params={"timeout": 0.2}
        )

        assert response.json()["status"] == "running"

    async def test_timeout_bounds(self, client: AsyncClient, created: dict):
        execution_id = await _run(client, created["id"])

        response = await client.get(
            f"/api/v1/executions/{execution_id}/wait", params={"timeout": 120}
        )

        assert response.status_code == 422
