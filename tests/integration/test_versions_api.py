"""Tests for version history, diffs and rollback endpoints."""

import pytest
from httpx import AsyncClient

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


@pytest.fixture
async def versions(client: AsyncClient, created: dict) -> list[dict]:
    """Two versions, newest first: 0.0.2 then 0.0.1."""
    response = await client.post(
        f"/api/v1/automations/{created['id']}/edits",
        json={"doc_version": 1, "code": "console.log('v1')\nconsole.log('more')"},
    )
    assert response.json()["version"] == "0.0.2"
    listing = await client.get(f"/api/v1/automations/{created['id']}/versions")
    return listing.json()


async def _doc_version(client: AsyncClient, automation_id: str) -> int:
    return (await client.get(f"/api/v1/automations/{automation_id}")).json()["doc_version"]


class TestHistory:
    async def test_list_and_get(self, client: AsyncClient, versions: list[dict]):
        assert [v["version"] for v in versions] == ["0.0.2", "0.0.1"]
        assert "code" not in versions[0]

        response = await client.get(f"/api/v1/versions/{versions[1]['id']}")

        assert response.json()["code"] == "console.log('v1')"
        assert response.json()["env_var_names"] == ["API_TOKEN"]

    async def test_stats(self, client: AsyncClient, created: dict, versions: list[dict]):
        response = await client.get(f"/api/v1/automations/{created['id']}/versions/stats")

        assert response.json()["total_versions"] == 2

    async def test_diff(self, client: AsyncClient, versions: list[dict]):
        response = await client.get(
            "/api/v1/versions/diff",
            params={"from_version_id": versions[1]["id"], "to_version_id": versions[0]["id"]},
        )

        (diff,) = response.json()
        assert diff["change"] == "modified"
        assert diff["additions"] == 1
        assert diff["deletions"] == 0

    async def test_unknown_version(self, client: AsyncClient):
        response = await client.get("/api/v1/versions/00000000-0000-0000-0000-000000000000")

        assert response.status_code == 404


class TestRollback:
    async def test_auto_accept(self, client: AsyncClient, created: dict, versions: list[dict]):
        response = await client.post(
            f"/api/v1/automations/{created['id']}/rollback",
            json={"target_version_id": versions[1]["id"], "auto_accept": True},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["pending"] is False
        assert body["version"]["version"] == "0.0.3"
        automation = (await client.get(f"/api/v1/automations/{created['id']}")).json()
        assert automation["code"] == "console.log('v1')"

    async def test_pending_then_accept(
        self, client: AsyncClient, created: dict, versions: list[dict]
    ):
        base = f"/api/v1/automations/{created['id']}/rollback"

        staged = await client.post(base, json={"target_version_id": versions[1]["id"]})
        assert staged.json()["pending"] is True
        assert staged.json()["version"] is None

        pending = await client.get(base)
        assert pending.json()["target_version_id"] == versions[1]["id"]
        assert pending.json()["message"] == "Rolled back to 0.0.1"

        accepted = await client.post(f"{base}/accept")
        assert accepted.status_code == 201
        assert accepted.json()["version"] == "0.0.3"
        assert accepted.json()["created_by"] == "user-1"
        assert (await client.get(base)).status_code == 404

    async def test_discard(self, client: AsyncClient, created: dict, versions: list[dict]):
        base = f"/api/v1/automations/{created['id']}/rollback"
        await client.post(base, json={"target_version_id": versions[1]["id"]})

        assert (await client.delete(base)).status_code == 204
        assert (await client.get(base)).status_code == 404
        listing = await client.get(f"/api/v1/automations/{created['id']}/versions")
        assert len(listing.json()) == 2

    async def test_stale_doc_version(
        self, client: AsyncClient, created: dict, versions: list[dict]
    ):
        current = await _doc_version(client, created["id"])

        response = await client.post(
            f"/api/v1/automations/{created['id']}/rollback",
            json={
                "target_version_id": versions[1]["id"],
                "auto_accept": True,
                "doc_version": current - 1,
            },
        )

        assert response.status_code == 409
        assert response.json()["code"] == "concurrent_modification"

    async def test_blocked_while_running(
        self, client: AsyncClient, created: dict, versions: list[dict]
    ):
        await client.post(f"/api/v1/automations/{created['id']}/runs")

        response = await client.post(
            f"/api/v1/automations/{created['id']}/rollback",
            json={"target_version_id": versions[1]["id"], "auto_accept": True},
        )

        assert response.status_code == 409
