"""Tests for the version-control endpoints."""

import pytest
from httpx import AsyncClient

from tests.fakes import FakeVcsClient

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]


@pytest.fixture
async def connected(client: AsyncClient) -> dict:
    response = await client.post("/api/v1/vcs/connections", json={"access_token": "good-token"})
    assert response.status_code == 201
    return response.json()


class TestConnection:
    async def test_connect(self, connected: dict):
        assert connected["provider"] == "github"
        assert connected["account_login"] == "octo"

    async def test_bad_token(self, client: AsyncClient):
        response = await client.post("/api/v1/vcs/connections", json={"access_token": "nope"})

        assert response.status_code == 422

    async def test_state_progression(self, client: AsyncClient, created: dict):
        state_url = f"/api/v1/automations/{created['id']}/vcs"
        assert (await client.get(state_url)).json()["state"] == "not_connected"

        await client.post("/api/v1/vcs/connections", json={"access_token": "good-token"})
        assert (await client.get(state_url)).json()["state"] == "connected_no_repository"

        await client.post(
            f"/api/v1/automations/{created['id']}/vcs/repository", json={"name": "nightly-report"}
        )
        state = (await client.get(state_url)).json()
        assert state["state"] == "syncing"
        assert state["repository"] == "octo/nightly-report"

        assert (await client.delete("/api/v1/vcs/connections")).status_code == 204
        assert (await client.get(state_url)).json()["state"] == "not_connected"


class TestRepository:
    async def test_create(self, client: AsyncClient, created: dict, connected: dict):
        response = await client.post(
            f"/api/v1/automations/{created['id']}/vcs/repository",
            json={"name": "nightly-report", "private": False},
        )

        body = response.json()
        assert response.status_code == 201
        assert body["full_name"] == "octo/nightly-report"
        assert body["is_private"] is False
        assert body["html_url"] == "https://github.com/octo/nightly-report"

    async def test_invalid_name(self, client: AsyncClient, created: dict, connected: dict):
        response = await client.post(
            f"/api/v1/automations/{created['id']}/vcs/repository", json={"name": "no spaces"}
        )

        assert response.status_code == 422

    async def test_link_missing_repository(
        self, client: AsyncClient, created: dict, connected: dict
    ):
        response = await client.put(
            f"/api/v1/automations/{created['id']}/vcs/repository",
            json={"owner": "octo", "name": "missing"},
        )

        assert response.status_code == 502
        assert response.json()["code"] == "sync_failure"

    async def test_unlink(self, client: AsyncClient, created: dict, connected: dict):
        url = f"/api/v1/automations/{created['id']}/vcs/repository"
        await client.post(url, json={"name": "nightly-report"})

        assert (await client.delete(url)).status_code == 204
        state = await client.get(f"/api/v1/automations/{created['id']}/vcs")
        assert state.json()["state"] == "connected_no_repository"


class TestSyncRetry:
    async def test_retry_pushes_version(
        self, client: AsyncClient, created: dict, connected: dict, vcs_client: FakeVcsClient
    ):
        await client.post(
            f"/api/v1/automations/{created['id']}/vcs/repository", json={"name": "nightly-report"}
        )
        (version,) = (await client.get(f"/api/v1/automations/{created['id']}/versions")).json()
        vcs_client.fail_push = True
        failed = await client.post(f"/api/v1/versions/{version['id']}/sync")
        assert failed.json()["sync_status"] == "sync_failed"

        vcs_client.fail_push = False
        response = await client.post(f"/api/v1/versions/{version['id']}/sync")

        assert response.json() == {"version_id": version["id"], "sync_status": "synced"}
        synced = (await client.get(f"/api/v1/versions/{version['id']}")).json()
        assert synced["remote_sha"] is not None
