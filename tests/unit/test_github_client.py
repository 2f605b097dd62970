"""Tests for the GitHub mirror client against a mocked HTTP transport."""

import base64
import json

import httpx
import pytest

from src.flowsmith.core.exceptions import SyncFailure
from src.flowsmith.core.vcs import GitHubClient, PushRequest, RepoRef
from src.flowsmith.core.vcs.github import build_commit_message, build_metadata
from tests.factories import generate_uuid

pytestmark = [pytest.mark.unit, pytest.mark.asyncio]

REPO = RepoRef(owner="octo", name="automations", branch="main")


class FakeGitHub:
    """Minimal Git data API: records every request and answers from fixed shas."""

    def __init__(self, tag_exists: bool = False):
        self.tag_exists = tag_exists
        self.requests: list[httpx.Request] = []
        self.blobs: list[str] = []
        self.tree: list[dict] | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path, method = request.url.path, request.method
        root = "/repos/octo/automations"
        if path.startswith(f"{root}/git/ref/tags/"):
            if self.tag_exists:
                return httpx.Response(200, json={"object": {"sha": "tagged-sha"}})
            return httpx.Response(404, json={"message": "Not Found"})
        if path == f"{root}/git/ref/heads/main":
            return httpx.Response(200, json={"object": {"sha": "parent-sha"}})
        if path == f"{root}/git/commits/parent-sha":
            return httpx.Response(200, json={"tree": {"sha": "base-tree"}})
        if path == f"{root}/git/blobs":
            content = json.loads(request.content)["content"]
            self.blobs.append(base64.b64decode(content).decode())
            return httpx.Response(201, json={"sha": f"blob-{len(self.blobs)}"})
        if path == f"{root}/git/trees":
            body = json.loads(request.content)
            assert body["base_tree"] == "base-tree"
            self.tree = body["tree"]
            return httpx.Response(201, json={"sha": "tree-sha"})
        if path == f"{root}/git/commits" and method == "POST":
            body = json.loads(request.content)
            assert body["parents"] == ["parent-sha"]
            return httpx.Response(201, json={"sha": "commit-sha"})
        if path == f"{root}/git/refs/heads/main" and method == "PATCH":
            return httpx.Response(200, json={"object": {"sha": "commit-sha"}})
        if path == f"{root}/git/refs" and method == "POST":
            return httpx.Response(201, json={"ref": json.loads(request.content)["ref"]})
        if path == "/user":
            return httpx.Response(200, json={"login": "octo"})
        return httpx.Response(500, json={"message": f"unexpected {method} {path}"})


def _client(handler) -> GitHubClient:
    return GitHubClient(
        base_url="https://api.github.test", timeout=5, transport=httpx.MockTransport(handler)
    )


def _request(**overrides) -> PushRequest:
    values = {
        "automation_id": generate_uuid(),
        "automation_name": "Nightly report",
        "version": "0.0.2",
        "message": "Retry failed uploads",
        "code": "console.log('hi')",
    }
    values.update(overrides)
    return PushRequest(**values)


class TestPush:
    async def test_single_file_push(self):
        github = FakeGitHub()
        request = _request(dependencies=[{"name": "axios", "version": "latest"}])

        result = await _client(github).push("token", REPO, request)

        assert result.sha == "commit-sha"
        assert not result.already_synced
        folder = f"automations/{request.automation_id}"
        assert [entry["path"] for entry in github.tree] == [
            f"{folder}/code.js",
            f"{folder}/metadata.json",
        ]
        assert github.blobs[0] == "console.log('hi')"
        metadata = json.loads(github.blobs[1])
        assert metadata["version"] == "0.0.2"
        assert metadata["mode"] == "single-file"
        assert metadata["dependencies"] == [{"name": "axios", "version": "latest"}]
        tag_request = github.requests[-1]
        assert json.loads(tag_request.content)["ref"] == f"refs/tags/{request.tag}"
        assert github.requests[0].headers["Authorization"] == "Bearer token"

    async def test_multi_file_push_removes_deleted_files(self):
        github = FakeGitHub()
        request = _request(
            code=None,
            files=[
                {"id": "a", "name": "main", "code": "run()", "status": "modified"},
                {"id": "b", "name": "old.js", "code": "", "status": "deleted"},
            ],
        )

        await _client(github).push("token", REPO, request)

        entries = {entry["path"].rsplit("/", 1)[1]: entry for entry in github.tree}
        assert entries["main.js"]["sha"] == "blob-1"
        assert entries["old.js"]["sha"] is None
        assert "metadata.json" in entries

    async def test_existing_tag_short_circuits(self):
        github = FakeGitHub(tag_exists=True)

        result = await _client(github).push("token", REPO, _request())

        assert result.already_synced
        assert result.sha == "tagged-sha"
        assert len(github.requests) == 1

    async def test_http_error_raises_sync_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if "/git/ref/tags/" in request.url.path:
                return httpx.Response(404)
            return httpx.Response(403, json={"message": "Resource not accessible"})

        with pytest.raises(SyncFailure) as exc_info:
            await _client(handler).push("token", REPO, _request())
        assert "403" in exc_info.value.message
        assert exc_info.value.context["status_code"] == 403

    async def test_network_error_raises_sync_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SyncFailure):
            await _client(handler).push("token", REPO, _request())


class TestRepositories:
    async def test_get_account(self):
        account = await _client(FakeGitHub()).get_account("token")
        assert account.login == "octo"

    async def test_create_repository_reuses_existing(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/user/repos":
                return httpx.Response(422, json={"message": "name already exists"})
            if request.url.path == "/user":
                return httpx.Response(200, json={"login": "octo"})
            return httpx.Response(
                200,
                json={
                    "name": "automations",
                    "owner": {"login": "octo"},
                    "default_branch": "trunk",
                    "private": True,
                    "html_url": "https://github.com/octo/automations",
                },
            )

        repo = await _client(handler).create_repository("token", "automations", None, True)

        assert repo.full_name == "octo/automations"
        assert repo.branch == "trunk"

    async def test_get_repository_branch_override(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200,
                json={"name": "automations", "owner": {"login": "octo"}, "default_branch": "main"},
            )

        repo = await _client(handler).get_repository("token", "octo", "automations", "release")
        assert repo.branch == "release"


class TestMessages:
    async def test_commit_message_and_metadata(self):
        request = _request(files=[{"id": "a", "name": "main", "code": ""}], code=None)
        message = build_commit_message(request)
        assert message.startswith("Retry failed uploads\n\n")
        assert "Version: 0.0.2" in message
        assert build_metadata(request)["mode"] == "multi-file"
