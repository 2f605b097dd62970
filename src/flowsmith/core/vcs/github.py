"""GitHub REST client for mirroring versions.

A push writes one commit through the Git data API (ref -> commit -> blobs ->
tree -> commit -> ref) and then tags it ``<automation_id>-v<version>``. An
existing tag means the version was already pushed, which keeps pushes
idempotent.
"""

import base64
import json
from datetime import UTC, datetime
from typing import Any

import httpx

from src.flowsmith.core.config import get_settings
from src.flowsmith.core.exceptions import SyncFailure
from src.flowsmith.core.logging import get_logger
from src.flowsmith.core.vcs.base import AccountInfo, PushRequest, PushResult, RepoRef
from src.flowsmith.models.enums import FileChange

logger = get_logger(__name__)

FILE_MODE = "100644"


def _file_name(name: str) -> str:
    return name if name.endswith(".js") else f"{name}.js"


def build_metadata(request: PushRequest) -> dict[str, Any]:
    return {
        "automationId": str(request.automation_id),
        "automationName": request.automation_name,
        "version": request.version,
        "mode": "multi-file" if request.files else "single-file",
        "dependencies": request.dependencies,
        "environmentVariables": request.env_var_names,
        "syncedAt": datetime.now(UTC).isoformat(),
    }


def build_commit_message(request: PushRequest) -> str:
    return (
        f"{request.message}\n\n"
        f"Automation: {request.automation_name} ({request.automation_id})\n"
        f"Version: {request.version}\n"
        "Synced from Flowsmith"
    )


class GitHubClient:
    """Thin async wrapper over the GitHub REST v3 endpoints the mirror needs."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        path_prefix: str | None = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.github_api_url).rstrip("/")
        self.timeout = timeout or settings.github_timeout_seconds
        self.path_prefix = path_prefix or settings.vcs_path_prefix
        self._transport = transport

    def _client(self, access_token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        allow: tuple[int, ...] = (),
        **kwargs: Any,
    ) -> httpx.Response:
        """Send a request; statuses in ``allow`` are returned instead of raised."""
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise SyncFailure(f"GitHub request failed: {e}") from e
        if response.status_code >= 400 and response.status_code not in allow:
            raise SyncFailure(
                f"GitHub {method} {url} returned {response.status_code}: {_error_text(response)}",
                status_code=response.status_code,
            )
        return response

    async def get_account(self, access_token: str) -> AccountInfo:
        async with self._client(access_token) as client:
            response = await self._request(client, "GET", "/user")
        return AccountInfo(login=response.json()["login"])

    async def create_repository(
        self, access_token: str, name: str, description: str | None, private: bool
    ) -> RepoRef:
        async with self._client(access_token) as client:
            response = await self._request(
                client,
                "POST",
                "/user/repos",
                allow=(422,),
                json={
                    "name": name,
                    "description": description or "",
                    "private": private,
                    "auto_init": True,
                },
            )
            if response.status_code == 422:
                # Repository already exists for this account: reuse it
                login = (await self._request(client, "GET", "/user")).json()["login"]
                existing = await self._request(client, "GET", f"/repos/{login}/{name}")
                return _repo_ref(existing.json())
        return _repo_ref(response.json())

    async def get_repository(
        self, access_token: str, owner: str, name: str, branch: str | None = None
    ) -> RepoRef:
        async with self._client(access_token) as client:
            response = await self._request(client, "GET", f"/repos/{owner}/{name}")
        return _repo_ref(response.json(), branch)

    async def push(self, access_token: str, repo: RepoRef, request: PushRequest) -> PushResult:
        root = f"/repos/{repo.owner}/{repo.name}"
        folder = f"{self.path_prefix}/{request.automation_id}"

        async with self._client(access_token) as client:
            tag = await self._request(
                client, "GET", f"{root}/git/ref/tags/{request.tag}", allow=(404,)
            )
            if tag.status_code == 200:
                logger.info("Version already pushed", repo=repo.full_name, tag=request.tag)
                return PushResult(sha=tag.json()["object"]["sha"], already_synced=True)

            ref = await self._request(client, "GET", f"{root}/git/ref/heads/{repo.branch}")
            parent_sha = ref.json()["object"]["sha"]
            parent = await self._request(client, "GET", f"{root}/git/commits/{parent_sha}")
            base_tree = parent.json()["tree"]["sha"]

            entries: list[dict[str, Any]] = []
            if request.files:
                for entry in request.files:
                    path = f"{folder}/{_file_name(entry['name'])}"
                    if entry.get("status") == FileChange.DELETED.value:
                        # A null sha removes the path from the tree
                        entries.append(
                            {"path": path, "mode": FILE_MODE, "type": "blob", "sha": None}
                        )
                        continue
                    sha = await self._create_blob(client, root, entry["code"])
                    entries.append({"path": path, "mode": FILE_MODE, "type": "blob", "sha": sha})
            else:
                sha = await self._create_blob(client, root, request.code or "")
                entries.append(
                    {"path": f"{folder}/code.js", "mode": FILE_MODE, "type": "blob", "sha": sha}
                )
            metadata_sha = await self._create_blob(
                client, root, json.dumps(build_metadata(request), indent=2)
            )
            entries.append(
                {
                    "path": f"{folder}/metadata.json",
                    "mode": FILE_MODE,
                    "type": "blob",
                    "sha": metadata_sha,
                }
            )

            tree = await self._request(
                client, "POST", f"{root}/git/trees", json={"base_tree": base_tree, "tree": entries}
            )
            commit = await self._request(
                client,
                "POST",
                f"{root}/git/commits",
                json={
                    "message": build_commit_message(request),
                    "tree": tree.json()["sha"],
                    "parents": [parent_sha],
                },
            )
            commit_sha = commit.json()["sha"]
            await self._request(
                client, "PATCH", f"{root}/git/refs/heads/{repo.branch}", json={"sha": commit_sha}
            )
            tagged = await self._request(
                client,
                "POST",
                f"{root}/git/refs",
                allow=(409, 422),
                json={"ref": f"refs/tags/{request.tag}", "sha": commit_sha},
            )
            if tagged.status_code >= 400:
                logger.warning(
                    "Version pushed but tag creation failed",
                    repo=repo.full_name,
                    tag=request.tag,
                    status_code=tagged.status_code,
                )

        logger.info("Version pushed", repo=repo.full_name, version=request.version, sha=commit_sha)
        return PushResult(sha=commit_sha)

    async def _create_blob(self, client: httpx.AsyncClient, root: str, content: str) -> str:
        response = await self._request(
            client,
            "POST",
            f"{root}/git/blobs",
            json={"content": base64.b64encode(content.encode()).decode(), "encoding": "base64"},
        )
        return response.json()["sha"]


def _repo_ref(data: dict[str, Any], branch: str | None = None) -> RepoRef:
    return RepoRef(
        owner=data["owner"]["login"],
        name=data["name"],
        branch=branch or data.get("default_branch") or "main",
        private=bool(data.get("private", True)),
        html_url=data.get("html_url"),
    )


def _error_text(response: httpx.Response) -> str:
    try:
        return str(response.json().get("message", response.text))
    except ValueError:
        return response.text
