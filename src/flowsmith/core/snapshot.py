"""Pure helpers for code payload snapshots.

A payload is either a single code blob or an ordered list of file dicts
``{id, name, code, order}``. Snapshots stored on versions additionally carry a
per-file ``status`` relative to the previous version; deleted files stay in the
snapshot with empty code so every version is complete on its own.
"""

import hashlib
from collections.abc import Iterable, Sequence
from typing import Any

from src.flowsmith.core.exceptions import InvalidPayload, ValidationError
from src.flowsmith.models.enums import FileChange

GENERIC_MESSAGES = frozenset({"", "code updated", "updated workflow steps", "no changes detected"})


def is_empty_payload(code: str | None, files: Sequence[dict[str, Any]] | None) -> bool:
    return not (code and code.strip()) and not files


def require_payload(code: str | None, files: Sequence[dict[str, Any]] | None) -> None:
    """Reject empty payloads and payloads that carry both shapes."""
    if is_empty_payload(code, files):
        raise InvalidPayload("Either code or files must be provided")
    if code and files:
        raise ValidationError("Provide either code or files, not both")


def normalize_files(files: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Validate file entries and fill in missing ``order`` from position."""
    normalized: list[dict[str, Any]] = []
    seen: set[str] = set()
    for index, entry in enumerate(files):
        file_id = str(entry.get("id") or "").strip()
        name = str(entry.get("name") or "").strip()
        if not file_id or not name:
            raise ValidationError("Every file needs an id and a name", index=index)
        if file_id in seen:
            raise ValidationError(f"Duplicate file id: {file_id}", file_id=file_id)
        seen.add(file_id)
        order = entry.get("order")
        normalized.append(
            {
                "id": file_id,
                "name": name,
                "code": entry.get("code") or "",
                "order": index if order is None else int(order),
            }
        )
    return normalized


def normalize_dependencies(dependencies: Iterable[Any] | None) -> list[dict[str, Any]]:
    """Coerce ``["pkg"]`` and ``[{"name": "pkg"}]`` into ``[{"name", "version"}]``."""
    result: list[dict[str, Any]] = []
    for dep in dependencies or []:
        if isinstance(dep, str):
            name, version = dep.strip(), "latest"
        elif isinstance(dep, dict):
            name = str(dep.get("name") or "").strip()
            version = str(dep.get("version") or "latest")
        else:
            raise ValidationError(f"Unsupported dependency entry: {dep!r}")
        if not name:
            raise ValidationError("Dependency name is required")
        result.append({"name": name, "version": version})
    return result


def normalize_env_var_names(entries: Iterable[Any] | None) -> list[str]:
    """Keep names only. Dict entries such as ``{"name", "value"}`` lose their value."""
    names: list[str] = []
    for entry in entries or []:
        name = entry.get("name") if isinstance(entry, dict) else entry
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("Environment variable name is required")
        name = name.strip()
        if name not in names:
            names.append(name)
    return names


def live_files(files: Sequence[dict[str, Any]] | None) -> list[dict[str, Any]]:
    """Files of a snapshot that are not marked deleted, without status."""
    return [
        {k: v for k, v in f.items() if k != "status"}
        for f in files or []
        if f.get("status") != FileChange.DELETED.value
    ]


def live_file_ids(files: Sequence[dict[str, Any]] | None) -> frozenset[str]:
    return frozenset(f["id"] for f in live_files(files))


def content_hash(code: str | None, files: Sequence[dict[str, Any]] | None) -> str:
    """SHA-256 of the payload; multi-file content is ordered by file id."""
    if files:
        content = "|||".join(
            f"{f['id']}:{f['name']}:{f['code']}"
            for f in sorted(live_files(files), key=lambda f: f["id"])
        )
    else:
        content = code or ""
    return hashlib.sha256(content.encode()).hexdigest()


def build_snapshot(
    files: Sequence[dict[str, Any]],
    previous_files: Sequence[dict[str, Any]] | None,
) -> tuple[list[dict[str, Any]], int]:
    """Complete snapshot of ``files`` with change status against the previous version.

    Returns the snapshot and the number of changed (added/modified/deleted) files.
    """
    previous = {f["id"]: f for f in previous_files or []}
    current_ids = {f["id"] for f in files}
    snapshot: list[dict[str, Any]] = []
    changed = 0

    for entry in files:
        before = previous.get(entry["id"])
        if before is None or before.get("status") == FileChange.DELETED.value:
            status = FileChange.ADDED
        elif before["code"] != entry["code"] or before["name"] != entry["name"]:
            status = FileChange.MODIFIED
        else:
            status = FileChange.UNCHANGED
        if status is not FileChange.UNCHANGED:
            changed += 1
        snapshot.append({**entry, "status": status.value})

    for before in previous_files or []:
        if before["id"] in current_ids or before.get("status") == FileChange.DELETED.value:
            continue
        snapshot.append(
            {
                "id": before["id"],
                "name": before["name"],
                "code": "",
                "order": before.get("order"),
                "status": FileChange.DELETED.value,
            }
        )
        changed += 1

    return snapshot, changed


def summarize_changes(snapshot: Sequence[dict[str, Any]]) -> str:
    """Readable commit message for generic or missing messages."""
    groups: dict[str, list[str]] = {}
    for entry in snapshot:
        status = entry.get("status")
        if status and status != FileChange.UNCHANGED.value:
            groups.setdefault(status, []).append(entry["name"])
    if not groups:
        return "Code updated"
    parts = []
    for status in (FileChange.ADDED, FileChange.MODIFIED, FileChange.DELETED):
        names = groups.get(status.value)
        if names:
            noun = "file" if len(names) == 1 else "files"
            parts.append(f"{status.value.capitalize()} {len(names)} {noun}: {', '.join(names)}")
    return "; ".join(parts)


def is_generic_message(message: str | None) -> bool:
    return message is None or message.strip().lower() in GENERIC_MESSAGES
