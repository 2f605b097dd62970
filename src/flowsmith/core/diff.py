"""Structured line-level diff between two code snapshots."""

import difflib
from dataclasses import dataclass, field
from typing import Any

from src.flowsmith.core.snapshot import live_files
from src.flowsmith.models.enums import FileChange

SINGLE_FILE_ID = "code"
SINGLE_FILE_NAME = "code.js"


@dataclass(frozen=True)
class DiffLine:
    op: str  # " " unchanged, "+" added, "-" removed
    text: str
    old_lineno: int | None = None
    new_lineno: int | None = None


@dataclass(frozen=True)
class FileDiff:
    file_id: str
    name: str
    change: FileChange
    lines: list[DiffLine] = field(default_factory=list)

    @property
    def additions(self) -> int:
        return sum(1 for line in self.lines if line.op == "+")

    @property
    def deletions(self) -> int:
        return sum(1 for line in self.lines if line.op == "-")


def _as_files(code: str | None, files: list[dict[str, Any]] | None) -> dict[str, dict[str, Any]]:
    if files is not None:
        return {f["id"]: f for f in live_files(files)}
    if code is None:
        return {}
    return {SINGLE_FILE_ID: {"id": SINGLE_FILE_ID, "name": SINGLE_FILE_NAME, "code": code}}


def diff_lines(old: str, new: str) -> list[DiffLine]:
    """Full (context-complete) line diff of two texts."""
    old_lines = old.splitlines()
    new_lines = new.splitlines()
    matcher = difflib.SequenceMatcher(a=old_lines, b=new_lines, autojunk=False)
    result: list[DiffLine] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            for i, j in zip(range(i1, i2), range(j1, j2), strict=True):
                result.append(DiffLine(" ", old_lines[i], i + 1, j + 1))
            continue
        for i in range(i1, i2):
            result.append(DiffLine("-", old_lines[i], old_lineno=i + 1))
        for j in range(j1, j2):
            result.append(DiffLine("+", new_lines[j], new_lineno=j + 1))
    return result


def diff_snapshots(
    old_code: str | None,
    old_files: list[dict[str, Any]] | None,
    new_code: str | None,
    new_files: list[dict[str, Any]] | None,
) -> list[FileDiff]:
    """Per-file diff from the old snapshot to the new one.

    Files are matched by id; a single-file payload is treated as one file so a
    switch between shapes shows as delete plus add.
    """
    old = _as_files(old_code, old_files)
    new = _as_files(new_code, new_files)
    order = list(old) + [file_id for file_id in new if file_id not in old]

    diffs: list[FileDiff] = []
    for file_id in order:
        before, after = old.get(file_id), new.get(file_id)
        if before is None and after is not None:
            diffs.append(
                FileDiff(file_id, after["name"], FileChange.ADDED, diff_lines("", after["code"]))
            )
        elif after is None and before is not None:
            diffs.append(
                FileDiff(
                    file_id, before["name"], FileChange.DELETED, diff_lines(before["code"], "")
                )
            )
        elif before is not None and after is not None:
            changed = before["code"] != after["code"] or before["name"] != after["name"]
            diffs.append(
                FileDiff(
                    file_id,
                    after["name"],
                    FileChange.MODIFIED if changed else FileChange.UNCHANGED,
                    diff_lines(before["code"], after["code"]),
                )
            )
    return diffs
