"""Tests for per-file version diffs."""

import pytest

from src.flowsmith.core.diff import SINGLE_FILE_ID, SINGLE_FILE_NAME, diff_lines, diff_snapshots
from src.flowsmith.models import FileChange

pytestmark = [pytest.mark.unit]


class TestDiffLines:
    def test_line_numbers(self):
        lines = diff_lines("a\nb\nc", "a\nB\nc\nd")
        assert [(line.op, line.text) for line in lines] == [
            (" ", "a"),
            ("-", "b"),
            ("+", "B"),
            (" ", "c"),
            ("+", "d"),
        ]
        assert lines[0].old_lineno == 1 and lines[0].new_lineno == 1
        assert lines[1].old_lineno == 2 and lines[1].new_lineno is None
        assert lines[4].new_lineno == 4 and lines[4].old_lineno is None

    def test_identical_texts(self):
        assert all(line.op == " " for line in diff_lines("x\ny", "x\ny"))


class TestDiffSnapshots:
    def test_single_file(self):
        (diff,) = diff_snapshots("one\ntwo", None, "one\nthree", None)
        assert diff.file_id == SINGLE_FILE_ID
        assert diff.name == SINGLE_FILE_NAME
        assert diff.change is FileChange.MODIFIED
        assert (diff.additions, diff.deletions) == (1, 1)

    def test_files_matched_by_id(self):
        old = [
            {"id": "a", "name": "main.js", "code": "run()"},
            {"id": "b", "name": "util.js", "code": "x"},
        ]
        new = [
            {"id": "a", "name": "main.js", "code": "run()"},
            {"id": "c", "name": "new.js", "code": "y\nz"},
        ]
        diffs = diff_snapshots(None, old, None, new)
        assert [(d.file_id, d.change) for d in diffs] == [
            ("a", FileChange.UNCHANGED),
            ("b", FileChange.DELETED),
            ("c", FileChange.ADDED),
        ]
        assert diffs[2].additions == 2
        assert diffs[1].deletions == 1

    def test_deleted_entries_in_snapshot_are_skipped(self):
        old = [{"id": "a", "name": "a.js", "code": "1", "status": "deleted"}]
        new = [{"id": "a", "name": "a.js", "code": "1"}]
        (diff,) = diff_snapshots(None, old, None, new)
        assert diff.change is FileChange.ADDED

    def test_shape_switch_is_delete_plus_add(self):
        diffs = diff_snapshots("x", None, None, [{"id": "a", "name": "a.js", "code": "x"}])
        assert [d.change for d in diffs] == [FileChange.DELETED, FileChange.ADDED]
