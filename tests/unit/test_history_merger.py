"""Tests for client-side history page accumulation."""

import pytest

from src.flowsmith.services.ledger_service import HistoryPageMerger
from tests.factories import ExecutionRecordFactory, generate_uuid

pytestmark = [pytest.mark.unit]


def _page(count: int):
    automation_id = generate_uuid()
    return [ExecutionRecordFactory.build(automation_id=automation_id) for _ in range(count)]


class TestHistoryPageMerger:
    def test_full_pages_keep_paging(self):
        merger = HistoryPageMerger(limit=3)
        assert merger.merge(_page(3)) == (3, False)
        assert merger.offset == 3
        assert not merger.exhausted

    def test_short_page_exhausts_once(self):
        merger = HistoryPageMerger(limit=3)
        merger.merge(_page(3))
        assert merger.merge(_page(1)) == (1, True)
        assert merger.exhausted
        # Later pages are ignored and the transition is not reported again
        assert merger.merge(_page(3)) == (0, False)
        assert merger.offset == 4

    def test_empty_page_exhausts(self):
        merger = HistoryPageMerger(limit=2)
        assert merger.merge([]) == (0, True)

    def test_duplicates_are_dropped(self):
        merger = HistoryPageMerger(limit=2)
        page = _page(2)
        merger.merge(page)
        added, exhausted = merger.merge(page)
        assert added == 0
        assert exhausted
        assert [r.id for r in merger.items] == [r.id for r in page]

    def test_overlapping_page_adds_only_new(self):
        merger = HistoryPageMerger(limit=2)
        first = _page(2)
        merger.merge(first)
        extra = _page(1)
        assert merger.merge([first[1], extra[0]]) == (1, False)
        assert merger.offset == 3
