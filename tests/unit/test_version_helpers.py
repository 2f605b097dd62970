"""Tests for version statistics labels and rollback env planning."""

from datetime import datetime, timedelta

import pytest

from src.flowsmith.services.version_store import (
    EnvRestoration,
    change_frequency,
    plan_env_restoration,
)

pytestmark = [pytest.mark.unit]

START = datetime(2025, 1, 1, 12, 0)


class TestChangeFrequency:
    def test_no_versions(self):
        assert change_frequency(0, None, None) == "No versions yet"

    def test_single(self):
        assert change_frequency(1, START, START) == "Single version"

    def test_very_active(self):
        assert change_frequency(12, START, START + timedelta(hours=3)) == (
            "Very active (10+ changes/day)"
        )

    def test_active(self):
        assert change_frequency(12, START, START + timedelta(days=2)) == "Active (5+ changes/day)"

    def test_recent(self):
        assert change_frequency(3, START, START + timedelta(days=2)) == "Recent changes"

    def test_spread_out(self):
        assert change_frequency(4, START, START + timedelta(days=30)) == "4 versions over 30 days"


class TestPlanEnvRestoration:
    def test_reintroduced_names_need_values(self):
        plan = plan_env_restoration(["API_TOKEN"], ["API_TOKEN", "LEGACY_KEY"])
        assert plan == [
            EnvRestoration(name="API_TOKEN", source="current"),
            EnvRestoration(name="LEGACY_KEY", source="blank"),
        ]

    def test_names_not_in_target_are_dropped(self):
        assert plan_env_restoration(["A", "B"], ["B"]) == [EnvRestoration("B", "current")]
