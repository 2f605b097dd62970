"""Tests for timezone-aware cron evaluation."""

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest

from src.flowsmith.core.cron import (
    floor_minute,
    matches_minute,
    next_run,
    previous_run,
    validate_cron,
    validate_timezone,
)
from src.flowsmith.core.exceptions import InvalidCronExpression, ValidationError

pytestmark = [pytest.mark.unit]

STOCKHOLM = ZoneInfo("Europe/Stockholm")


class TestValidateCron:
    def test_normalises_whitespace(self):
        assert validate_cron("  0   9 * *  1 ") == "0 9 * * 1"

    def test_accepts_leading_seconds_field(self):
        assert validate_cron("30 0 9 * * 1") == "30 0 9 * * 1"

    @pytest.mark.parametrize("expression", ["", "* * *", "61 * * * *", "* * * * * * *", "bad"])
    def test_rejects_invalid(self, expression):
        with pytest.raises(InvalidCronExpression) as exc_info:
            validate_cron(expression)
        assert exc_info.value.status_code == 422

    def test_invalid_cron_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            validate_cron("not a cron")

    def test_unknown_timezone(self):
        with pytest.raises(ValidationError):
            validate_timezone("Mars/Olympus_Mons")
        assert validate_timezone("Europe/Stockholm") == "Europe/Stockholm"


class TestNextRun:
    def test_local_wall_time_across_dst(self):
        """Monday 09:00 in Stockholm stays 09:00 local after the clocks go forward."""
        after = datetime(2025, 3, 29, 12, 0, tzinfo=UTC)
        fire = next_run("0 9 * * 1", "Europe/Stockholm", after=after)
        assert fire == datetime(2025, 3, 31, 9, 0, tzinfo=STOCKHOLM)
        assert fire.utcoffset().total_seconds() == 2 * 3600

    def test_skips_nonexistent_wall_time(self):
        """02:30 does not exist on 2025-03-30 in Stockholm; the next day's 02:30 fires."""
        after = datetime(2025, 3, 29, 12, 0, tzinfo=UTC)
        fire = next_run("30 2 * * *", "Europe/Stockholm", after=after)
        assert fire.replace(tzinfo=None) == datetime(2025, 3, 31, 2, 30)

    def test_strictly_after(self):
        after = datetime(2025, 1, 1, 9, 0, tzinfo=UTC)
        assert next_run("0 9 * * *", "UTC", after=after) == datetime(2025, 1, 2, 9, 0, tzinfo=UTC)

    def test_naive_input_is_utc(self):
        fire = next_run("0 * * * *", "UTC", after=datetime(2025, 1, 1, 9, 15))
        assert fire == datetime(2025, 1, 1, 10, 0, tzinfo=UTC)

    def test_seconds_field(self):
        after = datetime(2025, 1, 1, 9, 0, 0, tzinfo=UTC)
        fire = next_run("30 0 9 * * *", "UTC", after=after)
        assert fire == datetime(2025, 1, 1, 9, 0, 30, tzinfo=UTC)

    def test_previous_run(self):
        before = datetime(2025, 1, 2, 8, 0, tzinfo=UTC)
        assert previous_run("0 9 * * *", "UTC", before=before) == datetime(
            2025, 1, 1, 9, 0, tzinfo=UTC
        )


class TestMatchesMinute:
    def test_matches_within_the_minute(self):
        now = datetime(2025, 1, 6, 9, 0, 42, tzinfo=UTC)
        assert matches_minute("0 9 * * 1", "UTC", now)
        assert not matches_minute("1 9 * * 1", "UTC", now)

    def test_evaluated_in_schedule_timezone(self):
        # 08:00 UTC is 09:00 in Stockholm in winter
        now = datetime(2025, 1, 6, 8, 0, tzinfo=UTC)
        assert matches_minute("0 9 * * 1", "Europe/Stockholm", now)
        assert not matches_minute("0 9 * * 1", "UTC", now)

    def test_floor_minute(self):
        value = datetime(2025, 1, 1, 9, 0, 59, 999, tzinfo=UTC)
        assert floor_minute(value) == datetime(2025, 1, 1, 9, 0, tzinfo=UTC)
