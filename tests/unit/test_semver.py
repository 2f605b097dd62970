"""Tests for version number arithmetic."""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from src.flowsmith.core.semver import SemVer, next_version
from src.flowsmith.models import VersionBump

pytestmark = [pytest.mark.unit]


class TestSemVer:
    def test_parse_accepts_v_prefix(self):
        assert SemVer.parse("v1.2.3") == SemVer(1, 2, 3)
        assert SemVer.parse(" 0.10.0 ") == SemVer(0, 10, 0)

    @pytest.mark.parametrize("value", ["1.2", "1.2.3.4", "a.b.c", "", "1.2.-3"])
    def test_parse_rejects_malformed(self, value):
        with pytest.raises(ValueError):
            SemVer.parse(value)

    def test_bump_resets_lower_parts(self):
        version = SemVer(1, 4, 7)
        assert version.bump(VersionBump.PATCH) == SemVer(1, 4, 8)
        assert version.bump(VersionBump.MINOR) == SemVer(1, 5, 0)
        assert version.bump(VersionBump.MAJOR) == SemVer(2, 0, 0)

    def test_ordering_is_numeric(self):
        """0.10.0 sorts after 0.9.9, unlike a string comparison."""
        assert SemVer.parse("0.10.0") > SemVer.parse("0.9.9")
        assert str(SemVer(0, 10, 0)) == "0.10.0"

    def test_first_version(self):
        assert str(next_version(None)) == "0.0.1"
        assert str(next_version(None, VersionBump.MINOR)) == "0.1.0"


class TestVersionSequence:
    @given(st.lists(st.sampled_from(list(VersionBump)), min_size=1, max_size=40))
    def test_versions_strictly_increase(self, bumps):
        """Any sequence of bumps yields strictly increasing, distinct versions."""
        seen: list[SemVer] = []
        latest = None
        for kind in bumps:
            latest = next_version(latest, kind)
            seen.append(latest)
        assert seen == sorted(seen)
        assert len(set(seen)) == len(seen)

    @given(st.integers(0, 500), st.integers(0, 500), st.integers(0, 500))
    def test_str_round_trips_through_parse(self, major, minor, patch):
        version = SemVer(major, minor, patch)
        assert SemVer.parse(str(version)) == version
