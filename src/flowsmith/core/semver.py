"""MAJOR.MINOR.PATCH arithmetic for automation versions."""

import re
from dataclasses import dataclass
from typing import Self

from src.flowsmith.models.enums import VersionBump

_SEMVER_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)$")


@dataclass(frozen=True, order=True)
class SemVer:
    major: int = 0
    minor: int = 0
    patch: int = 0

    @classmethod
    def parse(cls, value: str) -> Self:
        match = _SEMVER_RE.match(value.strip())
        if match is None:
            raise ValueError(f"Invalid semantic version: {value!r}")
        return cls(*(int(part) for part in match.groups()))

    def bump(self, kind: VersionBump = VersionBump.PATCH) -> "SemVer":
        if kind is VersionBump.MAJOR:
            return SemVer(self.major + 1, 0, 0)
        if kind is VersionBump.MINOR:
            return SemVer(self.major, self.minor + 1, 0)
        return SemVer(self.major, self.minor, self.patch + 1)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


INITIAL = SemVer(0, 0, 0)


def next_version(latest: SemVer | None, kind: VersionBump = VersionBump.PATCH) -> SemVer:
    """Next version after ``latest``; the first version bumps from 0.0.0."""
    return (latest or INITIAL).bump(kind)
