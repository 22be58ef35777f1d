"""Pydantic models describing registry entities."""

from __future__ import annotations

import re
from typing import Any, Iterable, List, Optional, Tuple

from pydantic import BaseModel

_SEMVER_RE = re.compile(
    r"^v?(?P<major>\d+)(?:\.(?P<minor>\d+))?(?:\.(?P<patch>\d+))?"
    r"(?:-(?P<prerelease>[0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)
_NATURAL_RE = re.compile(r"(\d+)")


class SemanticVersion(BaseModel):
    """Semantic version with ``major.minor.patch`` components."""

    major: int
    minor: int
    patch: int
    prerelease: Optional[str] = None

    @classmethod
    def parse(cls, value: str) -> "SemanticVersion":
        """Parse a dotted semantic version string."""
        match = _SEMVER_RE.match(value.strip())
        if not match or match.group("patch") is None:
            raise ValueError("Semantic version must have three components")
        return cls._from_match(match)

    @classmethod
    def coerce(cls, value: str) -> "SemanticVersion":
        """Parse leniently: missing minor/patch components default to zero."""
        match = _SEMVER_RE.match(value.strip())
        if not match:
            raise ValueError(f"Not a semantic version: {value!r}")
        return cls._from_match(match)

    @classmethod
    def _from_match(cls, match: "re.Match[str]") -> "SemanticVersion":
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor") or 0),
            patch=int(match.group("patch") or 0),
            prerelease=match.group("prerelease"),
        )

    def sort_key(self) -> Tuple[Any, ...]:
        # a release sorts after all of its prereleases
        if self.prerelease is None:
            return (self.major, self.minor, self.patch, 1, ())
        identifiers = tuple(
            (0, int(part), "") if part.isdigit() else (1, 0, part)
            for part in self.prerelease.split(".")
        )
        return (self.major, self.minor, self.patch, 0, identifiers)

    def __lt__(self, other: "SemanticVersion") -> bool:
        return self.sort_key() < other.sort_key()

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        base = f"{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{self.prerelease}" if self.prerelease else base


def _natural_key(value: str) -> Tuple[Any, ...]:
    return tuple(
        (0, int(chunk), "") if chunk.isdigit() else (1, 0, chunk)
        for chunk in _NATURAL_RE.split(value)
        if chunk
    )


def version_key(version: str) -> Tuple[Any, ...]:
    """Ordering key for workflow versions.

    Semantic versions compare semantically and sort above anything that is
    not one; other strings compare with embedded numbers as integers.
    """
    try:
        return (1, SemanticVersion.coerce(version).sort_key(), ())
    except ValueError:
        return (0, (), _natural_key(version))


def sort_versions(versions: Iterable[str]) -> List[str]:
    """Return ``versions`` sorted from lowest to highest."""
    return sorted(versions, key=version_key)


class WorkflowSummary(BaseModel):
    """Listing entry for a registered workflow version."""

    name: str
    version: str
    step_count: int
    description: Optional[str] = None
