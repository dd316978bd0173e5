"""Flow selectors: a flow UID, an alias, or ``alias:version``."""

from __future__ import annotations

from typing import Iterable, List, Optional

from pydantic import BaseModel

from ..contracts import FlowDefinition
from ..errors import FlowNotFoundError


class SemanticVersion(BaseModel):
    """Semantic version with ``major.minor.patch`` components."""

    major: int
    minor: int = 0
    patch: int = 0

    @classmethod
    def parse(cls, value: str) -> "SemanticVersion":
        """Parse a dotted version string; missing components default to 0."""
        parts = value.strip().lstrip("v").split(".")
        if not 1 <= len(parts) <= 3:
            raise ValueError(f"Invalid semantic version: {value}")
        numbers = [int(p) for p in parts] + [0] * (3 - len(parts))
        return cls(major=numbers[0], minor=numbers[1], patch=numbers[2])

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __str__(self) -> str:  # pragma: no cover - simple formatting
        return f"{self.major}.{self.minor}.{self.patch}"


def split_selector(selector: str) -> tuple[str, Optional[str]]:
    """Split ``alias:version`` into its parts."""
    alias, _, version = selector.strip().partition(":")
    return alias, (version or None)


def find_best_version(
    constraint: Optional[str], versions: Iterable[Optional[str]]
) -> Optional[str]:
    """Pick the version best matching ``constraint``.

    Without a constraint (or with ``*``) the highest version wins. ``^X.Y``
    accepts any version with the same major component that is not lower;
    anything else must match exactly.
    """
    candidates: List[tuple[tuple[int, int, int], str]] = []
    for version in versions:
        if not version:
            continue
        try:
            candidates.append((SemanticVersion.parse(version).as_tuple(), version))
        except ValueError:
            if constraint == version:
                return version
    if not candidates:
        return None

    if constraint is None or constraint == "*":
        return max(candidates)[1]

    if constraint.startswith("^"):
        floor = SemanticVersion.parse(constraint[1:]).as_tuple()
        matching = [c for c in candidates if c[0][0] == floor[0] and c[0] >= floor]
        return max(matching)[1] if matching else None

    wanted = SemanticVersion.parse(constraint).as_tuple()
    for parsed, version in candidates:
        if parsed == wanted:
            return version
    return None


def select_flow(selector: str, flows: Iterable[FlowDefinition]) -> FlowDefinition:
    """Return the flow matching ``selector`` from ``flows``.

    Raises:
        FlowNotFoundError: If no flow, or no matching version, exists.
    """
    flows = list(flows)
    for flow in flows:
        if flow.uid == selector:
            return flow

    alias, constraint = split_selector(selector)
    matches = [f for f in flows if f.alias == alias]
    if not matches:
        raise FlowNotFoundError(f'Flow "{alias}" not found!')
    if len(matches) == 1 and constraint is None:
        return matches[0]

    best = find_best_version(constraint, [f.version for f in matches])
    if best is None:
        raise FlowNotFoundError(
            f'Version "{constraint or "*"}" not found for flow "{alias}"!'
        )
    return next(f for f in matches if f.version == best)
