"""Semantic version helpers.

Extension versions follow semver (``1.2.3`` or ``1.2.3-pre.1``). The release
core is compared with ``packaging``; a pre-release sorts below its release.
"""

import re
from functools import total_ordering

from packaging.version import InvalidVersion, Version

SEMVER_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$")

# Leading range operators of an engine constraint such as "^1.80.0"
_RANGE_PREFIX_RE = re.compile(r"^\s*(?:\^|~|>=|>|=|v)*\s*")


@total_ordering
class SemVer:
    """Comparable semver value."""

    __slots__ = ("core", "prerelease", "text")

    def __init__(self, core: Version, prerelease: str | None, text: str):
        self.core = core
        self.prerelease = prerelease
        self.text = text

    def _key(self) -> tuple:
        if self.prerelease is None:
            return (self.core, 1, ())
        parts = tuple(
            (0, int(p), "") if p.isdigit() else (1, 0, p)
            for p in self.prerelease.split(".")
        )
        return (self.core, 0, parts)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SemVer):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other: "SemVer") -> bool:
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __repr__(self) -> str:
        return f"SemVer({self.text!r})"


def parse_semver(value: str | None) -> SemVer | None:
    """Parse a semver string, returning None when it is not valid."""
    if not value:
        return None
    match = SEMVER_RE.match(value.strip())
    if not match:
        return None
    major, minor, patch, prerelease = match.groups()
    try:
        core = Version(f"{int(major)}.{int(minor)}.{int(patch)}")
    except InvalidVersion:
        return None
    return SemVer(core, prerelease, value.strip())


def is_valid(value: str | None) -> bool:
    return parse_semver(value) is not None


def compare(v1: str, v2: str) -> int:
    """Compare two version strings.

    Invalid versions sort below every valid one.

    Returns:
        -1 if v1 < v2, 0 if equal, 1 if v1 > v2.
    """
    p1 = parse_semver(v1)
    p2 = parse_semver(v2)
    if p1 is None and p2 is None:
        return 0
    if p1 is None:
        return -1
    if p2 is None:
        return 1
    if p1 < p2:
        return -1
    if p1 > p2:
        return 1
    return 0


def gt(v1: str, v2: str) -> bool:
    return compare(v1, v2) > 0


def eq(v1: str, v2: str) -> bool:
    return compare(v1, v2) == 0


def min_version(constraint: str | None) -> SemVer | None:
    """Lowest version satisfying an engine constraint like ``^1.80.0``.

    Wildcard components (``x``, ``*``) count as zero. Returns None for
    constraints that cannot be read.
    """
    if not constraint:
        return None
    if constraint.strip() in ("*", "x"):
        return parse_semver("0.0.0")
    value = _RANGE_PREFIX_RE.sub("", constraint.strip()).split(" ")[0]
    parts = value.split("-", 1)
    numbers = parts[0].split(".")
    numbers = [("0" if n in ("x", "X", "*", "") else n) for n in numbers]
    while len(numbers) < 3:
        numbers.append("0")
    normalized = ".".join(numbers[:3])
    if len(parts) > 1:
        normalized = f"{normalized}-{parts[1]}"
    return parse_semver(normalized)


def satisfies_minimum(version: str, constraint: str | None) -> bool:
    """Check that ``version`` is at least the minimum of ``constraint``.

    Unreadable constraints or host versions never block a candidate.
    """
    minimum = min_version(constraint)
    if minimum is None:
        return True
    current = parse_semver(version)
    if current is None:
        return True
    # Insider builds ("1.90.0-insider") satisfy their own release line
    return SemVer(current.core, None, version) >= minimum
