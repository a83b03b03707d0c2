"""Composer version constraints as sets of version intervals.

A constraint such as ``^4.9 || ~5.3.0`` is parsed into an ``IntervalSet``:
a sorted tuple of disjoint ``Interval`` objects. Sets can be combined with
union and intersection, which is what merging the requirements of many
releases into one compact expression needs.

Versions follow Composer's normalization: four numeric parts plus a
stability (dev < alpha < beta < RC < stable < patch). Open bounds created
by ``>=``, ``<``, ``^``, ``~`` and wildcards use the ``dev`` stability so
that ``<5.0`` excludes ``5.0.0-RC1``, exactly as Composer does.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Iterator, NamedTuple, Optional

from package_indexer.exceptions import ConstraintError

DEV, ALPHA, BETA, RC, STABLE, PATCH = range(6)

STABILITY_ALIASES = {
    "dev": DEV,
    "alpha": ALPHA,
    "a": ALPHA,
    "beta": BETA,
    "b": BETA,
    "rc": RC,
    "stable": STABLE,
    "patch": PATCH,
    "pl": PATCH,
    "p": PATCH,
}
STABILITY_NAMES = {DEV: "dev", ALPHA: "alpha", BETA: "beta", RC: "RC", PATCH: "patch"}

VERSION_RE = re.compile(
    r"^v?(?P<numbers>\d+(?:\.\d+){0,3})"
    r"(?:[._-]?(?P<modifier>stable|beta|b|rc|alpha|a|patch|pl|p)"
    r"(?P<modifier_number>(?:[.-]?\d+)*))?"
    r"(?P<dev>[.-]?dev)?$",
    re.IGNORECASE,
)
# Branch aliases such as "4.13.x-dev"
BRANCH_RE = re.compile(r"^v?(?P<numbers>\d+(?:\.\d+){0,3})(?:\.[xX*])+[.-]?dev$")
WILDCARD_RE = re.compile(r"^v?(?P<numbers>\d+(?:\.\d+){0,2})(?:\.[xX*])+$")
OPERATOR_RE = re.compile(r"^(?P<op>\^|~(?!=)|>=|<=|==|!=|<>|>|<|=)?(?P<version>.+)$")

OR_SPLIT = re.compile(r"\s*\|\|?\s*")
OPERATOR_SPACE = re.compile(r"(?<=[<>=!~^])\s+")
HYPHEN_RANGE = re.compile(r"^(\S+)\s+-\s+(\S+)$")
AND_SPLIT = re.compile(r"\s*,\s*|\s+")
FLAG_RE = re.compile(r"@(?:stable|rc|beta|alpha|dev)$", re.IGNORECASE)

BRANCH_NUMBER = 9999999


@dataclass(frozen=True, order=True)
class Version:
    """A normalized, totally ordered Composer version."""

    release: tuple
    stability: int = STABLE
    stability_number: tuple = ()

    @classmethod
    def of(cls, *numbers: int, stability: int = STABLE) -> "Version":
        return cls(_pad(numbers), stability)

    @property
    def major(self) -> int:
        return self.release[0]

    @property
    def minor(self) -> int:
        return self.release[1]

    def __str__(self) -> str:
        numbers = list(self.release)
        while len(numbers) > 3 and numbers[-1] == 0:
            numbers.pop()
        text = ".".join(str(n) for n in numbers)
        if self.stability != STABLE:
            text += "-" + STABILITY_NAMES[self.stability]
            text += ".".join(str(n) for n in self.stability_number)
        return text


class _Parts(NamedTuple):
    numbers: list
    stability: int
    stability_number: tuple
    explicit: bool


def _pad(numbers, fill: int = 0) -> tuple:
    numbers = list(numbers)[:4]
    return tuple(numbers + [fill] * (4 - len(numbers)))


def _split(text: str) -> _Parts:
    text = text.strip().split("+", 1)[0]
    match = VERSION_RE.match(text)
    if not match:
        raise ConstraintError(f"Invalid version string {text!r}")

    numbers = [int(n) for n in match.group("numbers").split(".")]
    stability = STABLE
    stability_number: tuple = ()
    explicit = False

    if match.group("modifier"):
        stability = STABILITY_ALIASES[match.group("modifier").lower()]
        stability_number = tuple(
            int(n) for n in re.findall(r"\d+", match.group("modifier_number") or "")
        )
        explicit = True
    if match.group("dev"):
        stability = DEV
        explicit = True

    return _Parts(numbers, stability, stability_number, explicit)


def parse_version(text: str) -> Version:
    """Parse a single version string such as ``v1.2.3-beta2`` or ``4.13.x-dev``."""
    branch = BRANCH_RE.match(text.strip())
    if branch:
        numbers = [int(n) for n in branch.group("numbers").split(".")]
        return Version(_pad(numbers, BRANCH_NUMBER), DEV)

    parts = _split(text)
    return Version(_pad(parts.numbers), parts.stability, parts.stability_number)


def is_dev_version(version: str) -> bool:
    """Dev-channel versions are branch names (``dev-main``) or ``-dev`` suffixed."""
    return version.startswith("dev-") or version.endswith("-dev")


def version_sort_key(version: str) -> tuple:
    """Sort key placing parsable versions in Composer order, branch names last."""
    try:
        return (0, parse_version(version), version)
    except ConstraintError:
        return (1, version)


@dataclass(frozen=True)
class Interval:
    """A version interval; ``None`` bounds are unbounded."""

    low: Optional[Version] = None
    low_inclusive: bool = True
    high: Optional[Version] = None
    high_inclusive: bool = False

    def is_empty(self) -> bool:
        if self.low is None or self.high is None:
            return False
        if self.low < self.high:
            return False
        if self.low == self.high:
            return not (self.low_inclusive and self.high_inclusive)
        return True

    def contains(self, version: Version) -> bool:
        if self.low is not None:
            if version < self.low or (version == self.low and not self.low_inclusive):
                return False
        if self.high is not None:
            if version > self.high or (version == self.high and not self.high_inclusive):
                return False
        return True

    def intersection(self, other: "Interval") -> "Interval":
        return Interval(*_max_low(self, other), *_min_high(self, other))


def _max_low(a: Interval, b: Interval) -> tuple:
    if a.low is None:
        return b.low, b.low_inclusive
    if b.low is None or a.low > b.low:
        return a.low, a.low_inclusive
    if b.low > a.low:
        return b.low, b.low_inclusive
    return a.low, a.low_inclusive and b.low_inclusive


def _min_high(a: Interval, b: Interval) -> tuple:
    if a.high is None:
        return b.high, b.high_inclusive
    if b.high is None or a.high < b.high:
        return a.high, a.high_inclusive
    if b.high < a.high:
        return b.high, b.high_inclusive
    return a.high, a.high_inclusive and b.high_inclusive


def _max_high(a: Interval, b: Interval) -> tuple:
    if a.high is None or b.high is None:
        return None, False
    if a.high > b.high:
        return a.high, a.high_inclusive
    if b.high > a.high:
        return b.high, b.high_inclusive
    return a.high, a.high_inclusive or b.high_inclusive


def _low_key(interval: Interval) -> tuple:
    if interval.low is None:
        return (0,)
    return (1, interval.low, 0 if interval.low_inclusive else 1)


def _touches(a: Interval, b: Interval) -> bool:
    """Whether b (starting at or after a) overlaps or is adjacent to a."""
    if a.high is None or b.low is None:
        return True
    if a.high > b.low:
        return True
    if a.high == b.low:
        return a.high_inclusive or b.low_inclusive
    return False


def _merge(intervals: Iterable[Interval]) -> tuple:
    merged: list[Interval] = []
    for interval in sorted((i for i in intervals if not i.is_empty()), key=_low_key):
        if merged and _touches(merged[-1], interval):
            last = merged[-1]
            merged[-1] = Interval(last.low, last.low_inclusive, *_max_high(last, interval))
        else:
            merged.append(interval)
    return tuple(merged)


class IntervalSet:
    """A union of disjoint intervals, kept sorted and merged."""

    def __init__(self, intervals: Iterable[Interval] = ()):
        self.intervals = _merge(intervals)

    @classmethod
    def any(cls) -> "IntervalSet":
        return cls([Interval()])

    def __iter__(self) -> Iterator[Interval]:
        return iter(self.intervals)

    def __eq__(self, other) -> bool:
        return isinstance(other, IntervalSet) and self.intervals == other.intervals

    def __hash__(self) -> int:
        return hash(self.intervals)

    def __repr__(self) -> str:
        return f"IntervalSet({format_constraint(self)!r})"

    def is_empty(self) -> bool:
        return not self.intervals

    def union(self, other: "IntervalSet") -> "IntervalSet":
        return IntervalSet(self.intervals + other.intervals)

    def intersection(self, other: "IntervalSet") -> "IntervalSet":
        return IntervalSet(a.intersection(b) for a in self for b in other)

    def contains(self, version: Version) -> bool:
        return any(interval.contains(version) for interval in self)

    def intersects(self, other: "IntervalSet") -> bool:
        return not self.intersection(other).is_empty()


def _bump(numbers: list, index: int) -> tuple:
    numbers = list(_pad(numbers))
    return tuple(numbers[:index] + [numbers[index] + 1] + [0] * (3 - index))


def _lower(parts: _Parts) -> Version:
    stability = parts.stability if parts.explicit else DEV
    return Version(_pad(parts.numbers), stability, parts.stability_number)


def _caret(parts: _Parts) -> IntervalSet:
    major, minor, _, _ = _pad(parts.numbers)
    if major > 0 or len(parts.numbers) == 1:
        index = 0
    elif minor > 0 or len(parts.numbers) == 2:
        index = 1
    else:
        index = 2
    high = Version(_bump(parts.numbers, index), DEV)
    return IntervalSet([Interval(_lower(parts), True, high, False)])


def _tilde(parts: _Parts) -> IntervalSet:
    index = max(len(parts.numbers) - 2, 0)
    high = Version(_bump(parts.numbers, index), DEV)
    return IntervalSet([Interval(_lower(parts), True, high, False)])


def _wildcard(numbers: list) -> IntervalSet:
    low = Version(_pad(numbers), DEV)
    high = Version(_bump(numbers, len(numbers) - 1), DEV)
    return IntervalSet([Interval(low, True, high, False)])


def _hyphen_range(start: str, end: str) -> IntervalSet:
    low = _lower(_split(start))
    upper = _split(end)
    if len(upper.numbers) >= 3:
        high = Version(_pad(upper.numbers), upper.stability, upper.stability_number)
        return IntervalSet([Interval(low, True, high, True)])

    high = Version(_bump(upper.numbers, len(upper.numbers) - 1), DEV)
    return IntervalSet([Interval(low, True, high, False)])


def _parse_atom(atom: str) -> IntervalSet:
    atom = FLAG_RE.sub("", atom.split("#", 1)[0])
    if atom in ("", "*", "x", "X"):
        return IntervalSet.any()
    if atom.lower().startswith("dev-"):
        raise ConstraintError(f"Branch constraint {atom!r} has no version range")

    match = OPERATOR_RE.match(atom)
    op, text = match.group("op"), match.group("version")

    if op in (None, "=", "=="):
        wildcard = WILDCARD_RE.match(text)
        if wildcard:
            return _wildcard([int(n) for n in wildcard.group("numbers").split(".")])

    parts = _split(text)
    if op == "^":
        return _caret(parts)
    if op == "~":
        return _tilde(parts)

    exact = Version(_pad(parts.numbers), parts.stability, parts.stability_number)
    if op == ">=":
        return IntervalSet([Interval(low=_lower(parts))])
    if op == ">":
        return IntervalSet([Interval(low=exact, low_inclusive=False)])
    if op == "<=":
        return IntervalSet([Interval(high=exact, high_inclusive=True)])
    if op == "<":
        return IntervalSet([Interval(high=_lower(parts))])
    if op in ("!=", "<>"):
        return IntervalSet([Interval(high=exact), Interval(low=exact, low_inclusive=False)])
    return IntervalSet([Interval(exact, True, exact, True)])


def _parse_conjunction(text: str) -> IntervalSet:
    text = OPERATOR_SPACE.sub("", text)
    hyphen = HYPHEN_RANGE.match(text)
    if hyphen:
        return _hyphen_range(*hyphen.groups())

    result = IntervalSet.any()
    for atom in AND_SPLIT.split(text):
        if atom:
            result = result.intersection(_parse_atom(atom))
    return result


def parse_constraint(text: str) -> IntervalSet:
    """Parse a Composer constraint string into an IntervalSet.

    Raises:
        ConstraintError: If the constraint is empty, a branch reference, or malformed.
    """
    if not isinstance(text, str) or not text.strip():
        raise ConstraintError(f"Empty constraint {text!r}")

    result = IntervalSet()
    for alternative in OR_SPLIT.split(text.strip()):
        if not alternative:
            raise ConstraintError(f"Empty alternative in constraint {text!r}")
        result = result.union(_parse_conjunction(alternative))
    return result


def union_all(constraints: Iterable[IntervalSet]) -> IntervalSet:
    result = IntervalSet()
    for constraint in constraints:
        result = result.union(constraint)
    return result


def minor_interval(major: int, minor: int) -> IntervalSet:
    """All versions of one ``major.minor`` line, pre-releases included."""
    return IntervalSet(
        [Interval(Version.of(major, minor, stability=DEV), True, Version.of(major, minor + 1, stability=DEV))]
    )


def _minor_floor(version: Version) -> Version:
    return Version.of(version.major, version.minor, stability=DEV)


def _minor_ceil(version: Version, inclusive: bool) -> Version:
    floor = _minor_floor(version)
    if not inclusive and version == floor:
        return floor
    return Version.of(version.major, version.minor + 1, stability=DEV)


def normalize_to_minor(constraint: IntervalSet) -> IntervalSet:
    """Widen every interval to whole minor versions.

    A minor line partially matched by the constraint is fully included, so
    ``>=4.9.5 <=4.13.2`` becomes ``>=4.9 <4.14``.
    """
    return IntervalSet(
        Interval(
            None if interval.low is None else _minor_floor(interval.low),
            True,
            None if interval.high is None else _minor_ceil(interval.high, interval.high_inclusive),
            False,
        )
        for interval in constraint
    )


def format_constraint(constraint: IntervalSet) -> str:
    """Render an IntervalSet using full versions, e.g. ``>=4.9.0-dev <5.0.0-dev``."""
    alternatives = []
    for interval in constraint:
        bounds = []
        if interval.low is not None:
            bounds.append((">=" if interval.low_inclusive else ">") + str(interval.low))
        if interval.high is not None:
            bounds.append(("<=" if interval.high_inclusive else "<") + str(interval.high))
        alternatives.append(" ".join(bounds) or "*")
    return " || ".join(alternatives)


def format_minor_constraint(constraint: IntervalSet) -> Optional[str]:
    """Render a constraint at minor granularity, e.g. ``>=4.9 <5.0 || >=5.3``.

    Returns None for an empty set.
    """
    alternatives = []
    for interval in normalize_to_minor(constraint):
        bounds = []
        if interval.low is not None:
            bounds.append(f">={interval.low.major}.{interval.low.minor}")
        if interval.high is not None:
            bounds.append(f"<{interval.high.major}.{interval.high.minor}")
        alternatives.append(" ".join(bounds) or "*")
    return " || ".join(alternatives) or None
