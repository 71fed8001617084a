"""Semantic versions and version-range expressions.

Versions follow SemVer 2.0 precedence. Ranges are an OR of AND-groups::

    >=1.0.0, <1.3.0 || >=2.0.0, <2.1.4

Clauses use ``=``, ``<``, ``<=``, ``>``, ``>=`` and additionally the Cargo
style ``^`` and ``~`` operators and the ``*`` wildcard, which are expanded
into plain comparators while parsing. A bare version means ``=``.
"""

import re
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from functools import total_ordering
from typing import Iterable, Iterator, List, Optional, Tuple, Union

from .errors import MalformedRange, MalformedVersion

Identifier = Union[int, str]

_CORE = r"(0|[1-9]\d*)"
_SEMVER = re.compile(
    rf"^{_CORE}\.{_CORE}\.{_CORE}(?:-([0-9A-Za-z.-]+))?(?:\+([0-9A-Za-z.-]+))?$"
)
_PARTIAL = re.compile(
    rf"^{_CORE}(?:\.{_CORE}(?:\.{_CORE})?)?(?:-([0-9A-Za-z.-]+))?(?:\+([0-9A-Za-z.-]+))?$"
)
_IDENTIFIER = re.compile(r"^[0-9A-Za-z-]+$")
_TOKEN = re.compile(r"\s*(?:(\|\|)|(,)|([<>=!~^]+)|(\*)|([0-9A-Za-z.+-]+)|(\S))")

_OPERATORS = {"=", "==", "<", "<=", ">", ">=", "^", "~"}


class Ordering(IntEnum):
    """Result of comparing two versions."""

    LESS = -1
    EQUAL = 0
    GREATER = 1


@total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """A semantic version. Build metadata never affects ordering or equality."""

    major: int
    minor: int
    patch: int
    pre: Tuple[Identifier, ...] = ()
    build: Tuple[str, ...] = ()

    @property
    def is_prerelease(self) -> bool:
        return bool(self.pre)

    @property
    def _key(self) -> tuple:
        if not self.pre:
            release: tuple = (1,)
        else:
            release = (0, tuple(
                (0, ident, "") if isinstance(ident, int) else (1, 0, ident)
                for ident in self.pre
            ))
        return (self.major, self.minor, self.patch, release)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key == other._key

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key < other._key

    def __hash__(self) -> int:
        return hash(self._key)

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            text += "-" + ".".join(str(ident) for ident in self.pre)
        if self.build:
            text += "+" + ".".join(self.build)
        return text

    def __repr__(self) -> str:
        return f"Version('{self}')"

    @classmethod
    def parse(cls, text: str) -> "Version":
        return parse(text)


def _parse_prerelease(text: str, raw: str) -> Tuple[Identifier, ...]:
    identifiers: List[Identifier] = []
    for part in text.split("."):
        if not _IDENTIFIER.match(part):
            raise MalformedVersion(raw, f"invalid pre-release identifier {part!r}")
        if part.isdigit():
            if len(part) > 1 and part.startswith("0"):
                raise MalformedVersion(raw, f"numeric identifier {part!r} has a leading zero")
            identifiers.append(int(part))
        else:
            identifiers.append(part)
    return tuple(identifiers)


def _parse_build(text: str, raw: str) -> Tuple[str, ...]:
    parts = tuple(text.split("."))
    for part in parts:
        if not _IDENTIFIER.match(part):
            raise MalformedVersion(raw, f"invalid build identifier {part!r}")
    return parts


def parse(text: str) -> Version:
    """Parse a strict semantic version string.

    Args:
        text: Version string such as ``1.2.3-rc.1+build.5``

    Returns:
        Parsed version

    Raises:
        MalformedVersion: If the text is not a valid semantic version
    """
    if not isinstance(text, str):
        raise MalformedVersion(repr(text), "expected a string")
    raw = text.strip()
    match = _SEMVER.match(raw)
    if not match:
        raise MalformedVersion(text)
    major, minor, patch, pre, build = match.groups()
    return Version(
        int(major),
        int(minor),
        int(patch),
        _parse_prerelease(pre, raw) if pre else (),
        _parse_build(build, raw) if build else (),
    )


def compare(a: Version, b: Version) -> Ordering:
    """Compare two versions by SemVer precedence."""
    if a == b:
        return Ordering.EQUAL
    return Ordering.LESS if a < b else Ordering.GREATER


class Operator(Enum):
    EQ = "="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="


@dataclass(frozen=True)
class Comparator:
    """A single ``<op><version>`` clause."""

    op: Operator
    version: Version

    def matches(self, version: Version) -> bool:
        if self.op is Operator.EQ:
            return version == self.version
        if self.op is Operator.LT:
            return version < self.version
        if self.op is Operator.LE:
            return version <= self.version
        if self.op is Operator.GT:
            return version > self.version
        return version >= self.version

    def __str__(self) -> str:
        return f"{self.op.value}{self.version}"


Group = Tuple[Comparator, ...]


@dataclass(frozen=True)
class VersionRange:
    """A predicate over versions: an OR of AND-groups of comparators.

    A range without groups is empty and matches nothing. A group without
    comparators (from ``*``) matches everything.
    """

    groups: Tuple[Group, ...] = ()
    text: str = field(default="", compare=False)

    @classmethod
    def empty(cls) -> "VersionRange":
        return cls(())

    @property
    def is_empty(self) -> bool:
        return not self.groups

    def matches(self, version: Version) -> bool:
        """Check whether ``version`` falls in the range, left to right."""
        return any(
            all(clause.matches(version) for clause in group)
            for group in self.groups
        )

    def is_satisfiable(self) -> bool:
        """Check whether at least one version can match the range."""
        return any(_group_satisfiable(group) for group in self.groups)

    def intersects(self, other: "VersionRange") -> bool:
        """Check whether some version could match both ranges."""
        return any(
            _group_satisfiable(mine + theirs)
            for mine in self.groups
            for theirs in other.groups
        )

    def union(self, other: "VersionRange") -> "VersionRange":
        text = " || ".join(part for part in (self.text, other.text) if part)
        return VersionRange(self.groups + other.groups, text)

    def to_list(self) -> List[str]:
        """Canonical text of each AND-group."""
        return [_format_group(group) for group in self.groups]

    def __str__(self) -> str:
        return " || ".join(self.to_list())


def _format_group(group: Group) -> str:
    if not group:
        return "*"
    return ", ".join(str(clause) for clause in group)


Bound = Optional[Tuple[Version, bool]]


def _raise_lower(current: Bound, version: Version, inclusive: bool) -> Bound:
    if current is None:
        return (version, inclusive)
    if version > current[0] or (version == current[0] and not inclusive):
        return (version, inclusive)
    return current


_MINIMUM = Version(0, 0, 0, (0,))


def _successor(version: Version) -> Version:
    """Smallest version with higher precedence than ``version``.

    After a release the next one is the ``-0`` pre-release of the next patch;
    after a pre-release it is the same pre-release with ``.0`` appended.
    """
    if version.pre:
        return Version(version.major, version.minor, version.patch, version.pre + (0,))
    return Version(version.major, version.minor, version.patch + 1, (0,))


def _lower_upper(current: Bound, version: Version, inclusive: bool) -> Bound:
    if current is None:
        return (version, inclusive)
    if version < current[0] or (version == current[0] and not inclusive):
        return (version, inclusive)
    return current


def _group_satisfiable(group: Group) -> bool:
    lower: Bound = (_MINIMUM, True)
    upper: Bound = None
    for clause in group:
        op, version = clause.op, clause.version
        if op is Operator.GT:
            lower = _raise_lower(lower, _successor(version), True)
        elif op in (Operator.EQ, Operator.GE):
            lower = _raise_lower(lower, version, True)
        if op in (Operator.EQ, Operator.LE, Operator.LT):
            upper = _lower_upper(upper, version, op is not Operator.LT)
    if upper is None:
        return True
    if lower[0] < upper[0]:
        return True
    return lower[0] == upper[0] and lower[1] and upper[1]


class _RangeParser:
    """Recursive-descent parser for range expressions."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.tokens = list(self._tokenize(text))
        self.pos = 0

    def _tokenize(self, text: str) -> Iterator[Tuple[str, str]]:
        pos = 0
        while pos < len(text):
            match = _TOKEN.match(text, pos)
            if not match or match.end() == pos:
                break
            pos = match.end()
            orbar, comma, op, star, version, other = match.groups()
            if orbar:
                yield ("or", orbar)
            elif comma:
                yield ("and", comma)
            elif op:
                if op not in _OPERATORS:
                    raise MalformedRange(text, f"unknown comparator {op!r}")
                yield ("op", op)
            elif star:
                yield ("star", star)
            elif version:
                yield ("version", version)
            elif other:
                raise MalformedRange(text, f"unexpected character {other!r}")

    def _peek(self) -> Optional[Tuple[str, str]]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> Tuple[str, str]:
        token = self._peek()
        if token is None:
            raise MalformedRange(self.text, "unexpected end of expression")
        self.pos += 1
        return token

    def parse(self) -> VersionRange:
        if not self.tokens:
            raise MalformedRange(self.text, "empty expression")
        groups = [self._group()]
        while self._peek() is not None:
            kind, value = self._next()
            if kind != "or":
                raise MalformedRange(self.text, f"expected ',' or '||' before {value!r}")
            groups.append(self._group())
        return VersionRange(tuple(groups), self.text.strip())

    def _group(self) -> Group:
        clauses: List[Comparator] = list(self._clause())
        while self._peek() is not None and self._peek()[0] == "and":
            self._next()
            clauses.extend(self._clause())
        return tuple(clauses)

    def _clause(self) -> List[Comparator]:
        kind, value = self._next()
        if kind == "star":
            return []
        op = "="
        if kind == "op":
            op = value
            kind, value = self._next()
        if kind != "version":
            raise MalformedRange(self.text, f"expected a version, found {value!r}")
        return _expand(op, value, self.text)


def _parse_partial(text: str, expr: str) -> Tuple[int, Optional[int], Optional[int], Version]:
    match = _PARTIAL.match(text)
    if not match:
        raise MalformedRange(expr, f"invalid version {text!r}")
    major, minor, patch, pre, build = match.groups()
    if (pre or build) and patch is None:
        raise MalformedRange(expr, f"pre-release or build on partial version {text!r}")
    try:
        version = Version(
            int(major),
            int(minor or 0),
            int(patch or 0),
            _parse_prerelease(pre, text) if pre else (),
            _parse_build(build, text) if build else (),
        )
    except MalformedVersion as e:
        raise MalformedRange(expr, e.reason) from e
    return (
        int(major),
        int(minor) if minor is not None else None,
        int(patch) if patch is not None else None,
        version,
    )


def _expand(op: str, text: str, expr: str) -> List[Comparator]:
    major, minor, patch, version = _parse_partial(text, expr)
    if op in ("=", "=="):
        return [Comparator(Operator.EQ, version)]
    if op in ("<", "<=", ">", ">="):
        return [Comparator(Operator(op), version)]
    if op == "^":
        if major > 0 or minor is None:
            upper = Version(major + 1, 0, 0)
        elif minor > 0 or patch is None:
            upper = Version(0, minor + 1, 0)
        else:
            upper = Version(0, 0, patch + 1)
    else:
        if minor is None:
            upper = Version(major + 1, 0, 0)
        else:
            upper = Version(major, minor + 1, 0)
    return [Comparator(Operator.GE, version), Comparator(Operator.LT, upper)]


def parse_range(text: str) -> VersionRange:
    """Parse a version-range expression.

    A contradictory conjunction such as ``>2.0, <1.0`` parses fine; it simply
    never matches.

    Args:
        text: Range expression

    Returns:
        Parsed range

    Raises:
        MalformedRange: On unknown comparators or malformed clauses
    """
    if not isinstance(text, str):
        raise MalformedRange(repr(text), "expected a string")
    return _RangeParser(text).parse()


def parse_ranges(texts: Iterable[str]) -> VersionRange:
    """Parse several expressions and OR them together."""
    result = VersionRange.empty()
    for text in texts:
        result = result.union(parse_range(text))
    return result
