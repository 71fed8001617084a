"""Advisory data model."""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from functools import total_ordering
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterator, List, Mapping, Optional, Tuple

from ..core.diagnostics import Diagnostic
from ..core.parsers.base import canonical_name
from ..core.version import VersionRange


@total_ordering
class Severity(Enum):
    """Advisory severity, ordered low < medium < high < critical."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def __lt__(self, other: "Severity") -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def escalate(self) -> "Severity":
        """One level higher; critical stays critical."""
        return _BY_RANK[min(self.rank + 1, len(_BY_RANK) - 1)]

    @classmethod
    def parse(cls, text: str) -> "Severity":
        """Parse a severity name, case-insensitively.

        Raises:
            ValueError: For unknown severity names
        """
        if not isinstance(text, str):
            raise ValueError(f"severity must be a string, got {text!r}")
        key = text.strip().lower()
        key = _ALIASES.get(key, key)
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(f"unknown severity {text!r}")


_RANKS = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2, Severity.CRITICAL: 3}
_BY_RANK = sorted(_RANKS, key=_RANKS.__getitem__)
_ALIASES = {"moderate": "medium"}


@dataclass(frozen=True)
class AdvisoryRecord:
    """A published vulnerability affecting a range of versions of one package."""

    id: str
    package: str
    affected: VersionRange
    patched: VersionRange
    severity: Severity
    aliases: FrozenSet[str] = frozenset()
    withdrawn: Optional[datetime] = None
    title: str = ""
    url: Optional[str] = None

    @property
    def is_withdrawn(self) -> bool:
        return self.withdrawn is not None

    @property
    def identifiers(self) -> FrozenSet[str]:
        return frozenset({self.id}) | self.aliases

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "package": self.package,
            "affected": self.affected.to_list(),
            "patched": self.patched.to_list(),
            "severity": self.severity.value,
            "aliases": sorted(self.aliases),
            "withdrawn": self.withdrawn.isoformat() if self.withdrawn else None,
            "title": self.title,
            "url": self.url,
        }


class AdvisoryQuery:
    """Lazy, finite, restartable view over one package's advisories."""

    def __init__(self, records: Tuple[AdvisoryRecord, ...]) -> None:
        self._records = records

    def __iter__(self) -> Iterator[AdvisoryRecord]:
        for record in self._records:
            yield record

    def __len__(self) -> int:
        return len(self._records)

    def __bool__(self) -> bool:
        return bool(self._records)


@dataclass(frozen=True)
class AdvisoryIndex:
    """Advisories keyed by canonical package name.

    An index is never mutated; reloading produces a new one.
    """

    records: Mapping[str, Tuple[AdvisoryRecord, ...]]
    fetched_at: Optional[datetime] = None
    origin: str = ""
    stale: bool = False
    diagnostics: Tuple[Diagnostic, ...] = ()
    malformed_count: int = 0
    withdrawn_dropped: int = 0

    @classmethod
    def build(cls, advisories: List[AdvisoryRecord], **kwargs: Any) -> "AdvisoryIndex":
        grouped: Dict[str, List[AdvisoryRecord]] = {}
        for record in advisories:
            grouped.setdefault(canonical_name(record.package), []).append(record)
        records = {
            name: tuple(sorted(items, key=lambda record: record.id))
            for name, items in sorted(grouped.items())
        }
        return cls(records=MappingProxyType(records), **kwargs)

    def query(self, package_name: str) -> AdvisoryQuery:
        return AdvisoryQuery(self.records.get(canonical_name(package_name), ()))

    def packages(self) -> List[str]:
        return list(self.records)

    def withdrawn_records(self) -> List[AdvisoryRecord]:
        """Withdrawn advisories kept for audit-trail queries."""
        return [
            record
            for records in self.records.values()
            for record in records
            if record.is_withdrawn
        ]

    def marked_stale(self, diagnostic: Diagnostic) -> "AdvisoryIndex":
        return replace(self, stale=True, diagnostics=self.diagnostics + (diagnostic,))

    def with_diagnostic(self, diagnostic: Diagnostic) -> "AdvisoryIndex":
        return replace(self, diagnostics=self.diagnostics + (diagnostic,))

    def __len__(self) -> int:
        return sum(len(records) for records in self.records.values())


@dataclass(frozen=True)
class DatabaseInfo:
    """Where the advisories in a report came from."""

    origin: str
    fetched_at: Optional[datetime]
    stale: bool
    advisory_count: int
    malformed_count: int = 0

    @classmethod
    def from_index(cls, index: AdvisoryIndex) -> "DatabaseInfo":
        return cls(
            origin=index.origin,
            fetched_at=index.fetched_at,
            stale=index.stale,
            advisory_count=len(index),
            malformed_count=index.malformed_count,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "origin": self.origin,
            "fetched_at": self.fetched_at.isoformat() if self.fetched_at else None,
            "stale": self.stale,
            "advisory_count": self.advisory_count,
            "malformed_count": self.malformed_count,
        }
