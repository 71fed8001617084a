"""Advisory store: validates feeds into immutable indexes and manages caching."""

import json
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from ..core.diagnostics import (
    CACHE_WRITE_FAILED,
    MALFORMED_ADVISORY,
    RANGE_OVERLAP,
    STALE_CACHE,
    WITHDRAWN_DROPPED,
    Diagnostic,
)
from ..core.errors import AdvisoryLoadError, MalformedRange
from ..core.version import VersionRange, parse_ranges
from ..utils.logging import get_logger
from ..utils.performance import PerformanceMonitor
from ..utils.time_utils import format_duration, parse_timestamp
from .cache import AdvisoryCache
from .models import AdvisoryIndex, AdvisoryQuery, AdvisoryRecord, Severity
from .sources import AdvisorySource, RawAdvisories


class WithdrawnPolicy(Enum):
    """What to do with withdrawn advisories at load time."""

    RETAIN = "retain"
    DROP = "drop"


class _RecordError(ValueError):
    pass


class AdvisoryStore:
    """Loads advisory feeds into :class:`AdvisoryIndex` objects.

    A malformed record is excluded and reported as a diagnostic; only an
    unreadable or structurally invalid feed fails the load.
    """

    def __init__(
        self,
        withdrawn_policy: WithdrawnPolicy = WithdrawnPolicy.RETAIN,
        performance_monitor: Optional[PerformanceMonitor] = None,
    ) -> None:
        self.withdrawn_policy = withdrawn_policy
        self.performance_monitor = performance_monitor or PerformanceMonitor(enabled=False)
        self.logger = get_logger("AdvisoryStore")

    async def load(self, source: AdvisorySource) -> AdvisoryIndex:
        """Fetch and index advisories from ``source`` without any caching."""
        with self.performance_monitor.measure("load_advisories"):
            raw = await source.fetch()
            return self.parse(raw)

    async def load_cached(
        self,
        source: AdvisorySource,
        cache: AdvisoryCache,
        now: datetime,
        max_age: Optional[timedelta],
        allow_stale: bool = False,
        force_refresh: bool = False,
    ) -> AdvisoryIndex:
        """Load advisories through the on-disk cache.

        Args:
            source: Where fresh advisories come from
            cache: Cache file holding the last successful fetch
            now: The run's single reading of the clock
            max_age: Oldest cache that may be used without refetching
            allow_stale: Fall back to an outdated cache when fetching fails
            force_refresh: Ignore a fresh cache and fetch anyway

        Returns:
            Advisory index, marked stale when an outdated cache was used

        Raises:
            AdvisoryLoadError: If fetching fails and no usable cache exists
        """
        with self.performance_monitor.measure("load_advisories"):
            cached = cache.read()
            if cached is not None and cached.origin != source.name:
                self.logger.info(f"Ignoring cache for {cached.origin}; advisories now come from {source.name}")
                cached = None

            if cached is not None and not force_refresh and cache.is_fresh(cached, now, max_age):
                self.logger.info(f"Using cached advisories (age {format_duration(cache.age(cached, now))})")
                return self.parse(cached)

            try:
                raw = await source.fetch()
                index = self.parse(raw)
            except AdvisoryLoadError as e:
                if cached is None or not allow_stale:
                    raise
                age = format_duration(cache.age(cached, now))
                self.logger.warning(f"Falling back to stale advisory cache (age {age}): {e}")
                return self.parse(cached).marked_stale(Diagnostic(
                    STALE_CACHE,
                    f"advisory database is stale: using cache fetched {cached.fetched_at.isoformat()} "
                    f"(age {age}) because refresh failed: {e}",
                    subject=cached.origin,
                ))

            try:
                cache.write(raw)
            except OSError as e:
                index = index.with_diagnostic(Diagnostic(
                    CACHE_WRITE_FAILED, f"could not update advisory cache {cache.path}: {e}", subject=str(cache.path)
                ))
            return index

    def parse(self, raw: RawAdvisories) -> AdvisoryIndex:
        """Validate a raw feed and build an index.

        Raises:
            AdvisoryLoadError: If the feed is not a JSON list of advisories
        """
        try:
            document = json.loads(raw.data.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise AdvisoryLoadError(f"feed is not valid UTF-8: {e.reason}", source=raw.origin) from e
        except json.JSONDecodeError as e:
            raise AdvisoryLoadError(f"invalid JSON at line {e.lineno}: {e.msg}", source=raw.origin) from e

        entries = document.get("advisories") if isinstance(document, dict) else document
        if not isinstance(entries, list):
            raise AdvisoryLoadError("expected a list of advisories or an object with 'advisories'", source=raw.origin)

        records: List[AdvisoryRecord] = []
        diagnostics: List[Diagnostic] = []
        seen: Set[Tuple[str, str]] = set()
        malformed = 0
        withdrawn_dropped = 0

        for position, entry in enumerate(entries):
            label = self._label(entry, position)
            try:
                record = self._parse_record(entry)
            except _RecordError as e:
                malformed += 1
                diagnostics.append(Diagnostic(MALFORMED_ADVISORY, f"advisory {label} dropped: {e}", subject=label))
                self.logger.warning(f"Dropping malformed advisory {label}: {e}")
                continue

            key = (record.id, record.package)
            if key in seen:
                malformed += 1
                diagnostics.append(Diagnostic(
                    MALFORMED_ADVISORY, f"advisory {label} dropped: duplicate of an earlier record", subject=label
                ))
                continue
            seen.add(key)

            if record.is_withdrawn and self.withdrawn_policy is WithdrawnPolicy.DROP:
                withdrawn_dropped += 1
                continue

            if not record.patched.is_empty and record.affected.intersects(record.patched):
                diagnostics.append(Diagnostic(
                    RANGE_OVERLAP,
                    f"advisory {record.id}: affected ({record.affected}) overlaps patched ({record.patched}); "
                    f"patched versions are not reported",
                    subject=record.id,
                ))
            records.append(record)

        if withdrawn_dropped:
            diagnostics.append(Diagnostic(
                WITHDRAWN_DROPPED, f"{withdrawn_dropped} withdrawn advisories excluded at load time"
            ))

        self.logger.info(f"Loaded {len(records)} advisories from {raw.origin} ({malformed} malformed)")
        return AdvisoryIndex.build(
            records,
            fetched_at=raw.fetched_at,
            origin=raw.origin,
            diagnostics=tuple(diagnostics),
            malformed_count=malformed,
            withdrawn_dropped=withdrawn_dropped,
        )

    def _label(self, entry: Any, position: int) -> str:
        if isinstance(entry, dict) and isinstance(entry.get("id"), str) and entry["id"].strip():
            return entry["id"].strip()
        return f"#{position}"

    def _parse_record(self, entry: Any) -> AdvisoryRecord:
        if not isinstance(entry, dict):
            raise _RecordError("record is not an object")

        advisory_id = self._required_string(entry, "id")
        package = self._required_string(entry, "package")

        if entry.get("affected") in (None, "", []):
            raise _RecordError("missing 'affected'")
        affected = self._range(entry, "affected")
        if not affected.is_satisfiable():
            raise _RecordError(f"affected range {affected} can never match")
        patched = self._range(entry, "patched")
        if not patched.is_empty and not patched.is_satisfiable():
            raise _RecordError(f"patched range {patched} can never match")

        try:
            severity = Severity.parse(entry.get("severity"))
        except ValueError as e:
            raise _RecordError(str(e)) from e

        aliases = entry.get("aliases") or []
        if not isinstance(aliases, list) or not all(isinstance(alias, str) for alias in aliases):
            raise _RecordError("'aliases' must be a list of strings")

        withdrawn = None
        if entry.get("withdrawn"):
            try:
                withdrawn = parse_timestamp(entry["withdrawn"])
            except ValueError as e:
                raise _RecordError(f"invalid 'withdrawn' timestamp: {e}") from e

        title = entry.get("title") or ""
        url = entry.get("url")
        if not isinstance(title, str) or (url is not None and not isinstance(url, str)):
            raise _RecordError("'title' and 'url' must be strings")

        return AdvisoryRecord(
            id=advisory_id,
            package=package,
            affected=affected,
            patched=patched,
            severity=severity,
            aliases=frozenset(alias.strip() for alias in aliases if alias.strip()),
            withdrawn=withdrawn,
            title=title,
            url=url,
        )

    def _required_string(self, entry: Dict[str, Any], key: str) -> str:
        value = entry.get(key)
        if not isinstance(value, str) or not value.strip():
            raise _RecordError(f"missing '{key}'")
        return value.strip()

    def _range(self, entry: Dict[str, Any], key: str) -> VersionRange:
        value = entry.get(key)
        if value in (None, "", []):
            return VersionRange.empty()
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise _RecordError(f"'{key}' must be a range string or a list of them")
        try:
            return parse_ranges(value)
        except MalformedRange as e:
            raise _RecordError(f"invalid '{key}' range: {e.reason} in {e.text!r}") from e


def query(index: AdvisoryIndex, package_name: str) -> AdvisoryQuery:
    """Advisories for ``package_name``; empty for unknown packages."""
    return index.query(package_name)
