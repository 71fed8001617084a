"""Suppressions: explicit, auditable exclusions of known-accepted findings.

A suppression file is either TOML::

    [[suppression]]
    id = "ADV-001"
    version = "<1.3.0"
    expires = 2026-01-31
    reason = "not reachable from our code"

or a JSON list of objects with the same keys. ``id`` matches an advisory id
or any of its aliases; ``package`` matches a package name. When both are
given both must match.
"""

import json
import tomllib
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..advisories.models import AdvisoryRecord
from ..utils.time_utils import parse_expiry
from .errors import MalformedRange, SuppressionConfigError
from .parsers.base import DependencyNode, canonical_name
from .version import VersionRange, parse_range

_KNOWN_KEYS = {"id", "package", "version", "expires", "reason"}


@dataclass(frozen=True)
class Suppression:
    """An accepted finding, optionally limited by version and time."""

    reason: str
    advisory_id: Optional[str] = None
    package: Optional[str] = None
    version: Optional[VersionRange] = None
    expires: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.advisory_id and not self.package:
            raise SuppressionConfigError("a suppression needs an 'id' or a 'package'")

    @property
    def label(self) -> str:
        parts = []
        if self.advisory_id:
            parts.append(self.advisory_id)
        if self.package:
            parts.append(f"package {self.package}")
        if self.version is not None:
            parts.append(f"version {self.version}")
        return " / ".join(parts)

    def is_expired(self, now: datetime) -> bool:
        return self.expires is not None and self.expires <= now

    def applies_to(self, dependency: DependencyNode, advisory: AdvisoryRecord) -> bool:
        """Match on id/package and version, ignoring expiry."""
        if self.advisory_id and self.advisory_id not in advisory.identifiers:
            return False
        if self.package and canonical_name(self.package) != canonical_name(dependency.name):
            return False
        if self.version is not None and not self.version.matches(dependency.version):
            return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.advisory_id,
            "package": self.package,
            "version": str(self.version) if self.version is not None else None,
            "expires": self.expires.isoformat() if self.expires else None,
            "reason": self.reason,
        }


def suppression_from_dict(entry: Any, index: Optional[int] = None, path: Optional[str] = None) -> Suppression:
    """Build a suppression from a config mapping.

    Raises:
        SuppressionConfigError: On unknown keys or invalid values
    """
    if not isinstance(entry, dict):
        raise SuppressionConfigError("entry must be a table/object", entry=index, path=path)
    unknown = sorted(set(entry) - _KNOWN_KEYS)
    if unknown:
        raise SuppressionConfigError(f"unknown keys: {', '.join(unknown)}", entry=index, path=path)

    for key in ("id", "package", "version", "reason"):
        if key in entry and not isinstance(entry[key], str):
            raise SuppressionConfigError(f"'{key}' must be a string", entry=index, path=path)

    reason = (entry.get("reason") or "").strip()
    if not reason:
        raise SuppressionConfigError("'reason' is required", entry=index, path=path)

    version = None
    if entry.get("version"):
        try:
            version = parse_range(entry["version"])
        except MalformedRange as e:
            raise SuppressionConfigError(f"invalid 'version': {e.reason}", entry=index, path=path) from e

    expires = None
    if entry.get("expires"):
        try:
            expires = parse_expiry(entry["expires"])
        except (TypeError, ValueError) as e:
            raise SuppressionConfigError(f"invalid 'expires': {entry['expires']!r}", entry=index, path=path) from e

    advisory_id = (entry.get("id") or "").strip() or None
    package = (entry.get("package") or "").strip() or None
    if not advisory_id and not package:
        raise SuppressionConfigError("a suppression needs an 'id' or a 'package'", entry=index, path=path)

    return Suppression(reason=reason, advisory_id=advisory_id, package=package, version=version, expires=expires)


def load_suppressions(file_path: Path) -> List[Suppression]:
    """Load suppressions from a TOML or JSON file.

    Raises:
        SuppressionConfigError: If the file is unreadable or invalid
    """
    path = str(file_path)
    try:
        text = Path(file_path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise SuppressionConfigError(f"cannot read file: {e}", path=path) from e

    if Path(file_path).suffix.lower() == ".json":
        try:
            document = json.loads(text)
        except json.JSONDecodeError as e:
            raise SuppressionConfigError(f"invalid JSON at line {e.lineno}: {e.msg}", path=path) from e
        entries = document.get("suppression") if isinstance(document, dict) else document
    else:
        try:
            document = tomllib.loads(text)
        except tomllib.TOMLDecodeError as e:
            raise SuppressionConfigError(f"invalid TOML: {e}", path=path) from e
        entries = document.get("suppression", [])

    if not isinstance(entries, list):
        raise SuppressionConfigError("expected a list of suppressions", path=path)
    return [suppression_from_dict(entry, index, path) for index, entry in enumerate(entries)]


def suppressions_from_ids(ids: Iterable[str], reason: str = "ignored on the command line") -> List[Suppression]:
    """Suppressions for ``--ignore`` flags."""
    return [Suppression(reason=reason, advisory_id=advisory_id.strip()) for advisory_id in ids if advisory_id.strip()]
