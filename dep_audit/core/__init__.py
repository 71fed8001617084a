"""Core version, lock file and error types for dep-audit."""

from .diagnostics import Diagnostic
from .errors import (
    AdvisoryLoadError,
    AdvisoryTimeoutError,
    DepAuditError,
    LockfileFormatError,
    MalformedRange,
    MalformedVersion,
    SuppressionConfigError,
    UnresolvedVersionError,
)
from .parsers import DependencyGraph, DependencyNode, LockfileParser
from .version import Version, VersionRange, compare, parse, parse_range

__all__ = [
    "AdvisoryLoadError",
    "AdvisoryTimeoutError",
    "DepAuditError",
    "DependencyGraph",
    "DependencyNode",
    "Diagnostic",
    "LockfileFormatError",
    "LockfileParser",
    "MalformedRange",
    "MalformedVersion",
    "SuppressionConfigError",
    "UnresolvedVersionError",
    "Version",
    "VersionRange",
    "compare",
    "parse",
    "parse_range",
]
