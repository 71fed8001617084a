"""dep-audit - audits resolved dependency lock files against vulnerability advisories."""

__version__ = "0.1.0"

from .core import DependencyGraph, DependencyNode, LockfileParser, Version, VersionRange, parse_range
from .advisories import AdvisoryIndex, AdvisoryStore, HttpFeedSource, InMemorySource, LocalFileSource
from .core.matcher import AuditMatcher, Finding
from .core.report import AuditReport, ReportBuilder
from .core.engine import AuditEngine
from .output.formatters import ConsoleFormatter, JSONFormatter

__all__ = [
    "AdvisoryIndex",
    "AdvisoryStore",
    "AuditEngine",
    "AuditMatcher",
    "AuditReport",
    "ConsoleFormatter",
    "DependencyGraph",
    "DependencyNode",
    "Finding",
    "HttpFeedSource",
    "InMemorySource",
    "JSONFormatter",
    "LocalFileSource",
    "LockfileParser",
    "ReportBuilder",
    "Version",
    "VersionRange",
    "parse_range",
]
