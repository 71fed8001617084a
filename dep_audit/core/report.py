"""Report building: canonical ordering, severity counts and the verdict."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..advisories.models import DatabaseInfo, Severity
from ..utils.logging import get_logger
from .diagnostics import Diagnostic
from .matcher import Finding, SuppressedFinding
from .parsers.base import DependencyGraph, DependencyNode, canonical_name

PASS = "pass"
FAIL = "fail"


@dataclass(frozen=True)
class ReportEntry:
    """A finding as it appears in a report."""

    finding: Finding
    severity: Severity
    path: Tuple[DependencyNode, ...] = ()

    @property
    def dependency(self) -> DependencyNode:
        return self.finding.dependency

    @property
    def advisory(self):
        return self.finding.advisory

    @property
    def escalated(self) -> bool:
        return self.severity != self.advisory.severity

    def to_dict(self) -> Dict[str, Any]:
        advisory = self.advisory
        return {
            "package": self.dependency.name,
            "version": str(self.dependency.version),
            "source": self.dependency.source,
            "direct": self.dependency.direct,
            "id": advisory.id,
            "aliases": sorted(advisory.aliases),
            "severity": self.severity.value,
            "advisory_severity": advisory.severity.value,
            "title": advisory.title,
            "url": advisory.url,
            "affected": advisory.affected.to_list(),
            "patched": advisory.patched.to_list(),
            "path": [str(node) for node in self.path],
        }


@dataclass(frozen=True)
class AuditReport:
    """Result of one audit run."""

    entries: Tuple[ReportEntry, ...]
    suppressed: Tuple[SuppressedFinding, ...]
    diagnostics: Tuple[Diagnostic, ...]
    threshold: Severity = Severity.LOW
    escalate_direct: bool = False
    database: Optional[DatabaseInfo] = None
    dependency_count: int = 0
    counts: Dict[Severity, int] = field(default_factory=dict)

    @property
    def findings(self) -> List[Finding]:
        return [entry.finding for entry in self.entries]

    @property
    def failing(self) -> List[ReportEntry]:
        return [entry for entry in self.entries if entry.severity >= self.threshold]

    @property
    def verdict(self) -> str:
        return FAIL if self.failing else PASS

    @property
    def passed(self) -> bool:
        return self.verdict == PASS

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verdict": self.verdict,
            "threshold": self.threshold.value,
            "escalate_direct": self.escalate_direct,
            "dependency_count": self.dependency_count,
            "counts": {severity.value: self.counts.get(severity, 0) for severity in reversed(Severity)},
            "findings": [entry.to_dict() for entry in self.entries],
            "suppressed": [
                {
                    "package": item.finding.dependency.name,
                    "version": str(item.finding.dependency.version),
                    "source": item.finding.dependency.source,
                    "id": item.finding.advisory.id,
                    "severity": item.finding.advisory.severity.value,
                    "suppression": item.suppression.to_dict(),
                }
                for item in self.suppressed
            ],
            "diagnostics": [diagnostic.to_dict() for diagnostic in self.diagnostics],
            "database": self.database.to_dict() if self.database is not None else None,
        }


def _entry_key(entry: ReportEntry) -> tuple:
    node = entry.dependency
    return (
        -entry.severity.rank,
        canonical_name(node.name),
        entry.advisory.id,
        node.version,
        node.source,
    )


def _suppressed_key(item: SuppressedFinding) -> tuple:
    node = item.finding.dependency
    return (canonical_name(node.name), item.finding.advisory.id, node.version, node.source)


class ReportBuilder:
    """Turns matcher output into an :class:`AuditReport`."""

    def __init__(self) -> None:
        self.logger = get_logger("ReportBuilder")

    def build(
        self,
        findings: Iterable[Finding],
        suppressed: Iterable[SuppressedFinding] = (),
        diagnostics: Iterable[Diagnostic] = (),
        threshold: Severity = Severity.LOW,
        escalate_direct: bool = False,
        database: Optional[DatabaseInfo] = None,
        graph: Optional[DependencyGraph] = None,
    ) -> AuditReport:
        """Build a report.

        Args:
            findings: Unsuppressed findings in any order
            suppressed: Findings excluded by suppressions
            diagnostics: Non-fatal events to surface
            threshold: Lowest effective severity that fails the audit
            escalate_direct: Raise direct dependencies' severity by one level
            database: Advisory database metadata
            graph: Dependency graph, used for counts and dependency paths

        Returns:
            Report with findings in canonical order
        """
        entries = []
        for finding in findings:
            severity = finding.advisory.severity
            if escalate_direct and finding.dependency.direct:
                severity = severity.escalate()
            path: Tuple[DependencyNode, ...] = ()
            if graph is not None and not finding.dependency.direct:
                path = tuple(graph.path_to(finding.dependency))
            entries.append(ReportEntry(finding, severity, path))
        entries.sort(key=_entry_key)

        counts = {severity: 0 for severity in Severity}
        for entry in entries:
            counts[entry.severity] += 1

        report = AuditReport(
            entries=tuple(entries),
            suppressed=tuple(sorted(suppressed, key=_suppressed_key)),
            diagnostics=tuple(diagnostics),
            threshold=threshold,
            escalate_direct=escalate_direct,
            database=database,
            dependency_count=len(graph) if graph is not None else 0,
            counts=counts,
        )
        self.logger.info(
            f"Report: {len(entries)} findings, {len(report.suppressed)} suppressed, verdict {report.verdict}"
        )
        return report


def build(
    findings: Iterable[Finding],
    suppressed: Iterable[SuppressedFinding] = (),
    diagnostics: Iterable[Diagnostic] = (),
    **kwargs: Any,
) -> AuditReport:
    """Shortcut for :meth:`ReportBuilder.build`."""
    return ReportBuilder().build(findings, suppressed, diagnostics, **kwargs)
