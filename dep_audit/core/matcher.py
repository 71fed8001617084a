"""Core vulnerability matching logic for dep-audit."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from ..advisories.models import AdvisoryIndex, AdvisoryRecord
from ..utils.logging import get_logger
from ..utils.performance import PerformanceMonitor
from ..utils.time_utils import utc_now
from .diagnostics import PACKAGE_ERROR, SUPPRESSION_EXPIRED, SUPPRESSION_UNUSED, Diagnostic
from .parsers.base import DependencyGraph, DependencyNode, canonical_name
from .suppressions import Suppression


class Outcome(Enum):
    """Why an advisory does or does not produce a finding for a dependency."""

    WITHDRAWN = "withdrawn"
    NOT_AFFECTED = "not affected"
    PATCHED = "patched"
    SUPPRESSED = "suppressed"
    VULNERABLE = "vulnerable"


@dataclass(frozen=True)
class Finding:
    """An installed dependency together with an advisory that applies to it."""

    dependency: DependencyNode
    advisory: AdvisoryRecord

    def to_dict(self) -> Dict[str, Any]:
        return {
            "package": self.dependency.name,
            "version": str(self.dependency.version),
            "source": self.dependency.source,
            "direct": self.dependency.direct,
            "advisory": self.advisory.to_dict(),
        }


@dataclass(frozen=True)
class SuppressedFinding:
    """A would-be finding excluded by a suppression."""

    finding: Finding
    suppression: Suppression


@dataclass
class MatchResult:
    """Everything the matcher produced for one graph."""

    findings: List[Finding] = field(default_factory=list)
    suppressed: List[SuppressedFinding] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)


@dataclass
class _PackageResult:
    findings: List[Finding] = field(default_factory=list)
    suppressed: List[SuppressedFinding] = field(default_factory=list)
    used: Set[int] = field(default_factory=set)
    error: Optional[Diagnostic] = None


PackageGroup = Tuple[str, Tuple[DependencyNode, ...]]


class AuditMatcher:
    """Cross-references a dependency graph against an advisory index.

    Each package is matched independently, so packages can be spread over
    worker threads; results are joined in canonical package order.
    """

    def __init__(
        self,
        max_workers: int = 1,
        performance_monitor: Optional[PerformanceMonitor] = None,
    ) -> None:
        """Initialize the matcher.

        Args:
            max_workers: Threads used for per-package matching (1 = inline)
            performance_monitor: Optional phase timer
        """
        self.max_workers = max(1, max_workers)
        self.performance_monitor = performance_monitor or PerformanceMonitor(enabled=False)
        self.logger = get_logger("AuditMatcher")

    def evaluate(
        self,
        dependency: DependencyNode,
        advisory: AdvisoryRecord,
        suppressions: Sequence[Suppression],
        now: datetime,
    ) -> Tuple[Outcome, Optional[int]]:
        """Decide what ``advisory`` means for ``dependency``.

        Returns:
            The outcome, and for SUPPRESSED the index of the suppression used
        """
        if advisory.is_withdrawn:
            return Outcome.WITHDRAWN, None
        if not advisory.affected.matches(dependency.version):
            return Outcome.NOT_AFFECTED, None
        # Membership in the patched range, not ">= lowest fix", so separate
        # patched branches are each honoured.
        if not advisory.patched.is_empty and advisory.patched.matches(dependency.version):
            return Outcome.PATCHED, None
        for position, suppression in enumerate(suppressions):
            if suppression.applies_to(dependency, advisory) and not suppression.is_expired(now):
                return Outcome.SUPPRESSED, position
        return Outcome.VULNERABLE, None

    def explain(
        self,
        dependency: DependencyNode,
        index: AdvisoryIndex,
        suppressions: Sequence[Suppression] = (),
        now: Optional[datetime] = None,
    ) -> List[Tuple[AdvisoryRecord, Outcome]]:
        """Outcome of every advisory known for the dependency's package."""
        now = now or utc_now()
        return [
            (advisory, self.evaluate(dependency, advisory, suppressions, now)[0])
            for advisory in index.query(dependency.name)
        ]

    def match(
        self,
        graph: DependencyGraph,
        index: AdvisoryIndex,
        suppressions: Sequence[Suppression] = (),
        now: Optional[datetime] = None,
    ) -> MatchResult:
        """Match every dependency in the graph.

        Args:
            graph: Parsed dependency graph
            index: Advisory index to match against
            suppressions: Accepted findings to exclude
            now: Reference time for suppression expiry (read once per run)

        Returns:
            Findings, suppressed findings and diagnostics in canonical order
        """
        now = now or utc_now()
        suppressions = tuple(suppressions)
        groups = self._group(graph)
        with self.performance_monitor.measure("match"):
            if self.max_workers > 1 and len(groups) > 1:
                with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                    results = list(executor.map(
                        lambda group: self._match_package(group, index, suppressions, now), groups
                    ))
            else:
                results = [self._match_package(group, index, suppressions, now) for group in groups]
        return self._collect(results, suppressions, now)

    async def match_async(
        self,
        graph: DependencyGraph,
        index: AdvisoryIndex,
        suppressions: Sequence[Suppression] = (),
        now: Optional[datetime] = None,
    ) -> MatchResult:
        """Async version of :meth:`match`.

        With ``max_workers > 1`` packages are spread over a pool of that size;
        otherwise they are matched inline on the calling thread.
        """
        now = now or utc_now()
        suppressions = tuple(suppressions)
        groups = self._group(graph)
        with self.performance_monitor.measure("match"):
            if self.max_workers > 1 and len(groups) > 1:
                loop = asyncio.get_running_loop()
                with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                    results = list(await asyncio.gather(*(
                        loop.run_in_executor(executor, self._match_package, group, index, suppressions, now)
                        for group in groups
                    )))
            else:
                results = [self._match_package(group, index, suppressions, now) for group in groups]
        return self._collect(results, suppressions, now)

    def _group(self, graph: DependencyGraph) -> List[PackageGroup]:
        grouped: Dict[str, List[DependencyNode]] = {}
        for node in graph.nodes:
            grouped.setdefault(canonical_name(node.name), []).append(node)
        return [(name, tuple(nodes)) for name, nodes in sorted(grouped.items())]

    def _match_package(
        self,
        group: PackageGroup,
        index: AdvisoryIndex,
        suppressions: Tuple[Suppression, ...],
        now: datetime,
    ) -> _PackageResult:
        name, nodes = group
        result = _PackageResult()
        try:
            advisories = index.query(name)
            if not advisories:
                return result
            self.logger.debug(f"Checking {len(nodes)} version(s) of {name} against {len(advisories)} advisories")
            for node in nodes:
                for advisory in advisories:
                    outcome, used = self.evaluate(node, advisory, suppressions, now)
                    if outcome is Outcome.VULNERABLE:
                        self.logger.debug(f"MATCH: {node} matches {advisory.id}")
                        result.findings.append(Finding(node, advisory))
                    elif outcome is Outcome.SUPPRESSED and used is not None:
                        result.suppressed.append(SuppressedFinding(Finding(node, advisory), suppressions[used]))
                        result.used.add(used)
        except Exception as e:
            self.logger.error(f"Matching {name} failed: {e}")
            return _PackageResult(error=Diagnostic(
                PACKAGE_ERROR, f"could not audit {name}: {e.__class__.__name__}: {e}", subject=name
            ))
        return result

    def _collect(
        self,
        results: List[_PackageResult],
        suppressions: Tuple[Suppression, ...],
        now: datetime,
    ) -> MatchResult:
        match = MatchResult()
        used: Set[int] = set()
        for result in results:
            match.findings.extend(result.findings)
            match.suppressed.extend(result.suppressed)
            used.update(result.used)
            if result.error is not None:
                match.diagnostics.append(result.error)

        for position, suppression in enumerate(suppressions):
            if suppression.is_expired(now):
                match.diagnostics.append(Diagnostic(
                    SUPPRESSION_EXPIRED,
                    f"suppression {suppression.label} expired on {suppression.expires.isoformat()} "
                    f"and no longer applies",
                    subject=suppression.label,
                ))
            elif position not in used:
                match.diagnostics.append(Diagnostic(
                    SUPPRESSION_UNUSED,
                    f"suppression {suppression.label} did not match any finding",
                    subject=suppression.label,
                ))

        self.logger.info(
            f"Matched {len(match.findings)} findings ({len(match.suppressed)} suppressed)"
        )
        return match
