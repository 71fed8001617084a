"""Audit orchestration: parse and load concurrently, then match and report."""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence, Tuple

from ..advisories.cache import AdvisoryCache
from ..advisories.models import AdvisoryIndex, DatabaseInfo
from ..advisories.sources import AdvisorySource
from ..advisories.store import AdvisoryStore
from ..config import AuditConfig
from ..utils.logging import get_logger
from ..utils.performance import PerformanceMonitor
from ..utils.time_utils import utc_now
from .matcher import AuditMatcher
from .parsers import ParserRegistry, registry as default_registry
from .parsers.base import DependencyGraph
from .report import AuditReport, ReportBuilder
from .suppressions import Suppression


class AuditEngine:
    """Runs one audit from a lock file and an advisory source to a report.

    Nothing is mutated in place, so a run can be cancelled at any await
    point. The only persistent side effect is the atomic cache rewrite.
    """

    def __init__(
        self,
        config: Optional[AuditConfig] = None,
        registry: Optional[ParserRegistry] = None,
        performance_monitor: Optional[PerformanceMonitor] = None,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Run configuration (defaults apply when omitted)
            registry: Lock file parser registry
            performance_monitor: Phase timer shared by all components
        """
        self.config = config or AuditConfig()
        self.registry = registry or default_registry
        self.performance_monitor = performance_monitor or PerformanceMonitor(enabled=False)
        self.store = AdvisoryStore(self.config.withdrawn_policy, self.performance_monitor)
        self.matcher = AuditMatcher(self.config.max_workers, self.performance_monitor)
        self.report_builder = ReportBuilder()
        self.logger = get_logger("AuditEngine")

    def parse_lockfile(self, lockfile_path: Path) -> DependencyGraph:
        with self.performance_monitor.measure("parse_lockfile"):
            graph = self.registry.parse_file(Path(lockfile_path), self.config.lock_format)
        self.logger.info(f"Parsed {len(graph)} dependencies from {lockfile_path}")
        return graph

    async def load_index(self, source: AdvisorySource, now: datetime) -> AdvisoryIndex:
        """Load advisories, going through the cache when one is configured."""
        if self.config.cache_path is None:
            return await self.store.load(source)
        return await self.store.load_cached(
            source,
            AdvisoryCache(self.config.cache_path),
            now=now,
            max_age=self.config.cache_max_age,
            allow_stale=self.config.allow_stale,
            force_refresh=self.config.force_refresh,
        )

    async def prepare(
        self,
        lockfile_path: Path,
        source: AdvisorySource,
        now: datetime,
    ) -> Tuple[DependencyGraph, AdvisoryIndex]:
        """Parse the lock file and load advisories concurrently.

        If either fails the other is cancelled and the error propagates.
        """
        parse_task = asyncio.ensure_future(asyncio.to_thread(self.parse_lockfile, lockfile_path))
        index_task = asyncio.ensure_future(self.load_index(source, now))
        try:
            graph, index = await asyncio.gather(parse_task, index_task)
        except BaseException:
            for task in (parse_task, index_task):
                task.cancel()
            raise
        return graph, index

    async def run(
        self,
        lockfile_path: Path,
        source: AdvisorySource,
        suppressions: Sequence[Suppression] = (),
        now: Optional[datetime] = None,
    ) -> AuditReport:
        """Audit ``lockfile_path`` against ``source``.

        Args:
            lockfile_path: Lock file to audit
            source: Advisory source
            suppressions: Accepted findings to exclude
            now: The run's single clock reading (cache age, suppression expiry)

        Returns:
            The audit report

        Raises:
            LockfileFormatError: If the lock file is invalid
            AdvisoryLoadError: If no usable advisories could be loaded
        """
        now = now or utc_now()
        graph, index = await self.prepare(lockfile_path, source, now)
        result = await self.matcher.match_async(graph, index, suppressions, now)
        return self.report_builder.build(
            result.findings,
            result.suppressed,
            list(index.diagnostics) + result.diagnostics,
            threshold=self.config.fail_severity,
            escalate_direct=self.config.escalate_direct,
            database=DatabaseInfo.from_index(index),
            graph=graph,
        )
