"""Phase timing for dep-audit runs."""

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List

from rich.console import Console
from rich.table import Table


@dataclass
class PhaseTiming:
    """Wall time spent in one named phase."""

    name: str
    seconds: float


class PerformanceMonitor:
    """Collects phase timings with a monotonic clock."""

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self.timings: List[PhaseTiming] = []

    @contextmanager
    def measure(self, name: str) -> Iterator[None]:
        """Context manager for timing a phase.

        Args:
            name: Name of the phase being measured
        """
        if not self.enabled:
            yield
            return
        start = time.perf_counter()
        try:
            yield
        finally:
            self.timings.append(PhaseTiming(name, time.perf_counter() - start))

    def get_summary(self) -> Dict[str, Any]:
        """Get performance summary.

        Returns:
            Total time plus per-phase totals, or an empty dict if nothing ran
        """
        if not self.timings:
            return {}
        phases: Dict[str, float] = {}
        for timing in self.timings:
            phases[timing.name] = phases.get(timing.name, 0.0) + timing.seconds
        return {
            "total_phases": len(self.timings),
            "total_time": sum(phases.values()),
            "phases": phases,
        }

    def print_summary(self, console: Console) -> None:
        summary = self.get_summary()
        if not summary:
            return

        table = Table(title="Performance Summary")
        table.add_column("Phase", style="cyan")
        table.add_column("Time", style="green", justify="right")
        for name, seconds in summary["phases"].items():
            table.add_row(name, f"{seconds:.4f}s")
        table.add_row("total", f"{summary['total_time']:.4f}s")
        console.print(table)
