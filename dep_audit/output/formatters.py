"""Output formatters for dep-audit reports."""

import io
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..advisories.models import AdvisoryRecord, Severity
from ..core.matcher import Outcome
from ..core.parsers.base import DependencyNode
from ..core.report import AuditReport
from ..utils.logging import get_logger

REPORT_WIDTH = 100

_SEVERITY_STYLES = {
    Severity.CRITICAL: "red bold",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "blue",
}

_OUTCOME_STYLES = {
    Outcome.VULNERABLE: "red bold",
    Outcome.SUPPRESSED: "yellow",
    Outcome.PATCHED: "green",
    Outcome.NOT_AFFECTED: "green",
    Outcome.WITHDRAWN: "dim",
}


def _severity_text(severity: Severity, escalated: bool = False) -> Text:
    label = severity.value.upper()
    if escalated:
        label += " (direct)"
    return Text(label, style=_SEVERITY_STYLES[severity])


def _fix_text(advisory: AdvisoryRecord) -> str:
    return str(advisory.patched) if not advisory.patched.is_empty else "no fix"


class ConsoleFormatter:
    """Rich console formatter for audit reports."""

    def __init__(self, console: Optional[Console] = None) -> None:
        """Initialize the console formatter.

        Args:
            console: Rich console instance
        """
        self.console = console or Console()
        self.logger = get_logger("ConsoleFormatter")

    @classmethod
    def render_text(cls, report: AuditReport, width: int = REPORT_WIDTH) -> str:
        """Render a report as plain text.

        The console has a fixed width and no colour, so identical reports
        render to identical bytes.
        """
        buffer = io.StringIO()
        console = Console(
            file=buffer,
            width=width,
            color_system=None,
            force_terminal=False,
            legacy_windows=False,
            emoji=False,
            highlight=False,
        )
        cls(console).print_report(report)
        return buffer.getvalue()

    def print_report(self, report: AuditReport) -> None:
        """Print the full report: summary, findings, suppressions, diagnostics."""
        self.console.print(self._create_summary_panel(report))

        if report.entries:
            self.console.print(self._create_findings_table(report))
            paths = self._create_paths(report)
            if paths is not None:
                self.console.print(paths)
        else:
            self.console.print(Text("No vulnerable dependencies found."))

        if report.suppressed:
            self.console.print(self._create_suppressed_table(report))

        if report.diagnostics:
            self.console.print(self._create_diagnostics(report))

        self.console.print(self._create_verdict(report))

    def _create_summary_panel(self, report: AuditReport) -> Panel:
        counts = ", ".join(
            f"{report.counts.get(severity, 0)} {severity.value}" for severity in reversed(Severity)
        )
        lines = [
            f"Dependencies audited: {report.dependency_count}",
            f"Findings: {len(report.entries)} ({counts})",
            f"Suppressed: {len(report.suppressed)}",
            f"Fail threshold: {report.threshold.value}"
            + (" (direct dependencies escalated)" if report.escalate_direct else ""),
        ]
        database = report.database
        if database is not None:
            fetched = database.fetched_at.isoformat() if database.fetched_at else "unknown"
            lines.append(f"Advisory database: {database.origin} ({database.advisory_count} advisories)")
            lines.append(f"Fetched at: {fetched}" + (" [STALE]" if database.stale else ""))
        style = "red" if not report.passed else "green"
        return Panel(Text("\n".join(lines)), title="dep-audit", style=style)

    def _create_findings_table(self, report: AuditReport) -> Table:
        table = Table(title="Vulnerabilities Found")
        table.add_column("Severity", no_wrap=True)
        table.add_column("Package", style="cyan", overflow="fold")
        table.add_column("Version", style="blue", no_wrap=True)
        table.add_column("Advisory", style="red", no_wrap=True)
        table.add_column("Title", overflow="fold")
        table.add_column("Fix", style="green", overflow="fold")

        for entry in report.entries:
            node = entry.dependency
            table.add_row(
                _severity_text(entry.severity, entry.escalated),
                node.name + (" (direct)" if node.direct else ""),
                str(node.version),
                entry.advisory.id,
                entry.advisory.title,
                _fix_text(entry.advisory),
            )
        return table

    def _create_paths(self, report: AuditReport) -> Optional[Panel]:
        lines: List[str] = []
        seen = set()
        for entry in report.entries:
            if len(entry.path) < 2 or entry.dependency.key in seen:
                continue
            seen.add(entry.dependency.key)
            lines.append(" -> ".join(str(node) for node in entry.path))
        if not lines:
            return None
        return Panel(Text("\n".join(lines)), title="Dependency paths", style="dim")

    def _create_suppressed_table(self, report: AuditReport) -> Table:
        table = Table(title="Suppressed Findings")
        table.add_column("Package", style="cyan", overflow="fold")
        table.add_column("Version", no_wrap=True)
        table.add_column("Advisory", no_wrap=True)
        table.add_column("Severity", no_wrap=True)
        table.add_column("Reason", overflow="fold")
        table.add_column("Expires", no_wrap=True)

        for item in report.suppressed:
            node = item.finding.dependency
            expires = item.suppression.expires
            table.add_row(
                node.name,
                str(node.version),
                item.finding.advisory.id,
                _severity_text(item.finding.advisory.severity),
                item.suppression.reason,
                expires.date().isoformat() if expires else "never",
            )
        return table

    def _create_diagnostics(self, report: AuditReport) -> Panel:
        return Panel(
            Group(*(Text(str(diagnostic)) for diagnostic in report.diagnostics)),
            title=f"Diagnostics ({len(report.diagnostics)})",
            style="yellow",
        )

    def _create_verdict(self, report: AuditReport) -> Text:
        if report.passed:
            return Text(f"Verdict: PASS (threshold {report.threshold.value})", style="green bold")
        return Text(
            f"Verdict: FAIL ({len(report.failing)} findings at or above {report.threshold.value})",
            style="red bold",
        )

    def print_explanation(
        self,
        dependency: DependencyNode,
        rows: Sequence[Tuple[AdvisoryRecord, Outcome]],
    ) -> None:
        """Show every advisory for a package and whether it applies."""
        if not rows:
            self.console.print(Text(f"No advisories known for {dependency.name}", style="green"))
            return

        table = Table(title=f"Advisories for {dependency}")
        table.add_column("Advisory", style="red", no_wrap=True)
        table.add_column("Severity", no_wrap=True)
        table.add_column("Affected", overflow="fold")
        table.add_column("Patched", overflow="fold")
        table.add_column("Outcome", no_wrap=True)
        for advisory, outcome in rows:
            table.add_row(
                advisory.id,
                _severity_text(advisory.severity),
                str(advisory.affected),
                _fix_text(advisory),
                Text(outcome.value, style=_OUTCOME_STYLES[outcome]),
            )
        self.console.print(table)

    def format_error(self, error: str, details: Optional[str] = None) -> None:
        """Format and display error message.

        Args:
            error: Error message
            details: Optional error details
        """
        content = Text("Error: ", style="bold red")
        content.append(error, style="red")
        if details:
            content.append(f"\n\n{details}", style="dim")
        self.console.print(Panel(content, style="red"))


class JSONFormatter:
    """JSON formatter for audit reports."""

    def __init__(self, output_file: Optional[Path] = None) -> None:
        """Initialize the JSON formatter.

        Args:
            output_file: Optional output file path
        """
        self.output_file = output_file
        self.logger = get_logger("JSONFormatter")

    def format_report(self, report: AuditReport) -> Dict[str, Any]:
        return report.to_dict()

    def dumps(self, report: AuditReport) -> str:
        """Serialize a report. Keys are sorted so output is byte-stable."""
        return json.dumps(self.format_report(report), indent=2, sort_keys=True, ensure_ascii=False) + "\n"

    def save_results(self, report: AuditReport, output_file: Optional[Path] = None) -> None:
        """Save a report to a JSON file.

        Args:
            report: Audit report
            output_file: Output file path (uses instance default if None)
        """
        file_path = output_file or self.output_file
        if not file_path:
            raise ValueError("No output file specified")

        try:
            Path(file_path).write_text(self.dumps(report), encoding="utf-8")
            self.logger.info(f"Results saved to {file_path}")
        except OSError as e:
            self.logger.error(f"Failed to save results to {file_path}: {e}")
            raise
