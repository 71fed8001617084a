"""Main CLI interface for dep-audit."""

import asyncio
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel

from .. import __version__
from ..advisories.models import DatabaseInfo, Severity
from ..advisories.sources import source_for
from ..config import AuditConfig
from ..core.engine import AuditEngine
from ..core.errors import DepAuditError
from ..core.parsers import registry
from ..core.parsers.base import DependencyNode
from ..core.suppressions import load_suppressions, suppressions_from_ids
from ..core.version import parse as parse_version
from ..output.formatters import ConsoleFormatter, JSONFormatter
from ..utils.logging import get_logger, setup_logging
from ..utils.path_utils import find_lockfiles
from ..utils.performance import PerformanceMonitor
from ..utils.time_utils import parse_duration, utc_now

EXIT_PASS = 0
EXIT_FAIL = 1
EXIT_ERROR = 2

app = typer.Typer(
    name="dep-audit",
    help="Audit a resolved dependency lock file against a vulnerability advisory database",
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)
logger = get_logger("CLI")


def _fail(message: str, details: Optional[str] = None) -> typer.Exit:
    ConsoleFormatter(err_console).format_error(message, details)
    return typer.Exit(EXIT_ERROR)


def _resolve_lockfile(lockfile: Path, ignore_patterns: Optional[List[str]] = None) -> Path:
    """Accept a lock file or a directory holding exactly one lock file."""
    if not lockfile.is_dir():
        return lockfile
    candidates = find_lockfiles(lockfile, ignore_patterns)
    if not candidates:
        raise _fail(
            f"No lock file found in {lockfile}",
            f"Looked for: {', '.join(registry.get_supported_file_names())}",
        )
    if len(candidates) > 1:
        raise _fail(
            f"Several lock files found in {lockfile}; pass one with --lockfile",
            "\n".join(str(candidate.path) for candidate in candidates),
        )
    return candidates[0].path


def _build_config(
    fail_severity: Optional[str] = None,
    cache: Optional[Path] = None,
    no_cache: bool = False,
    cache_max_age: Optional[str] = None,
    allow_stale: bool = False,
    refresh: bool = False,
    timeout: Optional[float] = None,
    escalate_direct: bool = False,
    drop_withdrawn: bool = False,
    workers: Optional[int] = None,
    lock_format: Optional[str] = None,
) -> AuditConfig:
    """Environment settings overridden by command-line flags."""
    try:
        config = AuditConfig.from_env().override(
            fail_severity=Severity.parse(fail_severity) if fail_severity else None,
            cache_path=cache,
            cache_max_age=parse_duration(cache_max_age) if cache_max_age else None,
            allow_stale=allow_stale or None,
            force_refresh=refresh or None,
            timeout=timeout,
            escalate_direct=escalate_direct or None,
            withdrawn_policy="drop" if drop_withdrawn else None,
            max_workers=workers,
            lock_format=lock_format,
        )
    except ValueError as e:
        raise _fail(f"Invalid configuration: {e}")
    if no_cache:
        config = replace(config, cache_path=None)
    if config.cache_path is None:
        cache_flags = [
            flag for flag, given in (
                ("--cache-max-age", cache_max_age),
                ("--allow-stale", allow_stale),
                ("--refresh", refresh),
            ) if given
        ]
        if cache_flags:
            raise _fail(
                f"{', '.join(cache_flags)} requires an advisory cache",
                "Pass --cache PATH or set DEP_AUDIT_CACHE (and drop --no-cache).",
            )
    return config


@app.command()
def audit(
    lockfile: Path = typer.Option(
        Path("Cargo.lock"),
        "--lockfile",
        "-l",
        help="Lock file to audit, or a directory containing exactly one",
    ),
    advisories: str = typer.Option(
        ...,
        "--advisories",
        "-a",
        help="Advisory feed: local JSON file or http(s) URL",
    ),
    lock_format: Optional[str] = typer.Option(
        None,
        "--lock-format",
        help="Lock file format (cargo, json); detected from the file name by default",
    ),
    cache: Optional[Path] = typer.Option(None, "--cache", help="Advisory cache file"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Do not read or write the advisory cache"),
    cache_max_age: Optional[str] = typer.Option(
        None,
        "--cache-max-age",
        help="Use the cache without refetching when younger than this (e.g. 30m, 24h, 7d)",
    ),
    allow_stale: bool = typer.Option(
        False,
        "--allow-stale",
        help="Fall back to an outdated cache when the feed cannot be fetched",
    ),
    refresh: bool = typer.Option(False, "--refresh", help="Ignore a fresh cache and refetch"),
    suppressions: Optional[Path] = typer.Option(
        None,
        "--suppressions",
        "-s",
        help="Suppression file (TOML or JSON)",
    ),
    ignore: Optional[List[str]] = typer.Option(
        None,
        "--ignore",
        "-i",
        help="Advisory id to suppress (repeatable)",
    ),
    fail_severity: Optional[str] = typer.Option(
        None,
        "--fail-severity",
        help="Lowest severity that fails the audit: low, medium, high, critical",
    ),
    escalate_direct: bool = typer.Option(
        False,
        "--escalate-direct",
        help="Raise findings on direct dependencies by one severity level",
    ),
    drop_withdrawn: bool = typer.Option(
        False,
        "--drop-withdrawn",
        help="Exclude withdrawn advisories at load time",
    ),
    output_format: str = typer.Option("text", "--format", "-f", help="Report format: text or json"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the report to a file"),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Advisory download timeout in seconds"),
    workers: Optional[int] = typer.Option(None, "--workers", help="Threads used for matching"),
    performance: bool = typer.Option(False, "--performance", help="Show performance summary"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Audit a lock file. Exit status: 0 pass, 1 fail, 2 error."""
    setup_logging(verbose=verbose)

    if output_format not in ("text", "json"):
        raise _fail(f"Unknown format {output_format!r}; use 'text' or 'json'")

    config = _build_config(
        fail_severity=fail_severity,
        cache=cache,
        no_cache=no_cache,
        cache_max_age=cache_max_age,
        allow_stale=allow_stale,
        refresh=refresh,
        timeout=timeout,
        escalate_direct=escalate_direct,
        drop_withdrawn=drop_withdrawn,
        workers=workers,
        lock_format=lock_format,
    )
    lockfile = _resolve_lockfile(lockfile)
    monitor = PerformanceMonitor(enabled=performance)

    try:
        accepted = load_suppressions(suppressions) if suppressions else []
        accepted += suppressions_from_ids(ignore or [])
        source = source_for(advisories, timeout=config.timeout, token_env=config.token_env)
        engine = AuditEngine(config, performance_monitor=monitor)
        report = asyncio.run(engine.run(lockfile, source, accepted, now=utc_now()))
    except DepAuditError as e:
        raise _fail(str(e))
    except (OSError, ValueError) as e:
        raise _fail(str(e))

    if output:
        try:
            if output_format == "json":
                JSONFormatter(output).save_results(report)
            else:
                output.write_text(ConsoleFormatter.render_text(report), encoding="utf-8")
        except OSError as e:
            raise _fail(f"Cannot write report to {output}: {e}")
        err_console.print(f"Report written to {output} (verdict: {report.verdict})")
    elif output_format == "json":
        typer.echo(JSONFormatter().dumps(report), nl=False)
    else:
        ConsoleFormatter(console).print_report(report)

    if performance:
        monitor.print_summary(err_console)

    raise typer.Exit(report.exit_code)


@app.command()
def advisories(
    package: str = typer.Argument(..., help="Package name"),
    version: str = typer.Argument(..., help="Installed version"),
    feed: str = typer.Option(..., "--advisories", "-a", help="Advisory feed: local JSON file or http(s) URL"),
    suppressions: Optional[Path] = typer.Option(None, "--suppressions", "-s", help="Suppression file"),
    timeout: float = typer.Option(30.0, "--timeout", help="Advisory download timeout in seconds"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Show every advisory for a package and whether it applies to a version."""
    setup_logging(verbose=verbose)

    try:
        dependency = DependencyNode(package, parse_version(version))
        accepted = load_suppressions(suppressions) if suppressions else []
        engine = AuditEngine(AuditConfig(cache_path=None, timeout=timeout))
        index = asyncio.run(engine.store.load(source_for(feed, timeout=timeout)))
    except DepAuditError as e:
        raise _fail(str(e))
    except (OSError, ValueError) as e:
        raise _fail(str(e))

    formatter = ConsoleFormatter(console)
    formatter.print_explanation(dependency, engine.matcher.explain(dependency, index, accepted, utc_now()))
    for diagnostic in index.diagnostics:
        err_console.print(str(diagnostic), markup=False)

    database = DatabaseInfo.from_index(index)
    logger.info(f"{database.advisory_count} advisories loaded from {database.origin}")


@app.command()
def export(
    lockfile: Path = typer.Argument(Path("Cargo.lock"), help="Lock file to convert"),
    lock_format: Optional[str] = typer.Option(None, "--lock-format", help="Lock file format (cargo, json)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the JSON lock file here"),
) -> None:
    """Convert a lock file into the JSON lock format."""
    try:
        graph = registry.parse_file(lockfile, lock_format)
    except DepAuditError as e:
        raise _fail(str(e))
    except (OSError, ValueError) as e:
        raise _fail(str(e))

    if output:
        output.write_text(graph.dumps(), encoding="utf-8")
        err_console.print(f"Wrote {len(graph)} packages to {output}")
    else:
        typer.echo(graph.dumps(), nl=False)


@app.command()
def info() -> None:
    """Show dep-audit information."""
    console.print(Panel.fit(
        f"[bold blue]dep-audit[/bold blue] {__version__}\n"
        "Audits resolved dependency lock files against\n"
        "a vulnerability advisory database",
        title="Information",
    ))
    console.print(f"\n[bold]Lock file formats:[/bold] {', '.join(registry.get_supported_formats())}")
    console.print(f"[bold]Lock file names:[/bold] {', '.join(registry.get_supported_file_names())}")
    console.print(f"[bold]Severities:[/bold] {', '.join(severity.value for severity in Severity)}")


def main() -> None:
    """Main entry point for the dep-audit CLI."""
    app()


if __name__ == "__main__":
    main()
