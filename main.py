#!/usr/bin/env python3
"""Flow Contracts CLI - verify producer -> broker -> consumer data contracts.

Usage:
    # Validate one module
    python main.py --root ./src/plugins/canvas --module canvas

    # Use an explicit broker file
    python main.py --root ./src/plugins/canvas --broker ./src/communication/MusicalConductor.ts

    # Validate several modules at once
    python main.py --batch canvas=./src/plugins/canvas --batch library=./src/plugins/library

    # Machine-readable output
    python main.py --root ./src/plugins/canvas --json
"""

import sys
import json
import logging
from typing import Dict, Optional, Tuple

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from contracts import BatchReport, FlowReport, Severity
from orchestrator import FlowOrchestrator
from config import settings


console = Console()
error_console = Console(stderr=True)

SEVERITY_STYLES = {
    Severity.CRITICAL: "bold red",
    Severity.ERROR: "red",
    Severity.WARNING: "yellow",
}


def configure_logging(verbose: bool) -> None:
    """Route library logging through rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=error_console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def parse_batch(entries: Tuple[str, ...]) -> Dict[str, str]:
    """Parse repeated name=path options."""
    modules: Dict[str, str] = {}
    for entry in entries:
        name, separator, path = entry.partition("=")
        if not separator or not name.strip() or not path.strip():
            raise click.BadParameter(f"Expected name=path, got '{entry}'", param_hint="--batch")
        modules[name.strip()] = path.strip()
    return modules


def print_report(report: FlowReport) -> None:
    """Render one report with rich."""
    stats = report.statistics
    console.print(Panel.fit(
        f"[bold blue]{report.module_name}[/bold blue]\n"
        f"[dim]{report.module_path}[/dim]",
        border_style="blue"
    ))
    console.print(f"[dim]Files scanned:[/dim] {stats.files_scanned}")
    console.print(
        f"[dim]Contracts:[/dim] {stats.producer_count} producer(s), "
        f"{stats.transformation_count} transformation(s) "
        f"({stats.special_case_count} special-cased), {stats.consumer_count} consumer(s)"
    )
    console.print(f"[dim]Matched pairs:[/dim] {stats.matched_pairs}")
    console.print(f"[dim]Confidence level:[/dim] {report.confidence_level.value}")

    if not report.findings:
        console.print("\n[green]✓ No data contract violations found[/green]")
        return

    table = Table(title=f"Findings ({len(report.findings)})", show_lines=False)
    table.add_column("Severity")
    table.add_column("Kind")
    table.add_column("Event")
    table.add_column("Property")
    table.add_column("Location", overflow="fold")
    table.add_column("Conf.", justify="right")

    for finding in report.findings:
        location = finding.file_path
        if finding.line_number:
            location += f":{finding.line_number}"
        style = SEVERITY_STYLES[finding.severity]
        table.add_row(
            f"[{style}]{finding.severity.value}[/{style}]",
            finding.kind.value,
            finding.event_id,
            finding.property_path or "-",
            location,
            f"{finding.confidence:.2f}",
        )
    console.print()
    console.print(table)

    for finding in report.findings:
        if finding.suggested_fix:
            console.print(f"  [dim]•[/dim] {finding.message}\n    [green]Fix:[/green] {finding.suggested_fix}")

    if report.recommendations:
        console.print("\n[bold]Recommendations:[/bold]")
        for rec in report.recommendations:
            style = SEVERITY_STYLES[rec.priority]
            console.print(f"  [{style}]{rec.title}[/{style}]: {rec.description}")
            if rec.code_suggestion:
                console.print(f"    [dim]{rec.code_suggestion}[/dim]")


def print_batch(batch: BatchReport) -> None:
    """Render a batch summary table followed by each module's report."""
    summary = batch.summary
    table = Table(title="Validation Summary")
    table.add_column("Module")
    table.add_column("Findings", justify="right")
    table.add_column("Critical", justify="right")
    table.add_column("Error", justify="right")
    table.add_column("Warning", justify="right")
    table.add_column("Confidence")

    for name, report in batch.reports.items():
        table.add_row(
            name,
            str(len(report.findings)),
            str(report.critical_count),
            str(report.error_count),
            str(report.warning_count),
            report.confidence_level.value,
        )
    console.print(table)
    console.print(
        f"[dim]Modules with violations:[/dim] {summary.modules_with_violations}/{summary.total_modules}  "
        f"[dim]Mean confidence:[/dim] {summary.mean_confidence:.2f}"
    )

    for report in batch.reports.values():
        console.print()
        print_report(report)


@click.command()
@click.option(
    "--root", "-r", "root",
    required=False,
    help="Module root directory to validate"
)
@click.option(
    "--module", "-m", "module_name",
    default=None,
    help="Module name for the report (default: root directory name)"
)
@click.option(
    "--broker", "-b", "broker_path",
    default=None,
    help="Explicit broker file (default: discovered by filename)"
)
@click.option(
    "--batch",
    multiple=True,
    help="Validate several modules: name=path (repeatable)"
)
@click.option(
    "--json", "as_json",
    is_flag=True,
    help="Print the report as JSON"
)
@click.option(
    "--workers", "-w",
    type=int,
    default=None,
    help=f"Extraction worker threads (default: {settings.max_workers})"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Verbose output"
)
def main(
    root: Optional[str],
    module_name: Optional[str],
    broker_path: Optional[str],
    batch: Tuple[str, ...],
    as_json: bool,
    workers: Optional[int],
    verbose: bool,
):
    """Flow Contracts: data contract verification for event-driven JS/TS code.

    Extracts what producers send, how the broker reshapes it and what
    handlers read, then reports every property a handler will not receive.
    Exits with status 1 when critical or error findings exist.
    """
    configure_logging(verbose)

    if not root and not batch:
        console.print("[red]Error: --root or --batch is required[/red]")
        sys.exit(2)

    orchestrator = FlowOrchestrator(max_workers=workers)

    if batch:
        modules = parse_batch(batch)
        if root:
            modules[module_name or root] = root
        result = orchestrator.validate_all(modules, broker_path)

        if as_json:
            click.echo(json.dumps(result.model_dump(mode="json"), indent=2))
        else:
            print_batch(result)

        blocking = any(r.has_blocking_findings() for r in result.reports.values())
        sys.exit(1 if blocking else 0)

    report = orchestrator.validate(root, module_name, broker_path)

    if as_json:
        click.echo(json.dumps(report.model_dump(mode="json"), indent=2))
    else:
        print_report(report)

    sys.exit(1 if report.has_blocking_findings() else 0)


if __name__ == "__main__":
    main()
