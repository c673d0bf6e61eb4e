"""Terminal rendering of diagnostic reports."""

from __future__ import annotations

from typing import Optional

import pandas as pd
from rich.console import Console
from rich.table import Table

from convergence_diagnostics.models.report import DiagnosticReport

OUTCOME_STYLES = {
    "pass": "bold green",
    "warn": "bold yellow",
    "fail": "bold red",
    "skipped": "dim",
}


def report_table(report: DiagnosticReport) -> Table:
    title = "Convergence diagnostics"
    if report.label:
        title += f": {report.label}"
    table = Table(title=title)
    table.add_column("Check")
    table.add_column("Outcome")
    table.add_column("Detail", overflow="fold")
    for check in report.checks:
        style = OUTCOME_STYLES.get(check.outcome, "")
        table.add_row(check.name, f"[{style}]{check.outcome.upper()}[/{style}]", check.detail)
    return table


def render_report(report: DiagnosticReport, console: Optional[Console] = None, show_findings: bool = True) -> None:
    console = console or Console()
    console.print(report_table(report))
    if show_findings:
        for check in report.checks:
            for finding in check.findings:
                style = OUTCOME_STYLES.get(finding.severity, "")
                console.print(f"  [{style}]{finding.severity.upper()}[/{style}] {check.name}: {finding.message}")
    verdict_style = OUTCOME_STYLES[report.overall]
    suffix = " (with warnings)" if report.has_warnings else ""
    console.print(f"Overall: [{verdict_style}]{report.overall.upper()}[/{verdict_style}]{suffix}")


def findings_frame(report: DiagnosticReport) -> pd.DataFrame:
    """Flatten all findings into one row per located problem."""
    rows = [
        {"check": check.name, **finding.to_dict()}
        for check in report.checks
        for finding in check.findings
    ]
    columns = ["check", "code", "severity", "message", "parameter", "candidate", "value", "threshold"]
    return pd.DataFrame(rows, columns=columns)


__all__ = ["findings_frame", "render_report", "report_table"]
