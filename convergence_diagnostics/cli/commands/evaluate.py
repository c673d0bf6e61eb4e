"""Evaluate CLI command wiring."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from convergence_diagnostics.cli.validation import resolve_settings
from convergence_diagnostics.data.fit_files import load_fit_record, load_jitter_set, load_profile_curves
from convergence_diagnostics.exceptions import ConfigError, MalformedInputError
from convergence_diagnostics.report.builder import build_report
from convergence_diagnostics.report.formatting import render_report
from convergence_diagnostics.utils.logging import get_logger

console = Console()
log = get_logger(__name__, component="cli_evaluate")


def _write_plots(plots_dir: Path, fit, jitter_set, curves, settings) -> None:
    import matplotlib.pyplot as plt

    from convergence_diagnostics.plotting.diagnostic_plots import plot_jitter, plot_profile

    if jitter_set is not None and len(jitter_set):
        plt.close(plot_jitter(jitter_set, settings, output_path=plots_dir / "jitter.png"))
    for curve in curves:
        plt.close(
            plot_profile(
                curve,
                settings,
                reference_value=fit.parameters.get(curve.parameter),
                output_path=plots_dir / f"profile_{curve.parameter}.png",
            )
        )


def evaluate(
    reference: Path = typer.Option(..., "--reference", help="Reference fit file (JSON/YAML)"),
    jitter_dir: Optional[Path] = typer.Option(None, "--jitter-dir", help="Directory of jitter restart fit files"),
    profile_dir: Optional[Path] = typer.Option(
        None, "--profile-dir", help="Directory of profile sweep fits, one sub-directory per parameter"
    ),
    config: Optional[Path] = typer.Option(None, "--config", help="Optional YAML/JSON file with tolerance settings"),
    gradient_tolerance: Optional[float] = typer.Option(None, help="|gradient| below this warns"),
    max_relative_se: Optional[float] = typer.Option(None, help="Largest acceptable se/|estimate|"),
    hessian_convention: Optional[str] = typer.Option(
        None, help="Sign convention of the supplied Hessian: log_likelihood or objective"
    ),
    jitter_tolerance: Optional[float] = typer.Option(None, help="Objective improvement that fails the jitter test"),
    parameter_rtol: Optional[float] = typer.Option(None, help="Relative parameter drift tolerated across restarts"),
    min_jitter_samples: Optional[int] = typer.Option(None, help="Minimum number of jitter restarts"),
    min_profile_points: Optional[int] = typer.Option(None, help="Minimum number of profile points"),
    profile_noise_tolerance: Optional[float] = typer.Option(None, help="Relative objective change treated as noise"),
    strict: Optional[bool] = typer.Option(None, "--strict/--no-strict", help="Treat warnings as failures"),
    output: Optional[Path] = typer.Option(None, "--output", help="Write the report as JSON to this path"),
    plots_dir: Optional[Path] = typer.Option(None, "--plots-dir", help="Write jitter/profile plots here"),
    json_output: bool = typer.Option(False, "--json", help="Print the report as JSON instead of a table"),
) -> None:
    """Run the convergence checklist; exit 0 on pass, 1 on fail, 2 on malformed input."""

    cli_values = {
        "gradient_tolerance": gradient_tolerance,
        "max_relative_se": max_relative_se,
        "hessian_convention": hessian_convention,
        "jitter_tolerance": jitter_tolerance,
        "parameter_rtol": parameter_rtol,
        "min_jitter_samples": min_jitter_samples,
        "min_profile_points": min_profile_points,
        "profile_noise_tolerance": profile_noise_tolerance,
        "warnings_as_failures": strict,
    }
    try:
        settings = resolve_settings(config, cli_values)
        fit = load_fit_record(reference)
        jitter_set = load_jitter_set(fit, jitter_dir) if jitter_dir else None
        curves = load_profile_curves(profile_dir) if profile_dir else []
    except (MalformedInputError, ConfigError) as exc:
        log.error(f"Invalid input: {exc}")
        console.print(f"[red]Invalid input: {exc}[/red]")
        raise typer.Exit(code=2)

    log.info("Evaluating fit", extra={"run_id": fit.label})
    report = build_report(fit, jitter_set, curves, settings)

    if json_output:
        typer.echo(report.to_json())
    else:
        render_report(report, console)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = output.with_suffix(output.suffix + ".tmp")
        tmp_path.write_text(report.to_json())
        tmp_path.replace(output)
    if plots_dir:
        _write_plots(plots_dir, fit, jitter_set, curves, settings)

    raise typer.Exit(code=0 if report.passed else 1)


__all__ = ["evaluate"]
