"""Profile CLI wiring: sweep one parameter across a grid of fixed values."""

from __future__ import annotations

import shlex
import sys
from pathlib import Path

import typer
from rich.console import Console

from convergence_diagnostics.checks.profile import analyze_profile
from convergence_diagnostics.cli.validation import resolve_settings, validate_batch_inputs, validate_profile_inputs
from convergence_diagnostics.data.fit_files import load_fit_record, save_fit_record
from convergence_diagnostics.exceptions import ConfigError, MalformedInputError
from convergence_diagnostics.report.formatting import OUTCOME_STYLES
from convergence_diagnostics.runners.batch import profile_grid, run_profile
from convergence_diagnostics.runners.external import ExternalModelRunner
from convergence_diagnostics.schema.run_meta import RunMeta
from convergence_diagnostics.utils.logging import get_logger

console = Console()
log = get_logger(__name__, component="cli_profile")


def profile(
    reference: Path = typer.Option(..., "--reference", help="Reference fit file (JSON/YAML)"),
    parameter: str = typer.Option(..., "--parameter", help="Parameter to profile"),
    command: str = typer.Option(
        ..., "--command", help="Model command; {input}, {output} and {workdir} are substituted per run"
    ),
    model_dir: Path | None = typer.Option(None, "--model-dir", help="Directory copied into each run's scratch area"),
    points: int = typer.Option(21, help="Number of sweep points"),
    span: float = typer.Option(0.5, help="Half-width of the sweep relative to the estimate"),
    lower: float | None = typer.Option(None, help="Explicit lower end of the sweep"),
    upper: float | None = typer.Option(None, help="Explicit upper end of the sweep"),
    max_workers: int | None = typer.Option(None, help="Maximum concurrent model runs"),
    timeout: float = typer.Option(600.0, help="Per-run timeout in seconds"),
    output_dir: Path = typer.Option(Path("runs/profile"), "--output-dir", help="Where sweep fits are written"),
    config: Path | None = typer.Option(None, "--config", help="Optional YAML/JSON file with tolerance settings"),
) -> None:
    """Run a likelihood profile; fits land in OUTPUT_DIR/profiles/PARAMETER for `evaluate --profile-dir`."""

    try:
        validate_batch_inputs(runs=points, max_workers=max_workers, timeout=timeout)
        validate_profile_inputs(points=points, span=span, lower=lower, upper=upper)
        settings = resolve_settings(config, {})
        fit = load_fit_record(reference)
        values = profile_grid(fit, parameter, points=points, span=span, lower=lower, upper=upper)
    except (MalformedInputError, ConfigError) as exc:
        log.error(f"Invalid input: {exc}")
        console.print(f"[red]Invalid input: {exc}[/red]")
        raise typer.Exit(code=2)

    runner = ExternalModelRunner(command=shlex.split(command), model_dir=model_dir, timeout_seconds=timeout)
    curve = run_profile(runner, fit, parameter, values, max_workers=max_workers)

    curve_dir = output_dir / "profiles" / parameter
    curve_dir.mkdir(parents=True, exist_ok=True)
    for point in curve.points:
        if point.fit is not None:
            save_fit_record(
                point.fit,
                curve_dir / f"{point.fit.label}.json",
                extra={"profile": {"parameter": parameter, "fixed_value": point.fixed_value}},
            )

    meta = RunMeta.capture_context(
        run_id=fit.label or reference.stem,
        kind="profile",
        reference=str(reference),
        command=sys.argv,
        config={"points": points, "span": span, "lower": lower, "upper": upper, **settings.to_dict()},
        n_runs=len(curve),
        parameter=parameter,
    )
    meta.n_failed = sum(1 for p in curve.points if p.fit is not None and not p.fit.converged)
    meta.write_atomic(output_dir / f"run_meta_{parameter}.json")

    result = analyze_profile(curve, reference=fit, settings=settings)
    style = OUTCOME_STYLES[result.outcome]
    console.print(f"Profile: [{style}]{result.outcome.upper()}[/{style}] {result.detail}")
    console.print(f"Sweep fits written to {curve_dir}")
    raise typer.Exit(code=1 if result.outcome == "fail" else 0)


__all__ = ["profile"]
