"""Jitter CLI wiring: refit an external model from perturbed starting values."""

from __future__ import annotations

import shlex
import sys
from pathlib import Path

import typer
from rich.console import Console

from convergence_diagnostics.checks.jitter import analyze, summarize_jitter
from convergence_diagnostics.cli.validation import resolve_settings, validate_batch_inputs
from convergence_diagnostics.data.fit_files import load_fit_record, save_fit_record
from convergence_diagnostics.exceptions import ConfigError, MalformedInputError
from convergence_diagnostics.report.formatting import OUTCOME_STYLES
from convergence_diagnostics.runners.batch import run_jitter
from convergence_diagnostics.runners.external import ExternalModelRunner
from convergence_diagnostics.schema.run_meta import RunMeta
from convergence_diagnostics.utils.logging import get_logger

console = Console()
log = get_logger(__name__, component="cli_jitter")


def jitter(
    reference: Path = typer.Option(..., "--reference", help="Reference fit file (JSON/YAML)"),
    command: str = typer.Option(
        ..., "--command", help="Model command; {input}, {output} and {workdir} are substituted per run"
    ),
    model_dir: Path | None = typer.Option(None, "--model-dir", help="Directory copied into each run's scratch area"),
    runs: int = typer.Option(20, help="Number of jitter restarts"),
    jitter_fraction: float = typer.Option(0.1, help="Relative s.d. of the start-value perturbation"),
    seed: int = typer.Option(42, help="Random seed"),
    max_workers: int | None = typer.Option(None, help="Maximum concurrent model runs"),
    timeout: float = typer.Option(600.0, help="Per-run timeout in seconds"),
    output_dir: Path = typer.Option(Path("runs/jitter"), "--output-dir", help="Where restart fits are written"),
    config: Path | None = typer.Option(None, "--config", help="Optional YAML/JSON file with tolerance settings"),
) -> None:
    """Run jitter restarts, save each fit under OUTPUT_DIR/fits and summarize the outcome."""

    try:
        validate_batch_inputs(runs=runs, max_workers=max_workers, timeout=timeout)
        settings = resolve_settings(config, {})
        fit = load_fit_record(reference)
    except (MalformedInputError, ConfigError) as exc:
        log.error(f"Invalid input: {exc}")
        console.print(f"[red]Invalid input: {exc}[/red]")
        raise typer.Exit(code=2)

    runner = ExternalModelRunner(command=shlex.split(command), model_dir=model_dir, timeout_seconds=timeout)
    jitter_set = run_jitter(
        runner, fit, runs, jitter_fraction=jitter_fraction, seed=seed, max_workers=max_workers
    )

    fits_dir = output_dir / "fits"
    fits_dir.mkdir(parents=True, exist_ok=True)
    for candidate in jitter_set.candidates:
        save_fit_record(candidate, fits_dir / f"{candidate.label}.json")

    summary = summarize_jitter(jitter_set)
    summary.to_csv(output_dir / "summary.csv", index=False)

    meta = RunMeta.capture_context(
        run_id=fit.label or reference.stem,
        kind="jitter",
        reference=str(reference),
        command=sys.argv,
        config={"jitter_fraction": jitter_fraction, "runs": runs, "timeout": timeout, **settings.to_dict()},
        n_runs=runs,
        seed=seed,
    )
    meta.n_failed = sum(1 for c in jitter_set.candidates if not c.converged)
    meta.write_atomic(output_dir / "run_meta.json")

    result = analyze(jitter_set, settings=settings)
    style = OUTCOME_STYLES[result.outcome]
    console.print(summary.to_string(index=False))
    console.print(f"Jitter: [{style}]{result.outcome.upper()}[/{style}] {result.detail}")
    console.print(f"Restart fits written to {fits_dir}")
    raise typer.Exit(code=1 if result.outcome == "fail" else 0)


__all__ = ["jitter"]
