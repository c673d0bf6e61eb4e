"""Parallel jitter restarts and likelihood-profile sweeps.

Each restart or sweep point is an independent model run. Runs are dispatched to a
thread pool (the heavy lifting happens in external processes) and any run that
raises is recorded as a ``failed_other`` fit so one bad run never aborts the batch.
"""

from __future__ import annotations

import math
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from convergence_diagnostics.exceptions import ConfigValidationError, ModelExecutionError, ResourceLimitError
from convergence_diagnostics.models.fit_record import FitRecord, JitterSet
from convergence_diagnostics.models.profile import ProfileCurve, ProfilePoint
from convergence_diagnostics.runners.errors import record_execution_failure
from convergence_diagnostics.runners.external import ModelRunner
from convergence_diagnostics.utils.logging import get_logger

log = get_logger(__name__, component="batch")

MAX_BATCH_RUNS = 10_000

Bounds = Mapping[str, Tuple[float, float]]


@dataclass(slots=True)
class RunTask:
    """One model run to execute."""

    index: int
    label: str
    start_values: Dict[str, float]
    fixed: Optional[Dict[str, float]] = None


def _clamp_workers(max_workers: int | None) -> int:
    cpu_count = os.cpu_count() or 1
    if max_workers is None:
        return min(6, cpu_count)
    return max(1, min(max_workers, cpu_count))


def _execute(runner: ModelRunner, task: RunTask) -> FitRecord:
    started = time.perf_counter()
    try:
        fit = runner(task.start_values, fixed=task.fixed)
    except ModelExecutionError as exc:
        return record_execution_failure(task.start_values, error=exc, label=task.label, fixed=task.fixed)
    except Exception as exc:  # pragma: no cover
        log.exception("Model run raised unexpectedly", extra={"candidate": task.label})
        return record_execution_failure(task.start_values, error=exc, label=task.label, fixed=task.fixed)
    log.info(
        "Model run completed",
        extra={
            "candidate": task.label,
            "outcome": fit.convergence_flag,
            "duration_ms": round((time.perf_counter() - started) * 1000, 1),
        },
    )
    return replace(fit, label=task.label)


def run_batch(runner: ModelRunner, tasks: Sequence[RunTask], max_workers: int | None = None) -> List[FitRecord]:
    """Execute tasks concurrently; results come back in task order."""

    if len(tasks) > MAX_BATCH_RUNS:
        raise ResourceLimitError(f"Batch of {len(tasks)} runs exceeds the limit of {MAX_BATCH_RUNS}")
    worker_count = _clamp_workers(max_workers)
    results: Dict[int, FitRecord] = {}
    if worker_count == 1 or len(tasks) <= 1:
        for task in tasks:
            results[task.index] = _execute(runner, task)
    else:
        with ThreadPoolExecutor(max_workers=worker_count) as executor:
            future_map = {executor.submit(_execute, runner, task): task.index for task in tasks}
            for future in as_completed(future_map):
                results[future_map[future]] = future.result()
    return [results[task.index] for task in tasks]


def generate_jitter_starts(
    reference: FitRecord,
    n_runs: int,
    *,
    jitter_fraction: float = 0.1,
    seed: int | None = 42,
    bounds: Optional[Bounds] = None,
) -> List[Dict[str, float]]:
    """Perturb the reference estimates multiplicatively with Gaussian noise.

    A parameter estimated at zero is perturbed on an absolute scale of ``jitter_fraction``.
    Values are clipped into ``bounds`` when supplied.
    """

    if n_runs <= 0:
        raise ConfigValidationError("n_runs must be > 0")
    if not math.isfinite(jitter_fraction) or jitter_fraction <= 0:
        raise ConfigValidationError("jitter_fraction must be > 0")

    names = reference.parameter_names
    values = reference.values
    scale = np.where(values != 0, np.abs(values), 1.0)
    rng = np.random.default_rng(seed)
    draws = values + rng.normal(0.0, jitter_fraction, size=(n_runs, len(names))) * scale

    if bounds:
        unknown = sorted(set(bounds) - set(names))
        if unknown:
            raise ConfigValidationError(f"Bounds given for unknown parameters: {unknown}")
        for col, name in enumerate(names):
            if name in bounds:
                lower, upper = bounds[name]
                if lower >= upper:
                    raise ConfigValidationError(f"Lower bound must be below upper bound for {name}")
                draws[:, col] = np.clip(draws[:, col], lower, upper)

    return [dict(zip(names, (float(v) for v in row))) for row in draws]


def run_jitter(
    runner: ModelRunner,
    reference: FitRecord,
    n_runs: int,
    *,
    jitter_fraction: float = 0.1,
    seed: int | None = 42,
    bounds: Optional[Bounds] = None,
    max_workers: int | None = None,
) -> JitterSet:
    """Refit from ``n_runs`` perturbed starting points and collect the jitter set."""

    starts = generate_jitter_starts(
        reference, n_runs, jitter_fraction=jitter_fraction, seed=seed, bounds=bounds
    )
    tasks = [RunTask(index=i, label=f"jitter_{i:03d}", start_values=start) for i, start in enumerate(starts)]
    log.info("Starting jitter batch", extra={"n_runs": n_runs, "max_workers": _clamp_workers(max_workers)})
    candidates = run_batch(runner, tasks, max_workers=max_workers)
    return JitterSet(reference=reference, candidates=tuple(candidates))


def profile_grid(
    reference: FitRecord,
    parameter: str,
    *,
    points: int = 21,
    span: float = 0.5,
    lower: float | None = None,
    upper: float | None = None,
) -> np.ndarray:
    """Evenly spaced fixed values around the reference estimate.

    Without explicit ``lower``/``upper`` the grid covers estimate ± span·|estimate|
    (± span when the estimate is zero).
    """

    if parameter not in reference.parameters:
        raise ConfigValidationError(f"Unknown profile parameter: {parameter}")
    if points < 2:
        raise ConfigValidationError("points must be >= 2")
    center = reference.parameters[parameter]
    half_width = span * abs(center) if center != 0 else span
    lo = center - half_width if lower is None else lower
    hi = center + half_width if upper is None else upper
    if not lo < hi:
        raise ConfigValidationError(f"Profile range is empty ({lo} to {hi})")
    return np.linspace(lo, hi, points)


def run_profile(
    runner: ModelRunner,
    reference: FitRecord,
    parameter: str,
    values: Sequence[float],
    *,
    max_workers: int | None = None,
) -> ProfileCurve:
    """Refit with ``parameter`` fixed at each value, starting the rest at the reference estimates."""

    if parameter not in reference.parameters:
        raise ConfigValidationError(f"Unknown profile parameter: {parameter}")
    fixed_values = [float(v) for v in values]
    if len(set(fixed_values)) != len(fixed_values):
        raise ConfigValidationError("Profile values must be unique")

    start = {name: value for name, value in reference.parameters.items() if name != parameter}
    tasks = [
        RunTask(
            index=i,
            label=f"profile_{parameter}_{i:03d}",
            start_values=dict(start),
            fixed={parameter: value},
        )
        for i, value in enumerate(fixed_values)
    ]
    log.info("Starting profile batch", extra={"parameter": parameter, "n_runs": len(tasks)})
    fits = run_batch(runner, tasks, max_workers=max_workers)
    points = [
        ProfilePoint(fixed_value=value, objective_value=fit.objective_value if fit.converged else math.nan, fit=fit)
        for value, fit in zip(fixed_values, fits)
    ]
    return ProfileCurve.from_unordered(parameter, points)


__all__ = [
    "RunTask",
    "generate_jitter_starts",
    "profile_grid",
    "run_batch",
    "run_jitter",
    "run_profile",
]
