"""Jitter test: re-optimization from perturbed starting values."""

from __future__ import annotations

import math
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from convergence_diagnostics.config.settings import DEFAULT_SETTINGS, DiagnosticSettings
from convergence_diagnostics.models.fit_record import FitRecord, JitterSet
from convergence_diagnostics.models.report import CheckResult, Finding
from convergence_diagnostics.utils.logging import get_logger

log = get_logger(__name__, component="jitter")

JITTER = "jitter"


def _candidate_label(candidate: FitRecord, index: int) -> str:
    return candidate.label or f"candidate_{index}"


def relative_deviations(reference: FitRecord, candidate: FitRecord) -> Dict[str, float]:
    """Per-parameter |candidate - reference| / |reference| (absolute when the reference is 0)."""
    deviations: Dict[str, float] = {}
    for name, ref_value in reference.parameters.items():
        diff = abs(candidate.parameters[name] - ref_value)
        deviations[name] = diff / abs(ref_value) if ref_value != 0 else diff
    return deviations


def analyze(
    jitter_set: JitterSet,
    tolerance: Optional[float] = None,
    settings: Optional[DiagnosticSettings] = None,
) -> CheckResult:
    """Compare restarts against the reference fit.

    A converged restart whose objective beats the reference by more than ``tolerance``
    fails the test; parameter drift among restarts only warns.
    """

    settings = settings or DEFAULT_SETTINGS
    tolerance = settings.jitter_tolerance if tolerance is None else tolerance
    reference = jitter_set.reference
    candidates = jitter_set.candidates
    n_candidates = len(candidates)

    if n_candidates < settings.min_jitter_samples:
        return CheckResult(
            name=JITTER,
            outcome="fail",
            code="insufficient_jitter_samples",
            detail=f"Jitter test needs at least {settings.min_jitter_samples} restart(s), got {n_candidates}",
            data={"n_candidates": n_candidates},
        )
    if n_candidates < settings.recommended_jitter_samples:
        log.warning(
            "Fewer jitter restarts than recommended",
            extra={"check": JITTER, "n_candidates": n_candidates, "recommended": settings.recommended_jitter_samples},
        )

    findings: List[Finding] = []
    converged: List[tuple[str, FitRecord]] = []
    for idx, candidate in enumerate(candidates):
        label = _candidate_label(candidate, idx)
        if not candidate.converged:
            findings.append(
                Finding(
                    code="divergent",
                    severity="warn",
                    message=f"{label} did not converge ({candidate.convergence_flag}, objective {candidate.objective_value})",
                    candidate=label,
                    value=candidate.objective_value,
                )
            )
            continue
        converged.append((label, candidate))

    divergent_count = len(findings)
    data: Dict[str, object] = {
        "n_candidates": n_candidates,
        "n_converged": len(converged),
        "n_divergent": divergent_count,
        "reference_objective": reference.objective_value,
        "tolerance": tolerance,
    }

    if not converged:
        for finding in findings:
            finding.severity = "fail"
        return CheckResult(
            name=JITTER,
            outcome="fail",
            code="divergent",
            detail=f"None of the {n_candidates} jitter restarts converged",
            findings=findings,
            data=data,
        )

    objectives = np.array([c.objective_value for _, c in converged])
    deltas = objectives - reference.objective_value
    data["min_objective"] = float(objectives.min())
    data["max_objective"] = float(objectives.max())
    data["n_matching_reference"] = int(np.sum(np.abs(deltas) <= tolerance))

    better = [(label, c, delta) for (label, c), delta in zip(converged, deltas) if delta < -tolerance]
    if better:
        for label, candidate, delta in better:
            findings.append(
                Finding(
                    code="better_solution_found",
                    severity="fail",
                    message=f"{label} objective {candidate.objective_value:.6g} is {-delta:.6g} below the reference",
                    candidate=label,
                    value=float(delta),
                    threshold=-tolerance,
                )
            )
        best_label, best, best_delta = min(better, key=lambda item: item[2])
        data["best_candidate"] = best_label
        data["best_improvement"] = float(-best_delta)
        return CheckResult(
            name=JITTER,
            outcome="fail",
            code="better_solution_found",
            detail=f"{len(better)} restart(s) found a lower objective than the reference; best is {best_label} "
            f"at {best.objective_value:.6g} ({-best_delta:.6g} better, tolerance {tolerance:g}); "
            "the reference fit is at a local optimum",
            findings=findings,
            data=data,
        )

    unstable: Dict[str, float] = {}
    for label, candidate in converged:
        for name, deviation in relative_deviations(reference, candidate).items():
            if deviation > settings.parameter_rtol:
                unstable[name] = max(unstable.get(name, 0.0), deviation)
    if unstable:
        for name, deviation in unstable.items():
            findings.append(
                Finding(
                    code="parameter_instability",
                    severity="warn",
                    message=f"{name} deviates up to {deviation:.2%} from the reference across restarts",
                    parameter=name,
                    value=deviation,
                    threshold=settings.parameter_rtol,
                )
            )
        return CheckResult(
            name=JITTER,
            outcome="warn",
            code="parameter_instability",
            detail=f"No restart beat the reference, but {len(unstable)} parameter(s) moved more than "
            f"{settings.parameter_rtol:.2%}: " + ", ".join(unstable),
            findings=findings,
            data=data,
        )

    if divergent_count:
        return CheckResult(
            name=JITTER,
            outcome="warn",
            code="divergent",
            detail=f"{divergent_count} of {n_candidates} restarts did not converge; "
            f"the {len(converged)} converged restarts reproduce the reference",
            findings=findings,
            data=data,
        )

    return CheckResult(
        name=JITTER,
        outcome="pass",
        detail=f"All {n_candidates} restarts returned to the reference optimum within {tolerance:g}",
        findings=findings,
        data=data,
    )


def summarize_jitter(jitter_set: JitterSet) -> pd.DataFrame:
    """Tabulate restarts: flag, objective, delta to the reference, worst parameter drift."""

    reference = jitter_set.reference
    rows = []
    for idx, candidate in enumerate(jitter_set.candidates):
        deviations = relative_deviations(reference, candidate)
        worst = max(deviations, key=lambda name: deviations[name]) if deviations else None
        rows.append(
            {
                "candidate": _candidate_label(candidate, idx),
                "convergence": candidate.convergence_flag,
                "objective_value": candidate.objective_value,
                "objective_delta": candidate.objective_value - reference.objective_value,
                "max_relative_deviation": deviations[worst] if worst else math.nan,
                "max_deviation_parameter": worst,
            }
        )
    columns = [
        "candidate",
        "convergence",
        "objective_value",
        "objective_delta",
        "max_relative_deviation",
        "max_deviation_parameter",
    ]
    return pd.DataFrame(rows, columns=columns)


__all__ = ["analyze", "relative_deviations", "summarize_jitter"]
