"""Likelihood profile shape classification and profile checks."""

from __future__ import annotations

import math
from typing import Dict, List, Optional, Tuple

import numpy as np
from scipy import stats

from convergence_diagnostics.config.settings import DEFAULT_SETTINGS, DiagnosticSettings
from convergence_diagnostics.models.fit_record import FitRecord
from convergence_diagnostics.models.profile import ProfileCurve, ProfileShape
from convergence_diagnostics.models.report import CheckOutcome, CheckResult, Finding, IssueCode
from convergence_diagnostics.utils.logging import get_logger

log = get_logger(__name__, component="profile")

SHAPE_OUTCOMES: Dict[str, Tuple[CheckOutcome, Optional[IssueCode]]] = {
    "well_defined_minimum": ("pass", None),
    "flat": ("warn", "flat_profile"),
    "monotonic": ("fail", "monotonic_profile"),
    "multi_modal": ("fail", "multi_modal_profile"),
    "insufficient_points": ("fail", "insufficient_points"),
}

SHAPE_DESCRIPTIONS = {
    "well_defined_minimum": "single interior minimum with both flanks rising",
    "flat": "objective is flat; the parameter is poorly informed by the data",
    "monotonic": "optimum is open-ended or at the sweep boundary; widen the range or check identifiability",
    "multi_modal": "multiple local minima; competing solutions exist",
    "insufficient_points": "too few sweep points to classify",
}


def _step_signs(objective: np.ndarray, threshold: float) -> np.ndarray:
    diffs = np.diff(objective)
    signs = np.sign(diffs).astype(int)
    signs[np.abs(diffs) <= threshold] = 0
    return signs


def _local_minima(signs: np.ndarray) -> List[int]:
    """Indices of points where the last non-zero step fell and the next non-zero step rises.

    A flat-bottomed minimum is reported at the first point of its plateau.
    """
    minima: List[int] = []
    last_sign = 0
    plateau_start = 0
    for step, sign in enumerate(signs):
        if sign == 0:
            continue
        if sign > 0 and last_sign < 0:
            minima.append(plateau_start)
        last_sign = sign
        plateau_start = step + 1
    return minima


def noise_threshold(objective: np.ndarray, settings: DiagnosticSettings = DEFAULT_SETTINGS) -> float:
    finite = objective[np.isfinite(objective)]
    scale = max(1.0, float(np.max(np.abs(finite)))) if finite.size else 1.0
    return settings.profile_noise_tolerance * scale


def classify(curve: ProfileCurve, settings: Optional[DiagnosticSettings] = None) -> ProfileShape:
    """Classify the profile as a U shape, flat, monotonic/open-ended or multi-modal."""

    settings = settings or DEFAULT_SETTINGS
    if len(curve) < settings.min_profile_points:
        return "insufficient_points"

    objective = curve.objective_values
    # failed sweep points cannot be placed on the curve
    objective = objective[np.isfinite(objective)]
    if objective.size < settings.min_profile_points:
        return "insufficient_points"

    threshold = noise_threshold(objective, settings)
    if float(objective.max() - objective.min()) <= threshold:
        return "flat"

    signs = _step_signs(objective, threshold)
    minima = _local_minima(signs)
    if len(minima) >= 2:
        return "multi_modal"
    if len(minima) == 1:
        bottom = minima[0]
        left = signs[:bottom]
        right = signs[bottom:]
        # plateau steps at the bottom belong to neither flank
        right = right[int(np.argmax(right != 0)):]
        if np.all(left < 0) and np.all(right > 0):
            return "well_defined_minimum"
    return "monotonic"


def profile_confidence_interval(
    curve: ProfileCurve, confidence: float = 0.95
) -> Tuple[Optional[float], Optional[float]]:
    """Likelihood-ratio interval: fixed values where the objective rises chi2/2 above its minimum.

    Bounds are linearly interpolated between sweep points; a side the curve never
    crosses is returned as None.
    """

    x = curve.fixed_values
    y = curve.objective_values
    finite = np.isfinite(y)
    x, y = x[finite], y[finite]
    if x.size < 2:
        return None, None
    cutoff = float(y.min()) + 0.5 * float(stats.chi2.ppf(confidence, df=1))
    best = int(np.argmin(y))

    lower = None
    for i in range(best, 0, -1):
        if y[i - 1] >= cutoff > y[i] or y[i - 1] > cutoff >= y[i]:
            lower = float(np.interp(cutoff, [y[i], y[i - 1]], [x[i], x[i - 1]]))
            break
    upper = None
    for i in range(best, x.size - 1):
        if y[i + 1] >= cutoff > y[i] or y[i + 1] > cutoff >= y[i]:
            upper = float(np.interp(cutoff, [y[i], y[i + 1]], [x[i], x[i + 1]]))
            break
    return lower, upper


def analyze_profile(
    curve: ProfileCurve,
    reference: Optional[FitRecord] = None,
    settings: Optional[DiagnosticSettings] = None,
) -> CheckResult:
    """Turn a profile classification into a checklist result.

    With a reference fit, any sweep point whose objective is lower than the reference's
    by more than the jitter tolerance also fails: the reference missed the optimum.
    """

    settings = settings or DEFAULT_SETTINGS
    name = f"profile:{curve.parameter}"
    shape = classify(curve, settings)
    outcome, code = SHAPE_OUTCOMES[shape]
    x = curve.fixed_values
    y = curve.objective_values
    data: Dict[str, object] = {"shape": shape, "n_points": len(curve)}
    findings: List[Finding] = []
    detail = f"{curve.parameter} profile over {len(curve)} point(s): {SHAPE_DESCRIPTIONS[shape]}"

    if len(curve) and np.any(np.isfinite(y)):
        best = int(np.nanargmin(y))
        data["range"] = [float(x.min()), float(x.max())]
        data["minimum_at"] = float(x[best])
        data["minimum_objective"] = float(y[best])
        data["objective_span"] = float(np.nanmax(y) - np.nanmin(y))

    if code is not None:
        findings.append(
            Finding(code=code, severity=outcome, message=SHAPE_DESCRIPTIONS[shape], parameter=curve.parameter)
        )

    if shape == "well_defined_minimum":
        lower, upper = profile_confidence_interval(curve, settings.profile_confidence)
        data["confidence_interval"] = [lower, upper]
        data["confidence_level"] = settings.profile_confidence
        if lower is not None and upper is not None:
            detail += f"; {settings.profile_confidence:.0%} likelihood interval [{lower:.4g}, {upper:.4g}]"
        else:
            detail += "; likelihood interval not closed within the sweep range"

    if reference is not None and math.isfinite(reference.objective_value) and "minimum_objective" in data:
        improvement = reference.objective_value - float(data["minimum_objective"])
        if improvement > settings.jitter_tolerance:
            findings.append(
                Finding(
                    code="profile_better_solution",
                    severity="fail",
                    message=f"profile point {curve.parameter}={data['minimum_at']:.6g} reaches objective "
                    f"{data['minimum_objective']:.6g}, {improvement:.6g} below the reference",
                    parameter=curve.parameter,
                    value=improvement,
                    threshold=settings.jitter_tolerance,
                )
            )
            if outcome != "fail":
                outcome, code = "fail", "profile_better_solution"
            detail += f"; a sweep point improves on the reference objective by {improvement:.6g}"
            log.warning(
                "Profile found a lower objective than the reference",
                extra={"parameter": curve.parameter, "improvement": improvement},
            )

    return CheckResult(name=name, outcome=outcome, detail=detail, code=code, findings=findings, data=data)


__all__ = [
    "SHAPE_OUTCOMES",
    "analyze_profile",
    "classify",
    "noise_threshold",
    "profile_confidence_interval",
]
