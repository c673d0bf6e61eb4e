"""Aggregate the convergence checklist into a single diagnostic report."""

from __future__ import annotations

import time
from typing import Iterable, List, Optional

from convergence_diagnostics.checks.gradient_hessian import check
from convergence_diagnostics.checks.jitter import JITTER, analyze
from convergence_diagnostics.checks.profile import analyze_profile
from convergence_diagnostics.config.settings import DEFAULT_SETTINGS, DiagnosticSettings
from convergence_diagnostics.models.fit_record import FitRecord, JitterSet
from convergence_diagnostics.models.profile import ProfileCurve
from convergence_diagnostics.models.report import CheckResult, DiagnosticReport, OverallOutcome
from convergence_diagnostics.utils.logging import get_logger

log = get_logger(__name__, component="report_builder")


def _overall(checks: List[CheckResult], settings: DiagnosticSettings) -> OverallOutcome:
    failing = {"fail", "warn"} if settings.warnings_as_failures else {"fail"}
    return "fail" if any(c.outcome in failing for c in checks) else "pass"


def build_report(
    fit: FitRecord,
    jitter_set: Optional[JitterSet] = None,
    profile_curves: Iterable[ProfileCurve] = (),
    settings: Optional[DiagnosticSettings] = None,
) -> DiagnosticReport:
    """Run executability, gradient, Hessian, standard-error, jitter and profile checks in order.

    An objective that cannot be evaluated short-circuits everything after the
    executability check; otherwise every check runs even when an earlier one failed.
    """

    settings = settings or DEFAULT_SETTINGS
    started = time.perf_counter()
    curves = list(profile_curves)

    if jitter_set is not None and jitter_set.reference is not fit:
        log.info("Jitter set carries its own reference fit", extra={"check": JITTER})

    fit_check = check(fit, settings)
    checks: List[CheckResult] = list(fit_check.checks)

    if not fit_check.executable:
        skipped = "Skipped because the objective function is not executable"
        checks.append(CheckResult.skipped(JITTER, skipped, code="upstream_failure"))
        checks.extend(
            CheckResult.skipped(f"profile:{curve.parameter}", skipped, code="upstream_failure") for curve in curves
        )
        report = DiagnosticReport(checks=checks, overall="fail", label=fit.label)
        log.warning("Report short-circuited on non-executable objective", extra={"outcome": "fail"})
        return report

    if jitter_set is None:
        checks.append(CheckResult.skipped(JITTER, "No jitter restarts supplied", code="not_supplied"))
    else:
        checks.append(analyze(jitter_set, settings=settings))

    for curve in curves:
        checks.append(analyze_profile(curve, reference=fit, settings=settings))

    report = DiagnosticReport(checks=checks, overall=_overall(checks, settings), label=fit.label)
    log.info(
        "Diagnostic report built",
        extra={
            "outcome": report.overall,
            "duration_ms": round((time.perf_counter() - started) * 1000, 3),
            "n_checks": len(checks),
        },
    )
    return report


__all__ = ["build_report"]
