"""Single-fit checks: executability, gradient, Hessian definiteness, standard errors."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
from scipy import linalg

from convergence_diagnostics.config.settings import DEFAULT_SETTINGS, DiagnosticSettings
from convergence_diagnostics.models.fit_record import FitRecord
from convergence_diagnostics.models.report import CheckResult, Finding
from convergence_diagnostics.utils.logging import get_logger

log = get_logger(__name__, component="gradient_hessian")

EXECUTABILITY = "executability"
GRADIENT = "gradient"
HESSIAN = "hessian"
STANDARD_ERRORS = "standard_errors"


@dataclass
class FitCheck:
    """Ordered single-fit check results plus the quantities derived along the way."""

    executability: CheckResult
    gradient: CheckResult
    hessian: CheckResult
    standard_errors: CheckResult
    eigenvalues: Optional[np.ndarray] = None
    covariance: Optional[np.ndarray] = None
    standard_error_values: Dict[str, float] = field(default_factory=dict)

    @property
    def checks(self) -> List[CheckResult]:
        return [self.executability, self.gradient, self.hessian, self.standard_errors]

    @property
    def executable(self) -> bool:
        return self.executability.outcome == "pass"

    @property
    def positive_definite(self) -> bool:
        return self.hessian.outcome == "pass"


def check_executability(fit: FitRecord) -> CheckResult:
    """Fail when the objective or any gradient component is NaN/Inf."""

    problems: List[Finding] = []
    if not math.isfinite(fit.objective_value):
        problems.append(
            Finding(
                code="non_executable",
                severity="fail",
                message=f"objective value is {fit.objective_value}",
                value=fit.objective_value,
            )
        )
    for name, value in fit.gradient.items():
        if not math.isfinite(value):
            problems.append(
                Finding(
                    code="non_executable",
                    severity="fail",
                    message=f"gradient of {name} is {value}",
                    parameter=name,
                    value=value,
                )
            )
    if problems:
        return CheckResult(
            name=EXECUTABILITY,
            outcome="fail",
            code="non_executable",
            detail="Objective function is not executable: " + "; ".join(p.message for p in problems),
            findings=problems,
        )
    return CheckResult(
        name=EXECUTABILITY,
        outcome="pass",
        detail=f"Objective value {fit.objective_value:.6g} and all {len(fit.gradient)} gradient components are finite",
    )


def check_gradient(fit: FitRecord, settings: DiagnosticSettings = DEFAULT_SETTINGS) -> CheckResult:
    """Warn for every parameter whose gradient is effectively zero."""

    tolerance = settings.gradient_tolerance
    grad = fit.gradient_vector
    findings = [
        Finding(
            code="zero_or_missing_gradient",
            severity="warn",
            message=f"{name}: |gradient| {abs(value):.3g} < {tolerance:g} (parameter may be unused or unidentifiable)",
            parameter=name,
            value=value,
            threshold=tolerance,
        )
        for name, value in fit.gradient.items()
        if abs(value) < tolerance
    ]
    data = {
        "max_abs_gradient": float(np.max(np.abs(grad))),
        "max_gradient_parameter": fit.parameter_names[int(np.argmax(np.abs(grad)))],
    }
    if findings:
        return CheckResult(
            name=GRADIENT,
            outcome="warn",
            code="zero_or_missing_gradient",
            detail=f"{len(findings)} parameter(s) with near-zero gradient: "
            + ", ".join(f.parameter or "" for f in findings),
            findings=findings,
            data=data,
        )
    return CheckResult(
        name=GRADIENT,
        outcome="pass",
        detail=f"All gradients exceed {tolerance:g} in magnitude (max {data['max_abs_gradient']:.3g} "
        f"for {data['max_gradient_parameter']})",
        data=data,
    )


def _negated_hessian(fit: FitRecord, settings: DiagnosticSettings) -> np.ndarray:
    hessian = np.asarray(fit.hessian, dtype=float)
    asymmetry = float(np.max(np.abs(hessian - hessian.T))) if hessian.size else 0.0
    if asymmetry > 1e-8 * max(1.0, float(np.max(np.abs(hessian)))):
        log.warning("Hessian is not symmetric; using its symmetric part", extra={"asymmetry": asymmetry})
    symmetric = 0.5 * (hessian + hessian.T)
    if settings.hessian_convention == "log_likelihood":
        return -symmetric
    return symmetric


def check_hessian(fit: FitRecord, settings: DiagnosticSettings = DEFAULT_SETTINGS) -> tuple[CheckResult, Optional[np.ndarray]]:
    """Check positive definiteness of the negated Hessian; returns the eigenvalues too."""

    if not fit.has_hessian:
        return (
            CheckResult.skipped(
                HESSIAN,
                "Hessian unavailable; second-derivative computation did not run or failed",
                code="hessian_unavailable",
            ),
            None,
        )

    matrix = _negated_hessian(fit, settings)
    if not np.all(np.isfinite(matrix)):
        return (
            CheckResult(
                name=HESSIAN,
                outcome="fail",
                code="non_positive_definite_hessian",
                detail="Hessian contains non-finite entries",
            ),
            None,
        )

    eigenvalues = np.linalg.eigvalsh(matrix)
    scale = max(1.0, float(np.max(np.abs(eigenvalues))))
    floor = settings.eigenvalue_tolerance * scale
    bad = np.flatnonzero(eigenvalues <= floor)
    smallest = float(eigenvalues.min())
    largest = float(eigenvalues.max())
    data = {
        "eigenvalues": eigenvalues,
        "min_eigenvalue": smallest,
        "max_eigenvalue": largest,
        "condition_number": largest / smallest if smallest > 0 else math.inf,
    }
    if bad.size:
        findings = []
        for idx in bad:
            findings.append(
                Finding(
                    code="non_positive_definite_hessian",
                    severity="fail",
                    message=f"eigenvalue {eigenvalues[idx]:.3g} <= {floor:.3g}",
                    value=float(eigenvalues[idx]),
                    threshold=floor,
                )
            )
        # largest eigenvector loading names the parameter spanning the worst direction
        _, vectors = np.linalg.eigh(matrix)
        loadings = np.abs(vectors[:, bad[0]])
        culprit = fit.parameter_names[int(np.argmax(loadings))]
        findings[0].parameter = culprit
        return (
            CheckResult(
                name=HESSIAN,
                outcome="fail",
                code="non_positive_definite_hessian",
                detail=f"Hessian is not positive definite ({bad.size} eigenvalue(s) <= {floor:.3g}, "
                f"smallest {smallest:.3g}, dominated by {culprit}); the fit is not at a true minimum",
                findings=findings,
                data=data,
            ),
            eigenvalues,
        )
    return (
        CheckResult(
            name=HESSIAN,
            outcome="pass",
            detail=f"Hessian is positive definite (eigenvalues {smallest:.3g} to {largest:.3g}, "
            f"condition number {data['condition_number']:.3g})",
            data=data,
        ),
        eigenvalues,
    )


def check_standard_errors(
    fit: FitRecord,
    hessian_result: CheckResult,
    settings: DiagnosticSettings = DEFAULT_SETTINGS,
) -> tuple[CheckResult, Optional[np.ndarray], Dict[str, float]]:
    """Derive standard errors from the inverse negated Hessian and flag unstable ones."""

    if hessian_result.outcome != "pass":
        reason = (
            "Hessian unavailable"
            if hessian_result.code == "hessian_unavailable"
            else "Hessian is not positive definite"
        )
        return (
            CheckResult.skipped(STANDARD_ERRORS, f"{reason}; standard errors cannot be derived", code="upstream_failure"),
            None,
            {},
        )

    matrix = _negated_hessian(fit, settings)
    try:
        factor = linalg.cho_factor(matrix)
        covariance = linalg.cho_solve(factor, np.eye(matrix.shape[0]))
    except linalg.LinAlgError as exc:
        return (
            CheckResult(
                name=STANDARD_ERRORS,
                outcome="fail",
                code="non_positive_definite_hessian",
                detail=f"Cholesky inversion of the Hessian failed: {exc}",
            ),
            None,
            {},
        )

    variances = np.diag(covariance)
    standard_errors = {
        name: float(math.sqrt(var)) if var >= 0 else math.nan
        for name, var in zip(fit.parameter_names, variances)
    }
    threshold = settings.max_relative_se
    findings: List[Finding] = []
    relative: Dict[str, float] = {}
    for name, se in standard_errors.items():
        estimate = fit.parameters[name]
        rel = se / abs(estimate) if estimate != 0 else math.inf
        relative[name] = rel
        if not rel <= threshold:
            findings.append(
                Finding(
                    code="unreasonable_standard_error",
                    severity="warn",
                    message=f"{name}: se {se:.4g} vs estimate {estimate:.4g} (relative {rel:.3g} > {threshold:g})",
                    parameter=name,
                    value=rel,
                    threshold=threshold,
                )
            )
    data = {"standard_errors": standard_errors, "relative_standard_errors": relative}
    if findings:
        return (
            CheckResult(
                name=STANDARD_ERRORS,
                outcome="warn",
                code="unreasonable_standard_error",
                detail=f"{len(findings)} parameter(s) with relative standard error above {threshold:g}: "
                + ", ".join(f.parameter or "" for f in findings),
                findings=findings,
                data=data,
            ),
            covariance,
            standard_errors,
        )
    return (
        CheckResult(
            name=STANDARD_ERRORS,
            outcome="pass",
            detail=f"All {len(standard_errors)} relative standard errors are within {threshold:g}",
            data=data,
        ),
        covariance,
        standard_errors,
    )


def check(fit: FitRecord, settings: Optional[DiagnosticSettings] = None) -> FitCheck:
    """Run the single-fit checks in checklist order.

    When the objective is not executable the remaining checks are recorded as skipped.
    """

    settings = settings or DEFAULT_SETTINGS
    executability = check_executability(fit)
    if executability.outcome != "pass":
        log.warning("Fit is not executable", extra={"check": EXECUTABILITY, "outcome": "fail"})
        skipped = "Skipped because the objective function is not executable"
        return FitCheck(
            executability=executability,
            gradient=CheckResult.skipped(GRADIENT, skipped, code="upstream_failure"),
            hessian=CheckResult.skipped(HESSIAN, skipped, code="upstream_failure"),
            standard_errors=CheckResult.skipped(STANDARD_ERRORS, skipped, code="upstream_failure"),
        )

    gradient = check_gradient(fit, settings)
    hessian, eigenvalues = check_hessian(fit, settings)
    standard_errors, covariance, se_values = check_standard_errors(fit, hessian, settings)
    return FitCheck(
        executability=executability,
        gradient=gradient,
        hessian=hessian,
        standard_errors=standard_errors,
        eigenvalues=eigenvalues,
        covariance=covariance,
        standard_error_values=se_values,
    )


__all__ = [
    "FitCheck",
    "check",
    "check_executability",
    "check_gradient",
    "check_hessian",
    "check_standard_errors",
]
