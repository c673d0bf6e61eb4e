"""Check results and the aggregated diagnostic report."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

CheckOutcome = Literal["pass", "fail", "warn", "skipped"]
OverallOutcome = Literal["pass", "fail"]

IssueCode = Literal[
    "non_executable",
    "zero_or_missing_gradient",
    "hessian_unavailable",
    "non_positive_definite_hessian",
    "unreasonable_standard_error",
    "insufficient_jitter_samples",
    "divergent",
    "better_solution_found",
    "parameter_instability",
    "insufficient_points",
    "flat_profile",
    "multi_modal_profile",
    "monotonic_profile",
    "profile_better_solution",
    "upstream_failure",
    "not_supplied",
]


@dataclass
class Finding:
    """A single located problem, e.g. one parameter or one jitter candidate."""

    code: IssueCode
    severity: CheckOutcome
    message: str
    parameter: Optional[str] = None
    candidate: Optional[str] = None
    value: Optional[float] = None
    threshold: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "severity": self.severity,
            "message": self.message,
            "parameter": self.parameter,
            "candidate": self.candidate,
            "value": _json_float(self.value),
            "threshold": _json_float(self.threshold),
        }


@dataclass
class CheckResult:
    name: str
    outcome: CheckOutcome
    detail: str
    code: Optional[IssueCode] = None
    findings: List[Finding] = field(default_factory=list)
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def ran(self) -> bool:
        return self.outcome != "skipped"

    def findings_with(self, code: IssueCode) -> List[Finding]:
        return [f for f in self.findings if f.code == code]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "outcome": self.outcome,
            "code": self.code,
            "detail": self.detail,
            "findings": [f.to_dict() for f in self.findings],
            "data": _jsonable(self.data),
        }

    @classmethod
    def skipped(cls, name: str, detail: str, code: Optional[IssueCode] = None) -> "CheckResult":
        return cls(name=name, outcome="skipped", detail=detail, code=code)


@dataclass
class DiagnosticReport:
    """Ordered checklist verdicts plus the overall pass/fail."""

    checks: List[CheckResult]
    overall: OverallOutcome
    label: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.overall == "pass"

    @property
    def has_warnings(self) -> bool:
        return any(check.outcome == "warn" for check in self.checks)

    @property
    def failures(self) -> List[CheckResult]:
        return [check for check in self.checks if check.outcome == "fail"]

    def get(self, name: str) -> CheckResult:
        for check in self.checks:
            if check.name == name:
                return check
        raise KeyError(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "overall": self.overall,
            "has_warnings": self.has_warnings,
            "checks": [check.to_dict() for check in self.checks],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


def _json_float(value: Optional[float]) -> Optional[float | str]:
    if value is None:
        return None
    value = float(value)
    if math.isfinite(value):
        return value
    return str(value)


def _jsonable(value: Any) -> Any:
    """Convert numpy values and non-finite floats into JSON-safe primitives."""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if hasattr(value, "tolist"):
        return _jsonable(value.tolist())
    if isinstance(value, float):
        return _json_float(value)
    return value


__all__ = [
    "CheckOutcome",
    "CheckResult",
    "DiagnosticReport",
    "Finding",
    "IssueCode",
    "OverallOutcome",
]
