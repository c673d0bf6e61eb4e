"""Tolerances and thresholds used by the convergence checks."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Literal, Mapping

from convergence_diagnostics.exceptions import ConfigValidationError

HessianConvention = Literal["log_likelihood", "objective"]


@dataclass(frozen=True)
class DiagnosticSettings:
    """Numeric defaults for every checklist item.

    Attributes:
        gradient_tolerance: |gradient| below this marks a parameter as unused/unidentified.
        eigenvalue_tolerance: relative floor for eigenvalues of the negated Hessian.
        max_relative_se: se / |estimate| above this is reported as unreasonable.
        hessian_convention: "log_likelihood" when the supplied matrix holds second
            derivatives of the log-likelihood (negated before use), "objective" when
            it already holds second derivatives of the minimized objective.
        jitter_tolerance: objective units a restart must improve by to count as a better optimum.
        parameter_rtol: relative deviation from the reference estimate tolerated in restarts.
        min_jitter_samples: fewer restarts than this fails the jitter test.
        recommended_jitter_samples: fewer restarts than this only logs a warning.
        min_profile_points: profiles shorter than this are not classified.
        profile_noise_tolerance: relative objective change treated as noise along a profile.
        profile_confidence: confidence level of the likelihood-ratio interval.
        warnings_as_failures: treat any warn outcome as failing the overall verdict.
    """

    gradient_tolerance: float = 1e-4
    eigenvalue_tolerance: float = 1e-10
    max_relative_se: float = 1.0
    hessian_convention: HessianConvention = "log_likelihood"
    jitter_tolerance: float = 1e-3
    parameter_rtol: float = 0.01
    min_jitter_samples: int = 1
    recommended_jitter_samples: int = 20
    min_profile_points: int = 5
    profile_noise_tolerance: float = 1e-6
    profile_confidence: float = 0.95
    warnings_as_failures: bool = False

    def __post_init__(self) -> None:
        for name in (
            "gradient_tolerance",
            "eigenvalue_tolerance",
            "max_relative_se",
            "jitter_tolerance",
            "parameter_rtol",
            "profile_noise_tolerance",
        ):
            value = getattr(self, name)
            if not math.isfinite(value) or value < 0:
                raise ConfigValidationError(f"{name} must be a finite value >= 0, got {value!r}")
        if self.hessian_convention not in {"log_likelihood", "objective"}:
            raise ConfigValidationError("hessian_convention must be one of: log_likelihood, objective")
        if self.min_jitter_samples < 1:
            raise ConfigValidationError("min_jitter_samples must be >= 1")
        if self.recommended_jitter_samples < self.min_jitter_samples:
            raise ConfigValidationError("recommended_jitter_samples must be >= min_jitter_samples")
        if self.min_profile_points < 3:
            raise ConfigValidationError("min_profile_points must be >= 3")
        if not 0.0 < self.profile_confidence < 1.0:
            raise ConfigValidationError("profile_confidence must be between 0 and 1")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "DiagnosticSettings":
        """Build settings from a config mapping, ignoring unset (None) entries."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigValidationError(f"Unknown diagnostic settings: {unknown}")
        kwargs = {key: value for key, value in values.items() if value is not None}
        try:
            return cls(**kwargs)
        except TypeError as exc:
            raise ConfigValidationError(str(exc)) from exc

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


DEFAULT_SETTINGS = DiagnosticSettings()


__all__ = ["DEFAULT_SETTINGS", "DiagnosticSettings", "HessianConvention"]
