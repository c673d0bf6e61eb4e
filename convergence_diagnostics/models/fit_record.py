"""Fit record and jitter set containers for completed model runs."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Literal, Mapping, Optional, Sequence, Tuple

import numpy as np

from convergence_diagnostics.exceptions import FitRecordError

ConvergenceFlag = Literal["converged", "failed_singular", "failed_other"]
CONVERGENCE_FLAGS: Tuple[str, ...] = ("converged", "failed_singular", "failed_other")


def _as_float(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise FitRecordError(f"{name} must be numeric, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise FitRecordError(f"{name} must be numeric, got {value!r}") from exc


@dataclass(frozen=True, eq=False)
class FitRecord:
    """Outputs of one completed optimization run.

    Parameters keep their insertion order; the Hessian rows/columns follow it.
    Non-finite numbers are allowed here since the executability check reports on them.
    """

    parameters: Mapping[str, float]
    objective_value: float
    gradient: Mapping[str, float]
    hessian: Optional[np.ndarray] = None
    convergence_flag: ConvergenceFlag = "converged"
    label: Optional[str] = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.parameters, Mapping):
            items = list(self.parameters.items())
        else:
            items = list(self.parameters)
        if not all(isinstance(item, (tuple, list)) and len(item) == 2 for item in items):
            raise FitRecordError("parameters must be a mapping or a sequence of (name, value) pairs")
        if not isinstance(self.gradient, Mapping):
            raise FitRecordError(f"gradient must be a mapping of parameter name to value, got {self.gradient!r}")
        if not isinstance(self.metadata, Mapping):
            raise FitRecordError(f"metadata must be a mapping, got {self.metadata!r}")
        names = [str(name) for name, _ in items]
        if len(set(names)) != len(names):
            duplicates = sorted({n for n in names if names.count(n) > 1})
            raise FitRecordError(f"Duplicate parameter names: {duplicates}")
        if not names:
            raise FitRecordError("A fit record needs at least one parameter")
        params = {name: _as_float(f"parameter {name}", value) for name, (_, value) in zip(names, items)}

        raw_gradient = {str(key): value for key, value in self.gradient.items()}
        gradient_keys = set(raw_gradient)
        if gradient_keys != set(names):
            missing = sorted(set(names) - gradient_keys)
            extra = sorted(gradient_keys - set(names))
            raise FitRecordError(
                f"Gradient keys must match parameter names (missing={missing}, unexpected={extra})"
            )
        gradient = {name: _as_float(f"gradient {name}", raw_gradient[name]) for name in names}

        hessian = None
        if self.hessian is not None:
            try:
                hessian = np.array(self.hessian, dtype=float)
            except (TypeError, ValueError) as exc:
                raise FitRecordError(f"Hessian must be a numeric matrix: {exc}") from exc
            n = len(names)
            if hessian.shape != (n, n):
                raise FitRecordError(f"Hessian shape {hessian.shape} does not match {n} parameters")
            hessian.setflags(write=False)

        if self.convergence_flag not in CONVERGENCE_FLAGS:
            raise FitRecordError(
                f"convergence_flag must be one of {list(CONVERGENCE_FLAGS)}, got {self.convergence_flag!r}"
            )

        object.__setattr__(self, "parameters", MappingProxyType(params))
        object.__setattr__(self, "gradient", MappingProxyType(gradient))
        object.__setattr__(self, "hessian", hessian)
        object.__setattr__(self, "objective_value", _as_float("objective_value", self.objective_value))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        return tuple(self.parameters.keys())

    @property
    def values(self) -> np.ndarray:
        return np.array(list(self.parameters.values()), dtype=float)

    @property
    def gradient_vector(self) -> np.ndarray:
        return np.array([self.gradient[name] for name in self.parameter_names], dtype=float)

    @property
    def has_hessian(self) -> bool:
        return self.hessian is not None

    @property
    def converged(self) -> bool:
        return self.convergence_flag == "converged" and math.isfinite(self.objective_value)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "parameters": [
                {"name": name, "value": value, "gradient": self.gradient[name]}
                for name, value in self.parameters.items()
            ],
            "objective_value": self.objective_value,
            "convergence": self.convergence_flag,
        }
        if self.hessian is not None:
            payload["hessian"] = self.hessian.tolist()
        if self.label is not None:
            payload["label"] = self.label
        if self.metadata:
            payload["metadata"] = dict(self.metadata)
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, label: Optional[str] = None) -> "FitRecord":
        """Build a record from the serialized document layout.

        ``parameters`` is either a name -> value mapping (``gradient`` then required)
        or a list of ``{name, value, gradient}`` rows.
        """

        if not isinstance(data, Mapping):
            raise FitRecordError("Fit document must be a mapping")
        if "parameters" not in data:
            raise FitRecordError("Fit document is missing 'parameters'")
        if "objective_value" not in data:
            raise FitRecordError("Fit document is missing 'objective_value'")

        raw_params = data["parameters"]
        raw_gradient = data.get("gradient") or {}
        if not isinstance(raw_gradient, Mapping):
            raise FitRecordError("'gradient' must be a mapping of parameter name to value")
        metadata = data.get("metadata") or {}
        if not isinstance(metadata, Mapping):
            raise FitRecordError("'metadata' must be a mapping")
        gradient: Dict[str, Any] = dict(raw_gradient)
        params: Dict[str, Any] = {}
        if isinstance(raw_params, Mapping):
            params = dict(raw_params)
        elif isinstance(raw_params, Sequence) and not isinstance(raw_params, (str, bytes)):
            for row in raw_params:
                if not isinstance(row, Mapping) or "name" not in row or "value" not in row:
                    raise FitRecordError(f"Parameter rows need 'name' and 'value', got {row!r}")
                name = str(row["name"])
                if name in params:
                    raise FitRecordError(f"Duplicate parameter names: ['{name}']")
                params[name] = row["value"]
                if "gradient" in row:
                    gradient[name] = row["gradient"]
        else:
            raise FitRecordError("'parameters' must be a mapping or a list of rows")

        flag = str(data.get("convergence", data.get("convergence_flag", "converged"))).lower()
        return cls(
            parameters=params,
            objective_value=data["objective_value"],
            gradient=gradient,
            hessian=data.get("hessian"),
            convergence_flag=flag,  # type: ignore[arg-type]
            label=data.get("label", label),
            metadata=metadata,
        )


@dataclass(frozen=True)
class JitterSet:
    """Reference fit plus the fits obtained from randomized restarts."""

    reference: FitRecord
    candidates: Tuple[FitRecord, ...] = ()

    def __post_init__(self) -> None:
        candidates = tuple(self.candidates)
        expected = set(self.reference.parameter_names)
        for idx, candidate in enumerate(candidates):
            names = set(candidate.parameter_names)
            if names != expected:
                raise FitRecordError(
                    f"Jitter candidate {candidate.label or idx} has parameters "
                    f"{sorted(names ^ expected)} not shared with the reference"
                )
        object.__setattr__(self, "candidates", candidates)

    def __len__(self) -> int:
        return len(self.candidates)


__all__ = ["CONVERGENCE_FLAGS", "ConvergenceFlag", "FitRecord", "JitterSet"]
