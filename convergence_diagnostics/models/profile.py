"""Likelihood profile containers."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Literal, Optional, Tuple

import numpy as np

from convergence_diagnostics.exceptions import FitRecordError
from convergence_diagnostics.models.fit_record import FitRecord, _as_float

ProfileShape = Literal[
    "well_defined_minimum",
    "flat",
    "multi_modal",
    "monotonic",
    "insufficient_points",
]


@dataclass(frozen=True)
class ProfilePoint:
    """One sweep point: the profiled parameter held fixed, the rest re-estimated."""

    fixed_value: float
    objective_value: float
    fit: Optional[FitRecord] = None

    def __post_init__(self) -> None:
        fixed = _as_float("profile fixed value", self.fixed_value)
        if not math.isfinite(fixed):
            raise FitRecordError(f"Profile fixed value must be finite, got {self.fixed_value!r}")
        object.__setattr__(self, "fixed_value", fixed)
        object.__setattr__(self, "objective_value", _as_float("profile objective value", self.objective_value))


@dataclass(frozen=True)
class ProfileCurve:
    """Profile points for a single parameter, strictly increasing by fixed value."""

    parameter: str
    points: Tuple[ProfilePoint, ...]

    def __post_init__(self) -> None:
        points = tuple(self.points)
        for previous, current in zip(points, points[1:]):
            if current.fixed_value == previous.fixed_value:
                raise FitRecordError(
                    f"Duplicate profile point for {self.parameter} at {current.fixed_value}"
                )
            if current.fixed_value < previous.fixed_value:
                raise FitRecordError(
                    f"Profile points for {self.parameter} must be strictly increasing "
                    f"({previous.fixed_value} then {current.fixed_value})"
                )
        object.__setattr__(self, "points", points)

    @classmethod
    def from_unordered(cls, parameter: str, points: Iterable[ProfilePoint]) -> "ProfileCurve":
        return cls(parameter=parameter, points=tuple(sorted(points, key=lambda p: p.fixed_value)))

    @classmethod
    def from_arrays(cls, parameter: str, fixed_values, objective_values) -> "ProfileCurve":
        fixed = np.asarray(fixed_values, dtype=float)
        objective = np.asarray(objective_values, dtype=float)
        if fixed.shape != objective.shape:
            raise FitRecordError("Profile fixed and objective arrays must have the same length")
        return cls(
            parameter=parameter,
            points=tuple(ProfilePoint(float(x), float(y)) for x, y in zip(fixed, objective)),
        )

    def __len__(self) -> int:
        return len(self.points)

    @property
    def fixed_values(self) -> np.ndarray:
        return np.array([p.fixed_value for p in self.points], dtype=float)

    @property
    def objective_values(self) -> np.ndarray:
        return np.array([p.objective_value for p in self.points], dtype=float)


__all__ = ["ProfileCurve", "ProfilePoint", "ProfileShape"]
