"""Failure placeholders for external runs that produced no usable fit."""

from __future__ import annotations

from typing import Mapping, Optional

from convergence_diagnostics.models.fit_record import FitRecord
from convergence_diagnostics.utils.logging import get_logger

log = get_logger(__name__, component="runner_errors")


def record_execution_failure(
    start_values: Mapping[str, float],
    *,
    error: Exception | str,
    label: str,
    stage: str = "run",
    fixed: Optional[Mapping[str, float]] = None,
) -> FitRecord:
    """Log diagnostics for a failed run and return a FitRecord flagged ``failed_other``.

    The record keeps the attempted starting values so the batch stays aligned with
    its inputs; objective and gradient are NaN.
    """

    message = str(error) or error.__class__.__name__
    log.warning(
        "Model run failed",
        extra={
            "candidate": label,
            "stage": stage,
            "status": "FAILED",
            "error": message,
        },
    )
    parameters = dict(start_values)
    parameters.update(fixed or {})
    return FitRecord(
        parameters=parameters,
        objective_value=float("nan"),
        gradient={name: float("nan") for name in parameters},
        convergence_flag="failed_other",
        label=label,
        metadata={"error": message, "stage": stage, "error_type": type(error).__name__},
    )


__all__ = ["record_execution_failure"]
