"""Checklist items evaluated against completed model runs."""

from __future__ import annotations

from .gradient_hessian import FitCheck, check, check_executability, check_gradient, check_hessian, check_standard_errors
from .jitter import analyze, summarize_jitter
from .profile import analyze_profile, classify, profile_confidence_interval

__all__ = [
    "FitCheck",
    "analyze",
    "analyze_profile",
    "check",
    "check_executability",
    "check_gradient",
    "check_hessian",
    "check_standard_errors",
    "classify",
    "profile_confidence_interval",
    "summarize_jitter",
]
