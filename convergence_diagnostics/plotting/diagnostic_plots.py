"""
Diagnostic plots for jitter tests and likelihood profiles.

Profiles are drawn as change in objective against the fixed parameter value with
the likelihood-ratio cutoff marked; jitter restarts are drawn as a box plot of
objective differences from the reference with individual runs overlaid.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.figure import Figure
from scipy import stats

from convergence_diagnostics.checks.profile import classify, profile_confidence_interval
from convergence_diagnostics.config.settings import DEFAULT_SETTINGS, DiagnosticSettings
from convergence_diagnostics.models.fit_record import JitterSet
from convergence_diagnostics.models.profile import ProfileCurve
from convergence_diagnostics.utils.logging import get_logger

log = get_logger(__name__, component="diagnostic_plots")

# Wong colorblind-friendly palette
COLORS = {
    "curve": "#0072B2",
    "cutoff": "#D55E00",
    "reference": "#009E73",
    "better": "#CC79A7",
    "divergent": "#999999",
}


def _save(fig: Figure, output_path: Optional[Path]) -> None:
    if output_path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=150, bbox_inches="tight")
        log.info(f"Saved diagnostic plot to {output_path}")


def plot_profile(
    curve: ProfileCurve,
    settings: Optional[DiagnosticSettings] = None,
    reference_value: Optional[float] = None,
    output_path: Optional[Path] = None,
) -> Figure:
    """Plot Δobjective along a profile with the confidence cutoff and interval bounds."""

    settings = settings or DEFAULT_SETTINGS
    x = curve.fixed_values
    y = curve.objective_values
    finite = np.isfinite(y)
    delta = y - np.nanmin(y) if finite.any() else y

    fig, ax = plt.subplots(figsize=(7, 5))
    ax.plot(x[finite], delta[finite], marker="o", color=COLORS["curve"], linewidth=2, label="Profile")
    if (~finite).any():
        ax.scatter(x[~finite], np.zeros(int((~finite).sum())), marker="x", color=COLORS["divergent"], label="Failed fit")

    cutoff = 0.5 * float(stats.chi2.ppf(settings.profile_confidence, df=1))
    ax.axhline(cutoff, color=COLORS["cutoff"], linestyle="--", label=f"{settings.profile_confidence:.0%} cutoff")
    lower, upper = profile_confidence_interval(curve, settings.profile_confidence)
    for bound in (lower, upper):
        if bound is not None:
            ax.axvline(bound, color=COLORS["cutoff"], linestyle=":", alpha=0.7)
    if reference_value is not None:
        ax.axvline(reference_value, color=COLORS["reference"], linewidth=1.5, label="Estimate")

    ax.set_xlabel(curve.parameter)
    ax.set_ylabel("Change in objective")
    ax.set_title(f"Likelihood profile: {curve.parameter} ({classify(curve, settings).replace('_', ' ')})")
    ax.legend(loc="upper center", fontsize=9)
    ax.grid(True, alpha=0.3)
    plt.tight_layout()

    _save(fig, output_path)
    return fig


def plot_jitter(
    jitter_set: JitterSet,
    settings: Optional[DiagnosticSettings] = None,
    output_path: Optional[Path] = None,
) -> Figure:
    """Box plot of restart objectives relative to the reference fit."""

    settings = settings or DEFAULT_SETTINGS
    reference = jitter_set.reference.objective_value
    converged = np.array([c.objective_value - reference for c in jitter_set.candidates if c.converged])
    n_divergent = sum(1 for c in jitter_set.candidates if not c.converged)

    fig, ax = plt.subplots(figsize=(6, 5))
    if converged.size:
        ax.boxplot(converged, widths=0.4, showfliers=False)
        jitter_x = 1 + np.random.default_rng(0).uniform(-0.08, 0.08, size=converged.size)
        colors = [COLORS["better"] if d < -settings.jitter_tolerance else COLORS["curve"] for d in converged]
        ax.scatter(jitter_x, converged, c=colors, alpha=0.8, zorder=3)
    ax.axhline(0.0, color=COLORS["reference"], linewidth=1.5, label="Reference")
    ax.axhspan(-settings.jitter_tolerance, settings.jitter_tolerance, color=COLORS["reference"], alpha=0.15)
    ax.set_xticks([1])
    ax.set_xticklabels([f"{converged.size} converged / {n_divergent} failed"])
    ax.set_ylabel("Objective minus reference")
    ax.set_title("Jitter test")
    ax.legend(loc="upper right", fontsize=9)
    ax.grid(True, axis="y", alpha=0.3)
    plt.tight_layout()

    _save(fig, output_path)
    return fig


__all__ = ["plot_jitter", "plot_profile"]
