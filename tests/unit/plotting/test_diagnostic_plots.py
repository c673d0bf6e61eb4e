import numpy as np
import pytest

pytest.importorskip("matplotlib")
import matplotlib.pyplot as plt

from convergence_diagnostics.models.fit_record import FitRecord, JitterSet
from convergence_diagnostics.models.profile import ProfileCurve
from convergence_diagnostics.plotting.diagnostic_plots import plot_jitter, plot_profile


def _fit(objective, flag="converged"):
    return FitRecord(
        parameters={"a": 1.0}, objective_value=objective, gradient={"a": 0.1}, convergence_flag=flag
    )


def test_plot_profile_saves_figure(tmp_path):
    x = np.linspace(-1.0, 1.0, 11)
    y = 10.0 + 4.0 * x**2
    y[2] = np.nan
    curve = ProfileCurve.from_arrays("a", x, y)
    output = tmp_path / "plots" / "profile.png"

    fig = plot_profile(curve, reference_value=0.0, output_path=output)

    assert output.exists()
    assert "well defined minimum" in fig.axes[0].get_title()
    plt.close(fig)


def test_plot_jitter_handles_divergent_restarts(tmp_path):
    jitter_set = JitterSet(
        reference=_fit(10.0),
        candidates=(_fit(10.0), _fit(9.0), _fit(float("nan"), flag="failed_other")),
    )
    output = tmp_path / "jitter.png"

    fig = plot_jitter(jitter_set, output_path=output)

    assert output.exists()
    assert fig.axes[0].get_xticklabels()[0].get_text() == "2 converged / 1 failed"
    plt.close(fig)
