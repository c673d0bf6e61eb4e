import pytest

from convergence_diagnostics.cli.validation import resolve_settings
from convergence_diagnostics.config.settings import DEFAULT_SETTINGS, DiagnosticSettings
from convergence_diagnostics.exceptions import ConfigValidationError


def test_default_tolerances():
    assert DEFAULT_SETTINGS.gradient_tolerance == 1e-4
    assert DEFAULT_SETTINGS.jitter_tolerance == 1e-3
    assert DEFAULT_SETTINGS.min_profile_points == 5
    assert DEFAULT_SETTINGS.hessian_convention == "log_likelihood"
    assert not DEFAULT_SETTINGS.warnings_as_failures


@pytest.mark.parametrize(
    "overrides",
    [
        {"gradient_tolerance": -1.0},
        {"jitter_tolerance": float("nan")},
        {"hessian_convention": "covariance"},
        {"min_jitter_samples": 0},
        {"min_profile_points": 2},
        {"profile_confidence": 1.0},
    ],
)
def test_invalid_settings_rejected(overrides):
    with pytest.raises(ConfigValidationError):
        DiagnosticSettings(**overrides)


def test_from_mapping_ignores_unset_and_rejects_unknown():
    settings = DiagnosticSettings.from_mapping({"max_relative_se": 0.5, "jitter_tolerance": None})

    assert settings.max_relative_se == 0.5
    assert settings.jitter_tolerance == DEFAULT_SETTINGS.jitter_tolerance
    with pytest.raises(ConfigValidationError, match="Unknown"):
        DiagnosticSettings.from_mapping({"tolerance": 1.0})


def test_resolve_settings_casts_environment_values(monkeypatch):
    monkeypatch.setenv("CONVDIAG_WARNINGS_AS_FAILURES", "true")
    monkeypatch.setenv("CONVDIAG_MIN_JITTER_SAMPLES", "3")

    settings = resolve_settings(None, {"parameter_rtol": 0.05})

    assert settings.warnings_as_failures is True
    assert settings.min_jitter_samples == 3
    assert settings.parameter_rtol == 0.05
