import math

import numpy as np
import pytest

from convergence_diagnostics.checks.gradient_hessian import (
    check,
    check_executability,
    check_gradient,
    check_hessian,
)
from convergence_diagnostics.config.settings import DiagnosticSettings
from convergence_diagnostics.models.fit_record import FitRecord


def _fit(values=None, gradient=None, hessian=None, objective=100.0) -> FitRecord:
    values = values or {"a": 2.0, "b": -3.0}
    gradient = gradient or {name: 0.01 for name in values}
    return FitRecord(parameters=values, objective_value=objective, gradient=gradient, hessian=hessian)


def test_nan_gradient_is_not_executable():
    fit = _fit(gradient={"a": float("nan"), "b": 0.1}, hessian=-np.eye(2))

    result = check(fit)

    assert result.executability.outcome == "fail"
    assert result.executability.code == "non_executable"
    assert result.executability.findings[0].parameter == "a"
    for skipped in (result.gradient, result.hessian, result.standard_errors):
        assert skipped.outcome == "skipped"
        assert skipped.code == "upstream_failure"


def test_infinite_objective_is_not_executable():
    result = check_executability(_fit(objective=float("inf")))

    assert result.outcome == "fail"
    assert "objective" in result.detail


def test_negative_identity_hessian_gives_unit_standard_errors():
    result = check(_fit(hessian=-np.eye(2)))

    assert result.hessian.outcome == "pass"
    assert result.standard_errors.outcome == "pass"
    assert result.standard_error_values == pytest.approx({"a": 1.0, "b": 1.0})
    assert result.eigenvalues.tolist() == pytest.approx([1.0, 1.0])
    assert np.allclose(result.covariance, np.eye(2))


def test_positive_identity_hessian_is_not_positive_definite_after_negation():
    result = check(_fit(hessian=np.eye(2)))

    assert result.hessian.outcome == "fail"
    assert result.hessian.code == "non_positive_definite_hessian"
    assert result.standard_errors.outcome == "skipped"
    assert result.standard_errors.code == "upstream_failure"
    assert not result.positive_definite


def test_objective_convention_uses_hessian_as_given():
    settings = DiagnosticSettings(hessian_convention="objective")

    result = check(_fit(hessian=np.eye(2)), settings)

    assert result.hessian.outcome == "pass"
    assert result.standard_error_values == pytest.approx({"a": 1.0, "b": 1.0})


def test_singular_direction_names_the_culprit_parameter():
    hessian, _ = check_hessian(_fit(hessian=-np.diag([1.0, 0.0])))

    assert hessian.outcome == "fail"
    assert hessian.findings[0].parameter == "b"
    assert hessian.data["min_eigenvalue"] == pytest.approx(0.0)
    assert math.isinf(hessian.data["condition_number"])


def test_missing_hessian_is_skipped_with_reason():
    result = check(_fit())

    assert result.hessian.outcome == "skipped"
    assert result.hessian.code == "hessian_unavailable"
    assert result.standard_errors.outcome == "skipped"
    assert "unavailable" in result.standard_errors.detail


def test_near_zero_gradient_warns_per_parameter():
    result = check_gradient(_fit(gradient={"a": 1e-6, "b": 0.5}))

    assert result.outcome == "warn"
    assert result.code == "zero_or_missing_gradient"
    assert [f.parameter for f in result.findings] == ["a"]
    assert result.data["max_gradient_parameter"] == "b"


def test_large_relative_standard_error_warns():
    result = check(_fit(values={"a": 1.0, "b": 5.0}, hessian=-np.diag([1e-4, 1.0])))

    assert result.hessian.outcome == "pass"
    assert result.standard_errors.outcome == "warn"
    assert result.standard_errors.code == "unreasonable_standard_error"
    assert [f.parameter for f in result.standard_errors.findings] == ["a"]
    assert result.standard_error_values["a"] == pytest.approx(100.0)


def test_zero_estimate_has_unbounded_relative_standard_error():
    result = check(_fit(values={"a": 0.0, "b": 5.0}, hessian=-np.eye(2)))

    assert result.standard_errors.outcome == "warn"
    assert math.isinf(result.standard_errors.data["relative_standard_errors"]["a"])


def test_asymmetric_hessian_uses_symmetric_part():
    hessian = np.array([[-2.0, -0.5], [-0.3, -2.0]])

    result = check(_fit(hessian=hessian))

    assert result.hessian.outcome == "pass"
    assert result.eigenvalues.tolist() == pytest.approx([1.6, 2.4])
