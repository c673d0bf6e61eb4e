import math

import pytest

from convergence_diagnostics.exceptions import FitRecordError
from convergence_diagnostics.models.profile import ProfileCurve, ProfilePoint


def test_from_unordered_sorts_by_fixed_value():
    curve = ProfileCurve.from_unordered(
        "a", [ProfilePoint(2.0, 10.0), ProfilePoint(0.0, 12.0), ProfilePoint(1.0, 9.0)]
    )

    assert curve.fixed_values.tolist() == [0.0, 1.0, 2.0]
    assert curve.objective_values.tolist() == [12.0, 9.0, 10.0]
    assert len(curve) == 3


def test_duplicate_fixed_values_rejected():
    with pytest.raises(FitRecordError, match="Duplicate"):
        ProfileCurve.from_unordered("a", [ProfilePoint(1.0, 10.0), ProfilePoint(1.0, 11.0)])


def test_unsorted_points_rejected():
    with pytest.raises(FitRecordError, match="strictly increasing"):
        ProfileCurve("a", (ProfilePoint(2.0, 10.0), ProfilePoint(1.0, 11.0)))


def test_fixed_value_must_be_finite():
    with pytest.raises(FitRecordError, match="finite"):
        ProfilePoint(math.inf, 10.0)


def test_non_numeric_point_values_rejected():
    with pytest.raises(FitRecordError, match="objective"):
        ProfilePoint(1.0, "abc")
    with pytest.raises(FitRecordError, match="fixed value"):
        ProfilePoint(None, 10.0)


def test_objective_may_be_nan_for_failed_points():
    point = ProfilePoint(1.0, float("nan"))

    assert math.isnan(point.objective_value)


def test_from_arrays_checks_lengths():
    with pytest.raises(FitRecordError, match="same length"):
        ProfileCurve.from_arrays("a", [0.0, 1.0], [1.0])

    curve = ProfileCurve.from_arrays("a", [0.0, 1.0], [3.0, 2.0])
    assert curve.parameter == "a"
    assert curve.objective_values.tolist() == [3.0, 2.0]
