import json
import math

import numpy as np
import pytest
import yaml

from convergence_diagnostics.checks.profile import analyze_profile
from convergence_diagnostics.data.fit_files import (
    load_fit_record,
    load_jitter_set,
    load_profile_curves,
    save_fit_record,
)
from convergence_diagnostics.exceptions import FitRecordError
from convergence_diagnostics.models.fit_record import FitRecord


def _document(a=1.0, objective=10.0, **extra):
    doc = {
        "parameters": [
            {"name": "a", "value": a, "gradient": 0.1},
            {"name": "b", "value": 2.0, "gradient": -0.1},
        ],
        "objective_value": objective,
        "convergence": "converged",
    }
    doc.update(extra)
    return doc


def _write_json(path, doc):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(doc))
    return path


def test_load_json_fit_uses_file_stem_as_label(tmp_path):
    path = _write_json(tmp_path / "reference.json", _document(hessian=[[-1.0, 0.0], [0.0, -1.0]]))

    fit = load_fit_record(path)

    assert fit.label == "reference"
    assert fit.parameters == {"a": 1.0, "b": 2.0}
    assert fit.hessian.shape == (2, 2)


def test_load_yaml_fit_with_mapping_layout(tmp_path):
    path = tmp_path / "fit.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "parameters": {"mu": 0.5, "sigma": 1.2},
                "gradient": {"mu": 0.01, "sigma": 0.02},
                "objective_value": 3.5,
                "convergence": "failed_other",
            }
        )
    )

    fit = load_fit_record(path)

    assert fit.parameter_names == ("mu", "sigma")
    assert fit.convergence_flag == "failed_other"


def test_malformed_documents_name_the_file(tmp_path):
    missing = _write_json(tmp_path / "missing.json", {"parameters": {"a": 1.0}, "gradient": {"a": 0.1}})
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")

    with pytest.raises(FitRecordError, match="missing.json"):
        load_fit_record(missing)
    with pytest.raises(FitRecordError, match="Could not parse"):
        load_fit_record(broken)
    with pytest.raises(FitRecordError, match="not found"):
        load_fit_record(tmp_path / "absent.json")


def test_unsupported_suffix_rejected(tmp_path):
    path = tmp_path / "fit.txt"
    path.write_text("objective_value: 1")

    with pytest.raises(FitRecordError, match="Unsupported"):
        load_fit_record(path)


def test_save_fit_record_writes_yaml_readable_by_loader(tmp_path):
    fit = FitRecord(
        parameters={"a": 1.0, "b": 2.0},
        objective_value=5.0,
        gradient={"a": 0.3, "b": 0.4},
        hessian=-np.eye(2),
        label="saved",
    )

    path = save_fit_record(fit, tmp_path / "out" / "saved.yaml")
    restored = load_fit_record(path)

    assert not (tmp_path / "out" / "saved.yaml.tmp").exists()
    assert restored.parameters == fit.parameters
    assert np.array_equal(restored.hessian, fit.hessian)


def test_load_jitter_set_reads_directory_in_name_order(tmp_path):
    reference = load_fit_record(_write_json(tmp_path / "reference.json", _document()))
    _write_json(tmp_path / "jitter" / "run_002.json", _document(objective=11.0))
    _write_json(tmp_path / "jitter" / "run_001.json", _document(objective=12.0))
    (tmp_path / "jitter" / "notes.txt").write_text("ignored")

    jitter_set = load_jitter_set(reference, tmp_path / "jitter")

    assert [c.label for c in jitter_set.candidates] == ["run_001", "run_002"]
    assert jitter_set.reference is reference


def test_load_profile_curves_from_subdirectories_and_flat_files(tmp_path):
    profiles = tmp_path / "profiles"
    for i, value in enumerate([1.5, 0.5, 1.0]):
        _write_json(profiles / "a" / f"p{i}.json", _document(a=value, objective=10.0 + (value - 1.0) ** 2))
    for i, value in enumerate([3.0, 1.0]):
        _write_json(
            profiles / f"b_{i}.json",
            _document(objective=10.0 + value, profile={"parameter": "b", "fixed_value": value}),
        )

    curves = load_profile_curves(profiles)

    assert [c.parameter for c in curves] == ["a", "b"]
    assert curves[0].fixed_values.tolist() == [0.5, 1.0, 1.5]
    assert curves[1].objective_values.tolist() == [11.0, 13.0]
    assert curves[0].points[1].fit is not None


def test_flat_profile_file_must_name_parameter(tmp_path):
    _write_json(tmp_path / "profiles" / "p0.json", _document())

    with pytest.raises(FitRecordError, match="does not name"):
        load_profile_curves(tmp_path / "profiles")


def test_failed_profile_points_are_kept_with_nan_objective(tmp_path):
    profiles = tmp_path / "profiles"
    for value in range(9):
        if value == 6:
            doc = _document(a=float(value), objective=0.0, convergence="failed_other")
        else:
            doc = _document(a=float(value), objective=100.0 + (value - 4.0) ** 2)
        _write_json(profiles / "a" / f"p{value}.json", doc)
    reference = FitRecord(parameters={"a": 4.0, "b": 2.0}, objective_value=100.0, gradient={"a": 0.0, "b": 0.0})

    (curve,) = load_profile_curves(profiles)
    result = analyze_profile(curve, reference=reference)

    assert len(curve) == 9
    assert math.isnan(curve.objective_values[6])
    assert curve.points[6].fit.convergence_flag == "failed_other"
    assert result.data["shape"] == "well_defined_minimum"
    assert result.outcome == "pass"
