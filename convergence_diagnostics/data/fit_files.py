"""Reading and writing serialized fit documents (JSON or YAML)."""

from __future__ import annotations

import json
import math
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from convergence_diagnostics.exceptions import FitRecordError
from convergence_diagnostics.models.fit_record import FitRecord, JitterSet
from convergence_diagnostics.models.profile import ProfileCurve, ProfilePoint
from convergence_diagnostics.utils.logging import get_logger

log = get_logger(__name__, component="fit_files")

FIT_SUFFIXES = {".json", ".yml", ".yaml"}


def _read_document(path: Path) -> Mapping[str, Any]:
    if not path.exists():
        raise FitRecordError(f"Fit file not found: {path}")
    suffix = path.suffix.lower()
    if suffix not in FIT_SUFFIXES:
        raise FitRecordError(f"Unsupported fit file type {suffix!r}: {path}")
    text = path.read_text()
    try:
        content = json.loads(text) if suffix == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise FitRecordError(f"Could not parse fit file {path}: {exc}") from exc
    if not isinstance(content, Mapping):
        raise FitRecordError(f"Fit file {path} must contain a mapping")
    return content


def load_fit_record(path: Path) -> FitRecord:
    path = Path(path)
    document = _read_document(path)
    try:
        return FitRecord.from_dict(document, label=path.stem)
    except FitRecordError as exc:
        raise FitRecordError(f"{path}: {exc}") from exc


def save_fit_record(fit: FitRecord, path: Path, *, extra: Optional[Mapping[str, Any]] = None) -> Path:
    """Write a fit document atomically; the format follows the file suffix."""
    path = Path(path)
    payload: Dict[str, Any] = fit.to_dict()
    if extra:
        payload.update(extra)
    suffix = path.suffix.lower()
    if suffix == ".json":
        text = json.dumps(payload, indent=2, default=str)
    elif suffix in {".yml", ".yaml"}:
        text = yaml.safe_dump(payload, sort_keys=False)
    else:
        raise FitRecordError(f"Unsupported fit file type {suffix!r}: {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(text)
    tmp_path.replace(path)
    return path


def _fit_files(directory: Path) -> List[Path]:
    return sorted(p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in FIT_SUFFIXES)


def load_jitter_set(reference: FitRecord, directory: Path) -> JitterSet:
    """Load every fit file in ``directory`` (sorted by name) as a jitter candidate."""
    directory = Path(directory)
    if not directory.is_dir():
        raise FitRecordError(f"Jitter directory not found: {directory}")
    candidates = [load_fit_record(path) for path in _fit_files(directory)]
    log.info("Loaded jitter candidates", extra={"n_candidates": len(candidates), "path": str(directory)})
    return JitterSet(reference=reference, candidates=tuple(candidates))


def _profile_point(path: Path, parameter: Optional[str]) -> tuple[str, ProfilePoint]:
    document = _read_document(path)
    block = document.get("profile") or {}
    if not isinstance(block, Mapping):
        raise FitRecordError(f"{path}: 'profile' must be a mapping")
    name = str(block.get("parameter") or parameter or "")
    if not name:
        raise FitRecordError(f"{path}: profile point does not name its profiled parameter")
    try:
        fit = FitRecord.from_dict(document, label=path.stem)
    except FitRecordError as exc:
        raise FitRecordError(f"{path}: {exc}") from exc
    if "fixed_value" in block:
        fixed_value = block["fixed_value"]
    elif name in fit.parameters:
        fixed_value = fit.parameters[name]
    else:
        raise FitRecordError(f"{path}: no fixed value for profiled parameter {name}")
    try:
        # failed sweep points stay on the curve but are left out of classification
        objective = fit.objective_value if fit.converged else math.nan
        point = ProfilePoint(fixed_value=float(fixed_value), objective_value=objective, fit=fit)
    except (TypeError, ValueError) as exc:
        raise FitRecordError(f"{path}: invalid fixed value {fixed_value!r}") from exc
    return name, point


def load_profile_curves(directory: Path) -> List[ProfileCurve]:
    """Load profile sweeps grouped by profiled parameter.

    Each sub-directory holds the sweep for the parameter it is named after; fit files
    directly inside ``directory`` must name their parameter in a ``profile`` block.
    Curves are returned in parameter-name order.
    """

    directory = Path(directory)
    if not directory.is_dir():
        raise FitRecordError(f"Profile directory not found: {directory}")

    grouped: Dict[str, List[ProfilePoint]] = defaultdict(list)
    for path in _fit_files(directory):
        name, point = _profile_point(path, None)
        grouped[name].append(point)
    for sub in sorted(p for p in directory.iterdir() if p.is_dir()):
        for path in _fit_files(sub):
            name, point = _profile_point(path, sub.name)
            grouped[name].append(point)

    curves = [ProfileCurve.from_unordered(name, points) for name, points in sorted(grouped.items())]
    log.info("Loaded profile curves", extra={"n_curves": len(curves), "path": str(directory)})
    return curves


__all__ = ["load_fit_record", "load_jitter_set", "load_profile_curves", "save_fit_record"]
