"""Layered configuration loading: CLI > ENV > YAML/JSON file > defaults."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import yaml

from convergence_diagnostics.exceptions import ConfigValidationError
from convergence_diagnostics.utils.logging import get_logger

log = get_logger(__name__, component="config")

Caster = Callable[[Any], Any]


def _load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML or JSON mapping from disk."""
    if not path.exists():
        raise ConfigValidationError(f"Config file not found: {path}")
    text = path.read_text()
    try:
        if path.suffix.lower() == ".json":
            content = json.loads(text)
        else:
            content = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigValidationError(f"Could not parse config file {path}: {exc}") from exc
    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigValidationError(f"Config file {path} must contain a mapping at the top level")
    return content


def _env_values(env_prefix: str, keys: Mapping[str, Any]) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for key in keys:
        env_key = f"{env_prefix}{key.upper()}"
        if env_key in os.environ:
            values[key] = os.environ[env_key]
    return values


def _cast(key: str, value: Any, casters: Mapping[str, Caster]) -> Any:
    if value is None:
        return None
    caster = casters.get(key)
    if caster is None:
        return value
    try:
        return caster(value)
    except (TypeError, ValueError) as exc:
        raise ConfigValidationError(f"Invalid value for {key}: {value!r}") from exc


def load_config_with_precedence(
    *,
    config_path: Optional[Path],
    env_prefix: str,
    cli_values: Mapping[str, Any],
    defaults: Mapping[str, Any],
    casters: Optional[Mapping[str, Caster]] = None,
) -> Dict[str, Any]:
    """Merge configuration sources, highest precedence last applied.

    Keys outside ``defaults`` found in the config file are rejected so that typos
    in tolerance names surface instead of being silently ignored.
    """

    casters = casters or {}
    merged: Dict[str, Any] = dict(defaults)
    sources: Dict[str, str] = {key: "default" for key in defaults}

    if config_path is not None:
        file_values = _load_yaml(Path(config_path))
        unknown = sorted(set(file_values) - set(defaults))
        if unknown:
            raise ConfigValidationError(f"Unknown configuration keys in {config_path}: {unknown}")
        for key, value in file_values.items():
            merged[key] = value
            sources[key] = "file"

    for key, value in _env_values(env_prefix, defaults).items():
        merged[key] = value
        sources[key] = "env"

    for key, value in cli_values.items():
        if value is not None:
            merged[key] = value
            sources[key] = "cli"

    resolved = {key: _cast(key, value, casters) for key, value in merged.items()}
    log.debug("Configuration resolved", extra={"sources": sources})
    return resolved


__all__ = ["load_config_with_precedence"]
