"""CLI validation helpers and settings resolution."""

from __future__ import annotations

from dataclasses import fields
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from convergence_diagnostics.config.loader import load_config_with_precedence
from convergence_diagnostics.config.settings import DiagnosticSettings
from convergence_diagnostics.exceptions import ConfigValidationError

ENV_PREFIX = "CONVDIAG_"


def require_positive(name: str, value: int | float) -> None:
    if value <= 0:
        raise ConfigValidationError(f"{name} must be > 0")


def _as_bool(value: Any) -> bool:
    return str(value).lower() in {"1", "true", "yes", "on"}


def _casters() -> Dict[str, Callable[[Any], Any]]:
    casters: Dict[str, Callable[[Any], Any]] = {}
    for f in fields(DiagnosticSettings):
        default = f.default
        if isinstance(default, bool):
            casters[f.name] = _as_bool
        elif isinstance(default, int):
            casters[f.name] = int
        elif isinstance(default, float):
            casters[f.name] = float
        else:
            casters[f.name] = str
    return casters


def resolve_settings(config: Optional[Path], cli_values: Mapping[str, Any]) -> DiagnosticSettings:
    """Merge CLI > CONVDIAG_* environment > config file > built-in defaults."""
    cfg = load_config_with_precedence(
        config_path=config,
        env_prefix=ENV_PREFIX,
        cli_values=cli_values,
        defaults=DiagnosticSettings().to_dict(),
        casters=_casters(),
    )
    return DiagnosticSettings.from_mapping(cfg)


def validate_batch_inputs(*, runs: int, max_workers: int | None, timeout: float | None) -> None:
    require_positive("runs", runs)
    if max_workers is not None:
        require_positive("max_workers", max_workers)
    if timeout is not None:
        require_positive("timeout", timeout)


def validate_profile_inputs(*, points: int, span: float, lower: float | None, upper: float | None) -> None:
    if points < 2:
        raise ConfigValidationError("points must be >= 2")
    require_positive("span", span)
    if lower is not None and upper is not None and lower >= upper:
        raise ConfigValidationError("lower must be below upper")


__all__ = [
    "resolve_settings",
    "require_positive",
    "validate_batch_inputs",
    "validate_profile_inputs",
]
