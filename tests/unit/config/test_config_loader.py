import pytest

from convergence_diagnostics.config.loader import load_config_with_precedence
from convergence_diagnostics.exceptions import ConfigValidationError

DEFAULTS = {"gradient_tolerance": 1e-4, "min_jitter_samples": 1}
CASTERS = {"gradient_tolerance": float, "min_jitter_samples": int}


def _load(config_path=None, cli_values=None):
    return load_config_with_precedence(
        config_path=config_path,
        env_prefix="CONVDIAG_",
        cli_values=cli_values or {},
        defaults=DEFAULTS,
        casters=CASTERS,
    )


def test_defaults_when_nothing_supplied(monkeypatch):
    monkeypatch.delenv("CONVDIAG_GRADIENT_TOLERANCE", raising=False)

    assert _load() == DEFAULTS


def test_precedence_cli_over_env_over_file(tmp_path, monkeypatch):
    config = tmp_path / "settings.yaml"
    config.write_text("gradient_tolerance: 0.01\nmin_jitter_samples: 4\n")
    monkeypatch.setenv("CONVDIAG_GRADIENT_TOLERANCE", "0.02")

    assert _load(config) == {"gradient_tolerance": 0.02, "min_jitter_samples": 4}
    resolved = _load(config, {"gradient_tolerance": 0.5, "min_jitter_samples": None})
    assert resolved == {"gradient_tolerance": 0.5, "min_jitter_samples": 4}


def test_json_config_supported(tmp_path):
    config = tmp_path / "settings.json"
    config.write_text('{"min_jitter_samples": "7"}')

    assert _load(config)["min_jitter_samples"] == 7


def test_unknown_file_keys_rejected(tmp_path):
    config = tmp_path / "settings.yaml"
    config.write_text("gradient_tolerence: 0.01\n")

    with pytest.raises(ConfigValidationError, match="gradient_tolerence"):
        _load(config)


def test_bad_values_and_files_rejected(tmp_path, monkeypatch):
    monkeypatch.setenv("CONVDIAG_MIN_JITTER_SAMPLES", "many")
    with pytest.raises(ConfigValidationError, match="min_jitter_samples"):
        _load()
    monkeypatch.delenv("CONVDIAG_MIN_JITTER_SAMPLES")

    listing = tmp_path / "list.yaml"
    listing.write_text("- 1\n- 2\n")
    with pytest.raises(ConfigValidationError, match="mapping"):
        _load(listing)
    with pytest.raises(ConfigValidationError, match="not found"):
        _load(tmp_path / "absent.yaml")
