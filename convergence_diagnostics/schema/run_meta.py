"""Run metadata schema with JSON serialization."""

from __future__ import annotations

import json
import os
import platform
import subprocess
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass
class ReproducibilityContext:
    seed: Optional[int]
    library_versions: Dict[str, str]
    system_info: Dict[str, Any]
    git_sha: Optional[str]


@dataclass
class RunMeta:
    run_id: str
    kind: str
    reference: str
    command: List[str]
    config: Dict[str, Any]
    n_runs: int
    parameter: Optional[str] = None
    n_failed: Optional[int] = None
    reproducibility: Optional[ReproducibilityContext] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2, default=str)

    def write_atomic(self, path: Path) -> None:
        """Write run_meta to a temporary file then move for atomicity."""
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        tmp_path.write_text(self.to_json())
        tmp_path.replace(path)

    @classmethod
    def from_json(cls, raw: str) -> "RunMeta":
        data = json.loads(raw)
        context = data.get("reproducibility")
        if isinstance(context, dict):
            data["reproducibility"] = ReproducibilityContext(**context)
        return cls(**data)

    @classmethod
    def capture_context(
        cls,
        run_id: str,
        kind: str,
        reference: str,
        command: List[str],
        config: Dict[str, Any],
        n_runs: int,
        seed: Optional[int] = None,
        parameter: Optional[str] = None,
    ) -> "RunMeta":
        reproducibility = ReproducibilityContext(
            seed=seed,
            library_versions=_capture_lib_versions(),
            system_info={
                "os": platform.platform(),
                "cpu_count": os.cpu_count(),
                "python_version": platform.python_version(),
            },
            git_sha=_capture_git_sha(),
        )
        return cls(
            run_id=run_id,
            kind=kind,
            reference=reference,
            command=list(command),
            config=config,
            n_runs=n_runs,
            parameter=parameter,
            reproducibility=reproducibility,
        )


def _capture_lib_versions() -> Dict[str, str]:
    versions: Dict[str, str] = {}
    for lib in ["numpy", "pandas", "scipy", "typer", "rich", "yaml", "matplotlib"]:
        try:
            module = __import__(lib)
            versions[lib] = getattr(module, "__version__", "unknown")
        except ImportError:
            versions[lib] = "missing"
    return versions


def _capture_git_sha() -> Optional[str]:
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "HEAD"], text=True, stderr=subprocess.DEVNULL
        ).strip()
    except (OSError, subprocess.CalledProcessError):
        return None


__all__ = ["ReproducibilityContext", "RunMeta"]
