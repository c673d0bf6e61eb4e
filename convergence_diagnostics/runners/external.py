"""Scoped invocation of an external model executable."""

from __future__ import annotations

import json
import os
import shutil
import subprocess
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Mapping, Optional, Protocol, Sequence

from convergence_diagnostics.data.fit_files import load_fit_record
from convergence_diagnostics.exceptions import ExecutionTimeoutError, FitRecordError, ModelExecutionError
from convergence_diagnostics.models.fit_record import FitRecord
from convergence_diagnostics.utils.logging import get_logger

log = get_logger(__name__, component="external_runner")


class ModelRunner(Protocol):
    """Anything that fits the model from starting values, optionally holding parameters fixed."""

    def __call__(
        self, start_values: Mapping[str, float], *, fixed: Optional[Mapping[str, float]] = None
    ) -> FitRecord:
        ...


@contextmanager
def scratch_directory(prefix: str = "convdiag-", keep: bool = False) -> Iterator[Path]:
    """Isolated working directory, removed on every exit path unless ``keep``."""
    path = Path(tempfile.mkdtemp(prefix=prefix))
    try:
        yield path
    finally:
        if keep:
            log.info("Keeping scratch directory", extra={"path": str(path)})
        else:
            shutil.rmtree(path, ignore_errors=True)


@dataclass
class ExternalModelRunner:
    """Run an external fitting executable once per call in its own scratch directory.

    Each call copies ``model_dir`` into a fresh directory, writes the starting values
    (and any fixed parameters) as JSON to ``input_name``, runs ``command`` there and
    reads the fit document the executable writes to ``output_name``. The placeholders
    ``{input}``, ``{output}`` and ``{workdir}`` in command arguments are substituted.
    """

    command: Sequence[str]
    model_dir: Optional[Path] = None
    timeout_seconds: Optional[float] = 600.0
    input_name: str = "start_values.json"
    output_name: str = "fit.json"
    env: Optional[Mapping[str, str]] = None
    keep_scratch: bool = False

    def __post_init__(self) -> None:
        if not self.command:
            raise ModelExecutionError("An external model command is required")
        if self.model_dir is not None and not Path(self.model_dir).is_dir():
            raise ModelExecutionError(f"Model directory not found: {self.model_dir}")

    def render_command(self, workdir: Path) -> List[str]:
        substitutions = {
            "{input}": str(workdir / self.input_name),
            "{output}": str(workdir / self.output_name),
            "{workdir}": str(workdir),
        }
        rendered = []
        for part in self.command:
            for token, value in substitutions.items():
                part = part.replace(token, value)
            rendered.append(part)
        return rendered

    def __call__(
        self, start_values: Mapping[str, float], *, fixed: Optional[Mapping[str, float]] = None
    ) -> FitRecord:
        with scratch_directory(keep=self.keep_scratch) as workdir:
            if self.model_dir is not None:
                shutil.copytree(self.model_dir, workdir, dirs_exist_ok=True)
            input_path = workdir / self.input_name
            input_path.write_text(
                json.dumps(
                    {
                        "start_values": {k: float(v) for k, v in start_values.items()},
                        "fixed": {k: float(v) for k, v in (fixed or {}).items()},
                    },
                    indent=2,
                )
            )
            output_path = workdir / self.output_name
            cmd = self.render_command(workdir)
            env = {**os.environ, **self.env} if self.env else None

            started = time.perf_counter()
            try:
                completed = subprocess.run(
                    cmd,
                    cwd=workdir,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout_seconds,
                    env=env,
                )
            except subprocess.TimeoutExpired as exc:
                raise ExecutionTimeoutError(
                    f"Model run exceeded {self.timeout_seconds}s timeout: {' '.join(cmd)}"
                ) from exc
            except OSError as exc:
                raise ModelExecutionError(f"Could not start model command {cmd[0]!r}: {exc}") from exc
            duration_ms = round((time.perf_counter() - started) * 1000, 1)

            if completed.returncode != 0:
                stderr_tail = (completed.stderr or "").strip().splitlines()[-5:]
                raise ModelExecutionError(
                    f"Model command exited with code {completed.returncode}: " + " | ".join(stderr_tail)
                )
            if not output_path.exists():
                raise ModelExecutionError(f"Model command produced no output file {self.output_name}")
            try:
                fit = load_fit_record(output_path)
            except FitRecordError as exc:
                raise ModelExecutionError(f"Model output could not be parsed: {exc}") from exc

            log.debug("Model run finished", extra={"duration_ms": duration_ms, "outcome": fit.convergence_flag})
            return fit


__all__ = ["ExternalModelRunner", "ModelRunner", "scratch_directory"]
