import json
import sys
import textwrap

import pytest

from convergence_diagnostics.exceptions import ExecutionTimeoutError, ModelExecutionError
from convergence_diagnostics.runners.external import ExternalModelRunner, scratch_directory

MODEL_SCRIPT = textwrap.dedent(
    """
    import json
    import sys
    from pathlib import Path

    payload = json.loads(Path(sys.argv[1]).read_text())
    params = {**payload["start_values"], **payload["fixed"]}
    offset = float(Path("offset.txt").read_text()) if Path("offset.txt").exists() else 0.0
    objective = 100.0 + offset + sum((v - 1.0) ** 2 for v in params.values())
    Path(sys.argv[2]).write_text(json.dumps({
        "parameters": params,
        "gradient": {k: 2.0 * (v - 1.0) for k, v in params.items()},
        "objective_value": objective,
        "convergence": "converged",
    }))
    """
)


def _script(tmp_path, body: str, name: str = "model.py"):
    path = tmp_path / name
    path.write_text(body)
    return path


def test_runner_writes_inputs_and_parses_output(tmp_path):
    script = _script(tmp_path, MODEL_SCRIPT)
    runner = ExternalModelRunner(command=[sys.executable, str(script), "{input}", "{output}"])

    fit = runner({"a": 1.0, "b": 2.0}, fixed={"b": 3.0})

    assert fit.parameters == {"a": 1.0, "b": 3.0}
    assert fit.objective_value == pytest.approx(104.0)


def test_model_dir_is_copied_into_scratch(tmp_path):
    model_dir = tmp_path / "model"
    model_dir.mkdir()
    (model_dir / "offset.txt").write_text("5.0")
    script = _script(tmp_path, MODEL_SCRIPT)
    runner = ExternalModelRunner(command=[sys.executable, str(script), "{input}", "{output}"], model_dir=model_dir)

    fit = runner({"a": 1.0})

    assert fit.objective_value == pytest.approx(105.0)


def test_non_zero_exit_raises_with_stderr(tmp_path):
    script = _script(tmp_path, "import sys\nsys.stderr.write('matrix is singular\\n')\nsys.exit(3)\n")
    runner = ExternalModelRunner(command=[sys.executable, str(script)])

    with pytest.raises(ModelExecutionError, match="code 3: matrix is singular"):
        runner({"a": 1.0})


def test_missing_output_raises(tmp_path):
    script = _script(tmp_path, "pass\n")
    runner = ExternalModelRunner(command=[sys.executable, str(script)])

    with pytest.raises(ModelExecutionError, match="no output"):
        runner({"a": 1.0})


def test_unparseable_output_raises(tmp_path):
    script = _script(tmp_path, "import sys\nopen(sys.argv[1], 'w').write('{}')\n")
    runner = ExternalModelRunner(command=[sys.executable, str(script), "{output}"])

    with pytest.raises(ModelExecutionError, match="could not be parsed"):
        runner({"a": 1.0})


def test_timeout_raises(tmp_path):
    script = _script(tmp_path, "import time\ntime.sleep(10)\n")
    runner = ExternalModelRunner(command=[sys.executable, str(script)], timeout_seconds=0.5)

    with pytest.raises(ExecutionTimeoutError):
        runner({"a": 1.0})


def test_missing_model_dir_rejected(tmp_path):
    with pytest.raises(ModelExecutionError, match="not found"):
        ExternalModelRunner(command=["true"], model_dir=tmp_path / "absent")


def test_render_command_substitutes_placeholders(tmp_path):
    runner = ExternalModelRunner(command=["fit", "--in={input}", "{workdir}"], input_name="in.json")

    assert runner.render_command(tmp_path) == ["fit", f"--in={tmp_path / 'in.json'}", str(tmp_path)]


def test_scratch_directory_removed_on_error():
    with pytest.raises(RuntimeError):
        with scratch_directory() as path:
            (path / "x.json").write_text(json.dumps({}))
            raise RuntimeError("boom")

    assert not path.exists()
