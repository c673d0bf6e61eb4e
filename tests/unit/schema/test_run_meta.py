import json

from convergence_diagnostics.schema.run_meta import ReproducibilityContext, RunMeta


def test_run_meta_written_atomically_reads_back(tmp_path):
    meta = RunMeta.capture_context(
        run_id="reference",
        kind="profile",
        reference="reference.json",
        command=["convergence-diagnostics", "profile"],
        config={"points": 7},
        n_runs=7,
        seed=3,
        parameter="a",
    )
    meta.n_failed = 1
    path = tmp_path / "run_meta_a.json"

    meta.write_atomic(path)
    restored = RunMeta.from_json(path.read_text())

    assert not (tmp_path / "run_meta_a.json.tmp").exists()
    assert isinstance(restored.reproducibility, ReproducibilityContext)
    assert restored.reproducibility.seed == 3
    assert restored.reproducibility.library_versions["numpy"] != "missing"
    assert restored.parameter == "a"
    assert restored.n_failed == 1
    assert restored.config == {"points": 7}
    assert restored.command == ["convergence-diagnostics", "profile"]


def test_run_meta_without_context_reads_back():
    raw = json.dumps({"run_id": "r", "kind": "jitter", "reference": "ref.json", "command": [], "config": {}, "n_runs": 2})

    restored = RunMeta.from_json(raw)

    assert restored.reproducibility is None
    assert restored.n_runs == 2
