import io
import json
import logging

from convergence_diagnostics.utils.logging import JSONFormatter, configure_logging, get_logger, level_from_env


def test_formatter_emits_context_and_extra_fields():
    record = logging.LogRecord("convdiag.test", logging.WARNING, __file__, 1, "restart %s failed", ("r1",), None)
    record.candidate = "r1"
    record.n_candidates = 4

    payload = json.loads(JSONFormatter().format(record))

    assert payload["message"] == "restart r1 failed"
    assert payload["level"] == "WARNING"
    assert payload["candidate"] == "r1"
    assert payload["n_candidates"] == 4
    assert "lineno" not in payload
    assert payload["timestamp"].endswith("Z")


def test_configure_logging_adds_component_context():
    stream = io.StringIO()
    configure_logging(run_id="run-7", component="cli", level=logging.INFO, stream=stream)
    try:
        get_logger("convdiag.test.context").info("hello", extra={"check": "jitter"})
    finally:
        logging.getLogger().handlers.clear()

    payload = json.loads(stream.getvalue().strip())
    assert payload["run_id"] == "run-7"
    assert payload["component"] == "cli"
    assert payload["check"] == "jitter"


def test_level_from_env(monkeypatch):
    monkeypatch.setenv("CONVDIAG_LOG_LEVEL", "debug")
    assert level_from_env() == logging.DEBUG
    monkeypatch.setenv("CONVDIAG_LOG_LEVEL", "nonsense")
    assert level_from_env(logging.ERROR) == logging.ERROR
    monkeypatch.delenv("CONVDIAG_LOG_LEVEL")
    assert level_from_env() == logging.INFO
