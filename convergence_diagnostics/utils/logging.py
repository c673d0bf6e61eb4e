"""Structured logging utilities with JSON output."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

DEFAULT_FIELDS = (
    "run_id",
    "component",
    "parameter",
    "candidate",
    "check",
    "outcome",
    "duration_ms",
)

LOG_LEVEL_ENV = "CONVDIAG_LOG_LEVEL"

# attributes every LogRecord carries; anything else arrived through `extra`
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """One JSON object per record: context fields first, then any other `extra` values."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in DEFAULT_FIELDS:
            if hasattr(record, field):
                payload[field] = getattr(record, field)
        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and key not in payload and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def level_from_env(default: int = logging.INFO) -> int:
    """Read a level name or number from CONVDIAG_LOG_LEVEL, falling back to ``default``."""
    raw = os.environ.get(LOG_LEVEL_ENV, "").strip()
    if not raw:
        return default
    if raw.isdigit():
        return int(raw)
    level = logging.getLevelName(raw.upper())
    return level if isinstance(level, int) else default


def configure_logging(
    run_id: Optional[str] = None,
    component: Optional[str] = None,
    level: Optional[int] = None,
    stream=None,
) -> None:
    """Configure root logger with structured JSON output.

    Embeds run_id/component defaults so downstream loggers inherit context without
    requiring every call to pass `extra`. Logs go to stderr so that report output
    on stdout stays machine-readable.
    """

    class ContextFilter(logging.Filter):
        def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
            if run_id and not hasattr(record, "run_id"):
                record.run_id = run_id
            if component and not hasattr(record, "component"):
                record.component = component
            return True

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level_from_env() if level is None else level)
    handler.addFilter(ContextFilter())
    root.addHandler(handler)


def get_logger(name: str, run_id: Optional[str] = None, component: Optional[str] = None) -> logging.Logger:
    """Convenience helper to fetch a logger with optional context defaults."""

    logger = logging.getLogger(name)
    if run_id or component:
        f = logging.Filter()

        def _filter(record: logging.LogRecord) -> bool:  # type: ignore[override]
            if run_id and not hasattr(record, "run_id"):
                record.run_id = run_id
            if component and not hasattr(record, "component"):
                record.component = component
            return True

        f.filter = _filter  # type: ignore[assignment]
        logger.addFilter(f)
    return logger


__all__ = ["JSONFormatter", "configure_logging", "get_logger", "level_from_env"]
