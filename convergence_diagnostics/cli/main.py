"""Typer CLI entrypoint with structured error handling."""

from __future__ import annotations

import sys

import typer

from convergence_diagnostics.cli.commands.evaluate import evaluate
from convergence_diagnostics.cli.commands.jitter import jitter
from convergence_diagnostics.cli.commands.profile import profile
from convergence_diagnostics.exceptions import (
    ConfigError,
    MalformedInputError,
    ModelExecutionError,
    ResourceLimitError,
)
from convergence_diagnostics.utils.logging import configure_logging, get_logger

app = typer.Typer(help="Convergence diagnostics for fitted statistical models")


app.command()(evaluate)
app.command()(jitter)
app.command()(profile)


log = get_logger(__name__, component="cli")


def main() -> None:
    configure_logging(component="cli")
    try:
        app()
    except (ConfigError, MalformedInputError) as exc:
        log.error(f"Invalid input: {exc}")
        sys.exit(2)
    except ModelExecutionError as exc:
        log.error(f"Model execution failed: {exc}")
        sys.exit(3)
    except ResourceLimitError as exc:
        log.error(f"Resource limit exceeded: {exc}")
        sys.exit(4)
    except KeyboardInterrupt:
        log.info("Interrupted")
        sys.exit(130)
    except Exception:
        log.exception("Unhandled exception")
        sys.exit(255)


if __name__ == "__main__":
    main()
