"""Logging utilities for figsync commands."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path

_LOGGER_NAME = "figsync"
_CONSOLE_FORMAT = "[figsync] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s run=%(run_id)s %(name)s: %(message)s"


class RunIdFilter(logging.Filter):
    """Stamps every record with the id of the sync run that emitted it."""

    def __init__(self, run_id: str) -> None:
        super().__init__()
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = self.run_id
        return True


def new_run_id() -> str:
    return uuid.uuid4().hex[:8]


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the figsync hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *,
    verbose: bool = False,
    log_file: Path | None = None,
    run_id: str | None = None,
) -> logging.Logger:
    """Configure the figsync logger with console output and optional file sink.

    Records written to ``log_file`` carry ``run_id`` (a fresh random id when
    omitted) so several webhook-triggered runs appending to one file can be
    told apart.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Reset handlers to avoid duplicate output when the CLI runs more than once per process.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stamp = RunIdFilter(run_id or new_run_id())
    handlers: list[logging.Handler] = [_handler(logging.StreamHandler(), _CONSOLE_FORMAT)]
    if log_file is not None:
        handlers.append(_handler(logging.FileHandler(log_file, encoding="utf-8"), _FILE_FORMAT))
    for handler in handlers:
        handler.setLevel(level)
        handler.addFilter(stamp)
        logger.addHandler(handler)

    logger.debug("Logging configured for run %s", stamp.run_id)
    return logger


def _handler(handler: logging.Handler, fmt: str) -> logging.Handler:
    handler.setFormatter(logging.Formatter(fmt))
    return handler


__all__ = ["RunIdFilter", "configure_logging", "get_logger", "new_run_id"]
