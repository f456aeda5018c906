"""Tests for figsync.logging."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from figsync.logging import configure_logging, get_logger, new_run_id


@pytest.fixture(autouse=True)
def _restore_logger():
    logger = logging.getLogger("figsync")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


def test_file_sink_stamps_records_with_run_id(tmp_path: Path) -> None:
    log_file = tmp_path / "figsync.log"
    configure_logging(log_file=log_file, run_id="hook-42")

    get_logger("orchestrator").info("Starting sync for design document abc123")

    line = log_file.read_text(encoding="utf-8").strip()
    assert "INFO run=hook-42 figsync.orchestrator: Starting sync for design document abc123" in line


def test_console_output_omits_run_id(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(run_id="hook-42")

    get_logger("git.publisher").warning("Could not label change request #3")

    assert capsys.readouterr().err == "[figsync] WARNING Could not label change request #3\n"


def test_reconfiguring_replaces_handlers(tmp_path: Path) -> None:
    configure_logging(log_file=tmp_path / "first.log")
    logger = configure_logging(verbose=True)

    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1


def test_generated_run_ids_differ() -> None:
    first, second = new_run_id(), new_run_id()

    assert len(first) == 8
    assert first != second
