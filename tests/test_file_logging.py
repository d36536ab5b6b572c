"""File logging tests — persistent log files for post-run diagnosis.

Maps to BDD spec: TestFileLogging, TestLogLevels

Tests verify that run logs are persisted to disk with timestamped
filenames, that module loggers reach the same file, and that stderr
output is not suppressed.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

import pytest

from dice_apply.logging import configure_file_logging, configure_logging, logger

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

_package_logger = logging.getLogger("dice_apply")


@pytest.fixture
def file_logging(tmp_path: Path) -> Iterator[Path]:
    """Enable file logging under tmp_path/logs and detach it afterwards."""
    log_dir = tmp_path / "logs"
    handler = configure_file_logging(log_dir=str(log_dir), level=logging.DEBUG)
    try:
        yield log_dir
    finally:
        logger.removeHandler(handler)
        _package_logger.removeHandler(handler)
        handler.close()
        configure_logging(verbose=False)


def _read_single_log(log_dir: Path) -> str:
    log_files = list(log_dir.glob("*.log"))
    assert len(log_files) == 1, f"Expected 1 log file, found {len(log_files)}"
    return log_files[0].read_text(encoding="utf-8")


class TestFileLogging:
    """REQUIREMENT: Run logs are persisted to disk for post-run diagnosis.

    WHO: The operator investigating why postings were abandoned overnight
    WHAT: A timestamped log file is created (with its directory); it receives
          messages from the named logger and from module loggers; the stderr
          handler stays attached
    WHY: The terminal only shows the summary — the per-posting stage
         failures live in the log
    """

    def test_log_file_name_includes_timestamp(self, file_logging: Path) -> None:
        """Log file names follow dice-apply_YYYY-MM-DDTHH-MM-SS.log so runs sort chronologically."""
        logger.info("timestamp check")
        name = next(file_logging.glob("*.log")).name
        assert re.match(r"dice-apply_\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}\.log$", name), (
            f"Log filename '{name}' does not match timestamp pattern"
        )

    def test_named_logger_messages_reach_the_file(self, file_logging: Path) -> None:
        """Messages logged on the package logger are written with their level."""
        logger.warning("duplicate check message")
        content = _read_single_log(file_logging)
        assert "duplicate check message" in content
        assert "WARNING" in content

    def test_module_logger_messages_reach_the_file(self, file_logging: Path) -> None:
        """The runner's module logger writes to the same file."""
        logging.getLogger("dice_apply.runner").info("search page 1")
        content = _read_single_log(file_logging)
        assert "search page 1" in content
        assert "dice_apply.runner" in content

    def test_debug_level_captures_probe_detail(self, file_logging: Path) -> None:
        """A DEBUG file handler records wait-probe detail."""
        logger.debug("debug-level message")
        assert "debug-level message" in _read_single_log(file_logging)

    def test_log_directory_is_created_if_absent(self, tmp_path: Path) -> None:
        """The log directory is created automatically."""
        log_dir = tmp_path / "nested" / "deep" / "logs"
        assert not log_dir.exists()
        handler = configure_file_logging(log_dir=str(log_dir))
        try:
            assert log_dir.exists()
        finally:
            logger.removeHandler(handler)
            _package_logger.removeHandler(handler)
            handler.close()

    def test_stderr_output_is_not_suppressed(self, file_logging: Path) -> None:
        """File logging is additive — the stderr StreamHandler remains."""
        handler_types = [type(h) for h in logger.handlers]
        assert logging.StreamHandler in handler_types


class TestLogLevels:
    """REQUIREMENT: -v switches both loggers to DEBUG.

    WHO: The operator diagnosing a flaky selector
    WHAT: configure_logging(verbose=True) lowers the named and package
          loggers to DEBUG; verbose=False restores INFO
    WHY: Probe-by-probe detail is noise on a normal run and essential on a bad one
    """

    def test_verbose_lowers_threshold(self) -> None:
        """Both loggers accept DEBUG records when verbose."""
        try:
            configure_logging(verbose=True)
            assert logger.isEnabledFor(logging.DEBUG)
            assert _package_logger.isEnabledFor(logging.DEBUG)
        finally:
            configure_logging(verbose=False)
        assert not logger.isEnabledFor(logging.DEBUG)
