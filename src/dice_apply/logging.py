"""Logging setup for dice-apply.

One named logger, ``dice-apply``, writes to stderr.  Modules either import
``logger`` from here or call ``logging.getLogger(__name__)``; the latter
propagates to the ``dice_apply`` package logger, which shares the same
handler, and :func:`configure_logging` sets the level on both.

Every browser run should be diagnosable after the fact: a run that abandons
half its postings at 2 a.m. leaves nothing on the terminal but a summary.
:func:`configure_file_logging` adds a timestamped file under ``data/logs/``.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

DEFAULT_LOG_DIR = "data/logs"

logger = logging.getLogger("dice-apply")
logger.setLevel(logging.INFO)

handler = logging.StreamHandler(sys.stderr)
handler.setLevel(logging.INFO)
handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT))
logger.addHandler(handler)

# Module loggers (``logging.getLogger(__name__)``) hang off this one
_package_logger = logging.getLogger("dice_apply")
_package_logger.setLevel(logging.INFO)
_package_logger.addHandler(handler)


def configure_logging(*, verbose: bool = False) -> None:
    """Set the threshold for the named logger and the module loggers.

    ``verbose`` drops the threshold to DEBUG, which includes every wait
    probe and every skipped anchor.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logger.setLevel(level)
    handler.setLevel(level)
    _package_logger.setLevel(level)


def configure_file_logging(
    log_dir: str = DEFAULT_LOG_DIR,
    *,
    level: int = logging.INFO,
) -> logging.FileHandler:
    """Add a timestamped file handler to the logger.

    Creates ``log_dir`` if it does not exist.  Returns the handler so
    callers (or tests) can remove it later.

    Args:
        log_dir: Directory for log files.  Created automatically.
        level: Logging level for the file handler (default: INFO).

    Returns:
        The :class:`logging.FileHandler` that was added.
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    filename = log_path / f"dice-apply_{timestamp}.log"

    file_handler = logging.FileHandler(str(filename), encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT))

    if level < logger.level:
        logger.setLevel(level)

    logger.addHandler(file_handler)
    if level < _package_logger.level:
        _package_logger.setLevel(level)
    _package_logger.addHandler(file_handler)
    return file_handler


__all__ = ["configure_file_logging", "configure_logging", "logger"]
