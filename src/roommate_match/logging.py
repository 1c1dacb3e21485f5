"""Logging configuration for roommate-match.

Every ``roommate_match.*`` module logs through ``getLogger(__name__)``
and propagates to the package logger here, which writes to stderr.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path

logger = logging.getLogger("roommate_match")
logger.setLevel(logging.INFO)

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Ranking runs report progress on stderr; stdout carries the match list
handler = logging.StreamHandler(sys.stderr)
handler.setLevel(logging.INFO)
handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT))
logger.addHandler(handler)

DEFAULT_LOG_DIR = "data/logs"


def configure_file_logging(
    log_dir: str = DEFAULT_LOG_DIR,
    *,
    level: int = logging.INFO,
) -> logging.FileHandler:
    """Write a copy of the run log to ``<log_dir>/roommate-match_<timestamp>.log``.

    Used by ``--log-dir`` so a ranking run can be inspected after the
    fact, including the DEBUG-level gate and threshold decisions when
    *level* is lowered.  The directory is created on demand; the handler
    is returned so it can be detached again.
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    filename = log_path / f"roommate-match_{timestamp}.log"

    file_handler = logging.FileHandler(str(filename), encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT))

    if level < logger.level:
        logger.setLevel(level)

    logger.addHandler(file_handler)
    return file_handler


__all__ = ["configure_file_logging", "logger"]
