"""File logging tests: persistent log files for post-run diagnosis.

Maps to BDD spec: TestFileLogging

Tests verify that run logs are persisted to disk with timestamped
filenames, a configurable log level, and without suppressing stderr
output.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from roommate_match.logging import configure_file_logging, logger

if TYPE_CHECKING:
    from pathlib import Path


class TestFileLogging:
    """Ranking logs are persisted to disk for post-run diagnosis."""

    def test_log_file_name_includes_timestamp(self, tmp_path: Path) -> None:
        """Log file names follow roommate-match_YYYY-MM-DDTHH-MM-SS.log so
        repeated runs produce distinct, chronologically sortable files."""
        log_dir = tmp_path / "logs"
        handler = configure_file_logging(log_dir=str(log_dir))
        try:
            logger.info("timestamp check")
            log_files = list(log_dir.glob("*.log"))
            assert len(log_files) == 1
            assert re.match(
                r"roommate-match_\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}\.log$", log_files[0].name
            ), f"Log filename '{log_files[0].name}' does not match timestamp pattern"
        finally:
            logger.removeHandler(handler)
            handler.close()

    def test_module_loggers_propagate_to_file(self, tmp_path: Path) -> None:
        """Records from a module logger (roommate_match.*) reach the file,
        so components need no logging setup of their own."""
        log_dir = tmp_path / "logs"
        handler = configure_file_logging(log_dir=str(log_dir))
        try:
            logging.getLogger("roommate_match.pipeline.ranker").warning("ranker says hi")
            content = next(log_dir.glob("*.log")).read_text()
            assert "ranker says hi" in content
            assert "roommate_match.pipeline.ranker" in content
            assert "WARNING" in content
        finally:
            logger.removeHandler(handler)
            handler.close()

    def test_log_directory_is_created_if_absent(self, tmp_path: Path) -> None:
        """The log directory is created automatically when it doesn't exist."""
        log_dir = tmp_path / "nested" / "deep" / "logs"
        assert not log_dir.exists()
        handler = configure_file_logging(log_dir=str(log_dir))
        try:
            logger.info("auto-create dir")
            assert log_dir.exists()
            assert len(list(log_dir.glob("*.log"))) == 1
        finally:
            logger.removeHandler(handler)
            handler.close()

    def test_stderr_output_is_not_suppressed_when_file_logging_enabled(
        self, tmp_path: Path
    ) -> None:
        """File logging is additive; the stderr handler stays attached."""
        handler = configure_file_logging(log_dir=str(tmp_path / "logs"))
        try:
            handler_types = [type(h) for h in logger.handlers]
            assert logging.StreamHandler in handler_types, (
                "stderr StreamHandler was removed when file logging was enabled"
            )
        finally:
            logger.removeHandler(handler)
            handler.close()

    def test_log_level_is_configurable(self, tmp_path: Path) -> None:
        """A DEBUG file handler captures scoring decisions logged at DEBUG."""
        log_dir = tmp_path / "logs"
        handler = configure_file_logging(log_dir=str(log_dir), level=logging.DEBUG)
        try:
            logger.debug("debug-level message")
            content = next(log_dir.glob("*.log")).read_text()
            assert "debug-level message" in content
            assert "DEBUG" in content
        finally:
            logger.removeHandler(handler)
            handler.close()
