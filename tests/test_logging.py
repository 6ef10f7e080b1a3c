"""
Tests for structured logging.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from minimizer.logging import (
    ROOT_LOGGER,
    attach_log_file,
    context_fields,
    detach_log_file,
    get_logger,
    log_context,
)


class TestLogContext:
    """Tests for context variables."""

    def test_nested_context_restores_outer_values(self) -> None:
        """Test that leaving a block restores the enclosing fields."""
        with log_context(run_id="run_1", phase="transform"):
            with log_context(path="about/"):
                assert context_fields() == {
                    "run_id": "run_1",
                    "phase": "transform",
                    "path": "about/",
                }
            assert context_fields() == {"run_id": "run_1", "phase": "transform"}

        assert context_fields() == {}


class TestRunLogFile:
    """Tests for the per-run JSON log file."""

    def test_detach_restores_logger_level(self, temp_dir: Path) -> None:
        """Test that the DEBUG level of a run does not outlive it."""
        root_logger = logging.getLogger(ROOT_LOGGER)
        root_logger.setLevel(logging.WARNING)

        attach_log_file(temp_dir / "run.log")
        assert root_logger.level == logging.DEBUG
        detach_log_file()

        assert root_logger.level == logging.WARNING
        assert not any(isinstance(h, logging.FileHandler) for h in root_logger.handlers)

    def test_reattach_keeps_original_level(self, temp_dir: Path) -> None:
        """Test that replacing the file does not record DEBUG as the level to restore."""
        root_logger = logging.getLogger(ROOT_LOGGER)
        root_logger.setLevel(logging.INFO)

        attach_log_file(temp_dir / "one.log")
        attach_log_file(temp_dir / "two.log")
        detach_log_file()

        assert root_logger.level == logging.INFO

    def test_records_carry_context_and_fields(self, temp_dir: Path) -> None:
        """Test the JSON line layout."""
        log_path = temp_dir / "run.log"
        logger = get_logger("tests")

        attach_log_file(log_path)
        try:
            with log_context(run_id="run_1", phase="transform"):
                logger.debug("Shrunk document", document="index.html")
        finally:
            detach_log_file()

        [record] = [json.loads(line) for line in log_path.read_text().splitlines()]
        assert record["message"] == "Shrunk document"
        assert record["level"] == "DEBUG"
        assert record["run_id"] == "run_1"
        assert record["phase"] == "transform"
        assert record["fields"] == {"document": "index.html"}
