"""
Tests for logging setup.
"""

import logging

import pytest
from rich.logging import RichHandler

from rollsync.utils.logging import (
    ConsoleFormatter,
    FileFormatter,
    _parse_level,
    get_logger,
    setup_logging,
    setup_logging_from_config,
)


@pytest.fixture(autouse=True)
def restore_logger():
    logger = logging.getLogger("rollsync")
    handlers, level = list(logger.handlers), logger.level
    yield
    for handler in logger.handlers:
        handler.close()
    logger.handlers[:] = handlers
    logger.setLevel(level)


class TestParseLevel:
    def test_names(self):
        assert _parse_level("debug") == logging.DEBUG
        assert _parse_level("WARNING") == logging.WARNING

    def test_int_passthrough(self):
        assert _parse_level(15) == 15

    def test_unknown_defaults_to_info(self):
        assert _parse_level("loud") == logging.INFO


class TestSetupLogging:
    def test_rich_console_by_default(self):
        logger = setup_logging("DEBUG")
        assert logger.name == "rollsync"
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], RichHandler)

    def test_plain_console(self):
        logger = setup_logging(use_rich=False)
        assert isinstance(logger.handlers[0].formatter, ConsoleFormatter)

    def test_repeated_setup_replaces_handlers(self):
        setup_logging()
        logger = setup_logging()
        assert len(logger.handlers) == 1

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "rollsync.log"
        logger = setup_logging("INFO", log_file=log_file, console_enabled=False)
        get_logger("rollsync.sync.synchronizer").info("Committed 3 artifacts")
        for handler in logger.handlers:
            handler.flush()

        assert isinstance(logger.handlers[0].formatter, FileFormatter)
        content = log_file.read_text()
        assert "[INFO    ] rollsync.sync.synchronizer: Committed 3 artifacts" in content


class TestSetupFromConfig:
    def test_relative_file_under_project(self, tmp_path):
        logger = setup_logging_from_config(
            {"logging": {"level": "WARNING", "file": "logs/sync.log", "console_enabled": False}}, tmp_path
        )
        assert logger.level == logging.WARNING
        assert logger.handlers[0].baseFilename == str(tmp_path / "logs" / "sync.log")

    def test_file_disabled(self, tmp_path):
        logger = setup_logging_from_config(
            {"logging": {"file": "logs/sync.log", "file_enabled": False, "console_type": "plain"}}, tmp_path
        )
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, ConsoleFormatter)

    def test_empty_config(self):
        logger = setup_logging_from_config({})
        assert logger.level == logging.INFO


class TestFormatters:
    def test_console_error_includes_location(self):
        record = logging.LogRecord("rollsync", logging.ERROR, "/src/rollsync/runner.py", 42, "failed", None, None)
        assert "runner.py:42 - failed" in ConsoleFormatter().format(record)

    def test_console_info(self):
        record = logging.LogRecord("rollsync", logging.INFO, "/src/rollsync/runner.py", 42, "ok", None, None)
        line = ConsoleFormatter().format(record)
        assert line.startswith("INFO: ")
        assert "runner.py" not in line
