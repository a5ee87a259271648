"""Tests for logging setup."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from expense_tracker_mcp.config import LoggingConfig
from expense_tracker_mcp.logging_config import get_log_config_summary, setup_logging


@pytest.fixture(autouse=True)
def _reset_root_logger():
    """Remove handlers added during each test to avoid leaking state."""
    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level
    yield
    for handler in root.handlers:
        if handler not in original_handlers:
            handler.close()
    root.handlers = original_handlers
    root.setLevel(original_level)


class TestSetupLogging:
    """Tests for setup_logging handler configuration."""

    def test_console_handler_uses_stderr(self):
        """stdout carries the MCP protocol, so console logs must go to stderr."""
        setup_logging(force=True)

        stream_handlers = [
            h for h in logging.getLogger().handlers
            if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        ]
        assert stream_handlers
        assert all(h.stream is sys.stderr for h in stream_handlers)

    def test_level_from_config(self):
        setup_logging(LoggingConfig(level="WARNING"), force=True)

        assert logging.getLogger().level == logging.WARNING

    def test_verbose_overrides_level(self):
        setup_logging(LoggingConfig(level="ERROR"), verbose=True, force=True)

        assert get_log_config_summary()["level"] == "DEBUG"

    def test_mcp_logger_quieted(self):
        setup_logging(force=True)

        assert logging.getLogger("mcp").level == logging.WARNING

    def test_file_handler(self, tmp_path: Path):
        log_path = tmp_path / "logs" / "server.log"
        setup_logging(LoggingConfig(log_to_file=True, log_file_path=log_path), force=True)

        logging.getLogger("expense_tracker_mcp.test").warning("written to file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "RotatingFileHandler" in get_log_config_summary()["handlers"]
        assert "written to file" in log_path.read_text()
        assert any(isinstance(h, RotatingFileHandler) for h in logging.getLogger().handlers)
