"""Logging setup for the expense tracker MCP server.

The MCP stdio transport owns stdout, so console output always goes to
stderr.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Any

from .config import LoggingConfig


def setup_logging(
    config: LoggingConfig | None = None,
    verbose: bool = False,
    force: bool = False,
) -> None:
    """Configure the root logger for the server process.

    Args:
        config: Logging settings. Defaults to ``LoggingConfig()``.
        verbose: If True, log at DEBUG regardless of the configured level.
        force: Replace handlers installed by an earlier call.
    """
    if config is None:
        config = LoggingConfig()

    level = logging.DEBUG if verbose else getattr(logging, config.level)

    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(logging.Formatter(config.format_string))
    handlers.append(console_handler)

    if config.log_to_file:
        config.log_file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            config.log_file_path,
            maxBytes=config.max_file_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
        )
        file_handler.setFormatter(logging.Formatter(config.format_string))
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=force)

    # The MCP SDK is chatty at INFO
    logging.getLogger("mcp").setLevel(logging.WARNING)


def get_log_config_summary() -> dict[str, Any]:
    """Describe the active root logger configuration."""
    root_logger = logging.getLogger()
    return {
        "level": logging.getLevelName(root_logger.level),
        "handlers": [type(h).__name__ for h in root_logger.handlers],
    }
