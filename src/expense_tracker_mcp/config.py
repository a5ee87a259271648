"""Configuration for the expense tracker MCP server.

Settings are loaded once from environment variables (prefix
``EXPENSE_TRACKER_``, nested sections separated by ``__``) and an optional
``.env`` file, then passed explicitly to the components that need them.

Examples:
    EXPENSE_TRACKER_DATABASE__PATH=/tmp/expenses.db
    EXPENSE_TRACKER_APP__MAX_QUERY_LIMIT=50
    EXPENSE_TRACKER_LOGGING__LEVEL=DEBUG
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from . import __version__


DEFAULT_DB_PATH = Path.home() / ".cache" / "expense-tracker-mcp" / "expense_tracker.db"


class DatabaseConfig(BaseModel):
    """SQLite store settings."""

    model_config = ConfigDict(frozen=True)

    path: Path = Field(default=DEFAULT_DB_PATH, description="Path to SQLite database file")
    seed_data: bool = Field(
        default=True, description="Seed default categories, ledgers and budgets on first boot"
    )

    @field_validator("path")
    @classmethod
    def validate_database_path(cls, v: Path) -> Path:
        """Allow ':memory:' or a file with a SQLite extension."""
        if str(v) != ":memory:" and not str(v).endswith((".db", ".sqlite", ".sqlite3")):
            raise ValueError("Database path must end with .db, .sqlite or .sqlite3")
        return v


class ServerConfig(BaseModel):
    """MCP server identity."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(default="expense-tracker", description="Server name reported to clients")
    version: str = Field(default=__version__, description="Server version reported to clients")
    debug: bool = Field(default=False, description="Log tool arguments")


class AppConfig(BaseModel):
    """Limits and defaults for tool operations."""

    model_config = ConfigDict(frozen=True)

    default_currency: str = Field(default="USD", min_length=3, max_length=3)
    max_transaction_batch: int = Field(
        default=100, ge=1, le=1000, description="Maximum items per batch create"
    )
    max_query_limit: int = Field(
        default=100, ge=1, le=1000, description="Hard cap on query page size"
    )


class LoggingConfig(BaseModel):
    """Logging configuration settings."""

    model_config = ConfigDict(frozen=True)

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format_string: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_to_file: bool = Field(default=False, description="Enable file logging")
    log_file_path: Path = Field(
        default=Path("logs/expense_tracker.log"), description="Path to log file"
    )
    max_file_size_mb: int = Field(
        default=10, ge=1, le=1000, description="Maximum log file size in MB"
    )
    backup_count: int = Field(
        default=3, ge=1, le=50, description="Number of log file backups to keep"
    )


class ExpenseTrackerSettings(BaseSettings):
    """Main application settings with environment variable integration."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    app: AppConfig = Field(default_factory=AppConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="EXPENSE_TRACKER_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


_settings: ExpenseTrackerSettings | None = None


def get_settings() -> ExpenseTrackerSettings:
    """Get the process-wide settings instance, loading it on first use.

    Raises:
        ValueError: If configuration values are invalid.
    """
    global _settings
    if _settings is None:
        try:
            _settings = ExpenseTrackerSettings()
        except Exception as e:
            raise ValueError(f"Configuration error: {e}") from e
    return _settings


def reload_settings() -> ExpenseTrackerSettings:
    """Drop the cached settings and load them again from the environment."""
    global _settings
    _settings = None
    return get_settings()
