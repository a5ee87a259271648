"""Tests for environment-driven settings."""

from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from expense_tracker_mcp import config as config_module
from expense_tracker_mcp.config import (
    AppConfig,
    DatabaseConfig,
    ExpenseTrackerSettings,
    get_settings,
    reload_settings,
)


@pytest.fixture(autouse=True)
def _reset_settings_cache(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Isolate each test from cached settings and any local .env file."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "_settings", None)


class TestDefaults:
    """Test default configuration values."""

    def test_defaults(self):
        settings = ExpenseTrackerSettings()

        assert settings.server.name == "expense-tracker"
        assert settings.app.default_currency == "USD"
        assert settings.app.max_query_limit == 100
        assert settings.app.max_transaction_batch == 100
        assert settings.database.seed_data is True
        assert settings.database.path.name == "expense_tracker.db"

    def test_settings_are_frozen(self):
        settings = ExpenseTrackerSettings()

        with pytest.raises(PydanticValidationError):
            settings.app = AppConfig(max_query_limit=5)


class TestEnvironment:
    """Test loading from environment variables."""

    def test_nested_env_override(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("EXPENSE_TRACKER_APP__MAX_QUERY_LIMIT", "25")
        monkeypatch.setenv("EXPENSE_TRACKER_DATABASE__PATH", ":memory:")
        monkeypatch.setenv("EXPENSE_TRACKER_LOGGING__LEVEL", "DEBUG")

        settings = get_settings()

        assert settings.app.max_query_limit == 25
        assert str(settings.database.path) == ":memory:"
        assert settings.logging.level == "DEBUG"

    def test_env_file(self, tmp_path: Path):
        (tmp_path / ".env").write_text("EXPENSE_TRACKER_SERVER__DEBUG=true\n")

        assert ExpenseTrackerSettings().server.debug is True

    def test_invalid_value_reported(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("EXPENSE_TRACKER_APP__MAX_TRANSACTION_BATCH", "0")

        with pytest.raises(ValueError, match="Configuration error"):
            get_settings()

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()

    def test_reload_settings(self, monkeypatch: pytest.MonkeyPatch):
        first = get_settings()
        monkeypatch.setenv("EXPENSE_TRACKER_APP__DEFAULT_CURRENCY", "EUR")

        reloaded = reload_settings()

        assert reloaded is not first
        assert reloaded.app.default_currency == "EUR"


class TestDatabaseConfig:
    """Test database path validation."""

    @pytest.mark.parametrize("path", ["data.db", "data.sqlite", "data.sqlite3", ":memory:"])
    def test_accepted_paths(self, path: str):
        assert str(DatabaseConfig(path=path).path) == path

    def test_rejected_extension(self):
        with pytest.raises(PydanticValidationError, match="must end with"):
            DatabaseConfig(path="data.txt")
