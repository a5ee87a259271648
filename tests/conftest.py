"""Test fixtures for expense tracker MCP server tests."""

import pytest

from expense_tracker_mcp import server as server_module
from expense_tracker_mcp.config import ExpenseTrackerSettings
from expense_tracker_mcp.database import Database


@pytest.fixture
def db() -> Database:
    """Create in-memory database with schema."""
    database = Database(":memory:")
    database.init_schema()
    yield database
    database.close()


@pytest.fixture
def populated_db(db: Database) -> Database:
    """Create in-memory database populated with a small deterministic dataset.

    March 2024 holds the "current" activity; February 2024 is prior history.
    """
    conn = db.connect()

    conn.execute(
        "INSERT INTO users (name, email, default_currency) VALUES (?, ?, ?)",
        ("Test User", "test@example.com", "USD"),
    )

    categories = [
        ("food", "Food", "expense", None),
        ("groceries", "Groceries", "expense", "food"),
        ("restaurants", "Restaurants", "expense", "food"),
        ("transport", "Transport", "expense", None),
        ("salary", "Salary", "income", None),
    ]
    conn.executemany(
        "INSERT INTO categories (id, name, type, parent_id) VALUES (?, ?, ?, ?)",
        categories,
    )

    ledgers = [
        ("checking", "Primary Checking", "checking", 1000.0),
        ("credit", "Credit Card", "credit", -200.0),
    ]
    conn.executemany(
        "INSERT INTO ledgers (id, name, type, balance) VALUES (?, ?, ?, ?)",
        ledgers,
    )

    budgets = [
        ("budget_food", "food", 100.0, "monthly", "2024-01-01", 1),
        ("budget_transport", "transport", 50.0, "monthly", "2024-01-01", 1),
        ("budget_old", "transport", 999.0, "monthly", "2023-01-01", 0),  # inactive
    ]
    conn.executemany(
        """INSERT INTO budgets (id, category_id, amount, period, start_date, active)
        VALUES (?, ?, ?, ?, ?, ?)""",
        budgets,
    )

    transactions = [
        ("txn_001", "expense", 10.0, "food", "checking", "Corner Cafe", "2024-03-01", "coffee"),
        ("txn_002", "expense", 20.0, "food", "checking", "Corner Cafe", "2024-03-05", "coffee,lunch"),
        ("txn_003", "expense", 30.0, "food", "credit", 'Bistro "Le Chat"', "2024-03-10", "dining"),
        ("txn_004", "expense", 15.0, "transport", "checking", "Metro card", "2024-03-12", ""),
        ("txn_005", "income", 2000.0, "salary", "checking", "Monthly salary", "2024-03-01", "salary"),
        # February history
        ("txn_006", "expense", 12.0, "transport", "checking", "Metro card", "2024-02-10", ""),
        ("txn_007", "expense", 8.0, "food", "checking", "Corner Cafe", "2024-02-15", "coffee"),
    ]
    conn.executemany(
        """INSERT INTO transactions
        (id, type, amount, category_id, ledger_id, description, date, tags)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        transactions,
    )

    conn.commit()
    return db


@pytest.fixture
def test_settings() -> ExpenseTrackerSettings:
    """Default settings with an in-memory store and no seeding."""
    return ExpenseTrackerSettings(database={"path": ":memory:", "seed_data": False})


@pytest.fixture
def mcp_server(populated_db: Database, test_settings: ExpenseTrackerSettings):
    """Point the MCP server module at populated_db for the duration of a test."""
    server_module.init_for_testing(populated_db, test_settings)
    yield server_module
    server_module._db = None
    server_module._settings = None
