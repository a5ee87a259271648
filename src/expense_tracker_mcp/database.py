"""SQLite database schema and store operations for the expense tracker."""

import logging
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Any, Protocol

from .errors import StoreError
from .query_builder import QueryBuilder
from .utils import local_now

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id               INTEGER PRIMARY KEY AUTOINCREMENT,
    name             TEXT NOT NULL,
    email            TEXT UNIQUE NOT NULL,
    default_currency TEXT DEFAULT 'USD',
    created_at       TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS categories (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    type        TEXT CHECK(type IN ('income', 'expense')) NOT NULL,
    parent_id   TEXT,     -- categories.id, NULL for roots
    description TEXT,
    active      BOOLEAN DEFAULT 1,
    created_at  TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (parent_id) REFERENCES categories(id)
);

CREATE TABLE IF NOT EXISTS ledgers (
    id         TEXT PRIMARY KEY,
    name       TEXT NOT NULL,
    type       TEXT CHECK(type IN ('checking', 'savings', 'credit', 'cash', 'investment')) NOT NULL,
    balance    REAL DEFAULT 0,   -- informational, not adjusted by transactions
    currency   TEXT DEFAULT 'USD',
    active     BOOLEAN DEFAULT 1,
    created_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS budgets (
    id          TEXT PRIMARY KEY,
    category_id TEXT NOT NULL,
    amount      REAL NOT NULL,
    period      TEXT CHECK(period IN ('monthly', 'weekly', 'yearly')) DEFAULT 'monthly',
    start_date  TEXT NOT NULL,
    end_date    TEXT,
    active      BOOLEAN DEFAULT 1,
    created_at  TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (category_id) REFERENCES categories(id)
);

CREATE TABLE IF NOT EXISTS transactions (
    id          TEXT PRIMARY KEY,
    type        TEXT CHECK(type IN ('income', 'expense')) NOT NULL,
    amount      REAL NOT NULL,
    category_id TEXT NOT NULL,
    ledger_id   TEXT NOT NULL,
    description TEXT,
    date        TEXT NOT NULL,   -- 'YYYY-MM-DD'
    tags        TEXT,            -- comma-separated, in insertion order
    created_at  TEXT DEFAULT CURRENT_TIMESTAMP,
    updated_at  TEXT DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (category_id) REFERENCES categories(id),
    FOREIGN KEY (ledger_id) REFERENCES ledgers(id)
);
"""

INDEXES = """
CREATE INDEX IF NOT EXISTS idx_categories_parent ON categories(parent_id);
CREATE INDEX IF NOT EXISTS idx_budgets_category ON budgets(category_id);
CREATE INDEX IF NOT EXISTS idx_tx_date ON transactions(date);
CREATE INDEX IF NOT EXISTS idx_tx_type ON transactions(type);
CREATE INDEX IF NOT EXISTS idx_tx_category ON transactions(category_id);
CREATE INDEX IF NOT EXISTS idx_tx_ledger ON transactions(ledger_id);
"""

TABLES = ("users", "categories", "ledgers", "budgets", "transactions")

DEFAULT_CATEGORIES = [
    ("food", "Food & Dining", "expense", None),
    ("groceries", "Groceries", "expense", "food"),
    ("restaurants", "Restaurants", "expense", "food"),
    ("transport", "Transportation", "expense", None),
    ("gas", "Gas & Fuel", "expense", "transport"),
    ("public_transport", "Public Transport", "expense", "transport"),
    ("entertainment", "Entertainment", "expense", None),
    ("movies", "Movies & Shows", "expense", "entertainment"),
    ("utilities", "Utilities", "expense", None),
    ("electricity", "Electricity", "expense", "utilities"),
    ("internet", "Internet", "expense", "utilities"),
    ("salary", "Salary", "income", None),
    ("freelance", "Freelance", "income", None),
    ("investment", "Investment Returns", "income", None),
]

DEFAULT_LEDGERS = [
    ("checking", "Primary Checking", "checking", 2500.00),
    ("savings", "Savings Account", "savings", 15000.00),
    ("credit", "Credit Card", "credit", -850.00),
    ("cash", "Cash Wallet", "cash", 125.00),
]

DEFAULT_BUDGETS = [
    ("budget_food", "food", 800.00, "monthly", "2024-01-01"),
    ("budget_transport", "transport", 300.00, "monthly", "2024-01-01"),
    ("budget_entertainment", "entertainment", 200.00, "monthly", "2024-01-01"),
    ("budget_utilities", "utilities", 400.00, "monthly", "2024-01-01"),
]

# (id, type, amount, category, ledger, description, day of current month, tags)
SAMPLE_TRANSACTIONS = [
    ("txn_001", "expense", 45.99, "groceries", "checking", "Weekly grocery shopping", 5, "weekly,essential"),
    ("txn_002", "expense", 25.50, "gas", "credit", "Gas station fill-up", 6, "fuel"),
    ("txn_003", "income", 3500.00, "salary", "checking", "Monthly salary deposit", 1, "monthly,salary"),
    ("txn_004", "expense", 89.99, "electricity", "checking", "Monthly electricity bill", 3, "monthly,utility"),
    ("txn_005", "expense", 12.50, "movies", "cash", "Movie theater tickets", 8, "entertainment"),
    ("txn_006", "expense", 67.34, "restaurants", "credit", "Dinner at Italian restaurant", 10, "dining,date"),
    ("txn_007", "income", 750.00, "freelance", "checking", "Website design project", 12, "freelance,project"),
    ("txn_008", "expense", 19.99, "public_transport", "checking", "Monthly transit pass", 2, "monthly,transport"),
]


class Store(Protocol):
    """Capability contract the query and report layer relies on."""

    def connect(self) -> sqlite3.Connection: ...

    def close(self) -> None: ...

    def init_schema(self) -> None: ...

    def fetch_one(self, query: str, params: Sequence[Any] = ()) -> dict[str, Any] | None: ...

    def fetch_all(self, query: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]: ...

    def execute(self, query: str, params: Sequence[Any] = ()) -> int: ...

    def transaction(self) -> Any: ...


class Database:
    """SQLite database wrapper for the expense tracker."""

    def __init__(self, db_path: str | Path | None = None):
        """Initialize database connection settings.

        Args:
            db_path: Path to SQLite file, or None/":memory:" for in-memory DB.
        """
        if db_path is None:
            db_path = ":memory:"
        self.db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            if self.db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode=WAL")
            logger.debug("Opened SQLite database: %s", self.db_path)
        return self._conn

    def close(self) -> None:
        """Close database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.info("Database connection closed")

    def init_schema(self) -> None:
        """Create all tables and indexes."""
        conn = self.connect()
        conn.executescript(SCHEMA)
        conn.executescript(INDEXES)
        conn.commit()

    # -------------------------------------------------------------------------
    # Statement execution
    # -------------------------------------------------------------------------

    def fetch_one(self, query: str, params: Sequence[Any] = ()) -> dict[str, Any] | None:
        """Run a query and return the first row as a dict, or None."""
        try:
            row = self.connect().execute(query, list(params)).fetchone()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        return dict(row) if row is not None else None

    def fetch_all(self, query: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a query and return all rows as dicts."""
        try:
            rows = self.connect().execute(query, list(params)).fetchall()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        return [dict(row) for row in rows]

    def execute(self, query: str, params: Sequence[Any] = ()) -> int:
        """Run a mutating statement, commit it, and return the affected row count."""
        conn = self.connect()
        try:
            cursor = conn.execute(query, list(params))
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(str(e)) from e
        return cursor.rowcount

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Group several statements into one atomic unit.

        Commits when the block exits normally, rolls back on any exception.
        """
        conn = self.connect()
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(str(e)) from e
        except BaseException:
            conn.rollback()
            raise

    # -------------------------------------------------------------------------
    # Seed data
    # -------------------------------------------------------------------------

    def seed_defaults(self, today: date | None = None) -> bool:
        """Insert default profile, categories, ledgers, budgets and samples.

        Only runs against an empty store.

        Returns:
            True if data was inserted.
        """
        if self.count_table("users") > 0:
            return False

        month_start = (today or local_now().date()).replace(day=1)

        with self.transaction() as conn:
            conn.execute(
                "INSERT INTO users (name, email) VALUES (?, ?)",
                ("Default User", "user@example.com"),
            )
            conn.executemany(
                "INSERT INTO categories (id, name, type, parent_id) VALUES (?, ?, ?, ?)",
                DEFAULT_CATEGORIES,
            )
            conn.executemany(
                "INSERT INTO ledgers (id, name, type, balance, currency) VALUES (?, ?, ?, ?, 'USD')",
                DEFAULT_LEDGERS,
            )
            conn.executemany(
                "INSERT INTO budgets (id, category_id, amount, period, start_date) VALUES (?, ?, ?, ?, ?)",
                DEFAULT_BUDGETS,
            )
            conn.executemany(
                """
                INSERT INTO transactions
                (id, type, amount, category_id, ledger_id, description, date, tags)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (txn_id, tx_type, amount, category, ledger, description,
                     month_start.replace(day=day).isoformat(), tags)
                    for txn_id, tx_type, amount, category, ledger, description, day, tags
                    in SAMPLE_TRANSACTIONS
                ],
            )

        logger.info("Database initialized with sample data")
        return True

    # -------------------------------------------------------------------------
    # Entity reads
    # -------------------------------------------------------------------------

    def get_user(self) -> dict[str, Any] | None:
        """Get the most recently created user profile."""
        return self.fetch_one("SELECT * FROM users ORDER BY created_at DESC, id DESC LIMIT 1")

    def get_categories(self, active_only: bool = False) -> list[dict[str, Any]]:
        qb = QueryBuilder("SELECT * FROM categories")
        if active_only:
            qb.where("active = 1")
        sql, params = qb.order_by("type, name").build()
        return self.fetch_all(sql, params)

    def get_category(self, category_id: str) -> dict[str, Any] | None:
        return self.fetch_one("SELECT * FROM categories WHERE id = ?", (category_id,))

    def get_ledgers(
        self,
        active_only: bool = False,
        ledger_ids: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        qb = QueryBuilder("SELECT * FROM ledgers")
        if active_only:
            qb.where("active = 1")
        qb.where_in("id", ledger_ids)
        sql, params = qb.order_by("name").build()
        return self.fetch_all(sql, params)

    def get_ledger(self, ledger_id: str) -> dict[str, Any] | None:
        return self.fetch_one("SELECT * FROM ledgers WHERE id = ?", (ledger_id,))

    def get_budgets(self, active_only: bool = False) -> list[dict[str, Any]]:
        qb = QueryBuilder("""
            SELECT b.*, c.name AS category_name, c.type AS category_type
            FROM budgets b
            JOIN categories c ON b.category_id = c.id
        """)
        if active_only:
            qb.where("b.active = 1")
        sql, params = qb.order_by("b.period, c.name").build()
        return self.fetch_all(sql, params)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def insert_transaction(self, item: dict[str, Any]) -> None:
        """Insert one transaction row and commit it."""
        self.execute(
            """
            INSERT INTO transactions
            (id, type, amount, category_id, ledger_id, description, date, tags)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item["id"],
                item["type"],
                item["amount"],
                item["category_id"],
                item["ledger_id"],
                item.get("description", ""),
                item["date"],
                item.get("tags", ""),
            ),
        )

    # -------------------------------------------------------------------------
    # Query helpers
    # -------------------------------------------------------------------------

    def count_table(self, table: str) -> int:
        """Count rows in one of the known tables."""
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")
        row = self.fetch_one(f"SELECT COUNT(*) AS cnt FROM {table}")  # noqa: S608
        return row["cnt"] if row else 0

    def dump_table(self, table: str) -> list[dict[str, Any]]:
        """Return every row of one of the known tables."""
        if table not in TABLES:
            raise ValueError(f"Unknown table: {table}")
        return self.fetch_all(f"SELECT * FROM {table}")  # noqa: S608
