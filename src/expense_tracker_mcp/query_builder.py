"""Parameterized read-query assembly for transactions.

Statements are composed from fixed SQL fragments and a parallel list of
bound values. Column names used for ordering come only from whitelists,
so no caller-supplied value is ever spliced into SQL text.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .database import Store


TRANSACTION_SELECT = """
    SELECT t.*, c.name AS category_name, c.type AS category_type, l.name AS ledger_name
    FROM transactions t
    JOIN categories c ON t.category_id = c.id
    JOIN ledgers l ON t.ledger_id = l.id
"""

EXPORT_SELECT = """
    SELECT t.*, c.name AS category_name, c.type AS category_type,
           l.name AS ledger_name, l.type AS ledger_type
    FROM transactions t
    JOIN categories c ON t.category_id = c.id
    JOIN ledgers l ON t.ledger_id = l.id
"""

SORT_COLUMNS = {
    "date": "t.date",
    "amount": "t.amount",
    "category": "c.name",
}

GROUP_BY_COLUMNS = {
    "date": "t.date",
    "category": "c.name",
    "ledger": "l.name",
}

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


class QueryBuilder:
    """Compose a SELECT from a base statement plus optional predicates.

    Example:
        >>> qb = QueryBuilder("SELECT * FROM transactions t")
        >>> qb.where("t.type = ?", "expense").where_in("t.category_id", ["food"])
        >>> sql, params = qb.build()
    """

    def __init__(self, base: str):
        self.base = base
        self._conditions: list[tuple[str, list[Any]]] = []
        self._group_by: str | None = None
        self._having: tuple[str, list[Any]] | None = None
        self._order_by: str | None = None
        self._limit: tuple[int, int] | None = None

    def where(self, fragment: str, *params: Any) -> "QueryBuilder":
        """Add a predicate; each ``?`` in the fragment binds one param."""
        self._conditions.append((fragment, list(params)))
        return self

    def where_in(self, column: str, values: list[Any] | None) -> "QueryBuilder":
        """Add ``column IN (...)``. An empty or missing list adds nothing."""
        if values:
            placeholders = ",".join("?" * len(values))
            self._conditions.append((f"{column} IN ({placeholders})", list(values)))
        return self

    def group_by(self, clause: str) -> "QueryBuilder":
        self._group_by = clause
        return self

    def having(self, fragment: str, *params: Any) -> "QueryBuilder":
        self._having = (fragment, list(params))
        return self

    def order_by(self, clause: str) -> "QueryBuilder":
        self._order_by = clause
        return self

    def paginate(self, limit: int, offset: int) -> "QueryBuilder":
        self._limit = (limit, offset)
        return self

    def _filtered(self) -> tuple[str, list[Any]]:
        query = self.base
        params: list[Any] = []
        if self._conditions:
            query += " WHERE " + " AND ".join(frag for frag, _ in self._conditions)
            for _, values in self._conditions:
                params.extend(values)
        if self._group_by:
            query += f" GROUP BY {self._group_by}"
        if self._having:
            query += f" HAVING {self._having[0]}"
            params.extend(self._having[1])
        return query, params

    def build(self) -> tuple[str, list[Any]]:
        """Return the full statement and its bound parameters."""
        query, params = self._filtered()
        if self._order_by:
            query += f" ORDER BY {self._order_by}"
        if self._limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend(self._limit)
        return query, params

    def build_count(self) -> tuple[str, list[Any]]:
        """Return a COUNT over the same predicate, ignoring order and paging."""
        query, params = self._filtered()
        return f"SELECT COUNT(*) AS total FROM ({query})", params


@dataclass
class TransactionFilters:
    """Structured filter for transaction reads."""

    date_start: str | None = None
    date_end: str | None = None
    categories: list[str] = field(default_factory=list)
    ledgers: list[str] = field(default_factory=list)
    search_text: str | None = None
    min_amount: float | None = None
    max_amount: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "TransactionFilters":
        data = data or {}
        return cls(
            date_start=data.get("date_start"),
            date_end=data.get("date_end"),
            categories=list(data.get("categories") or []),
            ledgers=list(data.get("ledgers") or []),
            search_text=data.get("search_text"),
            min_amount=data.get("min_amount"),
            max_amount=data.get("max_amount"),
        )

    def apply(self, qb: QueryBuilder) -> QueryBuilder:
        """Add this filter's predicates to a query over ``transactions t``."""
        if self.date_start:
            qb.where("t.date >= ?", self.date_start)
        if self.date_end:
            qb.where("t.date <= ?", self.date_end)
        qb.where_in("t.category_id", self.categories)
        qb.where_in("t.ledger_id", self.ledgers)
        if self.search_text:
            qb.where("t.description LIKE ?", f"%{self.search_text}%")
        if self.min_amount is not None:
            qb.where("t.amount >= ?", self.min_amount)
        if self.max_amount is not None:
            qb.where("t.amount <= ?", self.max_amount)
        return qb


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def sort_clause(sort: dict[str, Any] | None) -> str:
    """Translate a ``{field, order}`` request into an ORDER BY clause.

    No sort field means newest first. An unrecognized field sorts by amount.
    """
    sort = sort or {}
    sort_field = sort.get("field")
    if not sort_field:
        return "t.date DESC, t.id"
    column = SORT_COLUMNS.get(sort_field, "t.amount")
    direction = "ASC" if str(sort.get("order", "desc")).lower() == "asc" else "DESC"
    return f"{column} {direction}, t.id"


def query_transactions(
    db: "Store",
    tx_type: str = "all",
    filters: dict[str, Any] | None = None,
    pagination: dict[str, Any] | None = None,
    sort: dict[str, Any] | None = None,
    max_limit: int = MAX_PAGE_SIZE,
) -> dict[str, Any]:
    """Search transactions with filters, sorting and pagination.

    Args:
        db: Store to read from.
        tx_type: "income", "expense" or "all".
        filters: date_start, date_end, categories, ledgers, search_text,
            min_amount, max_amount.
        pagination: page (1-based) and limit. Limit is clamped to max_limit.
        sort: field ("date", "amount", "category") and order ("asc", "desc").
        max_limit: Hard cap on page size.

    Returns:
        Dictionary with the page of transactions and pagination metadata.
    """
    pagination = pagination or {}
    page = max(1, _as_int(pagination.get("page", 1), 1))
    limit = min(max(1, _as_int(pagination.get("limit", DEFAULT_PAGE_SIZE), DEFAULT_PAGE_SIZE)), max_limit)
    offset = (page - 1) * limit

    qb = QueryBuilder(TRANSACTION_SELECT)
    if tx_type and tx_type != "all":
        qb.where("t.type = ?", tx_type)
    TransactionFilters.from_dict(filters).apply(qb)

    count_sql, count_params = qb.build_count()
    total = db.fetch_one(count_sql, count_params)["total"]

    qb.order_by(sort_clause(sort)).paginate(limit, offset)
    sql, params = qb.build()
    transactions = db.fetch_all(sql, params)

    return {
        "transactions": transactions,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "has_next": page * limit < total,
        },
    }


def export_transactions_query(
    filters: dict[str, Any] | None = None,
    group_by: str | None = None,
) -> tuple[str, list[Any]]:
    """Build the transaction export statement.

    Only the date range, category and ledger filters apply to exports.
    """
    parsed = TransactionFilters.from_dict(filters)
    qb = QueryBuilder(EXPORT_SELECT)
    TransactionFilters(
        date_start=parsed.date_start,
        date_end=parsed.date_end,
        categories=parsed.categories,
        ledgers=parsed.ledgers,
    ).apply(qb)

    if group_by:
        qb.order_by(f"{GROUP_BY_COLUMNS.get(group_by, 't.date')}, t.id")
    else:
        qb.order_by("t.date DESC, t.id")
    return qb.build()
