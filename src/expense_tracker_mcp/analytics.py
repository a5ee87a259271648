"""Analytics business logic for expense tracker MCP tools."""

import logging
from datetime import date, datetime
from typing import Any

from . import __version__
from .database import TABLES, Database
from .errors import ExpenseTrackerError, NotFoundError, UnknownOperandError, ValidationError
from .query_builder import QueryBuilder, export_transactions_query
from .utils import (
    build_category_tree,
    days_inclusive,
    format_date,
    generate_id,
    join_tags,
    local_now,
    month_bounds,
    parse_date,
    percentage,
    percentage_change,
    require_window,
    resolve_period,
    validate_transaction,
)

logger = logging.getLogger(__name__)


OUTLIER_MULTIPLIER = 2
SPIKE_MULTIPLIER = 1.5
MICRO_TRANSACTION_LIMIT = 20
MICRO_TRANSACTION_MIN_FREQUENCY = 5
FORECAST_DAYS = 30
SUBSCRIPTION_KEYWORDS = ("subscription", "monthly", "annual", "service", "premium", "plus")
DEFAULT_LEDGER_ID = "checking"
DEFAULT_SUMMARY_START = "2024-01-01"


# ============================================================================
# Account data
# ============================================================================

def get_account_data(
    db: Database,
    data_type: str,
    filters: dict[str, Any] | None = None,
) -> Any:
    """Read profile, categories, ledgers or budgets.

    Returns:
        Profile dict, ``{"tree", "categories"}`` for categories, or a list.
    """
    filters = filters or {}
    active_only = bool(filters.get("active_only"))

    if data_type == "profile":
        return db.get_user()
    if data_type == "categories":
        categories = db.get_categories(active_only=active_only)
        return {"tree": build_category_tree(categories), "categories": categories}
    if data_type == "ledgers":
        return db.get_ledgers(active_only=active_only, ledger_ids=filters.get("ledger_ids"))
    if data_type == "budgets":
        return db.get_budgets(active_only=active_only)
    raise UnknownOperandError("data_type", data_type)


# ============================================================================
# analyze_spending
# ============================================================================

def analyze_spending(
    db: Database,
    analysis_type: str,
    period: dict[str, Any],
    filters: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Dispatch to one of the spending analyses."""
    if analysis_type == "category_breakdown":
        return category_breakdown(db, period, filters)
    if analysis_type == "time_trend":
        return time_trend(db, period, filters)
    if analysis_type == "budget_variance":
        return budget_variance(db, period)
    raise UnknownOperandError("analysis_type", analysis_type)


def category_breakdown(
    db: Database,
    period: dict[str, Any],
    filters: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Group transactions by category with totals and share of the grand total.

    Args:
        db: Database instance.
        period: ``{"start", "end"}`` inclusive ISO dates.
        filters: Optional transaction_type, categories and ledgers.

    Returns:
        Dictionary with per-category breakdown ordered by total descending.
    """
    start, end = require_window(period)
    filters = filters or {}

    qb = QueryBuilder("""
        SELECT c.name AS category, c.id AS category_id, c.type AS type,
               SUM(t.amount) AS total_amount,
               COUNT(t.id) AS transaction_count,
               AVG(t.amount) AS avg_amount
        FROM transactions t
        JOIN categories c ON t.category_id = c.id
    """)
    qb.where("t.date >= ?", start).where("t.date <= ?", end)
    if filters.get("transaction_type"):
        qb.where("t.type = ?", filters["transaction_type"])
    qb.where_in("t.category_id", filters.get("categories"))
    qb.where_in("t.ledger_id", filters.get("ledgers"))
    qb.group_by("c.id, c.name, c.type").order_by("total_amount DESC, c.name")

    sql, params = qb.build()
    rows = db.fetch_all(sql, params)
    total = sum(row["total_amount"] for row in rows)

    breakdown = [
        {**row, "percentage": percentage(row["total_amount"], total)}
        for row in rows
    ]
    return {"breakdown": breakdown, "total_amount": total}


def _trend_bucket(day: date, grouping: str) -> str:
    if grouping == "day":
        return day.isoformat()
    if grouping == "week":
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    return f"{day.year:04d}-{day.month:02d}"


def time_trend(
    db: Database,
    period: dict[str, Any],
    filters: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Bucket income and expenses by day, ISO week or month.

    Unrecognized groupings fall back to month.
    """
    start, end = require_window(period)
    filters = filters or {}
    grouping = period.get("grouping", "month")
    if grouping not in ("day", "week", "month"):
        grouping = "month"

    qb = QueryBuilder("SELECT t.date, t.type, t.amount FROM transactions t")
    qb.where("t.date >= ?", start).where("t.date <= ?", end)
    if filters.get("transaction_type"):
        qb.where("t.type = ?", filters["transaction_type"])
    qb.where_in("t.category_id", filters.get("categories"))
    qb.where_in("t.ledger_id", filters.get("ledgers"))
    sql, params = qb.build()

    buckets: dict[str, dict[str, Any]] = {}
    for row in db.fetch_all(sql, params):
        key = _trend_bucket(parse_date(row["date"]), grouping)
        bucket = buckets.setdefault(
            key, {"period": key, "expenses": 0.0, "income": 0.0, "transaction_count": 0}
        )
        if row["type"] == "expense":
            bucket["expenses"] += row["amount"]
        elif row["type"] == "income":
            bucket["income"] += row["amount"]
        bucket["transaction_count"] += 1

    trends = [buckets[key] for key in sorted(buckets)]
    return {"trends": trends, "grouping": grouping}


def budget_variance(db: Database, period: dict[str, Any]) -> dict[str, Any]:
    """Compare each active budget with actual expenses in the window."""
    start, end = require_window(period)

    rows = db.fetch_all("""
        SELECT b.id AS budget_id, b.amount AS budgeted_amount, b.period,
               c.name AS category_name, c.id AS category_id,
               COALESCE(SUM(t.amount), 0) AS actual_amount
        FROM budgets b
        JOIN categories c ON b.category_id = c.id
        LEFT JOIN transactions t ON t.category_id = c.id
            AND t.date >= ? AND t.date <= ?
            AND t.type = 'expense'
        WHERE b.active = 1
        GROUP BY b.id, b.amount, b.period, c.name, c.id
        ORDER BY c.name, b.id
    """, [start, end])

    variances = []
    for row in rows:
        actual = row["actual_amount"]
        budgeted = row["budgeted_amount"]
        variances.append({
            **row,
            "variance": actual - budgeted,
            "variance_percentage": percentage(actual - budgeted, budgeted) if budgeted > 0 else 0,
            "status": "over" if actual > budgeted else "under",
        })

    return {"variances": variances, "period": period}


# ============================================================================
# get_summary
# ============================================================================

def get_summary(
    db: Database,
    summary_type: str,
    period: str = "this_month",
    date_range: dict[str, Any] | None = None,
    include_details: bool = False,
    today: date | None = None,
) -> dict[str, Any]:
    """Summarize a named period.

    Args:
        db: Database instance.
        summary_type: "period_totals", "budget_status" or "quick_stats".
        period: "today", "this_week", "this_month", "this_year" or "custom".
        date_range: ``{"start", "end"}`` for the custom period.
        include_details: Attach a per-category breakdown to period_totals.
        today: Override for the current day.
    """
    start, end = resolve_period(period, date_range, today)
    period_info: dict[str, Any] = {"start": start, "end": end, "type": period}

    if summary_type == "period_totals":
        totals = db.fetch_one("""
            SELECT
                COALESCE(SUM(CASE WHEN type = 'income' THEN amount ELSE 0 END), 0) AS total_income,
                COALESCE(SUM(CASE WHEN type = 'expense' THEN amount ELSE 0 END), 0) AS total_expenses,
                COUNT(CASE WHEN type = 'income' THEN 1 END) AS income_count,
                COUNT(CASE WHEN type = 'expense' THEN 1 END) AS expense_count
            FROM transactions
            WHERE date >= ? AND date <= ?
        """, [start, end])

        result = {
            **totals,
            "net_amount": totals["total_income"] - totals["total_expenses"],
            "period": period_info,
        }
        if include_details:
            result["category_breakdown"] = db.fetch_all("""
                SELECT c.name AS category, c.type,
                       SUM(t.amount) AS amount,
                       COUNT(t.id) AS count
                FROM transactions t
                JOIN categories c ON t.category_id = c.id
                WHERE t.date >= ? AND t.date <= ?
                GROUP BY c.id, c.name, c.type
                ORDER BY c.type, amount DESC
            """, [start, end])
        return result

    if summary_type == "budget_status":
        rows = db.fetch_all("""
            SELECT b.*, c.name AS category_name,
                   COALESCE(SUM(t.amount), 0) AS spent_amount
            FROM budgets b
            JOIN categories c ON b.category_id = c.id
            LEFT JOIN transactions t ON t.category_id = c.id
                AND t.date >= ? AND t.date <= ?
                AND t.type = 'expense'
            WHERE b.active = 1
            GROUP BY b.id
            ORDER BY c.name, b.id
        """, [start, end])

        budgets = [
            {
                **row,
                "remaining": row["amount"] - row["spent_amount"],
                "percentage_used": percentage(row["spent_amount"], row["amount"]),
                "status": "over" if row["spent_amount"] > row["amount"] else "under",
            }
            for row in rows
        ]
        return {"budgets": budgets, "period": period_info}

    if summary_type == "quick_stats":
        days = days_inclusive(start, end)
        stats = db.fetch_one("""
            SELECT
                COALESCE(SUM(CASE WHEN type = 'expense' THEN amount ELSE 0 END), 0) AS total_expenses,
                COALESCE(SUM(CASE WHEN type = 'income' THEN amount ELSE 0 END), 0) AS total_income,
                COUNT(CASE WHEN type = 'expense' THEN 1 END) AS expense_transactions,
                AVG(CASE WHEN type = 'expense' THEN amount END) AS avg_expense,
                MAX(CASE WHEN type = 'expense' THEN amount END) AS max_expense
            FROM transactions
            WHERE date >= ? AND date <= ?
        """, [start, end])

        top_category = db.fetch_one("""
            SELECT c.name AS category, SUM(t.amount) AS total
            FROM transactions t
            JOIN categories c ON t.category_id = c.id
            WHERE t.date >= ? AND t.date <= ? AND t.type = 'expense'
            GROUP BY c.id, c.name
            ORDER BY total DESC, c.name
            LIMIT 1
        """, [start, end])

        return {
            **stats,
            "daily_avg_expense": round(stats["total_expenses"] / days, 2) if days > 0 else 0,
            "top_expense_category": top_category,
            "period": {**period_info, "days": days},
        }

    raise UnknownOperandError("summary_type", summary_type)


# ============================================================================
# get_record_details
# ============================================================================

def get_record_details(
    db: Database,
    record_type: str,
    record_id: str,
    include_related: bool = False,
    today: date | None = None,
) -> dict[str, Any]:
    """Fetch a transaction, ledger or budget by id, optionally with related rows.

    Raises:
        NotFoundError: If no record has this id.
        UnknownOperandError: For an unsupported record_type.
    """
    if record_type == "transaction":
        transaction = db.fetch_one("""
            SELECT t.*, c.name AS category_name, c.type AS category_type,
                   l.name AS ledger_name, l.type AS ledger_type
            FROM transactions t
            JOIN categories c ON t.category_id = c.id
            JOIN ledgers l ON t.ledger_id = l.id
            WHERE t.id = ?
        """, [record_id])
        if transaction is None:
            raise NotFoundError("transaction", record_id)

        result: dict[str, Any] = {"transaction": transaction}
        if include_related:
            result["related_transactions"] = db.fetch_all("""
                SELECT t.*, c.name AS category_name
                FROM transactions t
                JOIN categories c ON t.category_id = c.id
                WHERE t.category_id = ? AND t.id != ?
                ORDER BY t.date DESC, t.id
                LIMIT 5
            """, [transaction["category_id"], record_id])
        return result

    if record_type == "ledger_record":
        ledger = db.get_ledger(record_id)
        if ledger is None:
            raise NotFoundError("ledger", record_id)

        result = {"ledger": ledger}
        if include_related:
            result["recent_transactions"] = db.fetch_all("""
                SELECT t.*, c.name AS category_name
                FROM transactions t
                JOIN categories c ON t.category_id = c.id
                WHERE t.ledger_id = ?
                ORDER BY t.date DESC, t.id
                LIMIT 10
            """, [record_id])
        return result

    if record_type == "budget_snapshot":
        budget = db.fetch_one("""
            SELECT b.*, c.name AS category_name, c.type AS category_type
            FROM budgets b
            JOIN categories c ON b.category_id = c.id
            WHERE b.id = ?
        """, [record_id])
        if budget is None:
            raise NotFoundError("budget", record_id)

        result = {"budget": budget}
        if include_related:
            month_start, month_end = month_bounds(today or local_now().date())
            result["monthly_spending"] = db.fetch_all("""
                SELECT DATE(t.date) AS date, SUM(t.amount) AS daily_total
                FROM transactions t
                WHERE t.category_id = ? AND t.type = 'expense'
                  AND t.date >= ? AND t.date <= ?
                GROUP BY DATE(t.date)
                ORDER BY DATE(t.date) DESC
            """, [budget["category_id"], month_start, month_end])
        return result

    raise UnknownOperandError("record_type", record_type)


# ============================================================================
# get_insights_data
# ============================================================================

_CATEGORY_SPENDING_SQL = """
    SELECT c.name AS category, c.id AS category_id, c.type,
           SUM(t.amount) AS total_amount,
           COUNT(t.id) AS transaction_count,
           AVG(t.amount) AS avg_amount,
           MIN(t.amount) AS min_amount,
           MAX(t.amount) AS max_amount,
           strftime('%w', MAX(t.date)) AS day_of_week
    FROM transactions t
    JOIN categories c ON t.category_id = c.id
    WHERE t.date >= ? AND t.date <= ? AND t.type = 'expense'
    GROUP BY c.id, c.name, c.type
    ORDER BY total_amount DESC, c.name
"""


def _spending_patterns(
    db: Database,
    current: tuple[str, str],
    comparison: tuple[str, str] | None,
) -> dict[str, Any]:
    data: dict[str, Any] = {}
    current_spending = db.fetch_all(_CATEGORY_SPENDING_SQL, list(current))
    data["current_spending"] = current_spending

    if comparison is not None:
        comparison_spending = db.fetch_all(_CATEGORY_SPENDING_SQL, list(comparison))
        data["comparison_spending"] = comparison_spending

        previous_by_id = {row["category_id"]: row for row in comparison_spending}
        changes = []
        for curr in current_spending:
            prev = previous_by_id.get(curr["category_id"])
            if prev is None:
                changes.append({
                    "category": curr["category"],
                    "current_amount": curr["total_amount"],
                    "previous_amount": 0,
                    "change_amount": curr["total_amount"],
                    "change_percentage": 100,
                })
            else:
                changes.append({
                    "category": curr["category"],
                    "current_amount": curr["total_amount"],
                    "previous_amount": prev["total_amount"],
                    "change_amount": curr["total_amount"] - prev["total_amount"],
                    "change_percentage": percentage_change(curr["total_amount"], prev["total_amount"]),
                })
        data["spending_changes"] = changes

    data["daily_patterns"] = db.fetch_all("""
        SELECT DATE(t.date) AS date,
               SUM(t.amount) AS daily_total,
               COUNT(t.id) AS transaction_count,
               strftime('%w', t.date) AS day_of_week
        FROM transactions t
        WHERE t.date >= ? AND t.date <= ? AND t.type = 'expense'
        GROUP BY DATE(t.date)
        ORDER BY DATE(t.date)
    """, list(current))

    data["frequency_patterns"] = db.fetch_all("""
        SELECT c.name AS category,
               COUNT(t.id) AS frequency,
               AVG(t.amount) AS avg_amount,
               SUM(t.amount) AS total_amount
        FROM transactions t
        JOIN categories c ON t.category_id = c.id
        WHERE t.date >= ? AND t.date <= ? AND t.type = 'expense'
        GROUP BY c.id, c.name
        HAVING COUNT(t.id) > 1
        ORDER BY frequency DESC, c.name
    """, list(current))

    return data


def _budget_analysis(db: Database, current: tuple[str, str]) -> dict[str, Any]:
    rows = db.fetch_all("""
        SELECT b.*, c.name AS category_name,
               COALESCE(SUM(t.amount), 0) AS actual_spent
        FROM budgets b
        JOIN categories c ON b.category_id = c.id
        LEFT JOIN transactions t ON t.category_id = c.id
            AND t.date >= ? AND t.date <= ?
            AND t.type = 'expense'
        WHERE b.active = 1
        GROUP BY b.id
    """, list(current))

    performance = [
        {
            **row,
            "remaining": row["amount"] - row["actual_spent"],
            "percentage_used": percentage(row["actual_spent"], row["amount"]),
        }
        for row in rows
    ]
    performance.sort(key=lambda b: (-b["percentage_used"], b["category_name"]))

    budget_trends = db.fetch_all("""
        SELECT DATE(t.date) AS date,
               c.name AS category,
               SUM(t.amount) AS daily_spent,
               b.amount AS budget_amount
        FROM transactions t
        JOIN categories c ON t.category_id = c.id
        JOIN budgets b ON b.category_id = c.id
        WHERE t.date >= ? AND t.date <= ? AND t.type = 'expense'
          AND b.active = 1
        GROUP BY DATE(t.date), c.id, c.name, b.amount
        ORDER BY DATE(t.date), c.name
    """, list(current))

    days = days_inclusive(*current)
    forecasts = []
    for budget in performance:
        daily_rate = budget["actual_spent"] / days if days > 0 else 0
        projected = daily_rate * FORECAST_DAYS
        forecasts.append({
            "category": budget["category_name"],
            "budget_amount": budget["amount"],
            "actual_spent": budget["actual_spent"],
            "daily_rate": round(daily_rate, 2),
            "projected_monthly": round(projected, 2),
            "forecast_status": "over_budget" if projected > budget["amount"] else "on_track",
        })

    return {
        "budget_performance": performance,
        "budget_trends": budget_trends,
        "spending_forecasts": forecasts,
    }


def _anomaly_detection(db: Database, current: tuple[str, str]) -> dict[str, Any]:
    start, end = current
    data: dict[str, Any] = {}

    data["category_averages"] = db.fetch_all(f"""
        SELECT c.name AS category,
               AVG(t.amount) AS avg_amount,
               AVG(t.amount) * {OUTLIER_MULTIPLIER} AS outlier_threshold
        FROM transactions t
        JOIN categories c ON t.category_id = c.id
        WHERE t.type = 'expense'
        GROUP BY c.id, c.name
        ORDER BY c.name
    """)

    # Category mean covers the whole history, not just the window
    data["outlier_transactions"] = db.fetch_all(f"""
        SELECT t.*, c.name AS category_name,
               (SELECT AVG(amount) FROM transactions t2
                WHERE t2.category_id = t.category_id) AS category_avg
        FROM transactions t
        JOIN categories c ON t.category_id = c.id
        WHERE t.date >= ? AND t.date <= ? AND t.type = 'expense'
          AND t.amount > (SELECT AVG(amount) * {OUTLIER_MULTIPLIER} FROM transactions t2
                          WHERE t2.category_id = t.category_id)
        ORDER BY t.amount DESC, t.id
    """, [start, end])

    history = db.fetch_one("""
        SELECT AVG(daily_sum) AS historical_daily_avg FROM (
            SELECT SUM(amount) AS daily_sum
            FROM transactions
            WHERE type = 'expense' AND date < ?
            GROUP BY DATE(date)
        )
    """, [start])
    historical_avg = history["historical_daily_avg"] if history else None

    if historical_avg is None:
        data["spending_spikes"] = []
    else:
        data["spending_spikes"] = db.fetch_all("""
            SELECT DATE(t.date) AS date,
                   SUM(t.amount) AS daily_total,
                   ? AS historical_daily_avg
            FROM transactions t
            WHERE t.date >= ? AND t.date <= ? AND t.type = 'expense'
            GROUP BY DATE(t.date)
            HAVING SUM(t.amount) > ?
            ORDER BY daily_total DESC
        """, [historical_avg, start, end, historical_avg * SPIKE_MULTIPLIER])

    data["new_merchants"] = db.fetch_all("""
        SELECT t.description, COUNT(*) AS frequency, SUM(t.amount) AS total
        FROM transactions t
        WHERE t.date >= ? AND t.date <= ? AND t.type = 'expense'
          AND t.description NOT IN (
              SELECT DISTINCT description
              FROM transactions
              WHERE date < ? AND type = 'expense' AND description IS NOT NULL
          )
        GROUP BY t.description
        ORDER BY total DESC, t.description
    """, [start, end, start])

    return data


def _savings_potential(db: Database, current: tuple[str, str]) -> dict[str, Any]:
    start, end = current
    data: dict[str, Any] = {}

    data["recurring_charges"] = db.fetch_all("""
        SELECT t.description,
               COUNT(*) AS frequency,
               AVG(t.amount) AS avg_amount,
               SUM(t.amount) AS total_amount,
               c.name AS category
        FROM transactions t
        JOIN categories c ON t.category_id = c.id
        WHERE t.type = 'expense'
        GROUP BY t.description, c.name
        HAVING COUNT(*) >= 2
        ORDER BY total_amount DESC, t.description
    """)

    data["category_analysis"] = db.fetch_all("""
        SELECT c.name AS category,
               SUM(t.amount) AS total_spent,
               COUNT(t.id) AS transaction_count,
               AVG(t.amount) AS avg_transaction,
               MAX(t.amount) AS max_transaction
        FROM transactions t
        JOIN categories c ON t.category_id = c.id
        WHERE t.date >= ? AND t.date <= ? AND t.type = 'expense'
        GROUP BY c.id, c.name
        ORDER BY total_spent DESC, c.name
    """, [start, end])

    micro = QueryBuilder("""
        SELECT c.name AS category,
               COUNT(*) AS frequency,
               SUM(t.amount) AS total_amount,
               AVG(t.amount) AS avg_amount
        FROM transactions t
        JOIN categories c ON t.category_id = c.id
    """)
    micro.where("t.date >= ?", start).where("t.date <= ?", end).where("t.type = 'expense'")
    micro.where("t.amount < ?", MICRO_TRANSACTION_LIMIT)
    micro.group_by("c.id, c.name").having("COUNT(*) >= ?", MICRO_TRANSACTION_MIN_FREQUENCY)
    sql, params = micro.order_by("total_amount DESC, c.name").build()
    data["micro_transactions"] = db.fetch_all(sql, params)

    qb = QueryBuilder("""
        SELECT t.description,
               COUNT(*) AS frequency,
               AVG(t.amount) AS avg_amount,
               SUM(t.amount) AS total_amount,
               c.name AS category
        FROM transactions t
        JOIN categories c ON t.category_id = c.id
    """)
    qb.where("t.date >= ?", start).where("t.date <= ?", end).where("t.type = 'expense'")
    keyword_match = " OR ".join("LOWER(t.description) LIKE ?" for _ in SUBSCRIPTION_KEYWORDS)
    qb.where(f"({keyword_match})", *(f"%{keyword}%" for keyword in SUBSCRIPTION_KEYWORDS))
    qb.group_by("t.description, c.name").order_by("total_amount DESC, t.description")
    sql, params = qb.build()
    data["potential_subscriptions"] = db.fetch_all(sql, params)

    return data


def _insight_components(
    db: Database,
    current: tuple[str, str],
    include_components: dict[str, Any],
) -> dict[str, Any]:
    start, end = current
    data: dict[str, Any] = {}

    if include_components.get("transactions"):
        data["sample_transactions"] = db.fetch_all("""
            SELECT t.*, c.name AS category_name, l.name AS ledger_name
            FROM transactions t
            JOIN categories c ON t.category_id = c.id
            JOIN ledgers l ON t.ledger_id = l.id
            WHERE t.date >= ? AND t.date <= ?
            ORDER BY t.date DESC, t.id
            LIMIT 20
        """, [start, end])

    if include_components.get("statistics"):
        data["period_statistics"] = db.fetch_one("""
            SELECT
                COALESCE(SUM(CASE WHEN type = 'expense' THEN amount ELSE 0 END), 0) AS total_expenses,
                COALESCE(SUM(CASE WHEN type = 'income' THEN amount ELSE 0 END), 0) AS total_income,
                COUNT(CASE WHEN type = 'expense' THEN 1 END) AS expense_count,
                COUNT(CASE WHEN type = 'income' THEN 1 END) AS income_count,
                AVG(CASE WHEN type = 'expense' THEN amount END) AS avg_expense,
                MAX(CASE WHEN type = 'expense' THEN amount END) AS max_expense,
                MIN(CASE WHEN type = 'expense' THEN amount END) AS min_expense
            FROM transactions
            WHERE date >= ? AND date <= ?
        """, [start, end])

    if include_components.get("historical_averages"):
        data["historical_averages"] = db.fetch_all("""
            SELECT c.name AS category,
                   AVG(t.amount) AS historical_avg,
                   COUNT(t.id) AS historical_count
            FROM transactions t
            JOIN categories c ON t.category_id = c.id
            WHERE t.date < ? AND t.type = 'expense'
            GROUP BY c.id, c.name
            ORDER BY historical_avg DESC, c.name
        """, [start])

    if include_components.get("peer_comparison"):
        data["peer_comparison"] = {
            "note": "Peer comparison data not available in this implementation",
        }

    return data


INSIGHT_SCOPES = {
    "spending_patterns",
    "budget_analysis",
    "anomaly_detection",
    "savings_potential",
}


def get_insights_data(
    db: Database,
    data_scope: str,
    period: dict[str, Any],
    include_components: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Prepare composite analysis data for insight generation.

    Args:
        db: Database instance.
        data_scope: "spending_patterns", "budget_analysis",
            "anomaly_detection" or "savings_potential".
        period: ``{"current": {start, end}, "comparison": {start, end}?}``.
        include_components: Flags for transactions, statistics,
            historical_averages and peer_comparison extras.
        now: Override for the generated_at timestamp.

    Returns:
        Dictionary with data_scope, period, analysis_data and generated_at.
    """
    if data_scope not in INSIGHT_SCOPES:
        raise UnknownOperandError("data_scope", data_scope)
    if not isinstance(period, dict):
        raise ValidationError("period.current is required")

    current = require_window(period.get("current"), "period.current")
    comparison = (
        require_window(period["comparison"], "period.comparison")
        if period.get("comparison")
        else None
    )

    if data_scope == "spending_patterns":
        analysis_data = _spending_patterns(db, current, comparison)
    elif data_scope == "budget_analysis":
        analysis_data = _budget_analysis(db, current)
    elif data_scope == "anomaly_detection":
        analysis_data = _anomaly_detection(db, current)
    else:
        analysis_data = _savings_potential(db, current)

    analysis_data.update(_insight_components(db, current, include_components or {}))

    return {
        "data_scope": data_scope,
        "period": period,
        "analysis_data": analysis_data,
        "generated_at": (now or local_now()).isoformat(),
    }


# ============================================================================
# batch_create_transactions
# ============================================================================

def _prepare_transaction(db: Database, txn: Any, today: date | None) -> dict[str, Any]:
    """Validate one batch item and resolve it to a row ready for insertion."""
    problems = validate_transaction(txn)
    if problems:
        raise ValidationError(", ".join(problems))

    if db.get_category(txn["category"]) is None:
        raise NotFoundError("category", txn["category"])

    ledger_id = txn.get("ledger_id") or DEFAULT_LEDGER_ID
    if db.get_ledger(ledger_id) is None:
        raise NotFoundError("ledger", ledger_id)

    return {
        "type": txn["type"],
        "amount": txn["amount"],
        "category_id": txn["category"],
        "ledger_id": ledger_id,
        "description": txn.get("description") or "",
        "date": format_date(txn.get("date"), today),
        "tags": join_tags(txn.get("tags")),
    }


def batch_create_transactions(
    db: Database,
    transactions: list[dict[str, Any]],
    validate_only: bool = False,
    max_batch: int = 100,
    today: date | None = None,
) -> dict[str, Any]:
    """Create many transactions, isolating failures per item.

    Each row commits on its own: an invalid item is reported at its index
    and does not stop the others.

    Args:
        db: Database instance.
        transactions: Items with type, amount, category and optional
            description, date, ledger_id (default "checking"), tags.
        validate_only: Validate without writing anything.
        max_batch: Maximum number of items accepted.
        today: Default date for items without one.

    Returns:
        Dictionary with per-item results, errors and summary counts.
    """
    if not isinstance(transactions, list):
        raise ValidationError("transactions must be an array")
    if len(transactions) > max_batch:
        raise ValidationError(
            f"Batch of {len(transactions)} transactions exceeds the limit of {max_batch}"
        )

    results = []
    errors = []

    for index, txn in enumerate(transactions):
        try:
            row = _prepare_transaction(db, txn, today)
            if validate_only:
                results.append({"index": index, "status": "valid", "transaction": txn})
                continue

            row["id"] = generate_id("txn")
            db.insert_transaction(row)
            results.append({
                "index": index,
                "status": "created",
                "transaction_id": row["id"],
                "transaction": txn,
            })
        except ExpenseTrackerError as e:
            logger.debug("Batch item %d rejected: %s", index, e)
            errors.append({"index": index, "error": str(e), "transaction": txn})

    logger.info(
        "Batch create: %d ok, %d failed (validate_only=%s)",
        len(results), len(errors), validate_only,
    )

    return {
        "results": results,
        "errors": errors,
        "summary": {
            "total": len(transactions),
            "successful": len(results),
            "failed": len(errors),
            "validate_only": validate_only,
        },
    }


# ============================================================================
# export_data
# ============================================================================

def export_data(
    db: Database,
    export_type: str,
    filters: dict[str, Any] | None = None,
    options: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> Any:
    """Collect data for export; formatting happens in ``formatters``.

    Returns:
        A flat list for "transactions", a ``{period, totals, breakdown}``
        report for "summary_report", or every table for "full_backup".
    """
    filters = filters or {}
    options = options or {}
    now = now or local_now()

    if export_type == "transactions":
        sql, params = export_transactions_query(filters, options.get("group_by"))
        return db.fetch_all(sql, params)

    if export_type == "summary_report":
        start = filters.get("date_start") or DEFAULT_SUMMARY_START
        end = filters.get("date_end") or now.date().isoformat()

        totals = db.fetch_one("""
            SELECT
                COALESCE(SUM(CASE WHEN type = 'income' THEN amount ELSE 0 END), 0) AS total_income,
                COALESCE(SUM(CASE WHEN type = 'expense' THEN amount ELSE 0 END), 0) AS total_expenses
            FROM transactions
            WHERE date >= ? AND date <= ?
        """, [start, end])

        breakdown = db.fetch_all("""
            SELECT c.name AS category, c.type,
                   SUM(t.amount) AS amount,
                   COUNT(t.id) AS transaction_count
            FROM transactions t
            JOIN categories c ON t.category_id = c.id
            WHERE t.date >= ? AND t.date <= ?
            GROUP BY c.id, c.name, c.type
            ORDER BY c.type, amount DESC
        """, [start, end])

        return {
            "period": {"start": start, "end": end},
            "totals": {
                **totals,
                "net_amount": totals["total_income"] - totals["total_expenses"],
            },
            "breakdown": breakdown,
        }

    if export_type == "full_backup":
        backup: dict[str, Any] = {table: db.dump_table(table) for table in TABLES}
        backup["exported_at"] = now.isoformat()
        backup["version"] = __version__
        return backup

    raise UnknownOperandError("export_type", export_type)
