"""Utility functions for the expense tracker MCP server."""

import math
import random
import string
import time
from datetime import date, datetime, timedelta
from typing import Any

from .errors import UnknownOperandError, ValidationError


TRANSACTION_TYPES = ("income", "expense")


def local_now() -> datetime:
    """Current time in the local timezone. Every default "today" derives from this."""
    return datetime.now().astimezone()


def generate_id(prefix: str = "id") -> str:
    """Build a unique-enough record id: ``<prefix>_<epoch ms>_<9 random chars>``."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def format_date(value: str | date | None, today: date | None = None) -> str:
    """Normalize a date or ISO date/datetime string to ``YYYY-MM-DD``.

    Args:
        value: Date value. None means today.
        today: Override for the current day.

    Raises:
        ValidationError: If the string is not an ISO date.
    """
    if value is None or value == "":
        return (today or local_now().date()).isoformat()
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date().isoformat()
    except ValueError as e:
        raise ValidationError(f"Invalid date: {value}") from e


def parse_date(value: str) -> date:
    """Parse the leading ``YYYY-MM-DD`` part of a stored date."""
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise ValidationError(f"Invalid date: {value}") from e


def resolve_period(
    period: str,
    date_range: dict[str, Any] | None = None,
    today: date | None = None,
) -> tuple[str, str]:
    """Convert a named period to inclusive start and end dates.

    Args:
        period: One of "today", "this_week", "this_month", "this_year", "custom".
        date_range: ``{"start", "end"}``, required for "custom".
        today: Override for the current day.

    Returns:
        Tuple of (start_date, end_date) as ISO strings.
    """
    today = today or local_now().date()

    if period == "today":
        start = today
    elif period == "this_week":
        # Weeks start on Sunday
        start = today - timedelta(days=(today.weekday() + 1) % 7)
    elif period == "this_month":
        start = today.replace(day=1)
    elif period == "this_year":
        start = today.replace(month=1, day=1)
    elif period == "custom":
        if not date_range or not date_range.get("start") or not date_range.get("end"):
            raise ValidationError("date_range required for custom period")
        start_str, end_str = format_date(date_range["start"]), format_date(date_range["end"])
        if start_str > end_str:
            raise ValidationError("date_range.start must not be after date_range.end")
        return start_str, end_str
    else:
        raise UnknownOperandError("period", period)

    return start.isoformat(), today.isoformat()


def month_bounds(day: date) -> tuple[str, str]:
    """First and last day of the month containing ``day``."""
    start = day.replace(day=1)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1) - timedelta(days=1)
    else:
        end = start.replace(month=start.month + 1) - timedelta(days=1)
    return start.isoformat(), end.isoformat()


def days_inclusive(start: str, end: str) -> int:
    """Number of calendar days from start to end, counting both ends."""
    return (parse_date(end) - parse_date(start)).days + 1


def require_window(period: dict[str, Any] | None, name: str = "period") -> tuple[str, str]:
    """Extract ``start``/``end`` from an explicit period object."""
    if not isinstance(period, dict) or not period.get("start") or not period.get("end"):
        raise ValidationError(f"{name}.start and {name}.end are required")
    start, end = format_date(period["start"]), format_date(period["end"])
    if start > end:
        raise ValidationError(f"{name}.start must not be after {name}.end")
    return start, end


def percentage(part: float, whole: float) -> float:
    """``part`` as a percentage of ``whole``, rounded to 2 decimals; 0 if whole <= 0."""
    if not whole or whole <= 0:
        return 0
    return round(part / whole * 100, 2)


def percentage_change(current: float, previous: float) -> float:
    """Percent change from previous to current; growth from zero counts as 100."""
    if previous == 0:
        return 100 if current > 0 else 0
    return round((current - previous) / previous * 100, 2)


def validate_transaction(transaction: Any) -> list[str]:
    """Check a transaction payload, returning a list of problems (empty if valid)."""
    if not isinstance(transaction, dict):
        return ["Transaction must be an object"]

    errors = []

    if transaction.get("type") not in TRANSACTION_TYPES:
        errors.append("Invalid transaction type")

    amount = transaction.get("amount")
    if (
        isinstance(amount, bool)
        or not isinstance(amount, (int, float))
        or not math.isfinite(amount)
        or amount <= 0
    ):
        errors.append("Invalid amount")

    if not transaction.get("category"):
        errors.append("Category is required")

    return errors


def join_tags(tags: Any) -> str:
    """Store an ordered tag list as a comma-separated string."""
    if not tags:
        return ""
    if isinstance(tags, str):
        return tags
    return ",".join(str(tag) for tag in tags)


def build_category_tree(categories: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Nest categories under their parents.

    Categories whose parent is missing from the list become roots.
    """
    nodes = {cat["id"]: {**cat, "children": []} for cat in categories}
    roots = []
    for cat in categories:
        parent_id = cat.get("parent_id")
        if parent_id and parent_id in nodes:
            nodes[parent_id]["children"].append(nodes[cat["id"]])
        else:
            roots.append(nodes[cat["id"]])
    return roots
