"""Render tool results as JSON, CSV or Markdown text."""

import csv
import io
import json
from typing import Any

from .errors import UnknownOperandError, ValidationError


CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
}


def to_json(data: Any) -> str:
    """Serialize a result for a tool response."""
    return json.dumps(data, ensure_ascii=False, indent=2, default=str)


def format_currency(amount: float | None, currency: str = "USD") -> str:
    """Format an amount like ``$1,234.56`` (``-$12.00`` for negatives)."""
    amount = amount or 0
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"


def to_csv(rows: Any) -> str:
    """Render a list of flat records as CSV.

    The header comes from the first record's keys. Every data cell is quoted,
    embedded quotes are doubled, and missing values become empty strings.
    """
    if not isinstance(rows, list):
        raise ValidationError("CSV format requires array data")
    if not rows:
        return ""

    headers = list(rows[0].keys())
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    for row in rows:
        writer.writerow(["" if row.get(h) is None else row.get(h) for h in headers])

    return ",".join(headers) + "\n" + buffer.getvalue().rstrip("\n")


def is_summary_report(data: Any) -> bool:
    return (
        isinstance(data, dict)
        and bool(data.get("period"))
        and bool(data.get("totals"))
        and "breakdown" in data
    )


def summary_to_markdown(data: dict[str, Any], currency: str = "USD") -> str:
    """Render a ``{period, totals, breakdown}`` summary report."""
    period = data["period"]
    totals = data["totals"]
    breakdown = data["breakdown"] or []

    lines = [
        "# Financial Summary Report",
        "",
        f"**Period:** {period.get('start')} to {period.get('end')}",
        "",
        "## Totals",
        "",
        f"- **Total Income:** {format_currency(totals.get('total_income'), currency)}",
        f"- **Total Expenses:** {format_currency(totals.get('total_expenses'), currency)}",
        f"- **Net Amount:** {format_currency(totals.get('net_amount'), currency)}",
        "",
        "## Breakdown by Category",
        "",
    ]

    for heading, kind in (("Income", "income"), ("Expenses", "expense")):
        entries = [b for b in breakdown if b.get("type") == kind]
        if not entries:
            continue
        lines.append(f"### {heading}")
        lines.append("")
        for entry in entries:
            lines.append(
                f"- **{entry.get('category')}:** {format_currency(entry.get('amount'), currency)}"
                f" ({entry.get('transaction_count')} transactions)"
            )
        lines.append("")

    return "\n".join(lines).rstrip("\n") + "\n"


def to_markdown(data: Any, currency: str = "USD") -> str:
    """Markdown summary for summary reports; JSON for anything else."""
    if is_summary_report(data):
        return summary_to_markdown(data, currency)
    return to_json(data)


def format_export(data: Any, fmt: str, currency: str = "USD") -> str:
    """Render exported data in the requested format.

    Raises:
        UnknownOperandError: For formats other than json, csv, markdown.
        ValidationError: For CSV on non-list data.
    """
    if fmt == "json":
        return to_json(data)
    if fmt == "csv":
        return to_csv(data)
    if fmt == "markdown":
        return to_markdown(data, currency)
    raise UnknownOperandError("format", fmt)


def category_tree_to_markdown(categories: list[dict[str, Any]], level: int = 0) -> str:
    """Render a nested category tree as an indented Markdown list."""
    indent = "  " * level
    out = []
    for cat in categories:
        out.append(f"{indent}- {cat['name']} ({cat['id']})\n")
        if cat.get("children"):
            out.append(category_tree_to_markdown(cat["children"], level + 1))
    return "".join(out)


def categories_report(result: dict[str, Any]) -> str:
    """Outline plus raw data for the categories view."""
    outline = category_tree_to_markdown(result["tree"])
    return f"# Categories\n\n{outline}\n\n## Raw Data\n\n{to_json(result['categories'])}"
