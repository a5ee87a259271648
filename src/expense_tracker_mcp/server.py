"""MCP Server for expense tracking and financial analytics."""

import asyncio
import logging
import signal
from typing import Any, Callable

from mcp.server import Server
from mcp.types import TextContent, Tool

from .analytics import (
    analyze_spending,
    batch_create_transactions,
    export_data,
    get_account_data,
    get_insights_data,
    get_record_details,
    get_summary,
)
from .config import ExpenseTrackerSettings, get_settings
from .database import Database
from .errors import ExpenseTrackerError
from .formatters import categories_report, format_export, to_json
from .logging_config import setup_logging
from .query_builder import query_transactions

logger = logging.getLogger(__name__)


# Initialize MCP server
server = Server("expense-tracker")

# Global state
_db: Database | None = None
_settings: ExpenseTrackerSettings | None = None


def get_app_settings() -> ExpenseTrackerSettings:
    """Get settings injected for tests, or the process-wide instance."""
    return _settings if _settings is not None else get_settings()


def get_db() -> Database:
    """Get or create database instance."""
    global _db
    if _db is None:
        config = get_app_settings().database
        if str(config.path) != ":memory:":
            config.path.parent.mkdir(parents=True, exist_ok=True)

        _db = Database(config.path)
        _db.init_schema()
        if config.seed_data:
            _db.seed_defaults()
        logger.info("Using database at %s", config.path)
    return _db


def init_for_testing(db: Database, settings: ExpenseTrackerSettings | None = None) -> None:
    """Initialize server with a test database.

    Args:
        db: Database instance to use.
        settings: Settings override; defaults are used when omitted.
    """
    global _db, _settings
    _db = db
    _settings = settings or ExpenseTrackerSettings()


def close_db() -> None:
    """Close and forget the database connection."""
    global _db
    if _db is not None:
        _db.close()
        _db = None


# ============================================================================
# Tools
# ============================================================================

DATE_WINDOW_SCHEMA = {
    "type": "object",
    "properties": {
        "start": {"type": "string", "description": "Start date (ISO format)"},
        "end": {"type": "string", "description": "End date (ISO format)"},
    },
    "required": ["start", "end"],
}

ID_LIST_SCHEMA = {"type": "array", "items": {"type": "string"}}


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="get_account_data",
            description="Retrieve basic account information: profile, categories, ledgers or budgets.",
            inputSchema={
                "type": "object",
                "properties": {
                    "data_type": {
                        "type": "string",
                        "enum": ["profile", "categories", "ledgers", "budgets"],
                        "description": "Type of account data to retrieve",
                    },
                    "filters": {
                        "type": "object",
                        "properties": {
                            "active_only": {
                                "type": "boolean",
                                "description": "Only return active records",
                            },
                            "ledger_ids": {
                                **ID_LIST_SCHEMA,
                                "description": "Filter by specific ledger IDs",
                            },
                        },
                    },
                },
                "required": ["data_type"],
            },
        ),
        Tool(
            name="query_transactions",
            description="Search and filter income/expense transactions with pagination. Answers: 'What did I spend at ...?', 'Show my last transactions'",
            inputSchema={
                "type": "object",
                "properties": {
                    "type": {
                        "type": "string",
                        "enum": ["expense", "income", "all"],
                        "description": "Transaction type filter",
                        "default": "all",
                    },
                    "filters": {
                        "type": "object",
                        "properties": {
                            "date_start": {"type": "string", "description": "Start date (ISO format)"},
                            "date_end": {"type": "string", "description": "End date (ISO format)"},
                            "categories": {**ID_LIST_SCHEMA, "description": "Category IDs to filter by"},
                            "ledgers": {**ID_LIST_SCHEMA, "description": "Ledger IDs to filter by"},
                            "search_text": {"type": "string", "description": "Search in descriptions"},
                            "min_amount": {"type": "number", "description": "Minimum amount"},
                            "max_amount": {"type": "number", "description": "Maximum amount"},
                        },
                    },
                    "pagination": {
                        "type": "object",
                        "properties": {
                            "page": {"type": "number", "description": "Page number (1-based)"},
                            "limit": {"type": "number", "description": "Items per page (max 100)"},
                        },
                    },
                    "sort": {
                        "type": "object",
                        "properties": {
                            "field": {
                                "type": "string",
                                "enum": ["date", "amount", "category"],
                                "description": "Field to sort by",
                            },
                            "order": {
                                "type": "string",
                                "enum": ["asc", "desc"],
                                "description": "Sort order",
                            },
                        },
                    },
                },
            },
        ),
        Tool(
            name="analyze_spending",
            description="Analyze transactions by category, over time, or against budgets. Answers: 'Where does my money go?', 'Am I within budget?'",
            inputSchema={
                "type": "object",
                "properties": {
                    "analysis_type": {
                        "type": "string",
                        "enum": ["category_breakdown", "time_trend", "budget_variance"],
                        "description": "Type of analysis to perform",
                    },
                    "period": {
                        "type": "object",
                        "properties": {
                            **DATE_WINDOW_SCHEMA["properties"],
                            "grouping": {
                                "type": "string",
                                "enum": ["day", "week", "month"],
                                "description": "Time grouping for trend analysis",
                            },
                        },
                        "required": ["start", "end"],
                    },
                    "filters": {
                        "type": "object",
                        "properties": {
                            "transaction_type": {
                                "type": "string",
                                "enum": ["expense", "income"],
                                "description": "Transaction type to analyze",
                            },
                            "categories": {**ID_LIST_SCHEMA, "description": "Category IDs to include"},
                            "ledgers": {**ID_LIST_SCHEMA, "description": "Ledger IDs to include"},
                        },
                    },
                },
                "required": ["analysis_type", "period"],
            },
        ),
        Tool(
            name="get_summary",
            description="Get summarized financial data for a period: totals, budget status or quick stats.",
            inputSchema={
                "type": "object",
                "properties": {
                    "summary_type": {
                        "type": "string",
                        "enum": ["period_totals", "budget_status", "quick_stats"],
                        "description": "Type of summary to generate",
                    },
                    "period": {
                        "type": "string",
                        "enum": ["today", "this_week", "this_month", "this_year", "custom"],
                        "description": "Time period for summary",
                        "default": "this_month",
                    },
                    "date_range": {
                        "type": "object",
                        "properties": {
                            "start": {"type": "string", "description": "Start date for custom period"},
                            "end": {"type": "string", "description": "End date for custom period"},
                        },
                    },
                    "include_details": {
                        "type": "boolean",
                        "description": "Include category breakdowns and details",
                        "default": False,
                    },
                },
                "required": ["summary_type"],
            },
        ),
        Tool(
            name="get_record_details",
            description="Retrieve a transaction, ledger or budget by ID, optionally with related records.",
            inputSchema={
                "type": "object",
                "properties": {
                    "record_type": {
                        "type": "string",
                        "enum": ["transaction", "ledger_record", "budget_snapshot"],
                        "description": "Type of record to retrieve",
                    },
                    "record_id": {
                        "type": "string",
                        "description": "ID of the record to retrieve",
                    },
                    "include_related": {
                        "type": "boolean",
                        "description": "Include related records and metadata",
                        "default": False,
                    },
                },
                "required": ["record_type", "record_id"],
            },
        ),
        Tool(
            name="get_insights_data",
            description="Retrieve composite data for insight generation: spending patterns, budget analysis, anomalies, savings potential.",
            inputSchema={
                "type": "object",
                "properties": {
                    "data_scope": {
                        "type": "string",
                        "enum": [
                            "spending_patterns",
                            "budget_analysis",
                            "anomaly_detection",
                            "savings_potential",
                        ],
                        "description": "Type of data analysis to prepare",
                    },
                    "period": {
                        "type": "object",
                        "properties": {
                            "current": DATE_WINDOW_SCHEMA,
                            "comparison": DATE_WINDOW_SCHEMA,
                        },
                        "required": ["current"],
                    },
                    "include_components": {
                        "type": "object",
                        "properties": {
                            "transactions": {
                                "type": "boolean",
                                "description": "Include raw transaction samples",
                            },
                            "statistics": {
                                "type": "boolean",
                                "description": "Include statistical measures",
                            },
                            "historical_averages": {
                                "type": "boolean",
                                "description": "Include historical average comparisons",
                            },
                            "peer_comparison": {
                                "type": "boolean",
                                "description": "Include anonymized peer data if available",
                            },
                        },
                    },
                },
                "required": ["data_scope", "period"],
            },
        ),
        Tool(
            name="batch_create_transactions",
            description="Create multiple transactions at once. Invalid items are reported by index without stopping the rest.",
            inputSchema={
                "type": "object",
                "properties": {
                    "transactions": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "type": {
                                    "type": "string",
                                    "enum": ["expense", "income"],
                                    "description": "Transaction type",
                                },
                                "amount": {"type": "number", "description": "Transaction amount"},
                                "category": {"type": "string", "description": "Category ID"},
                                "description": {"type": "string", "description": "Transaction description"},
                                "date": {
                                    "type": "string",
                                    "description": "Transaction date (ISO format, defaults to today)",
                                },
                                "ledger_id": {
                                    "type": "string",
                                    "description": "Ledger ID (defaults to checking)",
                                },
                                "tags": {**ID_LIST_SCHEMA, "description": "Transaction tags"},
                            },
                            "required": ["type", "amount", "category"],
                        },
                    },
                    "validate_only": {
                        "type": "boolean",
                        "description": "Perform validation only (dry run)",
                        "default": False,
                    },
                },
                "required": ["transactions"],
            },
        ),
        Tool(
            name="export_data",
            description="Export transactions, a summary report or a full backup as JSON, CSV or Markdown.",
            inputSchema={
                "type": "object",
                "properties": {
                    "export_type": {
                        "type": "string",
                        "enum": ["transactions", "summary_report", "full_backup"],
                        "description": "Type of data to export",
                    },
                    "format": {
                        "type": "string",
                        "enum": ["json", "csv", "markdown"],
                        "description": "Export format",
                    },
                    "filters": {
                        "type": "object",
                        "properties": {
                            "date_start": {"type": "string", "description": "Start date filter"},
                            "date_end": {"type": "string", "description": "End date filter"},
                            "categories": {**ID_LIST_SCHEMA, "description": "Category IDs to include"},
                            "ledgers": {**ID_LIST_SCHEMA, "description": "Ledger IDs to include"},
                        },
                    },
                    "options": {
                        "type": "object",
                        "properties": {
                            "include_metadata": {
                                "type": "boolean",
                                "description": "Include metadata in export",
                            },
                            "group_by": {
                                "type": "string",
                                "enum": ["date", "category", "ledger"],
                                "description": "Group exported data by field",
                            },
                        },
                    },
                },
                "required": ["export_type", "format"],
            },
        ),
    ]


# ============================================================================
# Tool handlers
# ============================================================================

def _handle_get_account_data(
    db: Database, settings: ExpenseTrackerSettings, arguments: dict[str, Any]
) -> str:
    data_type = arguments.get("data_type")
    result = get_account_data(db, data_type, arguments.get("filters"))
    if data_type == "categories":
        return categories_report(result)
    return to_json(result)


def _handle_query_transactions(
    db: Database, settings: ExpenseTrackerSettings, arguments: dict[str, Any]
) -> str:
    result = query_transactions(
        db,
        tx_type=arguments.get("type", "all"),
        filters=arguments.get("filters"),
        pagination=arguments.get("pagination"),
        sort=arguments.get("sort"),
        max_limit=settings.app.max_query_limit,
    )
    return to_json(result)


def _handle_analyze_spending(
    db: Database, settings: ExpenseTrackerSettings, arguments: dict[str, Any]
) -> str:
    result = analyze_spending(
        db,
        analysis_type=arguments.get("analysis_type"),
        period=arguments.get("period"),
        filters=arguments.get("filters"),
    )
    return to_json(result)


def _handle_get_summary(
    db: Database, settings: ExpenseTrackerSettings, arguments: dict[str, Any]
) -> str:
    result = get_summary(
        db,
        summary_type=arguments.get("summary_type"),
        period=arguments.get("period", "this_month"),
        date_range=arguments.get("date_range"),
        include_details=arguments.get("include_details", False),
    )
    return to_json(result)


def _handle_get_record_details(
    db: Database, settings: ExpenseTrackerSettings, arguments: dict[str, Any]
) -> str:
    result = get_record_details(
        db,
        record_type=arguments.get("record_type"),
        record_id=arguments.get("record_id"),
        include_related=arguments.get("include_related", False),
    )
    return to_json(result)


def _handle_get_insights_data(
    db: Database, settings: ExpenseTrackerSettings, arguments: dict[str, Any]
) -> str:
    result = get_insights_data(
        db,
        data_scope=arguments.get("data_scope"),
        period=arguments.get("period"),
        include_components=arguments.get("include_components"),
    )
    return to_json(result)


def _handle_batch_create_transactions(
    db: Database, settings: ExpenseTrackerSettings, arguments: dict[str, Any]
) -> str:
    result = batch_create_transactions(
        db,
        transactions=arguments.get("transactions"),
        validate_only=arguments.get("validate_only", False),
        max_batch=settings.app.max_transaction_batch,
    )
    return to_json(result)


def _handle_export_data(
    db: Database, settings: ExpenseTrackerSettings, arguments: dict[str, Any]
) -> str:
    data = export_data(
        db,
        export_type=arguments.get("export_type"),
        filters=arguments.get("filters"),
        options=arguments.get("options"),
    )
    return format_export(data, arguments.get("format", "json"), settings.app.default_currency)


ToolHandler = Callable[[Database, ExpenseTrackerSettings, dict[str, Any]], str]

TOOL_HANDLERS: dict[str, ToolHandler] = {
    "get_account_data": _handle_get_account_data,
    "query_transactions": _handle_query_transactions,
    "analyze_spending": _handle_analyze_spending,
    "get_summary": _handle_get_summary,
    "get_record_details": _handle_get_record_details,
    "get_insights_data": _handle_get_insights_data,
    "batch_create_transactions": _handle_batch_create_transactions,
    "export_data": _handle_export_data,
}


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
    """Handle tool calls."""
    arguments = arguments or {}
    settings = get_app_settings()

    logger.info("Tool call: %s", name)
    if settings.server.debug:
        logger.debug("Tool arguments for %s: %s", name, arguments)

    handler = TOOL_HANDLERS.get(name)
    if handler is None:
        logger.warning("Unknown tool requested: %s", name)
        return [TextContent(type="text", text=f"Error: Unknown tool: {name}")]

    try:
        text = handler(get_db(), settings, arguments)
    except ExpenseTrackerError as e:
        logger.warning("Tool %s failed: %s", name, e)
        text = f"Error: {e}"
    except Exception as e:
        logger.exception("Unexpected error in tool %s", name)
        text = f"Error: {e}"

    return [TextContent(type="text", text=text)]


# ============================================================================
# Main
# ============================================================================

def _handle_sigterm(signum: int, frame: Any) -> None:
    raise SystemExit(0)


def main() -> None:
    """Run the MCP server."""
    from mcp.server.stdio import stdio_server

    settings = get_app_settings()
    setup_logging(settings.logging, verbose=settings.server.debug)
    signal.signal(signal.SIGTERM, _handle_sigterm)

    async def run():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())

    logger.info("Starting %s v%s", settings.server.name, settings.server.version)
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Server interrupted")
    finally:
        close_db()
        logger.info("Server stopped")


if __name__ == "__main__":
    main()
