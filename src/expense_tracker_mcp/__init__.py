"""Expense tracker MCP server: personal-finance queries and reports over SQLite."""

__version__ = "1.0.0"
