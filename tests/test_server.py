"""Tests for the MCP tool surface."""

import json

import pytest

from expense_tracker_mcp.config import ExpenseTrackerSettings
from expense_tracker_mcp.server import TOOL_HANDLERS, call_tool, list_tools


def _text(response) -> str:
    assert len(response) == 1
    assert response[0].type == "text"
    return response[0].text


class TestListTools:
    """Test tool registration."""

    @pytest.mark.asyncio
    async def test_eight_tools(self):
        tools = await list_tools()

        assert {t.name for t in tools} == set(TOOL_HANDLERS)
        assert len(tools) == 8

    @pytest.mark.asyncio
    async def test_required_arguments(self):
        tools = {t.name: t for t in await list_tools()}

        assert tools["get_record_details"].inputSchema["required"] == ["record_type", "record_id"]
        assert tools["export_data"].inputSchema["required"] == ["export_type", "format"]
        assert "required" not in tools["query_transactions"].inputSchema


class TestCallTool:
    """Test dispatch, envelopes and error wrapping."""

    @pytest.mark.asyncio
    async def test_query_transactions(self, mcp_server):
        text = _text(await call_tool("query_transactions", {"type": "income"}))

        result = json.loads(text)
        assert result["pagination"]["total"] == 1
        assert result["transactions"][0]["id"] == "txn_005"

    @pytest.mark.asyncio
    async def test_missing_arguments_use_defaults(self, mcp_server):
        result = json.loads(_text(await call_tool("query_transactions", None)))

        assert result["pagination"]["total"] == 7

    @pytest.mark.asyncio
    async def test_query_limit_from_settings(self, mcp_server, populated_db):
        settings = ExpenseTrackerSettings(
            database={"path": ":memory:", "seed_data": False},
            app={"max_query_limit": 2},
        )
        mcp_server.init_for_testing(populated_db, settings)

        result = json.loads(_text(await call_tool("query_transactions", {"pagination": {"limit": 50}})))

        assert result["pagination"]["limit"] == 2

    @pytest.mark.asyncio
    async def test_not_found_becomes_error_text(self, mcp_server):
        text = _text(await call_tool(
            "get_record_details", {"record_type": "transaction", "record_id": "txn_999"}
        ))

        assert text == "Error: Transaction not found: txn_999"

    @pytest.mark.asyncio
    async def test_unknown_tool(self, mcp_server):
        text = _text(await call_tool("delete_everything", {}))

        assert text == "Error: Unknown tool: delete_everything"

    @pytest.mark.asyncio
    async def test_unknown_operand(self, mcp_server):
        text = _text(await call_tool("get_account_data", {"data_type": "passwords"}))

        assert text == "Error: Unknown data_type: passwords"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_wrapped(self, mcp_server, monkeypatch):
        def explode(db, settings, arguments):
            raise RuntimeError("disk on fire")

        monkeypatch.setitem(TOOL_HANDLERS, "get_summary", explode)

        text = _text(await call_tool("get_summary", {"summary_type": "quick_stats"}))

        assert text == "Error: disk on fire"

    @pytest.mark.asyncio
    async def test_categories_markdown(self, mcp_server):
        text = _text(await call_tool("get_account_data", {"data_type": "categories"}))

        assert text.startswith("# Categories")
        assert "  - Groceries (groceries)" in text

    @pytest.mark.asyncio
    async def test_profile_json(self, mcp_server):
        result = json.loads(_text(await call_tool("get_account_data", {"data_type": "profile"})))

        assert result["email"] == "test@example.com"

    @pytest.mark.asyncio
    async def test_analyze_spending(self, mcp_server):
        result = json.loads(_text(await call_tool("analyze_spending", {
            "analysis_type": "budget_variance",
            "period": {"start": "2024-03-01", "end": "2024-03-31"},
        })))

        assert [v["status"] for v in result["variances"]] == ["under", "under"]

    @pytest.mark.asyncio
    async def test_get_insights_data(self, mcp_server):
        result = json.loads(_text(await call_tool("get_insights_data", {
            "data_scope": "anomaly_detection",
            "period": {"current": {"start": "2024-03-01", "end": "2024-03-31"}},
        })))

        assert result["analysis_data"]["new_merchants"][0]["description"] == 'Bistro "Le Chat"'

    @pytest.mark.asyncio
    async def test_batch_create_and_read_back(self, mcp_server):
        created = json.loads(_text(await call_tool("batch_create_transactions", {
            "transactions": [
                {"type": "expense", "amount": 7, "category": "restaurants", "date": "2024-03-18"},
            ],
        })))
        txn_id = created["results"][0]["transaction_id"]

        details = json.loads(_text(await call_tool(
            "get_record_details", {"record_type": "transaction", "record_id": txn_id}
        )))

        assert details["transaction"]["category_name"] == "Restaurants"

    @pytest.mark.asyncio
    async def test_batch_limit_from_settings(self, mcp_server, populated_db):
        settings = ExpenseTrackerSettings(
            database={"path": ":memory:", "seed_data": False},
            app={"max_transaction_batch": 1},
        )
        mcp_server.init_for_testing(populated_db, settings)
        item = {"type": "expense", "amount": 1, "category": "food"}

        text = _text(await call_tool("batch_create_transactions", {"transactions": [item, item]}))

        assert text.startswith("Error: Batch of 2 transactions exceeds the limit of 1")

    @pytest.mark.asyncio
    async def test_export_csv(self, mcp_server):
        text = _text(await call_tool("export_data", {
            "export_type": "transactions",
            "format": "csv",
            "filters": {"categories": ["salary"]},
        }))

        assert text.split("\n")[1].startswith('"txn_005","income","2000.0"')

    @pytest.mark.asyncio
    async def test_export_csv_of_report_is_error(self, mcp_server):
        text = _text(await call_tool("export_data", {"export_type": "summary_report", "format": "csv"}))

        assert text == "Error: CSV format requires array data"

    @pytest.mark.asyncio
    async def test_get_summary(self, mcp_server):
        result = json.loads(_text(await call_tool("get_summary", {
            "summary_type": "period_totals",
            "period": "custom",
            "date_range": {"start": "2024-03-01", "end": "2024-03-31"},
        })))

        assert result["net_amount"] == 1925.0


class TestGetDb:
    """Test lazy store creation from settings."""

    def test_seeds_new_file_store(self, tmp_path, monkeypatch):
        from expense_tracker_mcp import server as server_module

        settings = ExpenseTrackerSettings(database={"path": tmp_path / "data" / "expenses.db"})
        monkeypatch.setattr(server_module, "_settings", settings)
        monkeypatch.setattr(server_module, "_db", None)

        db = server_module.get_db()
        try:
            assert (tmp_path / "data" / "expenses.db").exists()
            assert db.count_table("categories") == 14
            assert server_module.get_db() is db
        finally:
            server_module.close_db()
