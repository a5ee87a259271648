"""Tests for utility functions."""

import re
from datetime import date

import pytest

from expense_tracker_mcp.errors import UnknownOperandError, ValidationError
from expense_tracker_mcp.utils import (
    build_category_tree,
    days_inclusive,
    format_date,
    generate_id,
    join_tags,
    month_bounds,
    percentage,
    percentage_change,
    require_window,
    resolve_period,
    validate_transaction,
)


class TestResolvePeriod:
    """Test named period resolution."""

    today = date(2024, 3, 20)  # a Wednesday

    def test_today(self):
        assert resolve_period("today", today=self.today) == ("2024-03-20", "2024-03-20")

    def test_this_week_starts_sunday(self):
        assert resolve_period("this_week", today=self.today) == ("2024-03-17", "2024-03-20")

    def test_this_week_on_sunday(self):
        assert resolve_period("this_week", today=date(2024, 3, 17)) == ("2024-03-17", "2024-03-17")

    def test_this_month(self):
        assert resolve_period("this_month", today=self.today) == ("2024-03-01", "2024-03-20")

    def test_this_year(self):
        assert resolve_period("this_year", today=self.today) == ("2024-01-01", "2024-03-20")

    def test_custom(self):
        start, end = resolve_period("custom", {"start": "2024-02-01", "end": "2024-02-29"})
        assert (start, end) == ("2024-02-01", "2024-02-29")

    def test_custom_inverted_range(self):
        with pytest.raises(ValidationError, match="date_range.start must not be after"):
            resolve_period("custom", {"start": "2024-02-29", "end": "2024-02-01"})

    def test_custom_requires_range(self):
        with pytest.raises(ValidationError, match="date_range required"):
            resolve_period("custom")

    def test_unknown_period(self):
        with pytest.raises(UnknownOperandError, match="Unknown period: last_decade"):
            resolve_period("last_decade")


class TestDates:
    """Test date helpers."""

    def test_format_date_default_today(self):
        assert format_date(None, today=date(2024, 1, 2)) == "2024-01-02"

    def test_format_date_strips_time(self):
        assert format_date("2024-03-05T14:30:00Z") == "2024-03-05"

    def test_format_date_invalid(self):
        with pytest.raises(ValidationError, match="Invalid date"):
            format_date("next tuesday")

    def test_month_bounds_leap_february(self):
        assert month_bounds(date(2024, 2, 10)) == ("2024-02-01", "2024-02-29")

    def test_month_bounds_december(self):
        assert month_bounds(date(2023, 12, 31)) == ("2023-12-01", "2023-12-31")

    def test_days_inclusive(self):
        assert days_inclusive("2024-03-01", "2024-03-20") == 20
        assert days_inclusive("2024-03-01", "2024-03-01") == 1

    def test_require_window(self):
        assert require_window({"start": "2024-03-01", "end": "2024-03-31"}) == ("2024-03-01", "2024-03-31")

    def test_require_window_inverted(self):
        with pytest.raises(ValidationError, match="period.start must not be after period.end"):
            require_window({"start": "2024-03-02", "end": "2024-03-01"})

    def test_require_window_same_day(self):
        assert require_window({"start": "2024-03-01", "end": "2024-03-01"}) == ("2024-03-01", "2024-03-01")

    def test_require_window_missing_end(self):
        with pytest.raises(ValidationError, match="period.start and period.end are required"):
            require_window({"start": "2024-03-01"})


class TestPercentages:
    """Test percentage helpers."""

    def test_percentage_rounding(self):
        assert percentage(1, 3) == 33.33

    def test_percentage_zero_whole(self):
        assert percentage(10, 0) == 0

    def test_percentage_change(self):
        assert percentage_change(60, 8) == 650.0

    def test_percentage_change_from_zero(self):
        assert percentage_change(5, 0) == 100
        assert percentage_change(0, 0) == 0


class TestValidateTransaction:
    """Test transaction payload validation."""

    def test_valid(self):
        assert validate_transaction({"type": "expense", "amount": 5, "category": "food"}) == []

    def test_all_problems(self):
        errors = validate_transaction({"type": "transfer", "amount": -1})

        assert errors == ["Invalid transaction type", "Invalid amount", "Category is required"]

    def test_zero_amount(self):
        assert validate_transaction({"type": "income", "amount": 0, "category": "x"}) == ["Invalid amount"]

    @pytest.mark.parametrize("amount", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_amount(self, amount):
        assert validate_transaction({"type": "expense", "amount": amount, "category": "x"}) == ["Invalid amount"]

    def test_non_numeric_amount(self):
        assert "Invalid amount" in validate_transaction({"type": "income", "amount": "5", "category": "x"})

    def test_not_a_dict(self):
        assert validate_transaction("expense") == ["Transaction must be an object"]


class TestMisc:
    """Test id generation, tags and category trees."""

    def test_generate_id_format(self):
        assert re.fullmatch(r"txn_\d+_[a-z0-9]{9}", generate_id("txn"))

    def test_generate_id_unique(self):
        assert len({generate_id("txn") for _ in range(50)}) == 50

    def test_join_tags(self):
        assert join_tags(["a", "b"]) == "a,b"
        assert join_tags(None) == ""

    def test_build_category_tree(self):
        categories = [
            {"id": "food", "name": "Food", "parent_id": None},
            {"id": "groceries", "name": "Groceries", "parent_id": "food"},
            {"id": "orphan", "name": "Orphan", "parent_id": "missing"},
        ]

        tree = build_category_tree(categories)

        assert [node["id"] for node in tree] == ["food", "orphan"]
        assert [child["id"] for child in tree[0]["children"]] == ["groceries"]
