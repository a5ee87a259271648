"""Error taxonomy for expense tracker tools.

Every error raised by the query and report layer derives from
``ExpenseTrackerError`` so the tool dispatcher can turn it into a
readable response instead of failing the request.
"""

from typing import Any


class ExpenseTrackerError(Exception):
    """Base class for all expense tracker errors."""

    pass


class NotFoundError(ExpenseTrackerError):
    """A referenced record (category, ledger, transaction, budget) does not exist."""

    def __init__(self, record_type: str, record_id: Any):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(f"{record_type.capitalize()} not found: {record_id}")


class ValidationError(ExpenseTrackerError, ValueError):
    """Malformed input: bad transaction payload, incomplete period, etc."""

    pass


class UnknownOperandError(ExpenseTrackerError, ValueError):
    """Unrecognized enum value for a tool argument."""

    def __init__(self, field: str, value: Any):
        self.field = field
        self.value = value
        super().__init__(f"Unknown {field}: {value}")


class StoreError(ExpenseTrackerError):
    """The underlying SQLite store rejected a statement."""

    pass
