"""Exceptions raised or collected by the rebate calculation services."""
from __future__ import annotations


class RebateError(RuntimeError):
    """Base class for rebate service errors."""


class ValidationError(RebateError):
    """Raised when a reference row or transaction is missing a required field."""

    def __init__(
        self,
        message: str,
        *,
        transaction_id: str | None = None,
        table_id: str | None = None,
        row_index: int | None = None,
        field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.transaction_id = transaction_id
        self.table_id = table_id
        self.row_index = row_index
        self.field = field


class AmbiguousMatchError(RebateError):
    """Raised internally when a fallback key matches more than one reference row."""

    def __init__(self, table_id: str, key: tuple[str, ...], candidates: int) -> None:
        super().__init__(f"{candidates} rows in '{table_id}' share key {key!r}")
        self.table_id = table_id
        self.key = key
        self.candidates = candidates


class ConfigurationError(RebateError):
    """Raised when a run needs a reference table that was never imported."""

    def __init__(self, message: str, *, table_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.table_id = table_id


__all__ = ["AmbiguousMatchError", "ConfigurationError", "RebateError", "ValidationError"]
