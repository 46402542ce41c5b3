"""Ordered transaction collections for a single calculation run."""
from __future__ import annotations

from collections.abc import Iterable, Iterator
from decimal import Decimal

from rebates.services.errors import ValidationError
from rebates.services.records import REBATE_LEVELS, TransactionRecord

REQUIRED_FIELDS: tuple[str, ...] = ("transaction_id", "provider_code", "product_name")


def validate_transaction(record: TransactionRecord) -> ValidationError | None:
    """Return the first problem with ``record`` or ``None`` when it can be calculated."""

    transaction_id = str(record.transaction_id or "").strip() or None
    for name in REQUIRED_FIELDS:
        value = getattr(record, name)
        if value is None or not str(value).strip():
            return ValidationError(
                f"Transaction {transaction_id or '<unknown>'} is missing '{name}'",
                transaction_id=transaction_id,
                field=name,
            )
    if not isinstance(record.amount, Decimal):
        return ValidationError(
            f"Transaction {transaction_id} has a non-decimal amount {record.amount!r}",
            transaction_id=transaction_id,
            field="amount",
        )
    if record.rebate_level is not None and record.rebate_level not in REBATE_LEVELS:
        return ValidationError(
            f"Transaction {transaction_id} has rebate level {record.rebate_level}, expected 1-8",
            transaction_id=transaction_id,
            field="rebate_level",
        )
    return None


class TransactionSet:
    """Transactions for one run, in import order, with unique identifiers.

    Duplicate identifiers are not added; they are kept in :attr:`rejected`
    alongside the validation error that explains why.
    """

    def __init__(self, records: Iterable[TransactionRecord] = ()) -> None:
        self._records: list[TransactionRecord] = []
        self._ids: set[str] = set()
        self.rejected: list[ValidationError] = []
        for record in records:
            self.add(record)

    def add(self, record: TransactionRecord) -> bool:
        if record.transaction_id in self._ids:
            self.rejected.append(
                ValidationError(
                    f"Duplicate transaction id {record.transaction_id}",
                    transaction_id=record.transaction_id,
                    field="transaction_id",
                )
            )
            return False
        self._ids.add(record.transaction_id)
        self._records.append(record)
        return True

    def __iter__(self) -> Iterator[TransactionRecord]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, transaction_id: object) -> bool:
        return transaction_id in self._ids

    def get(self, transaction_id: str) -> TransactionRecord | None:
        if transaction_id not in self._ids:
            return None
        return next(record for record in self._records if record.transaction_id == transaction_id)

    def records(self) -> tuple[TransactionRecord, ...]:
        return tuple(self._records)


__all__ = ["REQUIRED_FIELDS", "TransactionSet", "validate_transaction"]
