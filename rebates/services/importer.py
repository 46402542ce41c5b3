"""CSV import of transactions and reference tables."""
from __future__ import annotations

import csv
import enum
import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TextIO

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from rebates.obs.metrics import ROW_ERROR_COUNTER
from rebates.obs.tracing import start_span
from rebates.schemas.imports import (
    AirlineImport,
    CardNetworkRateImport,
    PartnerPaymentRateImport,
    ProviderOverrideImport,
    RegionCountryImport,
    TransactionImport,
    rate_columns,
)
from rebates.services.records import RatePeriod, TableId, TransactionRecord
from rebates.services.reference_data import ReferenceDataStore
from rebates.services.transactions import TransactionSet

logger = logging.getLogger(__name__)

CsvSource = Path | str | TextIO


class ImportKind(str, enum.Enum):
    TRANSACTIONS = "transactions"
    CARD_NETWORK_MONTHLY = "card_network_monthly"
    CARD_NETWORK_YEARLY = "card_network_yearly"
    PARTNER_PAYMENT_MONTHLY = "partner_payment_monthly"
    PARTNER_PAYMENT_YEARLY = "partner_payment_yearly"
    REGION_COUNTRY = "region_country"
    PROVIDER_OVERRIDE = "provider_override"
    AIRLINES = "airlines"


_CARD_NETWORK_ACCOUNT_COLUMNS = (
    "Account Name: Account Name",
    "Opportunity Name",
    "Full Opportunity Stage",
    "Payment Partner: Account Name",
    "Provider Customer Code",
    "Product Name",
)

EXPECTED_COLUMNS: dict[ImportKind, tuple[str, ...]] = {
    ImportKind.TRANSACTIONS: (
        "Transaction Card Number",
        "Transaction Currency",
        "Provider_Customer_Code__c",
        "Transaction Type",
        "Transaction Card",
        "Salesforce product name",
        "Funding Account Name",
        "Region",
        "Region MC",
        "Transaction Date",
        "BIN Card Number",
        "-Sum([Transaction Amount])",
        "Sum([Interchange Amount])",
        "INTERCHANGE %",
        "Transaction Id",
        "Transaction Amount in EUR",
        "fx",
        "PK",
        "Transaction Merchant Country",
        "Transaction Merchant Category Code",
        "Merchant Name",
        "Transaction Merchant Name",
    ),
    ImportKind.CARD_NETWORK_MONTHLY: _CARD_NETWORK_ACCOUNT_COLUMNS
    + rate_columns(RatePeriod.MONTHLY)
    + ("Account Name: Master Account",),
    ImportKind.CARD_NETWORK_YEARLY: _CARD_NETWORK_ACCOUNT_COLUMNS
    + rate_columns(RatePeriod.YEARLY)
    + ("Account Name: Master Account",),
    ImportKind.PARTNER_PAYMENT_MONTHLY: ("Product Name", "Partner Pay Airline: Account Name", "PartnerPay/PartnerDirect BIN")
    + rate_columns(RatePeriod.MONTHLY)
    + ("Account Name: Master Account",),
    ImportKind.PARTNER_PAYMENT_YEARLY: ("Partner Pay Airline: Account Name", "PartnerPay/PartnerDirect BIN")
    + rate_columns(RatePeriod.YEARLY)
    + ("Account Name: Master Account",),
    ImportKind.REGION_COUNTRY: ("Provider_Customer_Code", "Product_Name", "Region_MC", "Transaction Merchant Country")
    + rate_columns(RatePeriod.YEARLY),
    ImportKind.PROVIDER_OVERRIDE: ("Provider_Customer_Code", "Product_Name") + rate_columns(RatePeriod.YEARLY),
    ImportKind.AIRLINES: ("Partner Pay Airline: Account Name", "Transaction Merchant Category Code"),
}


@dataclass(frozen=True, slots=True)
class ColumnCheck:
    kind: ImportKind
    expected: tuple[str, ...]
    actual: tuple[str, ...]
    missing: tuple[str, ...]
    extra: tuple[str, ...]

    @property
    def is_valid(self) -> bool:
        return not self.missing


@dataclass(slots=True)
class ImportResult:
    """Rows accepted from one file plus the rows that were rejected and why."""

    kind: ImportKind
    rows: list[Any] = field(default_factory=list)
    invalid: list[dict[str, Any]] = field(default_factory=list)
    skipped_empty: int = 0
    columns: ColumnCheck | None = None

    @property
    def imported(self) -> int:
        return len(self.rows)


def validate_columns(kind: ImportKind | str, columns: Iterable[str]) -> ColumnCheck:
    """Compare a file header with the columns expected for ``kind``."""

    kind = ImportKind(kind)
    expected = EXPECTED_COLUMNS[kind]
    actual = tuple(column.strip() for column in columns)
    return ColumnCheck(
        kind=kind,
        expected=expected,
        actual=actual,
        missing=tuple(column for column in expected if column not in actual),
        extra=tuple(column for column in actual if column not in expected),
    )


@contextmanager
def _open_source(source: CsvSource) -> Iterator[TextIO]:
    if hasattr(source, "read"):
        yield source  # type: ignore[misc]
        return
    with Path(source).open("r", encoding="utf-8-sig", newline="") as handle:
        yield handle


def read_csv(source: CsvSource) -> tuple[tuple[str, ...], list[dict[str, str]]]:
    """Return the header and the rows of a CSV file, with cells stripped."""

    with _open_source(source) as handle:
        reader = csv.DictReader(handle)
        header = tuple((name or "").strip() for name in reader.fieldnames or ())
        rows = [
            {(key or "").strip(): (value or "").strip() if isinstance(value, str) else "" for key, value in row.items()}
            for row in reader
        ]
    return header, rows


def _is_empty(row: Mapping[str, str]) -> bool:
    return all(not value for value in row.values())


def _format_errors(error: SchemaValidationError) -> list[str]:
    messages = []
    for item in error.errors():
        location = "->".join(str(part) for part in item.get("loc", ())) or "<root>"
        messages.append(f"{location}: {item.get('msg')}")
    return messages


class CsvImporter:
    """Parses the CSV exports into transaction records and reference rows.

    Each ``import_*`` method returns an :class:`ImportResult`; malformed rows are
    collected on ``invalid`` and never raise. Completely empty rows are skipped.
    """

    def __init__(self, *, generic_partner_provider: str = "partnerpay") -> None:
        self.generic_partner_provider = generic_partner_provider

    def _parse(
        self,
        source: CsvSource,
        kind: ImportKind,
        schema: type[BaseModel],
        prepare: Callable[[Mapping[str, str]], dict[str, Any]] | None = None,
        convert: Callable[[Any], Any] | None = None,
    ) -> ImportResult:
        with start_span("rebates.import", kind=kind.value):
            header, rows = read_csv(source)
            result = ImportResult(kind=kind, columns=validate_columns(kind, header))
            if result.columns.missing:
                logger.warning(
                    "import file is missing expected columns",
                    extra={"kind": kind.value, "missing": list(result.columns.missing)},
                )
            for index, row in enumerate(rows, start=1):
                if _is_empty(row):
                    result.skipped_empty += 1
                    continue
                payload: dict[str, Any] = dict(row)
                if prepare is not None:
                    payload.update(prepare(row))
                try:
                    parsed = schema.model_validate(payload)
                except SchemaValidationError as exc:
                    result.invalid.append({"row_number": index, "row": row, "errors": _format_errors(exc)})
                    ROW_ERROR_COUNTER.labels(kind="import").inc()
                    continue
                result.rows.append(convert(parsed) if convert is not None else parsed)

        logger.info(
            "imported csv",
            extra={
                "kind": kind.value,
                "imported": result.imported,
                "invalid_rows": len(result.invalid),
                "skipped_empty": result.skipped_empty,
            },
        )
        return result

    @staticmethod
    def _rates(period: RatePeriod) -> Callable[[Mapping[str, str]], dict[str, Any]]:
        columns = rate_columns(period)
        name = "monthly_rates" if period is RatePeriod.MONTHLY else "yearly_rates"
        return lambda row: {name: [row.get(column, "") for column in columns]}

    @staticmethod
    def _both_rates(row: Mapping[str, str]) -> dict[str, list[str]]:
        prepared: dict[str, list[str]] = {}
        for period, name in ((RatePeriod.MONTHLY, "monthly_rates"), (RatePeriod.YEARLY, "yearly_rates")):
            columns = rate_columns(period)
            if any(column in row for column in columns):
                prepared[name] = [row.get(column, "") for column in columns]
        return prepared

    def import_transactions(self, source: CsvSource) -> ImportResult:
        return self._parse(
            source, ImportKind.TRANSACTIONS, TransactionImport, convert=TransactionImport.to_record
        )

    def import_card_network(self, source: CsvSource, period: RatePeriod | str) -> ImportResult:
        period = RatePeriod(period)
        kind = ImportKind.CARD_NETWORK_MONTHLY if period is RatePeriod.MONTHLY else ImportKind.CARD_NETWORK_YEARLY
        return self._parse(
            source, kind, CardNetworkRateImport, prepare=self._rates(period), convert=CardNetworkRateImport.to_row
        )

    def import_partner_payment(self, source: CsvSource, period: RatePeriod | str) -> ImportResult:
        period = RatePeriod(period)
        kind = (
            ImportKind.PARTNER_PAYMENT_MONTHLY if period is RatePeriod.MONTHLY else ImportKind.PARTNER_PAYMENT_YEARLY
        )
        provider = self.generic_partner_provider
        return self._parse(
            source,
            kind,
            PartnerPaymentRateImport,
            prepare=self._rates(period),
            convert=lambda parsed: parsed.to_row(provider),
        )

    def import_region_country(self, source: CsvSource) -> ImportResult:
        return self._parse(
            source,
            ImportKind.REGION_COUNTRY,
            RegionCountryImport,
            prepare=self._both_rates,
            convert=RegionCountryImport.to_row,
        )

    def import_provider_overrides(self, source: CsvSource) -> ImportResult:
        return self._parse(
            source,
            ImportKind.PROVIDER_OVERRIDE,
            ProviderOverrideImport,
            prepare=self._both_rates,
            convert=ProviderOverrideImport.to_row,
        )

    def import_airlines(self, source: CsvSource) -> ImportResult:
        return self._parse(source, ImportKind.AIRLINES, AirlineImport, convert=AirlineImport.to_row)


def build_transaction_set(results: Iterable[ImportResult]) -> TransactionSet:
    """Collect the records from one or more transaction imports into a set."""

    transactions = TransactionSet()
    for result in results:
        for record in result.rows:
            if isinstance(record, TransactionRecord):
                transactions.add(record)
    return transactions


def load_into_store(store: ReferenceDataStore, table_id: TableId | str, *results: ImportResult) -> int:
    """Replace ``table_id`` in ``store`` with the rows of ``results`` in order."""

    rows = [row for result in results for row in result.rows]
    return store.replace_table(table_id, rows)


__all__ = [
    "ColumnCheck",
    "CsvImporter",
    "EXPECTED_COLUMNS",
    "ImportKind",
    "ImportResult",
    "build_transaction_set",
    "load_into_store",
    "read_csv",
    "validate_columns",
]
