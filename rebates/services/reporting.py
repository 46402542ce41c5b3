"""Run summaries, result validation and the per-transaction export shape."""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

from rebates.services.calculator import CalculationResult
from rebates.services.rates import CENT, calculate_rebate_amount
from rebates.services.records import REBATE_LEVELS, AirlineRow, CalculatedRebate, TransactionRecord

AIRLINE_MCC = 4511

# Carriers recognised when the airlines table has no match.
FALLBACK_AIRLINE_NAMES: tuple[tuple[str, str], ...] = (
    ("air europa", "Air Europa (UX)"),
    ("air greenland", "Air Greenland (GL)"),
    ("latam", "LATAM Airlines Group"),
)

AIRLINE_MCC_CODES: dict[str, str] = {
    "Air Europa (UX)": "1419",
    "Air Greenland": "39GL",
    "Air Greenland (GL)": "39GL",
    "Icelandair (FI)": "3050",
    "LATAM": "3052",
    "LATAM Airlines Group": "3052",
    "Norwegian (DY)": "3211",
    "ROYAL AIR MAROC": "3048",
    "Thai Airways": "3077",
    "TURKISH AIRLINES": "3047",
    "United Airlines": "3000",
}

_ZERO = Decimal("0")


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(slots=True)
class RebateSummary:
    transactions_processed: int = 0
    rebate_count: int = 0
    unmatched_count: int = 0
    error_count: int = 0
    ambiguous_count: int = 0
    total_rebate_amount: Decimal = _ZERO
    total_rebate_amount_eur: Decimal = _ZERO
    average_rebate_amount: Decimal = _ZERO
    average_rebate_amount_eur: Decimal = _ZERO
    eur_by_calculation_type: dict[str, Decimal] = field(default_factory=dict)
    eur_by_provider: dict[str, Decimal] = field(default_factory=dict)
    count_by_calculation_type: dict[str, int] = field(default_factory=dict)
    count_by_level: dict[int, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "transactions_processed": self.transactions_processed,
            "rebate_count": self.rebate_count,
            "unmatched_count": self.unmatched_count,
            "error_count": self.error_count,
            "ambiguous_count": self.ambiguous_count,
            "total_rebate_amount": str(self.total_rebate_amount),
            "total_rebate_amount_eur": str(self.total_rebate_amount_eur),
            "average_rebate_amount": str(self.average_rebate_amount),
            "average_rebate_amount_eur": str(self.average_rebate_amount_eur),
            "eur_by_calculation_type": {key: str(value) for key, value in self.eur_by_calculation_type.items()},
            "eur_by_provider": {key: str(value) for key, value in self.eur_by_provider.items()},
            "count_by_calculation_type": dict(self.count_by_calculation_type),
            "count_by_level": dict(self.count_by_level),
        }


def summarize(result: CalculationResult) -> RebateSummary:
    """Aggregate totals of a run by calculation type, provider and level."""

    summary = RebateSummary(
        transactions_processed=result.transactions_processed,
        rebate_count=len(result.calculated_rebates),
        unmatched_count=len(result.unmatched),
        error_count=len(result.errors),
        ambiguous_count=len(result.ambiguous_matches),
    )
    total = _ZERO
    total_eur = _ZERO
    for rebate in result.calculated_rebates:
        eur = rebate.rebate_amount_eur or _ZERO
        total += rebate.rebate_amount
        total_eur += eur
        kind = rebate.calculation_type.value
        summary.eur_by_calculation_type[kind] = summary.eur_by_calculation_type.get(kind, _ZERO) + eur
        summary.eur_by_provider[rebate.provider_code] = summary.eur_by_provider.get(rebate.provider_code, _ZERO) + eur
        summary.count_by_calculation_type[kind] = summary.count_by_calculation_type.get(kind, 0) + 1
        summary.count_by_level[rebate.rebate_level] = summary.count_by_level.get(rebate.rebate_level, 0) + 1

    summary.total_rebate_amount = _money(total)
    summary.total_rebate_amount_eur = _money(total_eur)
    if summary.rebate_count:
        summary.average_rebate_amount = _money(total / summary.rebate_count)
        summary.average_rebate_amount_eur = _money(total_eur / summary.rebate_count)
    return summary


@dataclass(slots=True)
class RebateValidation:
    transaction_id: str
    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    rebate_count: int = 0
    total_rebate_amount: Decimal = _ZERO
    total_rebate_amount_eur: Decimal = _ZERO


def validate_rebate_calculation(
    transaction: TransactionRecord | None, rebates: Iterable[CalculatedRebate], *, transaction_id: str | None = None
) -> RebateValidation:
    """Recompute the amounts of ``rebates`` from ``transaction`` and report any that differ."""

    transaction_id = transaction.transaction_id if transaction is not None else (transaction_id or "")
    validation = RebateValidation(transaction_id=transaction_id)
    if transaction is None:
        validation.is_valid = False
        validation.errors.append("Transaction not found")
        return validation

    own = [rebate for rebate in rebates if rebate.transaction_id == transaction.transaction_id]
    validation.rebate_count = len(own)
    validation.total_rebate_amount = sum((rebate.rebate_amount for rebate in own), _ZERO)
    validation.total_rebate_amount_eur = sum((rebate.rebate_amount_eur or _ZERO for rebate in own), _ZERO)

    eur_amount = transaction.eur_amount
    for rebate in own:
        expected = calculate_rebate_amount(transaction.amount, rebate.rebate_percentage)
        if rebate.rebate_amount != expected:
            validation.is_valid = False
            validation.errors.append(
                f"Rebate amount mismatch for level {rebate.rebate_level}: expected {expected}, got {rebate.rebate_amount}"
            )
        if eur_amount is None:
            continue
        expected_eur = calculate_rebate_amount(eur_amount, rebate.rebate_percentage)
        if rebate.rebate_amount_eur != expected_eur:
            validation.is_valid = False
            validation.errors.append(
                f"Rebate amount EUR mismatch for level {rebate.rebate_level}: "
                f"expected {expected_eur}, got {rebate.rebate_amount_eur}"
            )
    return validation


def enhance_merchant_name(transaction: TransactionRecord, airlines: Sequence[AirlineRow] = ()) -> str | None:
    """Return the carrier name shown for airline (MCC 4511) transactions.

    The airlines table is searched first, then a short list of known carriers.
    Other transactions keep their merchant name.
    """

    if transaction.merchant_category_code != AIRLINE_MCC:
        return transaction.merchant_name

    names = [(transaction.merchant_name or "").lower(), (transaction.transaction_merchant_name or "").lower()]
    for airline in airlines:
        airline_name = airline.airline_name.lower()
        if airline_name and any(airline_name in name for name in names):
            return airline.display_name

    for name in names:
        for needle, display in FALLBACK_AIRLINE_NAMES:
            if needle in name:
                return display
    return transaction.merchant_name


def enhanced_merchant_category_code(transaction: TransactionRecord, airlines: Sequence[AirlineRow] = ()) -> str:
    if transaction.merchant_category_code == AIRLINE_MCC:
        code = AIRLINE_MCC_CODES.get(enhance_merchant_name(transaction, airlines) or "")
        if code is not None:
            return code
    if transaction.merchant_category_code is None:
        return ""
    return str(transaction.merchant_category_code)


def build_master_rows(
    transactions: Iterable[TransactionRecord],
    rebates: Iterable[CalculatedRebate],
    airlines: Sequence[AirlineRow] = (),
) -> list[dict[str, Any]]:
    """One export row per transaction with percentage and amount columns for every level."""

    by_transaction: dict[str, list[CalculatedRebate]] = {}
    for rebate in rebates:
        by_transaction.setdefault(rebate.transaction_id, []).append(rebate)

    rows: list[dict[str, Any]] = []
    for transaction in transactions:
        row: dict[str, Any] = {
            "transaction_id": transaction.transaction_id,
            "provider_code": transaction.provider_code,
            "product_name": transaction.product_name,
            "transaction_date": transaction.transaction_date,
            "amount": transaction.amount,
            "currency": transaction.currency,
            "amount_eur": transaction.eur_amount,
            "merchant_name": transaction.merchant_name,
            "merchant_country": transaction.merchant_country,
            "merchant_category_code": transaction.merchant_category_code,
            "bin_number": transaction.bin_number,
            "region_mc": transaction.region_mc,
            "merchant_name_new": enhance_merchant_name(transaction, airlines),
            "merchant_category_code_2": enhanced_merchant_category_code(transaction, airlines),
            "calculation_types": [],
        }
        for level in REBATE_LEVELS:
            row[f"rebate_{level}_percentage"] = None
            row[f"rebate_amount_{level}"] = _ZERO
            row[f"rebate_amount_eur_{level}"] = _ZERO

        for rebate in by_transaction.get(transaction.transaction_id, ()):
            level = rebate.rebate_level
            row[f"rebate_{level}_percentage"] = rebate.rebate_percentage
            row[f"rebate_amount_{level}"] += rebate.rebate_amount
            row[f"rebate_amount_eur_{level}"] += rebate.rebate_amount_eur or _ZERO
            row["calculation_types"].append(rebate.calculation_type.value)
        rows.append(row)
    return rows


__all__ = [
    "AIRLINE_MCC",
    "AIRLINE_MCC_CODES",
    "FALLBACK_AIRLINE_NAMES",
    "RebateSummary",
    "RebateValidation",
    "build_master_rows",
    "enhance_merchant_name",
    "enhanced_merchant_category_code",
    "summarize",
    "validate_rebate_calculation",
]
