"""Rate tier selection and rebate amount arithmetic."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from rebates.services.records import REBATE_LEVELS, RatePeriod, ReferenceRow

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal | None:
    """Parse a percentage or amount into a ``Decimal``.

    Accepts ``Decimal``, ``int``, ``float`` and strings such as ``"2.5%"`` or
    ``"1,234.50"``. Blank values return ``None``.
    """

    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Cannot interpret {value!r} as a decimal")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    text = str(value).strip().strip('"').replace("%", "").replace(",", "").strip()
    if not text:
        return None
    try:
        return Decimal(text)
    except InvalidOperation as exc:
        raise ValueError(f"Cannot interpret {value!r} as a decimal") from exc


def calculate_rebate_amount(amount: Decimal | int | float | str, percentage: Decimal | int | float | str) -> Decimal:
    """Return ``amount * percentage / 100`` rounded half-up to two decimal places."""

    amount_decimal = Decimal(str(amount))
    percentage_decimal = Decimal(str(percentage))
    rebate = amount_decimal * percentage_decimal / HUNDRED
    return rebate.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True, slots=True)
class SelectedRate:
    level: int
    percentage: Decimal
    period: RatePeriod


class RateSelector:
    """Maps a matched row and a tier level onto the percentage to apply."""

    def __init__(self, *, emit_zero_rate_records: bool = False) -> None:
        self.emit_zero_rate_records = emit_zero_rate_records

    def select(self, row: ReferenceRow, level: int, period: RatePeriod) -> SelectedRate | None:
        if level not in REBATE_LEVELS:
            raise ValueError(f"Rebate level must be between 1 and 8, got {level!r}")
        period = RatePeriod(period)
        percentage = row.rates_for(period)[level - 1]
        if percentage is None:
            if not self.emit_zero_rate_records:
                return None
            percentage = ZERO
        return SelectedRate(level=level, percentage=percentage, period=period)


__all__ = ["RateSelector", "SelectedRate", "calculate_rebate_amount", "to_decimal"]
