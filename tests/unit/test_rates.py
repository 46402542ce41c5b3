from decimal import Decimal

import pytest

from conftest import rates
from rebates.services.rates import RateSelector, calculate_rebate_amount, to_decimal
from rebates.services.records import CardNetworkRateRow, RatePeriod


def test_calculate_rebate_amount_rounds_half_up() -> None:
    assert calculate_rebate_amount(Decimal("1000.00"), Decimal("2.5")) == Decimal("25.00")
    assert calculate_rebate_amount(Decimal("100.10"), Decimal("0.125")) == Decimal("0.13")
    assert calculate_rebate_amount(Decimal("-40.00"), Decimal("1.5")) == Decimal("-0.60")


def test_calculate_rebate_amount_accepts_float_inputs() -> None:
    assert calculate_rebate_amount(150, 0.1) == Decimal("0.15")


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("2.5%", Decimal("2.5")),
        ('"1,234.50"', Decimal("1234.50")),
        (3, Decimal("3")),
        ("  ", None),
        (None, None),
    ],
)
def test_to_decimal(value: object, expected: Decimal | None) -> None:
    assert to_decimal(value) == expected


def test_to_decimal_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        to_decimal("n/a")
    with pytest.raises(ValueError):
        to_decimal(True)


def test_selector_uses_period_and_level() -> None:
    row = CardNetworkRateRow("P1", "Gold", monthly_rates=rates("2.5", "3"), yearly_rates=rates("10"))
    selector = RateSelector()

    monthly = selector.select(row, 2, RatePeriod.MONTHLY)
    yearly = selector.select(row, 1, RatePeriod.YEARLY)

    assert (monthly.level, monthly.percentage, monthly.period) == (2, Decimal("3"), RatePeriod.MONTHLY)
    assert yearly.percentage == Decimal("10")


def test_selector_treats_empty_slot_as_no_rebate() -> None:
    row = CardNetworkRateRow("P1", "Gold", monthly_rates=rates("2.5"))

    assert RateSelector().select(row, 3, RatePeriod.MONTHLY) is None
    zero = RateSelector(emit_zero_rate_records=True).select(row, 3, RatePeriod.MONTHLY)
    assert zero.percentage == Decimal("0")


def test_selector_rejects_unknown_level() -> None:
    row = CardNetworkRateRow("P1", "Gold")

    with pytest.raises(ValueError):
        RateSelector().select(row, 0, RatePeriod.MONTHLY)
