from __future__ import annotations

from decimal import Decimal

from conftest import make_transaction
from rebates.services.calculator import CalculationResult
from rebates.services.records import AirlineRow, CalculatedRebate, CalculationType
from rebates.services.reporting import (
    build_master_rows,
    enhance_merchant_name,
    enhanced_merchant_category_code,
    summarize,
    validate_rebate_calculation,
)


def _rebate(transaction_id: str, **overrides: object) -> CalculatedRebate:
    values: dict[str, object] = {
        "transaction_id": transaction_id,
        "provider_code": "P1",
        "product_name": "Gold",
        "rebate_level": 1,
        "rebate_percentage": Decimal("2.5"),
        "rebate_amount": Decimal("25.00"),
        "rebate_amount_eur": Decimal("22.50"),
        "calculation_type": CalculationType.CARD_NETWORK,
    }
    values.update(overrides)
    return CalculatedRebate(**values)  # type: ignore[arg-type]


def test_summarize_totals_by_type_provider_and_level() -> None:
    result = CalculationResult(
        calculated_rebates=[
            _rebate("T1"),
            _rebate(
                "T1",
                calculation_type=CalculationType.PARTNER_PAYMENT,
                rebate_amount=Decimal("15.00"),
                rebate_amount_eur=Decimal("13.50"),
            ),
            _rebate("T2", provider_code="P2", rebate_level=2, rebate_amount=Decimal("5.01"), rebate_amount_eur=None),
        ],
        unmatched=["T3"],
        transactions_processed=3,
    )

    summary = summarize(result)

    assert summary.rebate_count == 3
    assert summary.unmatched_count == 1
    assert summary.total_rebate_amount == Decimal("45.01")
    assert summary.total_rebate_amount_eur == Decimal("36.00")
    assert summary.average_rebate_amount == Decimal("15.00")
    assert summary.eur_by_calculation_type == {"card-network": Decimal("22.50"), "partner-payment": Decimal("13.50")}
    assert summary.eur_by_provider["P2"] == Decimal("0")
    assert summary.count_by_level == {1: 2, 2: 1}
    assert summary.to_dict()["total_rebate_amount"] == "45.01"


def test_summarize_empty_result() -> None:
    summary = summarize(CalculationResult())

    assert summary.rebate_count == 0
    assert summary.average_rebate_amount == Decimal("0")


def test_validate_rebate_calculation_flags_mismatches() -> None:
    transaction = make_transaction("T1", amount_eur=Decimal("900.00"))

    valid = validate_rebate_calculation(transaction, [_rebate("T1"), _rebate("T9", rebate_amount=Decimal("1"))])
    invalid = validate_rebate_calculation(transaction, [_rebate("T1", rebate_amount=Decimal("24.99"))])

    assert valid.is_valid
    assert valid.rebate_count == 1
    assert valid.total_rebate_amount == Decimal("25.00")
    assert not invalid.is_valid
    assert "expected 25.00" in invalid.errors[0]


def test_validate_rebate_calculation_without_transaction() -> None:
    validation = validate_rebate_calculation(None, [], transaction_id="T404")

    assert not validation.is_valid
    assert validation.transaction_id == "T404"
    assert validation.errors == ["Transaction not found"]


def test_airline_merchant_name_enhancement() -> None:
    airlines = [AirlineRow("Icelandair", "4511", "FI")]
    airline_txn = make_transaction("T1", merchant_category_code=4511, merchant_name="ICELANDAIR 108")
    fallback_txn = make_transaction("T2", merchant_category_code=4511, transaction_merchant_name="AIR EUROPA ONLINE")
    shop_txn = make_transaction("T3", merchant_category_code=5411, merchant_name="Icelandair shop")

    assert enhance_merchant_name(airline_txn, airlines) == "Icelandair (FI)"
    assert enhanced_merchant_category_code(airline_txn, airlines) == "3050"
    assert enhance_merchant_name(fallback_txn) == "Air Europa (UX)"
    assert enhanced_merchant_category_code(fallback_txn) == "1419"
    assert enhance_merchant_name(shop_txn, airlines) == "Icelandair shop"
    assert enhanced_merchant_category_code(shop_txn, airlines) == "5411"


def test_master_rows_spread_rebates_across_levels() -> None:
    transactions = [make_transaction("T1"), make_transaction("T2")]
    rebates = [
        _rebate("T1"),
        _rebate("T1", rebate_level=3, rebate_percentage=Decimal("1"), rebate_amount=Decimal("10.00")),
    ]

    rows = build_master_rows(transactions, rebates)

    assert rows[0]["rebate_1_percentage"] == Decimal("2.5")
    assert rows[0]["rebate_amount_3"] == Decimal("10.00")
    assert rows[0]["rebate_amount_eur_1"] == Decimal("22.50")
    assert rows[0]["calculation_types"] == ["card-network", "card-network"]
    assert rows[1]["rebate_amount_1"] == Decimal("0")
    assert rows[1]["rebate_8_percentage"] is None
