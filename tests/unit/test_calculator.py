from __future__ import annotations

from decimal import Decimal

import pytest

from conftest import make_transaction, rates
from rebates.core.config import Settings
from rebates.services.calculator import CalculationEngine, calculate_all
from rebates.services.errors import ConfigurationError, ValidationError
from rebates.services.records import (
    CalculationType,
    CardNetworkRateRow,
    PartnerPaymentRateRow,
    RatePeriod,
    SpecialCaseRow,
    SpecialCaseType,
    TableId,
)
from rebates.services.reference_data import ReferenceDataStore
from rebates.services.transactions import TransactionSet


def _engine(**kwargs: object) -> CalculationEngine:
    kwargs.setdefault("record_metrics", False)
    return CalculationEngine(RatePeriod.MONTHLY, **kwargs)


def test_card_network_scenario(reference_store: ReferenceDataStore) -> None:
    result = _engine().calculate_all([make_transaction("T1", amount=Decimal("1000.00"))], reference_store)

    assert len(result.calculated_rebates) == 1
    rebate = result.calculated_rebates[0]
    assert rebate.transaction_id == "T1"
    assert rebate.rebate_level == 1
    assert rebate.rebate_percentage == Decimal("2.5")
    assert rebate.rebate_amount == Decimal("25.00")
    assert rebate.calculation_type is CalculationType.CARD_NETWORK
    assert result.unmatched == []
    assert result.errors == []


@pytest.mark.parametrize("amount", ["0.01", "19.99", "1234.56", "-80.10", "333.33"])
def test_card_network_amount_matches_rounded_formula(reference_store: ReferenceDataStore, amount: str) -> None:
    result = _engine().calculate_all([make_transaction("T1", amount=Decimal(amount))], reference_store)

    expected = (Decimal(amount) * Decimal("2.5") / 100).quantize(Decimal("0.01"), rounding="ROUND_HALF_UP")
    assert result.calculated_rebates[0].rebate_amount == expected


def test_unmatched_transactions_have_no_rebates(reference_store: ReferenceDataStore) -> None:
    result = _engine().calculate_all(
        [make_transaction("T1"), make_transaction("T2", provider_code="P9")], reference_store
    )

    assert result.unmatched == ["T2"]
    assert result.rebates_for("T2") == []
    assert result.transactions_processed == 2
    assert result.matched_count == 1


def test_card_network_and_partner_payment_are_independent(reference_store: ReferenceDataStore) -> None:
    result = _engine().calculate_all(
        [make_transaction("T1", merchant_name="AirX", bin_number=1234, amount=Decimal("200.00"))],
        reference_store,
    )

    assert [rebate.calculation_type for rebate in result.calculated_rebates] == [
        CalculationType.CARD_NETWORK,
        CalculationType.PARTNER_PAYMENT,
    ]
    assert result.calculated_rebates[1].rebate_percentage == Decimal("1.5")
    assert result.calculated_rebates[1].rebate_amount == Decimal("3.00")


def test_ambiguous_partner_match_is_no_match_and_counted(reference_store: ReferenceDataStore) -> None:
    result = _engine().calculate_all(
        [make_transaction("T1", product_name="Gold", merchant_name="AirX", bin_number=9999)],
        reference_store,
    )

    assert [rebate.calculation_type for rebate in result.calculated_rebates] == [CalculationType.CARD_NETWORK]
    assert len(result.ambiguous_matches) == 1
    assert result.ambiguous_matches[0].key == ("P1", "Gold", "AirX")


def test_special_case_suppresses_normal_paths(reference_store: ReferenceDataStore) -> None:
    reference_store.replace_table(
        TableId.SPECIAL_CASES,
        [
            SpecialCaseRow(
                "P1",
                SpecialCaseType.REGION_COUNTRY,
                {"region_mc": "EEA", "merchant_country": "ES"},
                monthly_rates=rates("4"),
            ),
            SpecialCaseRow("P1", SpecialCaseType.PROVIDER_OVERRIDE, monthly_rates=rates("9")),
        ],
    )
    transaction = make_transaction(
        "T1", region_mc="EEA", merchant_country="ES", merchant_name="AirX", bin_number=1234
    )

    result = _engine().calculate_all([transaction], reference_store)

    assert len(result.calculated_rebates) == 1
    rebate = result.calculated_rebates[0]
    assert rebate.calculation_type is CalculationType.REGION_COUNTRY
    assert rebate.rebate_amount == Decimal("40.00")


def test_provider_override_is_reported_as_special_case(reference_store: ReferenceDataStore) -> None:
    reference_store.replace_table(
        TableId.SPECIAL_CASES,
        [SpecialCaseRow("P1", SpecialCaseType.PROVIDER_OVERRIDE, monthly_rates=rates("3"))],
    )

    result = _engine().calculate_all([make_transaction("T1")], reference_store)

    assert [rebate.calculation_type for rebate in result.calculated_rebates] == [CalculationType.SPECIAL_CASE]


def test_special_case_without_rate_at_level_does_not_suppress(reference_store: ReferenceDataStore) -> None:
    reference_store.replace_table(
        TableId.SPECIAL_CASES,
        [SpecialCaseRow("P1", SpecialCaseType.PROVIDER_OVERRIDE, yearly_rates=rates("3"))],
    )

    result = _engine(emit_zero_rate_records=True).calculate_all([make_transaction("T1")], reference_store)

    assert [rebate.calculation_type for rebate in result.calculated_rebates] == [CalculationType.CARD_NETWORK]


def test_transaction_level_overrides_default(reference_store: ReferenceDataStore) -> None:
    reference_store.replace_table(
        TableId.CARD_NETWORK_MONTHLY,
        [CardNetworkRateRow("P1", "Gold", monthly_rates=rates("1", "2", "3"))],
    )

    result = _engine(default_rebate_level=2).calculate_all(
        [make_transaction("T1"), make_transaction("T2", rebate_level=3)], reference_store
    )

    assert [(rebate.rebate_level, rebate.rebate_percentage) for rebate in result.calculated_rebates] == [
        (2, Decimal("2")),
        (3, Decimal("3")),
    ]


def test_empty_tier_slot_is_unmatched_unless_zero_records_enabled(reference_store: ReferenceDataStore) -> None:
    transactions = [make_transaction("T1", rebate_level=5)]

    plain = _engine().calculate_all(transactions, reference_store)
    zero = _engine(emit_zero_rate_records=True).calculate_all(transactions, reference_store)

    assert plain.unmatched == ["T1"]
    assert zero.calculated_rebates[0].rebate_amount == Decimal("0.00")
    assert zero.unmatched == []


def test_eur_amount_uses_fx_rate_when_missing(reference_store: ReferenceDataStore) -> None:
    result = _engine().calculate_all(
        [
            make_transaction("T1", amount=Decimal("1000.00"), currency="USD", fx_rate=Decimal("0.9")),
            make_transaction("T2", amount=Decimal("1000.00"), amount_eur=Decimal("880.00")),
            make_transaction("T3", amount=Decimal("1000.00"), currency="GBP"),
        ],
        reference_store,
    )

    eur = [rebate.rebate_amount_eur for rebate in result.calculated_rebates]
    assert eur == [Decimal("22.50"), Decimal("22.00"), None]
    assert result.calculated_rebates[0].currency == "USD"


def test_eur_transaction_rebate_is_its_own_eur_value(reference_store: ReferenceDataStore) -> None:
    reference_store.replace_table(
        TableId.CARD_NETWORK_MONTHLY, [CardNetworkRateRow("P1", "Gold", monthly_rates=rates("50"))]
    )

    result = _engine().calculate_all([make_transaction("T1", amount=Decimal("1000.00"), currency="EUR")], reference_store)

    rebate = result.calculated_rebates[0]
    assert rebate.rebate_amount == Decimal("500.00")
    assert rebate.rebate_amount_eur == Decimal("500.00")


def test_malformed_rows_are_reported_without_aborting(reference_store: ReferenceDataStore) -> None:
    transactions = TransactionSet(
        [
            make_transaction("T1", provider_code=""),
            make_transaction("T2"),
            make_transaction("T2"),
        ]
    )

    result = _engine().calculate_all(transactions, reference_store)

    assert [rebate.transaction_id for rebate in result.calculated_rebates] == ["T2"]
    assert {error.transaction_id for error in result.errors} == {"T1", "T2"}
    assert all(isinstance(error, ValidationError) for error in result.errors)
    assert result.transactions_processed == 1


def test_output_follows_transaction_order(reference_store: ReferenceDataStore) -> None:
    transactions = [
        make_transaction(f"T{index}", merchant_name="AirX", bin_number=1234) for index in range(10, 0, -1)
    ]

    result = _engine().calculate_all(transactions, reference_store)

    ids = [rebate.transaction_id for rebate in result.calculated_rebates]
    assert ids == [transaction_id for transaction_id in (f"T{index}" for index in range(10, 0, -1)) for _ in (1, 2)]


def test_sharded_run_matches_sequential_run(reference_store: ReferenceDataStore) -> None:
    transactions = [
        make_transaction(
            f"T{index}",
            amount=Decimal(index) + Decimal("0.37"),
            merchant_name="AirX" if index % 2 else None,
            bin_number=1234 if index % 3 else 9999,
            provider_code="P1" if index % 5 else "P5",
        )
        for index in range(1, 60)
    ]

    sequential = _engine().calculate_all(transactions, reference_store)
    sharded = _engine(workers=4).calculate_all(transactions, reference_store)

    assert sharded.calculated_rebates == sequential.calculated_rebates
    assert sharded.unmatched == sequential.unmatched
    assert len(sharded.ambiguous_matches) == len(sequential.ambiguous_matches)


def test_repeated_runs_are_identical(reference_store: ReferenceDataStore) -> None:
    transactions = [
        make_transaction("T1", merchant_name="AirX", bin_number=1234),
        make_transaction("T2", product_name="Silver"),
        make_transaction("T3", amount=Decimal("12.34")),
    ]
    engine = _engine()

    first = engine.calculate_all(transactions, reference_store)
    second = engine.calculate_all(transactions, reference_store)

    assert [rebate.to_dict() for rebate in first.calculated_rebates] == [
        rebate.to_dict() for rebate in second.calculated_rebates
    ]
    assert first.unmatched == second.unmatched


def test_missing_rate_table_is_reported_once() -> None:
    store = ReferenceDataStore()
    store.replace_table(TableId.CARD_NETWORK_MONTHLY, [CardNetworkRateRow("P1", "Gold", monthly_rates=rates("1"))])

    result = _engine().calculate_all([make_transaction("T1"), make_transaction("T2")], store)

    configuration_errors = [error for error in result.errors if isinstance(error, ConfigurationError)]
    assert len(configuration_errors) == 1
    assert configuration_errors[0].table_id == "partner_payment_monthly"
    assert len(result.calculated_rebates) == 2


def test_empty_inputs_produce_empty_result() -> None:
    result = _engine().calculate_all([], ReferenceDataStore())

    assert result.calculated_rebates == []
    assert result.unmatched == []
    assert result.errors == []


def test_empty_store_reports_configuration_and_no_matches() -> None:
    result = _engine().calculate_all([make_transaction("T1")], ReferenceDataStore())

    assert result.calculated_rebates == []
    assert result.unmatched == ["T1"]
    assert {error.table_id for error in result.errors} == {"card_network_monthly", "partner_payment_monthly"}


def test_invalid_calls_raise() -> None:
    engine = _engine()

    with pytest.raises(TypeError):
        engine.calculate_all(None, ReferenceDataStore())  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        engine.calculate_all([], None)  # type: ignore[arg-type]
    with pytest.raises(TypeError):
        engine.calculate_all([{"transaction_id": "T1"}], ReferenceDataStore())  # type: ignore[list-item]
    with pytest.raises(ValueError):
        CalculationEngine(default_rebate_level=9)


def test_module_level_calculate_all_uses_settings(reference_store: ReferenceDataStore) -> None:
    settings = Settings(_env_file=None, rate_period="monthly", default_rebate_level=1, enable_metrics=False)

    result = calculate_all([make_transaction("T1")], reference_store.snapshot(), settings=settings)

    assert result.period is RatePeriod.MONTHLY
    assert result.calculated_rebates[0].rebate_amount == Decimal("25.00")


def test_partner_payment_only_transaction(reference_store: ReferenceDataStore) -> None:
    reference_store.replace_table(
        TableId.PARTNER_PAYMENT_MONTHLY,
        [PartnerPaymentRateRow("partnerpay", "Silver", "", "", monthly_rates=rates("0.8"))],
    )

    result = _engine().calculate_all([make_transaction("T1", product_name="Silver")], reference_store)

    assert [rebate.calculation_type for rebate in result.calculated_rebates] == [CalculationType.PARTNER_PAYMENT]
    assert result.calculated_rebates[0].rebate_amount == Decimal("8.00")
