from __future__ import annotations

import pytest

from conftest import rates
from rebates.services.errors import ValidationError
from rebates.services.records import (
    AirlineRow,
    CardNetworkRateRow,
    PartnerPaymentRateRow,
    SpecialCaseRow,
    SpecialCaseType,
    TableId,
)
from rebates.services.reference_data import ReferenceDataStore, normalize_bin, validate_rows


def test_lookup_returns_row_for_exact_key() -> None:
    store = ReferenceDataStore()
    row = CardNetworkRateRow("P1", "Gold", monthly_rates=rates("2.5"))
    store.replace_table(TableId.CARD_NETWORK_MONTHLY, [row])

    assert store.lookup(TableId.CARD_NETWORK_MONTHLY, ("P1", "Gold")) == row
    assert store.lookup("card_network_monthly", (" P1 ", "Gold")) == row


def test_lookup_returns_none_when_missing_or_not_imported() -> None:
    store = ReferenceDataStore()
    store.replace_table(TableId.CARD_NETWORK_MONTHLY, [CardNetworkRateRow("P1", "Gold")])

    assert store.lookup(TableId.CARD_NETWORK_MONTHLY, ("P1", "Silver")) is None
    assert store.lookup(TableId.CARD_NETWORK_YEARLY, ("P1", "Gold")) is None
    assert not store.is_loaded(TableId.CARD_NETWORK_YEARLY)


def test_lookup_rejects_wrong_key_length() -> None:
    store = ReferenceDataStore()
    store.replace_table(TableId.CARD_NETWORK_MONTHLY, [CardNetworkRateRow("P1", "Gold")])

    with pytest.raises(ValueError):
        store.lookup(TableId.CARD_NETWORK_MONTHLY, ("P1",))


def test_replace_table_rejects_missing_join_key() -> None:
    store = ReferenceDataStore()
    rows = [CardNetworkRateRow("P1", "Gold"), CardNetworkRateRow("P2", "  ")]

    with pytest.raises(ValidationError) as excinfo:
        store.replace_table(TableId.CARD_NETWORK_MONTHLY, rows)

    assert excinfo.value.row_index == 1
    assert excinfo.value.field == "product_name"
    assert excinfo.value.table_id == "card_network_monthly"
    assert not store.is_loaded(TableId.CARD_NETWORK_MONTHLY)


def test_replace_table_rejects_rows_of_another_table() -> None:
    store = ReferenceDataStore()

    with pytest.raises(ValidationError):
        store.replace_table(TableId.CARD_NETWORK_MONTHLY, [AirlineRow("Air Europa", "4511")])

    with pytest.raises(TypeError):
        store.replace_table(TableId.CARD_NETWORK_MONTHLY, None)  # type: ignore[arg-type]


def test_failed_replace_keeps_previous_table() -> None:
    store = ReferenceDataStore()
    original = CardNetworkRateRow("P1", "Gold", monthly_rates=rates("2.5"))
    store.replace_table(TableId.CARD_NETWORK_MONTHLY, [original])

    with pytest.raises(ValidationError):
        store.replace_table(
            TableId.CARD_NETWORK_MONTHLY,
            [CardNetworkRateRow("P9", "Platinum"), CardNetworkRateRow("", "Gold")],
        )

    assert store.rows(TableId.CARD_NETWORK_MONTHLY) == (original,)
    assert store.lookup(TableId.CARD_NETWORK_MONTHLY, ("P9", "Platinum")) is None


def test_snapshot_sees_old_rows_after_replace() -> None:
    store = ReferenceDataStore()
    old_rows = [CardNetworkRateRow("P1", "Gold"), CardNetworkRateRow("P2", "Gold")]
    new_rows = [CardNetworkRateRow("P3", "Gold")]
    store.replace_table(TableId.CARD_NETWORK_MONTHLY, old_rows)
    snapshot = store.snapshot()

    store.replace_table(TableId.CARD_NETWORK_MONTHLY, new_rows)

    assert snapshot.rows(TableId.CARD_NETWORK_MONTHLY) == tuple(old_rows)
    assert store.rows(TableId.CARD_NETWORK_MONTHLY) == tuple(new_rows)
    assert store.lookup(TableId.CARD_NETWORK_MONTHLY, ("P1", "Gold")) is None


def test_later_duplicate_key_wins() -> None:
    store = ReferenceDataStore()
    first = CardNetworkRateRow("P1", "Gold", monthly_rates=rates("1"))
    second = CardNetworkRateRow("P1", "Gold", monthly_rates=rates("2"))

    count = store.replace_table(TableId.CARD_NETWORK_MONTHLY, [first, second])

    assert count == 1
    assert store.lookup(TableId.CARD_NETWORK_MONTHLY, ("P1", "Gold")) == second


def test_partner_rows_may_leave_airline_and_bin_blank() -> None:
    store = ReferenceDataStore()
    generic = PartnerPaymentRateRow("partnerpay", "PartnerDirect", "", "")

    store.replace_table(TableId.PARTNER_PAYMENT_YEARLY, [generic])

    assert store.lookup(TableId.PARTNER_PAYMENT_YEARLY, ("partnerpay", "PartnerDirect", "", "")) == generic


def test_partial_key_lookup_by_prefix_and_by_other_fields() -> None:
    store = ReferenceDataStore()
    first = PartnerPaymentRateRow("P1", "Gold", "AirX", "1234")
    second = PartnerPaymentRateRow("P1", "Gold", "AirX", "5678")
    third = PartnerPaymentRateRow("P1", "Silver", "AirY", "1234")
    store.replace_table(TableId.PARTNER_PAYMENT_MONTHLY, [first, second, third])

    table = TableId.PARTNER_PAYMENT_MONTHLY
    assert store.lookup_by_partial_key(table, {"provider_code": "P1", "product_name": "Gold"}) == (first, second)
    assert store.lookup_by_partial_key(table, {"provider_code": "P1"}) == (first, second, third)
    assert store.lookup_by_partial_key(table, {"bin_pattern": "1234"}) == (first, third)
    assert store.lookup_by_partial_key(table, {"provider_code": "P2"}) == ()
    assert store.lookup_by_partial_key(TableId.PARTNER_PAYMENT_YEARLY, {"provider_code": "P1"}) == ()


def test_partial_key_lookup_rejects_unknown_fields() -> None:
    store = ReferenceDataStore()
    store.replace_table(TableId.CARD_NETWORK_MONTHLY, [CardNetworkRateRow("P1", "Gold")])

    with pytest.raises(ValueError):
        store.lookup_by_partial_key(TableId.CARD_NETWORK_MONTHLY, {"airline": "AirX"})


def test_bin_labels_and_card_numbers_share_a_key() -> None:
    store = ReferenceDataStore()
    row = PartnerPaymentRateRow("partnerpay", "Partner Pay 150", "Air Europa", "Tier 1: 557062")
    store.replace_table(TableId.PARTNER_PAYMENT_YEARLY, [row])

    found = store.lookup(TableId.PARTNER_PAYMENT_YEARLY, ("partnerpay", "Partner Pay 150", "Air Europa", 5570621234))

    assert found == row


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("Tier 1: 557062", "557062"),
        (5570621234, "557062"),
        ("1234", "1234"),
        (" 12-34 ", "1234"),
        (None, ""),
    ],
)
def test_normalize_bin(value: object, expected: str) -> None:
    assert normalize_bin(value) == expected


def test_special_cases_keyed_by_provider_type_and_conditions() -> None:
    country = SpecialCaseRow(
        "P3", SpecialCaseType.REGION_COUNTRY, {"region_mc": "EEA", "merchant_country": "ES"}
    )
    override = SpecialCaseRow("P3", SpecialCaseType.PROVIDER_OVERRIDE)

    validated = validate_rows(TableId.SPECIAL_CASES, [country, override, override])

    assert validated == (country, override)
    assert country.condition("merchant_country") == "ES"
    assert country.condition("product_name") is None
