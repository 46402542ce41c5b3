"""Record types shared by the reference store, matcher and calculation engine."""
from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, ClassVar

REBATE_LEVELS: tuple[int, ...] = (1, 2, 3, 4, 5, 6, 7, 8)

Rates = tuple[Decimal | None, ...]
EMPTY_RATES: Rates = (None,) * len(REBATE_LEVELS)


class CalculationType(str, enum.Enum):
    REGION_COUNTRY = "region-country"
    SPECIAL_CASE = "special-case"
    CARD_NETWORK = "card-network"
    PARTNER_PAYMENT = "partner-payment"


class RatePeriod(str, enum.Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SpecialCaseType(str, enum.Enum):
    REGION_COUNTRY = "region_country"
    PROVIDER_OVERRIDE = "provider_override"


class TableKind(str, enum.Enum):
    CARD_NETWORK = "card_network"
    PARTNER_PAYMENT = "partner_payment"
    SPECIAL_CASES = "special_cases"
    AIRLINES = "airlines"


class TableId(str, enum.Enum):
    """Import slots held by the reference data store."""

    CARD_NETWORK_MONTHLY = "card_network_monthly"
    CARD_NETWORK_YEARLY = "card_network_yearly"
    PARTNER_PAYMENT_MONTHLY = "partner_payment_monthly"
    PARTNER_PAYMENT_YEARLY = "partner_payment_yearly"
    SPECIAL_CASES = "special_cases"
    AIRLINES = "airlines"

    @property
    def kind(self) -> TableKind:
        if self in (TableId.CARD_NETWORK_MONTHLY, TableId.CARD_NETWORK_YEARLY):
            return TableKind.CARD_NETWORK
        if self in (TableId.PARTNER_PAYMENT_MONTHLY, TableId.PARTNER_PAYMENT_YEARLY):
            return TableKind.PARTNER_PAYMENT
        if self is TableId.SPECIAL_CASES:
            return TableKind.SPECIAL_CASES
        return TableKind.AIRLINES

    @property
    def period(self) -> RatePeriod | None:
        if self in (TableId.CARD_NETWORK_MONTHLY, TableId.PARTNER_PAYMENT_MONTHLY):
            return RatePeriod.MONTHLY
        if self in (TableId.CARD_NETWORK_YEARLY, TableId.PARTNER_PAYMENT_YEARLY):
            return RatePeriod.YEARLY
        return None

    @classmethod
    def rate_table(cls, kind: TableKind, period: RatePeriod) -> "TableId":
        """Return the monthly or yearly slot for a rate table kind."""

        slots = {
            (TableKind.CARD_NETWORK, RatePeriod.MONTHLY): cls.CARD_NETWORK_MONTHLY,
            (TableKind.CARD_NETWORK, RatePeriod.YEARLY): cls.CARD_NETWORK_YEARLY,
            (TableKind.PARTNER_PAYMENT, RatePeriod.MONTHLY): cls.PARTNER_PAYMENT_MONTHLY,
            (TableKind.PARTNER_PAYMENT, RatePeriod.YEARLY): cls.PARTNER_PAYMENT_YEARLY,
        }
        try:
            return slots[(kind, period)]
        except KeyError as exc:
            raise ValueError(f"'{kind.value}' has no {period.value} rate table") from exc


def _decimal_or_none(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def normalize_rates(values: Iterable[Any] | None) -> Rates:
    """Pad a sequence of up to eight percentages into a fixed-size tuple."""

    if values is None:
        return EMPTY_RATES
    rates = [_decimal_or_none(value) for value in values]
    if len(rates) > len(REBATE_LEVELS):
        raise ValueError(f"At most {len(REBATE_LEVELS)} rebate levels are supported, got {len(rates)}")
    rates.extend([None] * (len(REBATE_LEVELS) - len(rates)))
    return tuple(rates)


class _RateRowMixin:
    __slots__ = ()

    monthly_rates: Rates
    yearly_rates: Rates

    def rates_for(self, period: RatePeriod) -> Rates:
        return self.monthly_rates if period is RatePeriod.MONTHLY else self.yearly_rates

    def _normalize_rate_fields(self) -> None:
        object.__setattr__(self, "monthly_rates", normalize_rates(self.monthly_rates))
        object.__setattr__(self, "yearly_rates", normalize_rates(self.yearly_rates))


@dataclass(frozen=True, slots=True)
class CardNetworkRateRow(_RateRowMixin):
    """Visa/Mastercard-style rebate rates keyed by provider and product."""

    KEY_FIELDS: ClassVar[tuple[str, ...]] = ("provider_code", "product_name")

    provider_code: str
    product_name: str
    monthly_rates: Rates = EMPTY_RATES
    yearly_rates: Rates = EMPTY_RATES
    account_name: str | None = None
    master_account: str | None = None

    def __post_init__(self) -> None:
        self._normalize_rate_fields()


@dataclass(frozen=True, slots=True)
class PartnerPaymentRateRow(_RateRowMixin):
    """Partner-payment rebate rates keyed by provider, product, airline and BIN."""

    KEY_FIELDS: ClassVar[tuple[str, ...]] = ("provider_code", "product_name", "airline", "bin_pattern")

    provider_code: str
    product_name: str
    airline: str
    bin_pattern: str
    monthly_rates: Rates = EMPTY_RATES
    yearly_rates: Rates = EMPTY_RATES
    master_account: str | None = None

    def __post_init__(self) -> None:
        self._normalize_rate_fields()


@dataclass(frozen=True, slots=True)
class SpecialCaseRow(_RateRowMixin):
    """Override rule evaluated against transaction fields before normal matching.

    ``conditions`` maps :class:`TransactionRecord` attribute names to the value
    they must hold. Region/country rules accept ``*`` or ``ALL`` as wildcards
    for ``region_mc`` and ``merchant_country``.
    """

    KEY_FIELDS: ClassVar[tuple[str, ...]] = ("provider_code", "rule_type", "conditions")

    provider_code: str
    rule_type: SpecialCaseType
    conditions: tuple[tuple[str, str], ...] = ()
    monthly_rates: Rates = EMPTY_RATES
    yearly_rates: Rates = EMPTY_RATES

    def __post_init__(self) -> None:
        object.__setattr__(self, "rule_type", SpecialCaseType(self.rule_type))
        conditions = self.conditions
        if isinstance(conditions, Mapping):
            conditions = conditions.items()
        object.__setattr__(
            self,
            "conditions",
            tuple(sorted((str(name), "" if value is None else str(value)) for name, value in conditions)),
        )
        self._normalize_rate_fields()

    def condition(self, name: str) -> str | None:
        for key, value in self.conditions:
            if key == name:
                return value
        return None


@dataclass(frozen=True, slots=True)
class AirlineRow:
    """Airline name and carrier code used to enrich MCC 4511 transactions."""

    KEY_FIELDS: ClassVar[tuple[str, ...]] = ("mcc_code", "airline_name")

    airline_name: str
    mcc_code: str
    airline_code: str | None = None

    @property
    def display_name(self) -> str:
        return f"{self.airline_name} ({self.airline_code})" if self.airline_code else self.airline_name


@dataclass(frozen=True, slots=True)
class TransactionRecord:
    """A single imported card transaction."""

    transaction_id: str
    provider_code: str
    product_name: str
    amount: Decimal
    currency: str = "EUR"
    amount_eur: Decimal | None = None
    fx_rate: Decimal | None = None
    transaction_date: date | None = None
    card_type: str | None = None
    card_number: str | None = None
    transaction_type: str | None = None
    funding_account_name: str | None = None
    interchange_amount: Decimal | None = None
    interchange_percentage: Decimal | None = None
    merchant_name: str | None = None
    transaction_merchant_name: str | None = None
    merchant_country: str | None = None
    merchant_category_code: int | None = None
    bin_number: int | None = None
    region: str | None = None
    region_mc: str | None = None
    pk_reference: str | None = None
    rebate_level: int | None = None

    @property
    def eur_amount(self) -> Decimal | None:
        """EUR value of the transaction, converted with ``fx_rate`` when not supplied."""

        if self.amount_eur is not None:
            return self.amount_eur
        if self.currency.upper() == "EUR":
            return self.amount
        if self.fx_rate is not None:
            return self.amount * self.fx_rate
        return None


@dataclass(frozen=True, slots=True)
class CalculatedRebate:
    transaction_id: str
    provider_code: str
    product_name: str
    rebate_level: int
    rebate_percentage: Decimal
    rebate_amount: Decimal
    rebate_amount_eur: Decimal | None
    calculation_type: CalculationType
    currency: str = "EUR"

    def to_dict(self) -> dict[str, Any]:
        return {
            "transaction_id": self.transaction_id,
            "provider_code": self.provider_code,
            "product_name": self.product_name,
            "rebate_level": self.rebate_level,
            "rebate_percentage": str(self.rebate_percentage),
            "rebate_amount": str(self.rebate_amount),
            "rebate_amount_eur": None if self.rebate_amount_eur is None else str(self.rebate_amount_eur),
            "calculation_type": self.calculation_type.value,
            "currency": self.currency,
        }


ReferenceRow = CardNetworkRateRow | PartnerPaymentRateRow | SpecialCaseRow | AirlineRow

ROW_TYPES: dict[TableKind, type] = {
    TableKind.CARD_NETWORK: CardNetworkRateRow,
    TableKind.PARTNER_PAYMENT: PartnerPaymentRateRow,
    TableKind.SPECIAL_CASES: SpecialCaseRow,
    TableKind.AIRLINES: AirlineRow,
}


__all__ = [
    "AirlineRow",
    "CalculatedRebate",
    "CalculationType",
    "CardNetworkRateRow",
    "EMPTY_RATES",
    "PartnerPaymentRateRow",
    "REBATE_LEVELS",
    "ROW_TYPES",
    "RatePeriod",
    "Rates",
    "ReferenceRow",
    "SpecialCaseRow",
    "SpecialCaseType",
    "TableId",
    "TableKind",
    "TransactionRecord",
    "normalize_rates",
]
