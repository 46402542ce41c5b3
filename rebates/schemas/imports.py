"""Pydantic schemas for rows read from the rebate CSV exports."""
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from rebates.services.rates import to_decimal
from rebates.services.records import (
    AirlineRow,
    CardNetworkRateRow,
    PartnerPaymentRateRow,
    RatePeriod,
    SpecialCaseRow,
    SpecialCaseType,
    TransactionRecord,
)

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d.%m.%Y", "%Y/%m/%d")

PARTNER_PAY_TIER_PRODUCTS: tuple[tuple[str, str], ...] = (
    ("Tier 1", "B2B Wallet - Nium - Partner Pay 150"),
    ("Tier 2", "B2B Wallet - Nium - Partner Pay 125"),
    ("Tier 3", "B2B Wallet - Nium - Partner Pay 100"),
)
PARTNER_DIRECT_PRODUCT = "B2B Wallet - Nium - PartnerDirect"


def parse_percentage(value: Any) -> Decimal | None:
    """Parse a rebate percentage cell; blank and zero cells mean "no rate"."""

    percentage = to_decimal(value)
    if percentage is None or percentage == 0:
        return None
    return percentage


def parse_amount(value: Any) -> Decimal | None:
    return to_decimal(value)


def parse_date(value: Any) -> date | None:
    if value is None or isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognised date {text!r}")


def product_for_partner_bin(bin_label: str | None) -> str:
    """Derive the partner-payment product from a yearly file's BIN tier label."""

    label = bin_label or ""
    for tier, product in PARTNER_PAY_TIER_PRODUCTS:
        if tier in label:
            return product
    return PARTNER_DIRECT_PRODUCT


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class _ImportRow(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")


class _RatesMixin(BaseModel):
    monthly_rates: list[Decimal | None] = Field(default_factory=list, max_length=8)
    yearly_rates: list[Decimal | None] = Field(default_factory=list, max_length=8)

    @field_validator("monthly_rates", "yearly_rates", mode="before")
    @classmethod
    def _parse_rates(cls, value: Any) -> list[Decimal | None]:
        return [parse_percentage(item) for item in value or ()]


class TransactionImport(_ImportRow):
    transaction_id: str = Field(alias="Transaction Id", min_length=1)
    provider_code: str = Field(alias="Provider_Customer_Code__c", min_length=1)
    product_name: str = Field(alias="Salesforce product name", min_length=1)
    amount: Decimal = Field(alias="-Sum([Transaction Amount])")
    currency: str | None = Field(default=None, alias="Transaction Currency")
    amount_eur: Decimal | None = Field(default=None, alias="Transaction Amount in EUR")
    fx_rate: Decimal | None = Field(default=None, alias="fx")
    transaction_date: date | None = Field(default=None, alias="Transaction Date")
    card_type: str | None = Field(default=None, alias="Transaction Card")
    card_number: str | None = Field(default=None, alias="Transaction Card Number")
    transaction_type: str | None = Field(default=None, alias="Transaction Type")
    funding_account_name: str | None = Field(default=None, alias="Funding Account Name")
    interchange_amount: Decimal | None = Field(default=None, alias="Sum([Interchange Amount])")
    interchange_percentage: Decimal | None = Field(default=None, alias="INTERCHANGE %")
    merchant_name: str | None = Field(default=None, alias="Merchant Name")
    transaction_merchant_name: str | None = Field(default=None, alias="Transaction Merchant Name")
    merchant_country: str | None = Field(default=None, alias="Transaction Merchant Country")
    merchant_category_code: int | None = Field(default=None, alias="Transaction Merchant Category Code")
    bin_number: int | None = Field(default=None, alias="BIN Card Number")
    region: str | None = Field(default=None, alias="Region")
    region_mc: str | None = Field(default=None, alias="Region MC")
    pk_reference: str | None = Field(default=None, alias="PK")
    rebate_level: int | None = Field(default=None, alias="Rebate Level", ge=1, le=8)

    @field_validator(
        "currency",
        "card_type",
        "card_number",
        "transaction_type",
        "funding_account_name",
        "merchant_name",
        "transaction_merchant_name",
        "merchant_country",
        "merchant_category_code",
        "bin_number",
        "region",
        "region_mc",
        "pk_reference",
        "rebate_level",
        mode="before",
    )
    @classmethod
    def _blank_optional(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: Any) -> Decimal:
        amount = parse_amount(value)
        return Decimal("0") if amount is None else amount

    @field_validator("amount_eur", "fx_rate", "interchange_amount", "interchange_percentage", mode="before")
    @classmethod
    def _parse_optional_amount(cls, value: Any) -> Decimal | None:
        return parse_amount(value)

    @field_validator("transaction_date", mode="before")
    @classmethod
    def _parse_date(cls, value: Any) -> date | None:
        return parse_date(value)

    def to_record(self) -> TransactionRecord:
        return TransactionRecord(
            transaction_id=self.transaction_id,
            provider_code=self.provider_code,
            product_name=self.product_name,
            amount=self.amount,
            currency=self.currency or "EUR",
            amount_eur=self.amount_eur,
            fx_rate=self.fx_rate,
            transaction_date=self.transaction_date,
            card_type=self.card_type,
            card_number=self.card_number,
            transaction_type=self.transaction_type,
            funding_account_name=self.funding_account_name,
            interchange_amount=self.interchange_amount,
            interchange_percentage=self.interchange_percentage,
            merchant_name=self.merchant_name,
            transaction_merchant_name=self.transaction_merchant_name,
            merchant_country=self.merchant_country,
            merchant_category_code=self.merchant_category_code,
            bin_number=self.bin_number,
            region=self.region,
            region_mc=self.region_mc,
            pk_reference=self.pk_reference,
            rebate_level=self.rebate_level,
        )


class CardNetworkRateImport(_ImportRow, _RatesMixin):
    provider_code: str = Field(alias="Provider Customer Code", min_length=1)
    product_name: str = Field(alias="Product Name", min_length=1)
    account_name: str | None = Field(default=None, alias="Account Name: Account Name")
    master_account: str | None = Field(default=None, alias="Account Name: Master Account")

    def to_row(self) -> CardNetworkRateRow:
        return CardNetworkRateRow(
            provider_code=self.provider_code,
            product_name=self.product_name,
            monthly_rates=tuple(self.monthly_rates),
            yearly_rates=tuple(self.yearly_rates),
            account_name=self.account_name or None,
            master_account=self.master_account or None,
        )


class PartnerPaymentRateImport(_ImportRow, _RatesMixin):
    product_name: str | None = Field(default=None, alias="Product Name")
    airline: str = Field(default="", alias="Partner Pay Airline: Account Name")
    bin_pattern: str = Field(default="", alias="PartnerPay/PartnerDirect BIN")
    master_account: str | None = Field(default=None, alias="Account Name: Master Account")

    @model_validator(mode="after")
    def _derive_product(self) -> "PartnerPaymentRateImport":
        if not self.product_name:
            self.product_name = product_for_partner_bin(self.bin_pattern)
        return self

    def to_row(self, provider_code: str) -> PartnerPaymentRateRow:
        return PartnerPaymentRateRow(
            provider_code=provider_code,
            product_name=self.product_name or PARTNER_DIRECT_PRODUCT,
            airline=self.airline,
            bin_pattern=self.bin_pattern,
            monthly_rates=tuple(self.monthly_rates),
            yearly_rates=tuple(self.yearly_rates),
            master_account=self.master_account or None,
        )


class RegionCountryImport(_ImportRow, _RatesMixin):
    provider_code: str = Field(
        validation_alias=AliasChoices("Provider_Customer_Code", "Provider Customer Code", "ProviderCustomerCode"),
        min_length=1,
    )
    product_name: str = Field(
        default="", validation_alias=AliasChoices("Product_Name", "Product Name", "ProductName")
    )
    region_mc: str = Field(default="", validation_alias=AliasChoices("Region_MC", "Region MC", "RegionMC"))
    merchant_country: str = Field(
        default="",
        validation_alias=AliasChoices(
            "Transaction Merchant Country", "TransactionMerchantCountry", "Merchant Country"
        ),
    )

    def to_row(self) -> SpecialCaseRow:
        return SpecialCaseRow(
            provider_code=self.provider_code,
            rule_type=SpecialCaseType.REGION_COUNTRY,
            conditions={
                "product_name": self.product_name,
                "region_mc": self.region_mc,
                "merchant_country": self.merchant_country,
            },
            monthly_rates=tuple(self.monthly_rates),
            yearly_rates=tuple(self.yearly_rates),
        )


class ProviderOverrideImport(_ImportRow, _RatesMixin):
    provider_code: str = Field(
        validation_alias=AliasChoices("Provider_Customer_Code", "Provider Customer Code"), min_length=1
    )
    product_name: str = Field(default="", validation_alias=AliasChoices("Product_Name", "Product Name"))

    def to_row(self) -> SpecialCaseRow:
        conditions = {"product_name": self.product_name} if self.product_name else {}
        return SpecialCaseRow(
            provider_code=self.provider_code,
            rule_type=SpecialCaseType.PROVIDER_OVERRIDE,
            conditions=conditions,
            monthly_rates=tuple(self.monthly_rates),
            yearly_rates=tuple(self.yearly_rates),
        )


class AirlineImport(_ImportRow):
    airline_name: str = Field(
        validation_alias=AliasChoices("Partner Pay Airline: Account Name", "Airline Name", "Airline"),
        min_length=1,
    )
    mcc_code: str = Field(
        validation_alias=AliasChoices("Transaction Merchant Category Code", "MCC Code", "MCC"),
        min_length=1,
    )
    airline_code: str | None = Field(default=None, validation_alias=AliasChoices("Airline Code", "IATA Code"))

    def to_row(self) -> AirlineRow:
        return AirlineRow(
            airline_name=self.airline_name,
            mcc_code=self.mcc_code,
            airline_code=self.airline_code or None,
        )


def rate_columns(period: RatePeriod) -> tuple[str, ...]:
    suffix = "Monthly" if RatePeriod(period) is RatePeriod.MONTHLY else "Yearly"
    return tuple(f"Rebate {level} {suffix}" for level in range(1, 9))


__all__ = [
    "AirlineImport",
    "CardNetworkRateImport",
    "PARTNER_DIRECT_PRODUCT",
    "PARTNER_PAY_TIER_PRODUCTS",
    "PartnerPaymentRateImport",
    "ProviderOverrideImport",
    "RegionCountryImport",
    "TransactionImport",
    "parse_amount",
    "parse_date",
    "parse_percentage",
    "product_for_partner_bin",
    "rate_columns",
]
