"""Pydantic schemas package."""

from .imports import (
    AirlineImport,
    CardNetworkRateImport,
    PartnerPaymentRateImport,
    ProviderOverrideImport,
    RegionCountryImport,
    TransactionImport,
    parse_amount,
    parse_date,
    parse_percentage,
    product_for_partner_bin,
    rate_columns,
)

__all__ = [
    "AirlineImport",
    "CardNetworkRateImport",
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
