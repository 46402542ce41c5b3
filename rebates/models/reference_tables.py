"""Reference table ORM models: rate tables, special cases and airlines."""
from __future__ import annotations

from sqlalchemy import Enum as SAEnum
from sqlalchemy import Index, Integer, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from rebates.models.base import Base, RatesMixin, TimestampMixin
from rebates.services.records import RatePeriod, SpecialCaseType


class CardNetworkRate(RatesMixin, TimestampMixin, Base):
    __tablename__ = "card_network_rates"
    __table_args__ = (
        Index("ix_card_network_rates_key", "period", "provider_code", "product_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    period: Mapped[RatePeriod] = mapped_column(SAEnum(RatePeriod, name="rate_period"), nullable=False)
    provider_code: Mapped[str] = mapped_column(String(64), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_name: Mapped[str | None] = mapped_column(String(255))
    master_account: Mapped[str | None] = mapped_column(String(255))


class PartnerPaymentRate(RatesMixin, TimestampMixin, Base):
    __tablename__ = "partner_payment_rates"
    __table_args__ = (
        Index("ix_partner_payment_rates_key", "period", "provider_code", "product_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    period: Mapped[RatePeriod] = mapped_column(SAEnum(RatePeriod, name="rate_period"), nullable=False)
    provider_code: Mapped[str] = mapped_column(String(64), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    airline: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    bin_pattern: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    master_account: Mapped[str | None] = mapped_column(String(255))


class SpecialCaseRule(RatesMixin, TimestampMixin, Base):
    """Region/country or provider override rule; ``conditions`` maps transaction fields to values."""

    __tablename__ = "special_case_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    provider_code: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    rule_type: Mapped[SpecialCaseType] = mapped_column(
        SAEnum(SpecialCaseType, name="special_case_type"), nullable=False
    )
    conditions: Mapped[dict | None] = mapped_column(JSON)


class AirlineMcc(TimestampMixin, Base):
    __tablename__ = "airlines_mcc"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    airline_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mcc_code: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    airline_code: Mapped[str | None] = mapped_column(String(16))


__all__ = ["AirlineMcc", "CardNetworkRate", "PartnerPaymentRate", "SpecialCaseRule"]
