"""Imported card transaction ORM model."""
from __future__ import annotations

from datetime import date

from sqlalchemy import BigInteger, Date, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from rebates.models.base import Base, TimestampMixin


class Transaction(TimestampMixin, Base):
    """One row of the transaction export, kept in import order."""

    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_provider_product", "provider_code", "product_name"),
    )

    transaction_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    provider_code: Mapped[str] = mapped_column(String(64), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(18, 6), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    amount_eur: Mapped[float | None] = mapped_column(Numeric(18, 6))
    fx_rate: Mapped[float | None] = mapped_column(Numeric(18, 8))
    transaction_date: Mapped[date | None] = mapped_column(Date)
    card_type: Mapped[str | None] = mapped_column(String(64))
    card_number: Mapped[str | None] = mapped_column(String(32))
    transaction_type: Mapped[str | None] = mapped_column(String(64))
    funding_account_name: Mapped[str | None] = mapped_column(String(255))
    interchange_amount: Mapped[float | None] = mapped_column(Numeric(18, 2))
    interchange_percentage: Mapped[float | None] = mapped_column(Numeric(9, 4))
    merchant_name: Mapped[str | None] = mapped_column(String(255))
    transaction_merchant_name: Mapped[str | None] = mapped_column(String(255))
    merchant_country: Mapped[str | None] = mapped_column(String(64))
    merchant_category_code: Mapped[int | None] = mapped_column(Integer)
    bin_number: Mapped[int | None] = mapped_column(BigInteger)
    region: Mapped[str | None] = mapped_column(String(64))
    region_mc: Mapped[str | None] = mapped_column(String(64))
    pk_reference: Mapped[str | None] = mapped_column(String(128))
    rebate_level: Mapped[int | None] = mapped_column(Integer)


__all__ = ["Transaction"]
