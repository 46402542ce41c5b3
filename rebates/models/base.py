"""Declarative base and shared columns for the rebate tables."""
from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from rebates.services.records import Rates, normalize_rates


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


def encode_rates(rates: Iterable[Decimal | None]) -> list[str | None]:
    """Store percentages as strings so JSON keeps their exact decimal digits."""
    return [None if rate is None else str(rate) for rate in rates]


class RatesMixin:
    """Eight-slot monthly and yearly rebate percentages."""

    monthly_rates: Mapped[list | None] = mapped_column(JSON)
    yearly_rates: Mapped[list | None] = mapped_column(JSON)

    def decoded_rates(self) -> tuple[Rates, Rates]:
        return normalize_rates(self.monthly_rates), normalize_rates(self.yearly_rates)


__all__ = ["Base", "RatesMixin", "TimestampMixin", "encode_rates"]
