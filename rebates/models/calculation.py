"""Calculation run and calculated rebate ORM models."""
from __future__ import annotations

import uuid

from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Integer, JSON, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rebates.models.base import Base, TimestampMixin
from rebates.services.records import CalculationType, RatePeriod


class CalculationRun(TimestampMixin, Base):
    """Summary of one calculation run."""

    __tablename__ = "calculation_runs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    period: Mapped[RatePeriod] = mapped_column(SAEnum(RatePeriod, name="rate_period"), nullable=False)
    reporting_period: Mapped[str | None] = mapped_column(String(6))
    transactions_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rebate_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unmatched_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ambiguous_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unmatched: Mapped[list | None] = mapped_column(JSON)
    errors: Mapped[list | None] = mapped_column(JSON)

    rebates = relationship("RebateRecord", back_populates="run", cascade="all, delete-orphan")


class RebateRecord(Base):
    """A persisted calculated rebate; only the latest run's records are kept."""

    __tablename__ = "calculated_rebates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("calculation_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    transaction_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    provider_code: Mapped[str] = mapped_column(String(64), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    rebate_level: Mapped[int] = mapped_column(Integer, nullable=False)
    rebate_percentage: Mapped[float] = mapped_column(Numeric(12, 6), nullable=False)
    rebate_amount: Mapped[float] = mapped_column(Numeric(18, 2), nullable=False)
    rebate_amount_eur: Mapped[float | None] = mapped_column(Numeric(18, 2))
    calculation_type: Mapped[CalculationType] = mapped_column(
        SAEnum(CalculationType, name="calculation_type"), nullable=False
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")

    run = relationship("CalculationRun", back_populates="rebates")


__all__ = ["CalculationRun", "RebateRecord"]
