"""ORM models package."""
from .base import Base, RatesMixin, TimestampMixin
from .calculation import CalculationRun, RebateRecord
from .reference_tables import AirlineMcc, CardNetworkRate, PartnerPaymentRate, SpecialCaseRule
from .transaction import Transaction

__all__ = [
    "AirlineMcc",
    "Base",
    "CalculationRun",
    "CardNetworkRate",
    "PartnerPaymentRate",
    "RatesMixin",
    "RebateRecord",
    "SpecialCaseRule",
    "TimestampMixin",
    "Transaction",
]
