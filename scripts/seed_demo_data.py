"""Seed script for demo transactions and reference tables."""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from rebates.db.session import SessionLocal, engine
from rebates.models import Base
from rebates.services.persistence import RebateRepository
from rebates.services.records import (
    AirlineRow,
    CardNetworkRateRow,
    PartnerPaymentRateRow,
    SpecialCaseRow,
    SpecialCaseType,
    TableId,
    TransactionRecord,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

PARTNER_PROVIDER = "partnerpay"


def _rates(*values: str) -> tuple[Decimal, ...]:
    return tuple(Decimal(value) for value in values)


def demo_reference_tables() -> dict[TableId, list]:
    return {
        TableId.CARD_NETWORK_YEARLY: [
            CardNetworkRateRow("P1", "Gold", yearly_rates=_rates("2.5", "2.75", "3")),
            CardNetworkRateRow("P2", "Business Visa", yearly_rates=_rates("1.2")),
        ],
        TableId.CARD_NETWORK_MONTHLY: [
            CardNetworkRateRow("P1", "Gold", monthly_rates=_rates("0.25")),
        ],
        TableId.PARTNER_PAYMENT_YEARLY: [
            PartnerPaymentRateRow(
                PARTNER_PROVIDER,
                "B2B Wallet - Nium - Partner Pay 150",
                "Air Europa",
                "Tier 1: 557062",
                yearly_rates=_rates("1.5"),
            ),
            PartnerPaymentRateRow(
                PARTNER_PROVIDER, "B2B Wallet - Nium - PartnerDirect", "", "", yearly_rates=_rates("0.8")
            ),
        ],
        TableId.SPECIAL_CASES: [
            SpecialCaseRow(
                "P3",
                SpecialCaseType.REGION_COUNTRY,
                {"product_name": "Gold", "region_mc": "EEA", "merchant_country": "ES"},
                yearly_rates=_rates("4"),
            ),
            SpecialCaseRow("VP01", SpecialCaseType.PROVIDER_OVERRIDE, yearly_rates=_rates("3.1")),
        ],
        TableId.AIRLINES: [
            AirlineRow("Air Europa", "4511", "UX"),
            AirlineRow("Icelandair", "4511", "FI"),
        ],
    }


def demo_transactions() -> list[TransactionRecord]:
    return [
        TransactionRecord("T1", "P1", "Gold", Decimal("1000.00"), transaction_date=date(2024, 7, 1)),
        TransactionRecord(
            "T2",
            "P9",
            "B2B Wallet - Nium - Partner Pay 150",
            Decimal("420.50"),
            currency="USD",
            fx_rate=Decimal("0.92"),
            merchant_name="Air Europa",
            merchant_category_code=4511,
            bin_number=557062,
        ),
        TransactionRecord(
            "T3", "P3", "Gold", Decimal("250.00"), region_mc="EEA", merchant_country="ES", rebate_level=1
        ),
        TransactionRecord("T4", "VP01", "Voyage Prive Card", Decimal("99.99")),
        TransactionRecord("T5", "P7", "Unknown Product", Decimal("10.00")),
    ]


def seed(session: Session) -> None:
    """Replace the stored demo transactions and reference tables."""

    repository = RebateRepository(session)
    count = repository.replace_transactions(demo_transactions())
    logger.info("Stored %s demo transactions", count)
    for table_id, rows in demo_reference_tables().items():
        stored = repository.replace_reference_table(table_id, rows)
        logger.info("Stored %s rows in %s", stored, table_id.value)


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as session:
        seed(session)
        session.commit()


if __name__ == "__main__":
    main()
