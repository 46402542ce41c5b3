from __future__ import annotations

from collections.abc import Callable, Iterator
from decimal import Decimal
from pathlib import Path
import sys
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from rebates.core.config import Settings
from rebates.models import Base
from rebates.services.records import (
    CardNetworkRateRow,
    PartnerPaymentRateRow,
    TableId,
    TransactionRecord,
)
from rebates.services.reference_data import ReferenceDataStore

DATABASE_URL = "sqlite+pysqlite:///:memory:"


engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db_session() -> Iterator[Session]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


def make_transaction(transaction_id: str = "T1", **overrides: Any) -> TransactionRecord:
    values: dict[str, Any] = {
        "transaction_id": transaction_id,
        "provider_code": "P1",
        "product_name": "Gold",
        "amount": Decimal("1000.00"),
    }
    values.update(overrides)
    return TransactionRecord(**values)


def rates(*values: str | None) -> tuple[Decimal | None, ...]:
    return tuple(None if value is None else Decimal(value) for value in values)


@pytest.fixture()
def transaction_factory() -> Callable[..., TransactionRecord]:
    return make_transaction


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url=DATABASE_URL,
        reporting_year=2024,
        reporting_month=7,
        rate_period="monthly",
        enable_metrics=False,
    )


@pytest.fixture()
def reference_store() -> ReferenceDataStore:
    """Monthly card-network and partner-payment tables used by most engine tests."""

    store = ReferenceDataStore()
    store.replace_table(
        TableId.CARD_NETWORK_MONTHLY,
        [CardNetworkRateRow("P1", "Gold", monthly_rates=rates("2.5"))],
    )
    store.replace_table(
        TableId.PARTNER_PAYMENT_MONTHLY,
        [
            PartnerPaymentRateRow("P1", "Gold", "AirX", "1234", monthly_rates=rates("1.5")),
            PartnerPaymentRateRow("P1", "Gold", "AirX", "5678", monthly_rates=rates("1.75")),
        ],
    )
    return store
