"""Database persistence for transactions, reference tables and calculation results."""
from __future__ import annotations

import logging
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from rebates.models import (
    AirlineMcc,
    CalculationRun,
    CardNetworkRate,
    PartnerPaymentRate,
    RatesMixin,
    RebateRecord,
    SpecialCaseRule,
    Transaction,
)
from rebates.models.base import encode_rates
from rebates.services.calculator import CalculationResult
from rebates.services.records import (
    AirlineRow,
    CalculatedRebate,
    CardNetworkRateRow,
    PartnerPaymentRateRow,
    Rates,
    ReferenceRow,
    SpecialCaseRow,
    TableId,
    TableKind,
    TransactionRecord,
)
from rebates.services.reference_data import ReferenceDataStore, validate_rows
from rebates.services.transactions import TransactionSet

logger = logging.getLogger(__name__)

_TRANSACTION_FIELDS = (
    "transaction_id",
    "provider_code",
    "product_name",
    "amount",
    "currency",
    "amount_eur",
    "fx_rate",
    "transaction_date",
    "card_type",
    "card_number",
    "transaction_type",
    "funding_account_name",
    "interchange_amount",
    "interchange_percentage",
    "merchant_name",
    "transaction_merchant_name",
    "merchant_country",
    "merchant_category_code",
    "bin_number",
    "region",
    "region_mc",
    "pk_reference",
    "rebate_level",
)


def _decimal(value: Any) -> Decimal | None:
    if value is None or isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _decoded_rates(record: RatesMixin) -> dict[str, Rates]:
    monthly, yearly = record.decoded_rates()
    return {"monthly_rates": monthly, "yearly_rates": yearly}


class RebateRepository:
    """Stores imports and results; every ``replace_*`` clears the target before inserting.

    Writes are flushed but not committed so that the caller's session scope
    decides whether a clear-and-insert becomes visible.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    def replace_transactions(self, transactions: Iterable[TransactionRecord]) -> int:
        self._session.execute(delete(Transaction))
        count = 0
        for sequence, record in enumerate(transactions):
            values = {name: getattr(record, name) for name in _TRANSACTION_FIELDS}
            self._session.add(Transaction(sequence=sequence, **values))
            count += 1
        self._session.flush()
        logger.info("replaced transactions", extra={"rows": count})
        return count

    def load_transactions(self) -> TransactionSet:
        statement = select(Transaction).order_by(Transaction.sequence)
        transactions = TransactionSet()
        for row in self._session.scalars(statement):
            values = {name: getattr(row, name) for name in _TRANSACTION_FIELDS}
            for name in ("amount", "amount_eur", "fx_rate", "interchange_amount", "interchange_percentage"):
                values[name] = _decimal(values[name])
            transactions.add(TransactionRecord(**values))
        return transactions

    def replace_reference_table(self, table_id: TableId | str, rows: Iterable[ReferenceRow]) -> int:
        """Validate ``rows`` and store them as the only contents of ``table_id``."""

        table_id = TableId(table_id)
        validated = validate_rows(table_id, rows)
        kind = table_id.kind

        if kind is TableKind.CARD_NETWORK:
            self._session.execute(delete(CardNetworkRate).where(CardNetworkRate.period == table_id.period))
            self._session.add_all(
                CardNetworkRate(
                    period=table_id.period,
                    provider_code=row.provider_code,
                    product_name=row.product_name,
                    account_name=row.account_name,
                    master_account=row.master_account,
                    monthly_rates=encode_rates(row.monthly_rates),
                    yearly_rates=encode_rates(row.yearly_rates),
                )
                for row in validated
            )
        elif kind is TableKind.PARTNER_PAYMENT:
            self._session.execute(delete(PartnerPaymentRate).where(PartnerPaymentRate.period == table_id.period))
            self._session.add_all(
                PartnerPaymentRate(
                    period=table_id.period,
                    provider_code=row.provider_code,
                    product_name=row.product_name,
                    airline=row.airline or "",
                    bin_pattern=row.bin_pattern or "",
                    master_account=row.master_account,
                    monthly_rates=encode_rates(row.monthly_rates),
                    yearly_rates=encode_rates(row.yearly_rates),
                )
                for row in validated
            )
        elif kind is TableKind.SPECIAL_CASES:
            self._session.execute(delete(SpecialCaseRule))
            self._session.add_all(
                SpecialCaseRule(
                    provider_code=row.provider_code,
                    rule_type=row.rule_type,
                    conditions=dict(row.conditions),
                    monthly_rates=encode_rates(row.monthly_rates),
                    yearly_rates=encode_rates(row.yearly_rates),
                )
                for row in validated
            )
        else:
            self._session.execute(delete(AirlineMcc))
            self._session.add_all(
                AirlineMcc(airline_name=row.airline_name, mcc_code=row.mcc_code, airline_code=row.airline_code)
                for row in validated
            )
        self._session.flush()
        logger.info("stored reference table", extra={"table_id": table_id.value, "rows": len(validated)})
        return len(validated)

    def reference_rows(self, table_id: TableId | str) -> list[ReferenceRow]:
        table_id = TableId(table_id)
        kind = table_id.kind
        if kind is TableKind.CARD_NETWORK:
            statement = (
                select(CardNetworkRate)
                .where(CardNetworkRate.period == table_id.period)
                .order_by(CardNetworkRate.id)
            )
            return [
                CardNetworkRateRow(
                    provider_code=row.provider_code,
                    product_name=row.product_name,
                    **_decoded_rates(row),
                    account_name=row.account_name,
                    master_account=row.master_account,
                )
                for row in self._session.scalars(statement)
            ]
        if kind is TableKind.PARTNER_PAYMENT:
            statement = (
                select(PartnerPaymentRate)
                .where(PartnerPaymentRate.period == table_id.period)
                .order_by(PartnerPaymentRate.id)
            )
            return [
                PartnerPaymentRateRow(
                    provider_code=row.provider_code,
                    product_name=row.product_name,
                    airline=row.airline,
                    bin_pattern=row.bin_pattern,
                    **_decoded_rates(row),
                    master_account=row.master_account,
                )
                for row in self._session.scalars(statement)
            ]
        if kind is TableKind.SPECIAL_CASES:
            return [
                SpecialCaseRow(
                    provider_code=row.provider_code,
                    rule_type=row.rule_type,
                    conditions=row.conditions or {},
                    **_decoded_rates(row),
                )
                for row in self._session.scalars(select(SpecialCaseRule).order_by(SpecialCaseRule.id))
            ]
        return [
            AirlineRow(airline_name=row.airline_name, mcc_code=row.mcc_code, airline_code=row.airline_code)
            for row in self._session.scalars(select(AirlineMcc).order_by(AirlineMcc.id))
        ]

    def load_reference_data(self, store: ReferenceDataStore | None = None) -> ReferenceDataStore:
        """Rebuild a store from the database; tables without rows are left unloaded."""

        store = store if store is not None else ReferenceDataStore()
        for table_id in TableId:
            rows = self.reference_rows(table_id)
            if rows:
                store.replace_table(table_id, rows)
        return store

    def save_calculation(self, result: CalculationResult, *, reporting_period: str | None = None) -> CalculationRun:
        """Persist ``result`` as the current set of calculated rebates."""

        self._session.execute(delete(RebateRecord))
        run = CalculationRun(
            id=result.run_id,
            period=result.period,
            reporting_period=reporting_period,
            transactions_processed=result.transactions_processed,
            rebate_count=len(result.calculated_rebates),
            unmatched_count=len(result.unmatched),
            error_count=len(result.errors),
            ambiguous_count=len(result.ambiguous_matches),
            unmatched=list(result.unmatched),
            errors=[str(error) for error in result.errors],
        )
        self._session.add(run)
        self._session.flush()
        self._session.add_all(
            RebateRecord(
                run_id=run.id,
                sequence=sequence,
                transaction_id=rebate.transaction_id,
                provider_code=rebate.provider_code,
                product_name=rebate.product_name,
                rebate_level=rebate.rebate_level,
                rebate_percentage=rebate.rebate_percentage,
                rebate_amount=rebate.rebate_amount,
                rebate_amount_eur=rebate.rebate_amount_eur,
                calculation_type=rebate.calculation_type,
                currency=rebate.currency,
            )
            for sequence, rebate in enumerate(result.calculated_rebates)
        )
        self._session.flush()
        logger.info(
            "stored calculation run",
            extra={"run_id": run.id, "rebates": run.rebate_count, "reporting_period": reporting_period},
        )
        return run

    def load_calculated_rebates(self) -> list[CalculatedRebate]:
        statement = select(RebateRecord).order_by(RebateRecord.sequence)
        return [
            CalculatedRebate(
                transaction_id=row.transaction_id,
                provider_code=row.provider_code,
                product_name=row.product_name,
                rebate_level=row.rebate_level,
                rebate_percentage=_decimal(row.rebate_percentage),
                rebate_amount=_decimal(row.rebate_amount),
                rebate_amount_eur=_decimal(row.rebate_amount_eur),
                calculation_type=row.calculation_type,
                currency=row.currency,
            )
            for row in self._session.scalars(statement)
        ]

    def latest_run(self) -> CalculationRun | None:
        statement = select(CalculationRun).order_by(CalculationRun.created_at.desc()).limit(1)
        return self._session.scalars(statement).first()


__all__ = ["RebateRepository"]
