"""Calculation engine that turns transactions and reference tables into rebate records."""
from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from decimal import Decimal

from rebates.core.config import Settings, get_settings
from rebates.obs.metrics import (
    AMBIGUOUS_MATCH_COUNTER,
    CALCULATION_LATENCY_SECONDS,
    REBATES_CALCULATED_COUNTER,
    ROW_ERROR_COUNTER,
    UNMATCHED_TRANSACTIONS_COUNTER,
)
from rebates.obs.tracing import start_span
from rebates.services.errors import (
    AmbiguousMatchError,
    ConfigurationError,
    RebateError,
    ValidationError,
)
from rebates.services.matcher import DEFAULT_WILDCARDS, Matcher, MatchOutcome
from rebates.services.rates import RateSelector, SelectedRate, calculate_rebate_amount
from rebates.services.records import (
    REBATE_LEVELS,
    CalculatedRebate,
    CalculationType,
    RatePeriod,
    SpecialCaseType,
    TransactionRecord,
)
from rebates.services.reference_data import ReferenceDataSnapshot, ReferenceDataStore
from rebates.services.transactions import TransactionSet, validate_transaction

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CalculationResult:
    """Outcome of one calculation run.

    ``calculated_rebates`` follows transaction order, and within a transaction
    the order special case, card network, partner payment. ``unmatched`` lists
    valid transactions that produced no record. ``errors`` holds per-row
    validation problems and run-level configuration problems.
    """

    calculated_rebates: list[CalculatedRebate] = field(default_factory=list)
    unmatched: list[str] = field(default_factory=list)
    errors: list[RebateError] = field(default_factory=list)
    ambiguous_matches: list[AmbiguousMatchError] = field(default_factory=list)
    transactions_processed: int = 0
    period: RatePeriod = RatePeriod.YEARLY
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def matched_count(self) -> int:
        return len({rebate.transaction_id for rebate in self.calculated_rebates})

    def rebates_for(self, transaction_id: str) -> list[CalculatedRebate]:
        return [rebate for rebate in self.calculated_rebates if rebate.transaction_id == transaction_id]


@dataclass(frozen=True, slots=True)
class _TransactionOutcome:
    transaction_id: str
    rebates: tuple[CalculatedRebate, ...] = ()
    error: ValidationError | None = None
    ambiguities: tuple[AmbiguousMatchError, ...] = ()


class CalculationEngine:
    """Runs the special-case, card-network and partner-payment paths over a transaction set."""

    def __init__(
        self,
        period: RatePeriod | str = RatePeriod.YEARLY,
        *,
        default_rebate_level: int = 1,
        emit_zero_rate_records: bool = False,
        workers: int = 1,
        generic_partner_provider: str | None = "partnerpay",
        wildcards: Sequence[str] = DEFAULT_WILDCARDS,
        record_metrics: bool = True,
    ) -> None:
        if default_rebate_level not in REBATE_LEVELS:
            raise ValueError(f"default_rebate_level must be between 1 and 8, got {default_rebate_level!r}")
        self.period = RatePeriod(period)
        self.default_rebate_level = default_rebate_level
        self.selector = RateSelector(emit_zero_rate_records=emit_zero_rate_records)
        self.workers = max(1, workers)
        self.generic_partner_provider = generic_partner_provider
        self.wildcards = tuple(wildcards)
        self.record_metrics = record_metrics

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "CalculationEngine":
        settings = settings or get_settings()
        return cls(
            settings.rate_period,
            default_rebate_level=settings.default_rebate_level,
            emit_zero_rate_records=settings.emit_zero_rate_records,
            workers=settings.calculation_workers,
            generic_partner_provider=settings.generic_partner_provider,
            wildcards=settings.special_case_wildcards,
            record_metrics=settings.enable_metrics,
        )

    def calculate_all(
        self,
        transactions: TransactionSet | Iterable[TransactionRecord],
        reference_data: ReferenceDataStore | ReferenceDataSnapshot,
    ) -> CalculationResult:
        """Calculate every rebate for ``transactions`` against one reference snapshot.

        Per-row problems are collected on the result; only ``None`` inputs or
        objects that are not transaction records raise.
        """

        if transactions is None:
            raise TypeError("transactions must not be None")
        if reference_data is None:
            raise TypeError("reference_data must not be None")

        snapshot = reference_data.snapshot() if isinstance(reference_data, ReferenceDataStore) else reference_data
        if not isinstance(snapshot, ReferenceDataSnapshot):
            raise TypeError(f"reference_data must be a ReferenceDataStore or snapshot, got {type(reference_data).__name__}")
        transaction_set = self._as_transaction_set(transactions)

        result = CalculationResult(period=self.period)
        result.errors.extend(transaction_set.rejected)
        started = time.perf_counter()

        with start_span(
            "rebates.calculate_all",
            run_id=result.run_id,
            period=self.period.value,
            transactions=len(transaction_set),
        ):
            matcher = Matcher(
                snapshot,
                self.period,
                generic_partner_provider=self.generic_partner_provider,
                wildcards=self.wildcards,
            )
            if len(transaction_set):
                result.errors.extend(self._configuration_errors(snapshot, matcher))

            for outcome in self._evaluate(transaction_set.records(), matcher):
                if outcome.error is not None:
                    result.errors.append(outcome.error)
                    logger.warning(
                        "skipping invalid transaction",
                        extra={"run_id": result.run_id, "transaction_id": outcome.transaction_id},
                    )
                    continue
                result.transactions_processed += 1
                result.ambiguous_matches.extend(outcome.ambiguities)
                if outcome.rebates:
                    result.calculated_rebates.extend(outcome.rebates)
                else:
                    result.unmatched.append(outcome.transaction_id)

        elapsed = time.perf_counter() - started
        if self.record_metrics:
            self._record_metrics(result, elapsed)
        logger.info(
            "calculation run complete",
            extra={
                "run_id": result.run_id,
                "period": self.period.value,
                "transactions": result.transactions_processed,
                "rebates": len(result.calculated_rebates),
                "unmatched": len(result.unmatched),
                "row_errors": len(result.errors),
                "ambiguous": len(result.ambiguous_matches),
                "duration_seconds": round(elapsed, 3),
            },
        )
        return result

    @staticmethod
    def _as_transaction_set(transactions: TransactionSet | Iterable[TransactionRecord]) -> TransactionSet:
        if isinstance(transactions, TransactionSet):
            return transactions
        records = list(transactions)
        for record in records:
            if not isinstance(record, TransactionRecord):
                raise TypeError(f"Expected TransactionRecord, got {type(record).__name__}")
        return TransactionSet(records)

    def _configuration_errors(self, snapshot: ReferenceDataSnapshot, matcher: Matcher) -> list[ConfigurationError]:
        errors = []
        for table_id in (matcher.card_network_table, matcher.partner_payment_table):
            if not snapshot.is_loaded(table_id):
                errors.append(
                    ConfigurationError(
                        f"Reference table '{table_id.value}' has not been imported; "
                        f"no {table_id.kind.value} rebates will be produced",
                        table_id=table_id.value,
                    )
                )
                logger.warning("reference table missing", extra={"table_id": table_id.value})
        return errors

    def _evaluate(self, records: tuple[TransactionRecord, ...], matcher: Matcher) -> list[_TransactionOutcome]:
        if self.workers == 1 or len(records) < 2:
            return [self._evaluate_one(record, matcher) for record in records]

        chunk_size = -(-len(records) // self.workers)
        chunks = [records[start : start + chunk_size] for start in range(0, len(records), chunk_size)]
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="rebates") as executor:
            # map() yields chunk results in submission order.
            shards = executor.map(lambda chunk: [self._evaluate_one(record, matcher) for record in chunk], chunks)
            return [outcome for shard in shards for outcome in shard]

    def _evaluate_one(self, transaction: TransactionRecord, matcher: Matcher) -> _TransactionOutcome:
        error = validate_transaction(transaction)
        if error is not None:
            return _TransactionOutcome(transaction.transaction_id, error=error)

        level = transaction.rebate_level or self.default_rebate_level

        special = self._special_case_rebate(transaction, level, matcher)
        if special is not None:
            return _TransactionOutcome(transaction.transaction_id, rebates=(special,))

        rebates: list[CalculatedRebate] = []
        ambiguities: list[AmbiguousMatchError] = []
        for outcome, calculation_type in (
            (matcher.match_card_network(transaction), CalculationType.CARD_NETWORK),
            (matcher.match_partner_payment(transaction), CalculationType.PARTNER_PAYMENT),
        ):
            if outcome.ambiguity is not None:
                ambiguities.append(outcome.ambiguity)
            rebate = self._rebate_from_outcome(transaction, outcome, level, calculation_type)
            if rebate is not None:
                rebates.append(rebate)
        return _TransactionOutcome(transaction.transaction_id, rebates=tuple(rebates), ambiguities=tuple(ambiguities))

    def _special_case_rebate(
        self, transaction: TransactionRecord, level: int, matcher: Matcher
    ) -> CalculatedRebate | None:
        for rule in matcher.match_special_cases(transaction):
            # Rules without a rate at this tier do not apply.
            if rule.rates_for(self.period)[level - 1] is None:
                continue
            selected = self.selector.select(rule, level, self.period)
            if selected is None:
                continue
            calculation_type = (
                CalculationType.REGION_COUNTRY
                if rule.rule_type is SpecialCaseType.REGION_COUNTRY
                else CalculationType.SPECIAL_CASE
            )
            return self._build_rebate(transaction, selected, calculation_type)
        return None

    def _rebate_from_outcome(
        self,
        transaction: TransactionRecord,
        outcome: MatchOutcome,
        level: int,
        calculation_type: CalculationType,
    ) -> CalculatedRebate | None:
        if outcome.row is None:
            return None
        selected = self.selector.select(outcome.row, level, self.period)
        if selected is None:
            return None
        return self._build_rebate(transaction, selected, calculation_type)

    @staticmethod
    def _build_rebate(
        transaction: TransactionRecord, selected: SelectedRate, calculation_type: CalculationType
    ) -> CalculatedRebate:
        eur_amount: Decimal | None = transaction.eur_amount
        return CalculatedRebate(
            transaction_id=transaction.transaction_id,
            provider_code=transaction.provider_code,
            product_name=transaction.product_name,
            rebate_level=selected.level,
            rebate_percentage=selected.percentage,
            rebate_amount=calculate_rebate_amount(transaction.amount, selected.percentage),
            rebate_amount_eur=(
                None if eur_amount is None else calculate_rebate_amount(eur_amount, selected.percentage)
            ),
            calculation_type=calculation_type,
            currency=transaction.currency,
        )

    @staticmethod
    def _record_metrics(result: CalculationResult, elapsed: float) -> None:
        CALCULATION_LATENCY_SECONDS.observe(elapsed)
        for rebate in result.calculated_rebates:
            REBATES_CALCULATED_COUNTER.labels(calculation_type=rebate.calculation_type.value).inc()
        if result.unmatched:
            UNMATCHED_TRANSACTIONS_COUNTER.inc(len(result.unmatched))
        for ambiguity in result.ambiguous_matches:
            AMBIGUOUS_MATCH_COUNTER.labels(table_id=ambiguity.table_id).inc()
        for error in result.errors:
            kind = "configuration" if isinstance(error, ConfigurationError) else "validation"
            ROW_ERROR_COUNTER.labels(kind=kind).inc()


def calculate_all(
    transactions: TransactionSet | Iterable[TransactionRecord],
    reference_data: ReferenceDataStore | ReferenceDataSnapshot,
    *,
    settings: Settings | None = None,
) -> CalculationResult:
    """Run a calculation with an engine configured from ``settings``."""
    return CalculationEngine.from_settings(settings).calculate_all(transactions, reference_data)


__all__ = ["CalculationEngine", "CalculationResult", "calculate_all"]
