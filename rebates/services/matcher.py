"""Reference-row matching for card-network, partner-payment and special-case tables."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from rebates.services.errors import AmbiguousMatchError
from rebates.services.records import (
    RatePeriod,
    ReferenceRow,
    SpecialCaseRow,
    SpecialCaseType,
    TableId,
    TableKind,
    TransactionRecord,
)
from rebates.services.reference_data import ReferenceDataSnapshot

logger = logging.getLogger(__name__)

DEFAULT_WILDCARDS: tuple[str, ...] = ("*", "ALL")


@dataclass(frozen=True, slots=True)
class MatchOutcome:
    """Result of matching one transaction against one reference table."""

    table_id: TableId
    row: ReferenceRow | None = None
    step: str | None = None
    ambiguity: AmbiguousMatchError | None = None

    @property
    def matched(self) -> bool:
        return self.row is not None


def _text(value: object) -> str:
    return "" if value is None else str(value).strip()


class Matcher:
    """Finds the best reference row for a transaction within each table.

    Card-network rows need an exact provider and product match. Partner-payment
    rows are tried from the most to the least specific key and fallbacks only
    succeed when a single row qualifies. Special cases return every matching
    rule, region/country rules first.
    """

    def __init__(
        self,
        reference_data: ReferenceDataSnapshot,
        period: RatePeriod,
        *,
        generic_partner_provider: str | None = "partnerpay",
        wildcards: Sequence[str] = DEFAULT_WILDCARDS,
    ) -> None:
        self._reference_data = reference_data
        self._period = RatePeriod(period)
        self._generic_partner_provider = _text(generic_partner_provider) or None
        self._wildcards = frozenset(_text(value).upper() for value in wildcards)
        self.card_network_table = TableId.rate_table(TableKind.CARD_NETWORK, self._period)
        self.partner_payment_table = TableId.rate_table(TableKind.PARTNER_PAYMENT, self._period)

    @property
    def period(self) -> RatePeriod:
        return self._period

    def match_card_network(self, transaction: TransactionRecord) -> MatchOutcome:
        row = self._reference_data.lookup(
            self.card_network_table, (transaction.provider_code, transaction.product_name)
        )
        if row is None:
            return MatchOutcome(self.card_network_table)
        return MatchOutcome(self.card_network_table, row=row, step="provider+product")

    def match_partner_payment(self, transaction: TransactionRecord) -> MatchOutcome:
        providers = [_text(transaction.provider_code)]
        if self._generic_partner_provider and self._generic_partner_provider not in providers:
            providers.append(self._generic_partner_provider)

        for provider in providers:
            try:
                outcome = self._match_partner_for_provider(provider, transaction)
            except AmbiguousMatchError as exc:
                logger.debug(
                    "ambiguous partner-payment match",
                    extra={"transaction_id": transaction.transaction_id, "candidates": exc.candidates},
                )
                return MatchOutcome(self.partner_payment_table, ambiguity=exc)
            if outcome is not None:
                return outcome
        return MatchOutcome(self.partner_payment_table)

    def _match_partner_for_provider(
        self, provider: str, transaction: TransactionRecord
    ) -> MatchOutcome | None:
        table_id = self.partner_payment_table
        product = _text(transaction.product_name)
        airline = _text(transaction.merchant_name)
        bin_number = _text(transaction.bin_number)

        if airline and bin_number:
            row = self._reference_data.lookup(table_id, (provider, product, airline, bin_number))
            if row is not None:
                return MatchOutcome(table_id, row=row, step="provider+product+airline+bin")

        if airline:
            candidates = self._reference_data.lookup_by_partial_key(
                table_id, {"provider_code": provider, "product_name": product, "airline": airline}
            )
            row = self._unique(candidates, (provider, product, airline))
            if row is not None:
                return MatchOutcome(table_id, row=row, step="provider+product+airline")

        candidates = self._reference_data.lookup_by_partial_key(
            table_id, {"provider_code": provider, "product_name": product}
        )
        row = self._unique(candidates, (provider, product))
        if row is not None:
            return MatchOutcome(table_id, row=row, step="provider+product")
        return None

    def _unique(self, candidates: Sequence[ReferenceRow], key: tuple[str, ...]) -> ReferenceRow | None:
        if len(candidates) > 1:
            raise AmbiguousMatchError(self.partner_payment_table.value, key, len(candidates))
        return candidates[0] if candidates else None

    def match_special_cases(self, transaction: TransactionRecord) -> tuple[SpecialCaseRow, ...]:
        """Return every special-case rule that applies to ``transaction`` in precedence order."""

        rules = self._reference_data.lookup_by_partial_key(
            TableId.SPECIAL_CASES, {"provider_code": transaction.provider_code}
        )
        if not rules:
            return ()

        exact: list[SpecialCaseRow] = []
        wildcard: list[SpecialCaseRow] = []
        overrides: list[SpecialCaseRow] = []
        for rule in rules:
            if rule.rule_type is SpecialCaseType.REGION_COUNTRY:
                if not self._matches_region_country(rule, transaction):
                    continue
                if self._is_exact_region_country(rule):
                    exact.append(rule)
                else:
                    wildcard.append(rule)
            elif self._matches_conditions(rule, transaction):
                overrides.append(rule)
        return tuple(exact + wildcard + overrides)

    def _accepts(self, expected: str | None, actual: object) -> bool:
        expected = _text(expected)
        if not expected or expected.upper() in self._wildcards:
            return True
        return expected == _text(actual)

    def _matches_region_country(self, rule: SpecialCaseRow, transaction: TransactionRecord) -> bool:
        return (
            self._accepts(rule.condition("product_name"), transaction.product_name)
            and self._accepts(rule.condition("region_mc"), transaction.region_mc)
            and self._accepts(rule.condition("merchant_country"), transaction.merchant_country)
        )

    def _is_exact_region_country(self, rule: SpecialCaseRow) -> bool:
        for name in ("region_mc", "merchant_country"):
            value = _text(rule.condition(name))
            if not value or value.upper() in self._wildcards:
                return False
        return True

    def _matches_conditions(self, rule: SpecialCaseRow, transaction: TransactionRecord) -> bool:
        return all(
            self._accepts(expected, getattr(transaction, name, None)) for name, expected in rule.conditions
        )


__all__ = ["DEFAULT_WILDCARDS", "MatchOutcome", "Matcher"]
