"""Prometheus metrics for calculation runs and imports."""

from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, Counter, Gauge, Histogram, generate_latest

REBATES_CALCULATED_COUNTER = Counter(
    "rebates_calculated_total",
    "Total number of rebate records produced, by calculation type.",
    labelnames=("calculation_type",),
)
UNMATCHED_TRANSACTIONS_COUNTER = Counter(
    "rebates_unmatched_transactions_total",
    "Total number of valid transactions that produced no rebate record.",
)
AMBIGUOUS_MATCH_COUNTER = Counter(
    "rebates_ambiguous_matches_total",
    "Total number of fallback lookups that matched more than one reference row.",
    labelnames=("table_id",),
)
ROW_ERROR_COUNTER = Counter(
    "rebates_row_errors_total",
    "Total number of rows rejected during imports or calculation runs.",
    labelnames=("kind",),
)
CALCULATION_LATENCY_SECONDS = Histogram(
    "rebates_calculation_run_seconds",
    "Duration of full calculation runs in seconds.",
)
REFERENCE_ROWS_GAUGE = Gauge(
    "rebates_reference_rows",
    "Rows currently held in each reference table.",
    labelnames=("table_id",),
)


def report_reference_rows(table_id: str, rows: int) -> None:
    """Record the size of a freshly replaced reference table."""
    REFERENCE_ROWS_GAUGE.labels(table_id=table_id).set(max(0, rows))


def render_metrics() -> tuple[bytes, str]:
    """Return the registry in Prometheus text format along with its content type."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST


__all__ = [
    "AMBIGUOUS_MATCH_COUNTER",
    "CALCULATION_LATENCY_SECONDS",
    "REBATES_CALCULATED_COUNTER",
    "REFERENCE_ROWS_GAUGE",
    "ROW_ERROR_COUNTER",
    "UNMATCHED_TRANSACTIONS_COUNTER",
    "render_metrics",
    "report_reference_rows",
]
