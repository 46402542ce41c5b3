"""Observability utilities."""

from .metrics import (
    AMBIGUOUS_MATCH_COUNTER,
    CALCULATION_LATENCY_SECONDS,
    REBATES_CALCULATED_COUNTER,
    REFERENCE_ROWS_GAUGE,
    ROW_ERROR_COUNTER,
    UNMATCHED_TRANSACTIONS_COUNTER,
    render_metrics,
    report_reference_rows,
)
from .tracing import initialise_tracing, instrument_sqlalchemy_engine, start_span

__all__ = [
    "AMBIGUOUS_MATCH_COUNTER",
    "CALCULATION_LATENCY_SECONDS",
    "REBATES_CALCULATED_COUNTER",
    "REFERENCE_ROWS_GAUGE",
    "ROW_ERROR_COUNTER",
    "UNMATCHED_TRANSACTIONS_COUNTER",
    "render_metrics",
    "report_reference_rows",
    "initialise_tracing",
    "instrument_sqlalchemy_engine",
    "start_span",
]
