"""In-memory reference tables with whole-table replacement and keyed lookups."""
from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from threading import Lock
from types import MappingProxyType
from typing import Any

from rebates.obs.metrics import report_reference_rows
from rebates.services.errors import ValidationError
from rebates.services.records import ROW_TYPES, ReferenceRow, SpecialCaseType, TableId

logger = logging.getLogger(__name__)

_BIN_DIGITS = re.compile(r"\d{6}")
_NON_DIGITS = re.compile(r"\D")

# Key fields that may be blank: generic partner-payment rows carry no airline or
# BIN, provider-wide special cases carry no conditions.
_OPTIONAL_KEY_FIELDS = frozenset({"airline", "bin_pattern", "conditions"})


def normalize_bin(value: Any) -> str:
    """Reduce a BIN or BIN label to its comparable digits.

    ``"Tier 1: 557062"`` and ``5570621234`` both become ``"557062"``; values
    without a six digit run keep all of their digits (``"1234"``).
    """

    text = "" if value is None else str(value).strip()
    match = _BIN_DIGITS.search(text)
    if match:
        return match.group(0)
    return _NON_DIGITS.sub("", text)


def _key_component(name: str, value: Any) -> str:
    if name == "bin_pattern":
        return normalize_bin(value)
    if name == "rule_type":
        return value.value if isinstance(value, SpecialCaseType) else str(value or "").strip()
    if name == "conditions":
        if isinstance(value, Mapping):
            value = sorted(value.items())
        return "&".join(f"{key}={item}" for key, item in value or ())
    return "" if value is None else str(value).strip()


def row_key(row: ReferenceRow) -> tuple[str, ...]:
    """Return the natural key of a reference row."""

    return tuple(_key_component(name, getattr(row, name)) for name in row.KEY_FIELDS)


@dataclass(frozen=True, slots=True)
class _Table:
    table_id: TableId
    key_fields: tuple[str, ...]
    rows: tuple[ReferenceRow, ...]
    by_key: Mapping[tuple[str, ...], ReferenceRow]
    by_prefix: Mapping[int, Mapping[tuple[str, ...], tuple[ReferenceRow, ...]]]

    @classmethod
    def build(cls, table_id: TableId, rows: Iterable[ReferenceRow]) -> "_Table":
        row_type = ROW_TYPES[table_id.kind]
        key_fields: tuple[str, ...] = row_type.KEY_FIELDS
        by_key: dict[tuple[str, ...], ReferenceRow] = {}

        for index, row in enumerate(rows):
            if not isinstance(row, row_type):
                raise ValidationError(
                    f"Row {index} of '{table_id.value}' is {type(row).__name__}, expected {row_type.__name__}",
                    table_id=table_id.value,
                    row_index=index,
                )
            key = row_key(row)
            for name, component in zip(key_fields, key):
                if not component and name not in _OPTIONAL_KEY_FIELDS:
                    raise ValidationError(
                        f"Row {index} of '{table_id.value}' has an empty '{name}'",
                        table_id=table_id.value,
                        row_index=index,
                        field=name,
                    )
            # Later rows with the same key win.
            by_key[key] = row

        by_prefix: dict[int, dict[tuple[str, ...], list[ReferenceRow]]] = {
            size: {} for size in range(1, len(key_fields))
        }
        for key, row in by_key.items():
            for size, index in by_prefix.items():
                index.setdefault(key[:size], []).append(row)

        return cls(
            table_id=table_id,
            key_fields=key_fields,
            rows=tuple(by_key.values()),
            by_key=MappingProxyType(by_key),
            by_prefix=MappingProxyType(
                {
                    size: MappingProxyType({prefix: tuple(found) for prefix, found in index.items()})
                    for size, index in by_prefix.items()
                }
            ),
        )


def validate_rows(table_id: TableId | str, rows: Iterable[ReferenceRow]) -> tuple[ReferenceRow, ...]:
    """Check rows the way :meth:`ReferenceDataStore.replace_table` does and return them deduplicated."""

    return _Table.build(TableId(table_id), rows).rows


class ReferenceDataSnapshot:
    """Read-only view over the tables that were current when it was taken."""

    def __init__(self, tables: Mapping[TableId, _Table]) -> None:
        self._tables = MappingProxyType(dict(tables))

    def is_loaded(self, table_id: TableId | str) -> bool:
        return TableId(table_id) in self._tables

    def loaded_tables(self) -> tuple[TableId, ...]:
        return tuple(self._tables)

    def row_count(self, table_id: TableId | str) -> int:
        table = self._tables.get(TableId(table_id))
        return 0 if table is None else len(table.rows)

    def rows(self, table_id: TableId | str) -> tuple[ReferenceRow, ...]:
        table = self._tables.get(TableId(table_id))
        return () if table is None else table.rows

    def is_empty(self) -> bool:
        return all(not table.rows for table in self._tables.values())

    def lookup(self, table_id: TableId | str, key: Iterable[Any]) -> ReferenceRow | None:
        """Return the row stored under ``key`` or ``None``."""

        table = self._tables.get(TableId(table_id))
        if table is None:
            return None
        values = tuple(key)
        if len(values) != len(table.key_fields):
            raise ValueError(
                f"'{table.table_id.value}' keys have {len(table.key_fields)} fields, got {len(values)}"
            )
        normalized = tuple(_key_component(name, value) for name, value in zip(table.key_fields, values))
        return table.by_key.get(normalized)

    def lookup_by_partial_key(
        self, table_id: TableId | str, partial: Mapping[str, Any]
    ) -> tuple[ReferenceRow, ...]:
        """Return every row whose key agrees with the supplied subset of key fields."""

        table = self._tables.get(TableId(table_id))
        if table is None:
            return ()
        unknown = set(partial) - set(table.key_fields)
        if unknown:
            raise ValueError(f"Unknown key fields for '{table.table_id.value}': {sorted(unknown)}")
        if not partial:
            return table.rows

        wanted = {name: _key_component(name, value) for name, value in partial.items()}
        size = len(wanted)
        if size == len(table.key_fields):
            row = table.by_key.get(tuple(wanted[name] for name in table.key_fields))
            return () if row is None else (row,)
        if set(table.key_fields[:size]) == set(wanted):
            prefix = tuple(wanted[name] for name in table.key_fields[:size])
            return table.by_prefix[size].get(prefix, ())

        positions = [(table.key_fields.index(name), value) for name, value in wanted.items()]
        return tuple(
            row
            for key, row in table.by_key.items()
            if all(key[position] == value for position, value in positions)
        )


class ReferenceDataStore:
    """Holds the current version of each reference table.

    Tables are replaced wholesale; readers either see the previous table or the
    new one, never a partially written table. Callers must not replace tables
    while a calculation run is using the store; runs work from
    :meth:`snapshot` so the run is unaffected if they do.
    """

    def __init__(self) -> None:
        self._tables: Mapping[TableId, _Table] = MappingProxyType({})
        self._lock = Lock()

    def replace_table(self, table_id: TableId | str, rows: Iterable[ReferenceRow]) -> int:
        """Validate ``rows`` and swap them in as the new contents of ``table_id``."""

        if rows is None:
            raise TypeError("rows must be an iterable of reference rows")
        table_id = TableId(table_id)
        table = _Table.build(table_id, rows)
        with self._lock:
            tables = dict(self._tables)
            tables[table_id] = table
            self._tables = MappingProxyType(tables)
        report_reference_rows(table_id.value, len(table.rows))
        logger.info(
            "replaced reference table",
            extra={"table_id": table_id.value, "rows": len(table.rows)},
        )
        return len(table.rows)

    def clear(self) -> None:
        with self._lock:
            self._tables = MappingProxyType({})

    def snapshot(self) -> ReferenceDataSnapshot:
        with self._lock:
            return ReferenceDataSnapshot(self._tables)

    def is_loaded(self, table_id: TableId | str) -> bool:
        return self.snapshot().is_loaded(table_id)

    def row_count(self, table_id: TableId | str) -> int:
        return self.snapshot().row_count(table_id)

    def rows(self, table_id: TableId | str) -> tuple[ReferenceRow, ...]:
        return self.snapshot().rows(table_id)

    def lookup(self, table_id: TableId | str, key: Iterable[Any]) -> ReferenceRow | None:
        return self.snapshot().lookup(table_id, key)

    def lookup_by_partial_key(
        self, table_id: TableId | str, partial: Mapping[str, Any]
    ) -> tuple[ReferenceRow, ...]:
        return self.snapshot().lookup_by_partial_key(table_id, partial)


__all__ = ["ReferenceDataSnapshot", "ReferenceDataStore", "normalize_bin", "row_key", "validate_rows"]
