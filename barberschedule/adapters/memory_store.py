"""
In-memory record store for offline use and tests.
"""

import copy
import json
import uuid
from pathlib import Path
from typing import Any, Dict, List

from ..domain.exceptions import ConstraintViolationError, RecordNotFoundError
from .records import (
    APPOINTMENTS_TABLE,
    TIMESTAMP_COLUMNS,
    QueryFilter,
    Record,
    parse_timestamp,
)

OCCUPYING_STATUSES = frozenset({"scheduled", "confirmed"})


class InMemoryRecordStore:
    """
    Dict-backed stand-in for the hosted record store.

    It enforces the same guarantees the database does: primary keys are
    unique, and the ``appointments`` table carries a range-overlap exclusion
    constraint per professional for scheduled/confirmed rows. Re-inserting an
    identical record under an existing id returns the stored copy, which makes
    client-generated ids usable as idempotency keys.

    Data can be seeded from a JSON file mapping table names to row lists.
    """

    def __init__(self, data_file: Path | None = None, seed: Dict[str, List[Record]] | None = None):
        self._tables: Dict[str, Dict[str, Record]] = {}
        if data_file is not None:
            self._load_data_file(data_file)
        for table, rows in (seed or {}).items():
            for row in rows:
                self._put(table, copy.deepcopy(row))

    def _load_data_file(self, data_file: Path) -> None:
        with open(data_file, "r", encoding="utf-8") as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError(f"{data_file} must contain an object mapping table names to rows")

        for table, rows in data.items():
            for row in rows:
                self._put(table, row)

    def _put(self, table: str, record: Record) -> Record:
        record.setdefault("id", str(uuid.uuid4()))
        record["id"] = str(record["id"])
        self._tables.setdefault(table, {})[record["id"]] = record
        return record

    async def insert(self, table: str, record: Record) -> Record:
        rows = self._tables.setdefault(table, {})
        candidate = copy.deepcopy(record)
        candidate.setdefault("id", str(uuid.uuid4()))

        existing = rows.get(candidate["id"])
        if existing is not None:
            if existing == candidate:
                return copy.deepcopy(existing)
            raise ConstraintViolationError(
                f"Duplicate key {candidate['id']!r} in {table}",
                conflicting_id=candidate["id"],
            )

        self._check_exclusion(table, candidate)
        return copy.deepcopy(self._put(table, candidate))

    async def update(self, table: str, record_id: str, patch: Record) -> Record:
        rows = self._tables.get(table, {})
        if record_id not in rows:
            raise RecordNotFoundError(table, record_id)

        merged = {**rows[record_id], **copy.deepcopy(patch), "id": record_id}
        self._check_exclusion(table, merged)
        rows[record_id] = merged
        return copy.deepcopy(merged)

    async def query(self, table: str, record_filter: QueryFilter | None = None) -> List[Record]:
        record_filter = record_filter or QueryFilter()
        rows = [
            copy.deepcopy(row)
            for row in self._tables.get(table, {}).values()
            if _matches(row, record_filter)
        ]
        if record_filter.order_by:
            column = record_filter.order_by
            rows.sort(key=lambda row: _comparable(column, row.get(column)))
        return rows

    async def delete(self, table: str, record_id: str) -> None:
        rows = self._tables.get(table, {})
        if record_id not in rows:
            raise RecordNotFoundError(table, record_id)
        del rows[record_id]

    def _check_exclusion(self, table: str, record: Record) -> None:
        if table != APPOINTMENTS_TABLE or record.get("status", "scheduled") not in OCCUPYING_STATUSES:
            return

        start = parse_timestamp(record["start_time"])
        end = parse_timestamp(record["end_time"])

        for other in self._tables.get(table, {}).values():
            if other["id"] == record["id"] or other.get("barber_id") != record.get("barber_id"):
                continue
            if other.get("status", "scheduled") not in OCCUPYING_STATUSES:
                continue
            if parse_timestamp(other["start_time"]) < end and start < parse_timestamp(other["end_time"]):
                raise ConstraintViolationError(
                    "conflicting key value violates exclusion constraint "
                    f"\"appointments_no_overlap\" (conflicts with {other['id']})",
                    conflicting_id=other["id"],
                )


def _comparable(column: str, value: Any) -> Any:
    if column in TIMESTAMP_COLUMNS and isinstance(value, str):
        return parse_timestamp(value)
    return value


def _matches(row: Record, record_filter: QueryFilter) -> bool:
    for column, expected in record_filter.equals.items():
        if row.get(column) != expected:
            return False
    for column, bound in record_filter.less_than.items():
        if row.get(column) is None or not _comparable(column, row[column]) < _comparable(column, bound):
            return False
    for column, bound in record_filter.greater_than.items():
        if row.get(column) is None or not _comparable(column, row[column]) > _comparable(column, bound):
            return False
    return True
