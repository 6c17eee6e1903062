"""In-process record store for development and tests (used when Postgres is not configured)."""

from __future__ import annotations

import threading
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from dateutil import parser as date_parser

from copilot.chat.types import utcnow
from copilot.storage.base import TABLES, RecordQuery, check_identifiers


def _comparable(stored: Any, bound: Any) -> Tuple[Any, Any]:
    if isinstance(stored, datetime) and isinstance(bound, str):
        bound = date_parser.isoparse(bound)
    elif isinstance(stored, str) and isinstance(bound, datetime):
        stored = date_parser.isoparse(stored)
    return stored, bound


def _matches(row: Mapping[str, Any], q: RecordQuery) -> bool:
    for col, want in q.equals.items():
        if row.get(col) != want:
            return False
    for col, needle in q.contains.items():
        if str(needle).lower() not in str(row.get(col) or "").lower():
            return False
    if q.search:
        needle = q.search.lower()
        if not any(needle in str(row.get(c) or "").lower() for c in q.search_columns):
            return False
    for col, bound in q.gte.items():
        val = row.get(col)
        if val is None:
            return False
        a, b = _comparable(val, bound)
        if a < b:
            return False
    for col, bound in q.lte.items():
        val = row.get(col)
        if val is None:
            return False
        a, b = _comparable(val, bound)
        if a > b:
            return False
    return True


class InMemoryRecordStore:
    """
    Thread-safe dict-backed store.

    Rows are kept per table with their `organization_id`; reads return copies.
    `writes` records every successful insert/update as (op, table, id).
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.writes: List[Tuple[str, str, str]] = []

    def seed(self, organization_id: str, table: str, rows: Iterable[Mapping[str, Any]]) -> None:
        with self._lock:
            for r in rows:
                self._put(organization_id, table, r)

    def _put(self, organization_id: str, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        allowed = check_identifiers(table, [k for k in values.keys()])
        row: Dict[str, Any] = {c: None for c in allowed}
        row.update(values)
        row["organization_id"] = organization_id
        row["id"] = str(values.get("id") or uuid.uuid4())
        if "created_at" in allowed and row.get("created_at") is None:
            row["created_at"] = utcnow()
        self._tables.setdefault(table, {})[row["id"]] = row
        return dict(row)

    def _rows(self, organization_id: str, table: str) -> List[Dict[str, Any]]:
        return [r for r in self._tables.get(table, {}).values() if r.get("organization_id") == organization_id]

    def select(self, organization_id: str, query: RecordQuery) -> List[Dict[str, Any]]:
        check_identifiers(query.table, query.columns())
        with self._lock:
            rows = [dict(r) for r in self._rows(organization_id, query.table) if _matches(r, query)]
        if query.order_by:
            col = query.order_by
            present = [r for r in rows if r.get(col) is not None]
            missing = [r for r in rows if r.get(col) is None]
            present.sort(key=lambda r: r[col], reverse=query.descending)
            rows = present + missing
        if query.limit is not None:
            rows = rows[: max(0, int(query.limit))]
        return rows

    def count(self, organization_id: str, query: RecordQuery) -> int:
        check_identifiers(query.table, query.columns())
        with self._lock:
            return sum(1 for r in self._rows(organization_id, query.table) if _matches(r, query))

    def get(self, organization_id: str, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        check_identifiers(table, [])
        with self._lock:
            row = self._tables.get(table, {}).get(str(record_id))
            if row is None or row.get("organization_id") != organization_id:
                return None
            return dict(row)

    def insert(self, organization_id: str, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        vals = dict(values)
        vals.pop("id", None)
        with self._lock:
            row = self._put(organization_id, table, vals)
            self.writes.append(("insert", table, row["id"]))
            return row

    def update(
        self, organization_id: str, table: str, record_id: str, values: Mapping[str, Any]
    ) -> Optional[Dict[str, Any]]:
        vals = {k: v for k, v in values.items() if k not in ("id", "organization_id")}
        check_identifiers(table, list(vals))
        with self._lock:
            row = self._tables.get(table, {}).get(str(record_id))
            if row is None or row.get("organization_id") != organization_id:
                return None
            row.update(vals)
            if "updated_at" in TABLES[table]:
                row["updated_at"] = utcnow()
            self.writes.append(("update", table, row["id"]))
            return dict(row)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        """All rows of `table` across organizations (test/inspection helper)."""
        with self._lock:
            return [dict(r) for r in self._tables.get(table, {}).values()]
