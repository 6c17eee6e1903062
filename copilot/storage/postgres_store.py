from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from copilot.memory.config import build_postgres_dsn, load_store_config
from copilot.storage.base import RecordQuery, RecordStore, StoreError, check_identifiers

logger = logging.getLogger(__name__)


def _connect(dsn: str):
    import psycopg  # type: ignore[import-not-found]
    from psycopg.rows import dict_row  # type: ignore[import-not-found]

    return psycopg.connect(dsn, row_factory=dict_row)


def _where(organization_id: str, q: RecordQuery) -> Tuple[str, List[Any]]:
    clauses = ["organization_id = %s"]
    params: List[Any] = [organization_id]
    for col, val in q.equals.items():
        clauses.append(f"{col} = %s")
        params.append(val)
    for col, val in q.contains.items():
        clauses.append(f"{col}::text ILIKE %s")
        params.append(f"%{val}%")
    if q.search and q.search_columns:
        ors = " OR ".join(f"{c}::text ILIKE %s" for c in q.search_columns)
        clauses.append(f"({ors})")
        params.extend([f"%{q.search}%"] * len(q.search_columns))
    for col, val in q.gte.items():
        clauses.append(f"{col} >= %s")
        params.append(val)
    for col, val in q.lte.items():
        clauses.append(f"{col} <= %s")
        params.append(val)
    return " AND ".join(clauses), params


def _build_select(organization_id: str, q: RecordQuery) -> Tuple[str, List[Any]]:
    """
    Build a parameterized SELECT for `q`.

    Identifiers are checked against the table whitelist before interpolation;
    every value (including the organization) is a bound parameter.
    """
    allowed = check_identifiers(q.table, q.columns())
    where, params = _where(organization_id, q)
    sql = f"SELECT {', '.join(allowed)} FROM {q.table} WHERE {where}"
    if q.order_by:
        sql += f" ORDER BY {q.order_by} {'DESC' if q.descending else 'ASC'} NULLS LAST"
    if q.limit is not None:
        sql += " LIMIT %s"
        params.append(max(0, int(q.limit)))
    return sql, params


def _build_count(organization_id: str, q: RecordQuery) -> Tuple[str, List[Any]]:
    check_identifiers(q.table, q.columns())
    where, params = _where(organization_id, q)
    return f"SELECT count(*) AS n FROM {q.table} WHERE {where}", params


def _build_insert(organization_id: str, table: str, values: Mapping[str, Any]) -> Tuple[str, List[Any]]:
    vals = {k: v for k, v in values.items() if k not in ("id", "organization_id")}
    allowed = check_identifiers(table, list(vals))
    cols = ["organization_id"] + list(vals)
    placeholders = ", ".join(["%s"] * len(cols))
    sql = f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({placeholders}) RETURNING {', '.join(allowed)}"
    return sql, [organization_id] + list(vals.values())


def _build_update(
    organization_id: str, table: str, record_id: str, values: Mapping[str, Any]
) -> Tuple[str, List[Any]]:
    vals = {k: v for k, v in values.items() if k not in ("id", "organization_id")}
    if not vals:
        raise StoreError("no_fields_to_update")
    allowed = check_identifiers(table, list(vals))
    sets = [f"{c} = %s" for c in vals]
    if "updated_at" in allowed and "updated_at" not in vals:
        sets.append("updated_at = now()")
    sql = (
        f"UPDATE {table} SET {', '.join(sets)} "
        f"WHERE id::text = %s AND organization_id = %s RETURNING {', '.join(allowed)}"
    )
    return sql, list(vals.values()) + [str(record_id), organization_id]


class PostgresRecordStore:
    """psycopg-backed store; one short-lived connection per call."""

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn

    def _fetch(self, sql: str, params: List[Any], *, write: bool = False) -> List[Dict[str, Any]]:
        try:
            with _connect(self._dsn) as conn:
                if write:
                    with conn.transaction():
                        rows = conn.execute(sql, params).fetchall()
                else:
                    rows = conn.execute(sql, params).fetchall()
            return [dict(r) for r in rows]
        except StoreError:
            raise
        except Exception as e:
            logger.warning("Postgres query failed: %s", type(e).__name__)
            raise StoreError(f"postgres_error:{type(e).__name__}") from e

    def select(self, organization_id: str, query: RecordQuery) -> List[Dict[str, Any]]:
        sql, params = _build_select(organization_id, query)
        return self._fetch(sql, params)

    def count(self, organization_id: str, query: RecordQuery) -> int:
        sql, params = _build_count(organization_id, query)
        rows = self._fetch(sql, params)
        return int(rows[0]["n"]) if rows else 0

    def get(self, organization_id: str, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        allowed = check_identifiers(table, [])
        sql = f"SELECT {', '.join(allowed)} FROM {table} WHERE id::text = %s AND organization_id = %s"
        rows = self._fetch(sql, [str(record_id), organization_id])
        return rows[0] if rows else None

    def insert(self, organization_id: str, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        sql, params = _build_insert(organization_id, table, values)
        rows = self._fetch(sql, params, write=True)
        if not rows:
            raise StoreError("insert_returned_nothing")
        return rows[0]

    def update(
        self, organization_id: str, table: str, record_id: str, values: Mapping[str, Any]
    ) -> Optional[Dict[str, Any]]:
        sql, params = _build_update(organization_id, table, record_id, values)
        rows = self._fetch(sql, params, write=True)
        return rows[0] if rows else None


def get_record_store() -> RecordStore:
    """
    Return the configured store: Postgres when a DSN is available, in-memory otherwise.
    """
    dsn = build_postgres_dsn(load_store_config())
    if dsn:
        return PostgresRecordStore(dsn)
    from copilot.storage.memory_store import InMemoryRecordStore

    logger.warning("Postgres not configured; using in-memory record store (data is not persisted)")
    return InMemoryRecordStore()
