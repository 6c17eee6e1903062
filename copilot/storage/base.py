from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

# Whitelisted tables and columns. Backends never interpolate anything else.
TABLES: Dict[str, Tuple[str, ...]] = {
    "candidates": (
        "id",
        "organization_id",
        "full_name",
        "email",
        "phone",
        "current_title",
        "current_company",
        "location",
        "linkedin_url",
        "source",
        "created_at",
        "updated_at",
    ),
    "jobs": (
        "id",
        "organization_id",
        "title",
        "description_text",
        "client_id",
        "status",
        "location",
        "employment_type",
        "seniority",
        "created_at",
        "updated_at",
    ),
    "clients": (
        "id",
        "organization_id",
        "name",
        "contact_person",
        "contact_email",
        "status",
        "industry",
        "created_at",
        "updated_at",
    ),
    "applications": (
        "id",
        "organization_id",
        "job_id",
        "candidate_id",
        "stage",
        "status",
        "applied_at",
        "updated_at",
    ),
    "interviews": (
        "id",
        "organization_id",
        "application_id",
        "scheduled_at",
        "status",
        "notes",
        "created_at",
    ),
    "notes": (
        "id",
        "organization_id",
        "entity_type",
        "entity_id",
        "content",
        "author_id",
        "author_name",
        "created_at",
    ),
}


class StoreError(Exception):
    """Backing store failure (connection, constraint, unknown identifier)."""


@dataclass(frozen=True)
class RecordQuery:
    """
    Declarative read over one table.

    - equals: exact match per column
    - contains: case-insensitive substring match per column
    - search: case-insensitive substring matched against ANY of `search_columns`
    - gte / lte: inclusive range bounds per column
    """

    table: str
    equals: Mapping[str, Any] = field(default_factory=dict)
    contains: Mapping[str, str] = field(default_factory=dict)
    search: Optional[str] = None
    search_columns: Tuple[str, ...] = ()
    gte: Mapping[str, Any] = field(default_factory=dict)
    lte: Mapping[str, Any] = field(default_factory=dict)
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = None

    def columns(self) -> List[str]:
        cols = list(self.equals) + list(self.contains) + list(self.gte) + list(self.lte) + list(self.search_columns)
        if self.order_by:
            cols.append(self.order_by)
        return cols


def check_identifiers(table: str, columns: List[str]) -> Tuple[str, ...]:
    allowed = TABLES.get(table)
    if allowed is None:
        raise StoreError(f"unknown_table:{table}")
    for c in columns:
        if c not in allowed:
            raise StoreError(f"unknown_column:{table}.{c}")
    return allowed


class RecordStore(Protocol):
    """
    Organization-scoped record access.

    Every method takes `organization_id` first; implementations must never
    return or modify rows belonging to another organization.
    """

    def select(self, organization_id: str, query: RecordQuery) -> List[Dict[str, Any]]:
        ...

    def count(self, organization_id: str, query: RecordQuery) -> int:
        ...

    def get(self, organization_id: str, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        ...

    def insert(self, organization_id: str, table: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        ...

    def update(
        self, organization_id: str, table: str, record_id: str, values: Mapping[str, Any]
    ) -> Optional[Dict[str, Any]]:
        ...
