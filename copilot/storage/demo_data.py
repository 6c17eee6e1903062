"""Small demo dataset for local runs (`main.py --chat`) and tests."""

from __future__ import annotations

from datetime import timedelta

from copilot.chat.types import utcnow
from copilot.storage.memory_store import InMemoryRecordStore


def seed_demo(store: InMemoryRecordStore, organization_id: str) -> None:
    now = utcnow()
    store.seed(
        organization_id,
        "clients",
        [
            {"id": "cl-1", "name": "Acme Corp", "contact_person": "Dana Reyes", "status": "active", "industry": "SaaS"},
            {"id": "cl-2", "name": "Globex", "contact_person": "Sam Ortiz", "status": "inactive", "industry": "Energy"},
        ],
    )
    store.seed(
        organization_id,
        "jobs",
        [
            {
                "id": "j-1",
                "title": "Senior Backend Engineer",
                "client_id": "cl-1",
                "status": "active",
                "location": "Berlin",
                "seniority": "senior",
                "created_at": now - timedelta(days=3),
            },
            {
                "id": "j-2",
                "title": "Data Analyst",
                "client_id": "cl-1",
                "status": "active",
                "location": "Remote",
                "created_at": now - timedelta(days=2),
            },
            {
                "id": "j-3",
                "title": "Plant Manager",
                "client_id": "cl-2",
                "status": "draft",
                "location": "Houston",
                "created_at": now - timedelta(days=1),
            },
        ],
    )
    store.seed(
        organization_id,
        "candidates",
        [
            {
                "id": "c-42",
                "full_name": "Ada Lovelace",
                "email": "ada@example.com",
                "current_title": "Staff Engineer",
                "current_company": "Analytical Engines",
                "location": "London",
            },
            {
                "id": "c-43",
                "full_name": "Grace Hopper",
                "email": "grace@example.com",
                "current_title": "Engineering Manager",
                "location": "New York",
            },
        ],
    )
    store.seed(
        organization_id,
        "applications",
        [
            {"id": "a-1", "job_id": "j-1", "candidate_id": "c-42", "stage": "screening", "status": "active"},
            {"id": "a-2", "job_id": "j-2", "candidate_id": "c-43", "stage": "offer", "status": "hired"},
        ],
    )
    store.seed(
        organization_id,
        "interviews",
        [
            {"id": "i-1", "application_id": "a-1", "scheduled_at": now + timedelta(days=2), "status": "scheduled"},
            {"id": "i-2", "application_id": "a-2", "scheduled_at": now - timedelta(days=5), "status": "completed"},
        ],
    )
