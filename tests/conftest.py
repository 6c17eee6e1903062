"""
Pytest config.

Local imports like `import copilot` rely on the repo root being on sys.path.
When a global `pytest` entrypoint is used that doesn't happen reliably during
collection, so we pin it here.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()


_ENV_TO_CLEAR = (
    "LLM_PROVIDER",
    "LLM_MOCK",
    "LANGSMITH_TRACING",
    "LANGCHAIN_TRACING_V2",
    "POSTGRES_DSN",
    "POSTGRES_HOST",
    "COPILOT_ENABLED",
    "COPILOT_PENDING_CONFLICT",
    "COPILOT_PENDING_ACTION_TTL_SECONDS",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """
    Unit tests never reach a real model, tracer or database.

    Tests that need one of these set the variable themselves.
    """
    for name in _ENV_TO_CLEAR:
        monkeypatch.delenv(name, raising=False)


ORG = "org-1"
OTHER_ORG = "org-2"


@pytest.fixture
def store():
    from copilot.storage.demo_data import seed_demo
    from copilot.storage.memory_store import InMemoryRecordStore

    s = InMemoryRecordStore()
    seed_demo(s, ORG)
    # Same ids in another tenant must never leak across.
    s.seed(OTHER_ORG, "candidates", [{"id": "c-99", "full_name": "Other Tenant Person"}])
    s.seed(OTHER_ORG, "jobs", [{"id": "j-99", "title": "Other Tenant Job", "status": "active"}])
    return s


@pytest.fixture
def conversations():
    from copilot.memory.conversations import ConversationStore

    return ConversationStore(max_conversations_per_user=5, max_messages_per_conversation=50)


@pytest.fixture
def policy():
    from copilot.authz.policy import CopilotPolicy

    return CopilotPolicy(enabled=True, redact_secrets=False)


@pytest.fixture
def recruiter():
    from copilot.auth.models import CopilotCaller

    return CopilotCaller(user_id="u-1", organization_id=ORG, role="recruiter", name="Rita Recruiter")


@pytest.fixture
def client_user():
    from copilot.auth.models import CopilotCaller

    return CopilotCaller(user_id="u-9", organization_id=ORG, role="client", name="Cal Client")


@pytest.fixture
def no_model():
    """Generator double for an unconfigured model backend."""

    def _gen(_messages):
        return None, "provider_not_configured"

    return _gen


@pytest.fixture
def model_says():
    """Build a generator double that always returns `text`."""

    def _make(text: str):
        calls = []

        def _gen(messages):
            calls.append(list(messages))
            return text, None

        _gen.calls = calls  # type: ignore[attr-defined]
        return _gen

    return _make
