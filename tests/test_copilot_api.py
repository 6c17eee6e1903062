from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

import copilot.api.server as srv
from copilot.auth.config import load_auth_config
from copilot.auth.models import CopilotCaller
from copilot.auth.session import encode_session

SECRET = "test-secret-key-for-testing-purposes-only"


@pytest.fixture
def client(monkeypatch, store, conversations):
    monkeypatch.setenv("AUTH_SESSION_SECRET", SECRET)
    monkeypatch.delenv("AUTH_COOKIE_SECURE", raising=False)
    monkeypatch.delenv("AUTH_PUBLIC_BASE_URL", raising=False)
    load_auth_config.cache_clear()
    monkeypatch.setattr(srv, "_store", store)
    monkeypatch.setattr(srv, "_conversations", conversations)
    yield TestClient(srv.app)
    load_auth_config.cache_clear()


def _auth(role: str = "recruiter", *, user_id: str = "u-1", org: str = "org-1") -> dict:
    token = encode_session(
        load_auth_config(), CopilotCaller(user_id=user_id, organization_id=org, role=role, name="Rita")  # type: ignore[arg-type]
    )
    return {"Authorization": f"Bearer {token}"}


def test_healthz_is_public(client) -> None:
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_chat_requires_auth_without_www_authenticate(client) -> None:
    r = client.post("/api/copilot/chat", json={"message": "hi", "context": {}})
    assert r.status_code == 401
    assert r.json() == {"detail": "Unauthorized"}
    assert "www-authenticate" not in {k.lower() for k in r.headers.keys()}


def test_forged_token_is_rejected(client) -> None:
    r = client.post(
        "/api/copilot/chat",
        json={"message": "hi", "context": {}},
        headers={"Authorization": "Bearer not-a-real-token"},
    )
    assert r.status_code == 401


def test_session_cookie_is_accepted(client) -> None:
    token = _auth()["Authorization"].split(" ", 1)[1]
    r = client.get("/api/copilot/tools", headers={"Cookie": f"copilot_session={token}"})
    assert r.status_code == 200


def test_chat_missing_message_or_context_is_400(client) -> None:
    assert client.post("/api/copilot/chat", json={"context": {}}, headers=_auth()).status_code == 400
    assert client.post("/api/copilot/chat", json={"message": "hi"}, headers=_auth()).status_code == 400
    assert client.post("/api/copilot/chat", json={"message": "", "context": {}}, headers=_auth()).status_code == 400


def test_chat_whitespace_only_message_is_400(client, store) -> None:
    r = client.post("/api/copilot/chat", json={"message": "  \n\t ", "context": {}}, headers=_auth())
    assert r.status_code == 400
    assert r.json()["detail"] == "Message and context are required"
    assert store.writes == []


def test_chat_then_execute_round_trip(client, store) -> None:
    with patch("copilot.chat.resolver.generate_text", return_value=(None, "provider_not_configured")):
        r = client.post(
            "/api/copilot/chat",
            json={
                "message": "Add a note to this candidate saying great culture fit",
                "conversationId": "temp-1700000000000",
                "context": {"currentPage": "candidates", "currentPath": "/candidates/c-42"},
            },
            headers=_auth(),
        )
    assert r.status_code == 200
    body = r.json()
    assert body["requiresConfirmation"] is True
    assert body["conversationId"].startswith("conv-")
    assert body["pendingAction"]["description"] == "Add note to candidate c-42"
    assert body["message"]["role"] == "assistant"
    assert store.rows("notes") == []

    r2 = client.post(
        "/api/copilot/execute",
        json={"actionId": body["pendingAction"]["id"], "conversationId": body["conversationId"], "confirmed": True},
        headers=_auth(),
    )
    assert r2.status_code == 200
    assert r2.json()["success"] is True
    assert r2.json()["message"] == "Note added to candidate c-42."
    assert len(store.rows("notes")) == 1

    r3 = client.post(
        "/api/copilot/execute",
        json={"actionId": body["pendingAction"]["id"], "conversationId": body["conversationId"], "confirmed": True},
        headers=_auth(),
    )
    assert r3.json()["success"] is False
    assert len(store.rows("notes")) == 1


def test_execute_cancel_always_succeeds(client) -> None:
    r = client.post(
        "/api/copilot/execute",
        json={"actionId": "action-x", "conversationId": "conv-x", "confirmed": False},
        headers=_auth(),
    )
    assert r.status_code == 200
    assert r.json()["success"] is True


def test_execute_bad_body_is_400(client) -> None:
    r = client.post("/api/copilot/execute", json={"actionId": "a"}, headers=_auth())
    assert r.status_code == 400


def test_chat_unknown_conversation_is_404(client) -> None:
    r = client.post(
        "/api/copilot/chat",
        json={"message": "show me jobs", "conversationId": "conv-missing", "context": {}},
        headers=_auth(),
    )
    assert r.status_code == 404


def test_chat_disabled_is_403(client, monkeypatch) -> None:
    monkeypatch.setenv("COPILOT_ENABLED", "0")
    r = client.post("/api/copilot/chat", json={"message": "hi", "context": {}}, headers=_auth())
    assert r.status_code == 403


def test_conversations_are_caller_scoped(client) -> None:
    with patch("copilot.chat.resolver.generate_text", return_value=(None, "provider_not_configured")):
        r = client.post("/api/copilot/chat", json={"message": "show me jobs", "context": {}}, headers=_auth())
    cid = r.json()["conversationId"]

    mine = client.get("/api/copilot/conversations", headers=_auth()).json()["conversations"]
    assert [c["id"] for c in mine] == [cid]
    assert mine[0]["messageCount"] == 2
    assert mine[0]["title"] == "show me jobs"

    other = client.get("/api/copilot/conversations", headers=_auth(user_id="u-2", org="org-2")).json()
    assert other["conversations"] == []

    detail = client.get(f"/api/copilot/conversations/{cid}", headers=_auth())
    assert detail.status_code == 200
    assert detail.json()["conversation"]["messages"][0]["content"] == "show me jobs"

    hidden = client.get(f"/api/copilot/conversations/{cid}", headers=_auth(user_id="u-2", org="org-2"))
    assert hidden.status_code == 404


def test_tools_are_role_filtered(client) -> None:
    r = client.get("/api/copilot/tools", headers=_auth("client"))
    body = r.json()
    assert body["role"] == "client"
    names = {t["name"] for t in body["tools"]}
    assert "create_job" not in names
    assert "search_jobs" in names
