from __future__ import annotations

from copilot.authz.policy import load_copilot_policy, redact_text


def test_policy_defaults(monkeypatch) -> None:
    for name in ("COPILOT_MAX_HISTORY_MESSAGES", "COPILOT_DEFAULT_RESULT_LIMIT", "COPILOT_MAX_RESULT_LIMIT"):
        monkeypatch.delenv(name, raising=False)
    p = load_copilot_policy()
    assert p.enabled is True
    assert p.pending_conflict == "replace"
    assert p.pending_action_ttl_seconds == 900
    assert p.default_result_limit == 10
    assert p.max_result_limit == 100


def test_policy_env_overrides_and_clamps(monkeypatch) -> None:
    monkeypatch.setenv("COPILOT_ENABLED", "false")
    monkeypatch.setenv("COPILOT_PENDING_CONFLICT", "REJECT")
    monkeypatch.setenv("COPILOT_PENDING_ACTION_TTL_SECONDS", "1")  # should clamp to minimum
    monkeypatch.setenv("COPILOT_MAX_HISTORY_MESSAGES", "9999")
    monkeypatch.setenv("COPILOT_MAX_RESULT_LIMIT", "20")
    monkeypatch.setenv("COPILOT_DEFAULT_RESULT_LIMIT", "50")  # cannot exceed max
    p = load_copilot_policy()
    assert p.enabled is False
    assert p.pending_conflict == "reject"
    assert p.pending_action_ttl_seconds == 30
    assert p.max_history_messages == 50
    assert p.max_result_limit == 20
    assert p.default_result_limit == 20


def test_unknown_conflict_value_falls_back_to_replace(monkeypatch) -> None:
    monkeypatch.setenv("COPILOT_PENDING_CONFLICT", "merge")
    assert load_copilot_policy().pending_conflict == "replace"


def test_redact_text() -> None:
    assert "hunter2secret" not in redact_text("password=hunter2secret")
    assert redact_text("postgres://app:s3cr3t@db:5432/crm") == "postgres://app:[REDACTED]@db:5432/crm"
    assert "sk-abcdefghijklmnopqrstuvwxyz" not in redact_text("key sk-abcdefghijklmnopqrstuvwxyz")
    assert redact_text("show me active jobs") == "show me active jobs"
    assert redact_text("") == ""
