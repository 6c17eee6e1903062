"""
End-to-end chat turns through copilot/chat/runtime.py (LangGraph turn graph,
in-memory store, fake model).
"""

from __future__ import annotations

import threading
import time
from datetime import timedelta

import pytest

from copilot.authz.policy import CopilotPolicy
from copilot.chat.confirmation import CANCELLED_REPLY, EXPIRED_REPLY, STALE_REPLY
from copilot.chat.resolver import HELP_REPLY
from copilot.chat.runtime import ConversationNotFound, execute_action, run_chat
from copilot.chat.types import utcnow


def _chat(store, conversations, caller, message, *, policy=None, path="/dashboard", conversation_id=None, generate):
    return run_chat(
        policy=policy or CopilotPolicy(redact_secrets=False),
        store=store,
        conversations=conversations,
        caller=caller,
        message=message,
        current_path=path,
        conversation_id=conversation_id,
        generate=generate,
    )


def _execute(store, conversations, caller, action_id, conversation_id, confirmed, *, policy=None):
    return execute_action(
        policy=policy or CopilotPolicy(redact_secrets=False),
        store=store,
        conversations=conversations,
        caller=caller,
        action_id=action_id,
        conversation_id=conversation_id,
        confirmed=confirmed,
    )


def test_show_me_active_jobs_without_model(store, conversations, recruiter, no_model) -> None:
    res = _chat(store, conversations, recruiter, "Show me active jobs", generate=no_model)
    assert res.requires_confirmation is False
    assert res.pending_action is None
    assert res.message.content.startswith("Found **2** job(s):")
    assert "Senior Backend Engineer" in res.message.content
    assert "Other Tenant Job" not in res.message.content
    assert res.message.metadata is not None
    assert res.message.metadata.tool_used == "search_jobs"
    assert res.message.metadata.intent_source == "fallback"
    assert store.writes == []


def test_add_note_scenario(store, conversations, recruiter, no_model) -> None:
    res = _chat(
        store,
        conversations,
        recruiter,
        "Add a note to this candidate saying great culture fit",
        path="/candidates/c-42",
        generate=no_model,
    )
    assert res.requires_confirmation is True
    action = res.pending_action
    assert action is not None
    assert action.status == "pending"
    assert action.description == "Add note to candidate c-42"
    assert action.args["content"] == "great culture fit"
    assert store.rows("notes") == []

    out = _execute(store, conversations, recruiter, action.id, res.conversation_id, True)
    assert out.success is True
    assert out.message == "Note added to candidate c-42."
    notes = store.rows("notes")
    assert len(notes) == 1
    assert notes[0]["organization_id"] == "org-1"
    assert notes[0]["content"] == "great culture fit"

    conv = conversations.get(res.conversation_id, organization_id="org-1", user_id="u-1")
    assert conv.pending_action.status == "executed"

    # Double submit of the same confirmation does nothing.
    again = _execute(store, conversations, recruiter, action.id, res.conversation_id, True)
    assert again.success is False
    assert again.message == STALE_REPLY
    assert len(store.rows("notes")) == 1


def test_dashboard_scenario(store, conversations, recruiter, model_says) -> None:
    gen = model_says('{"tool": "get_dashboard_stats", "args": {}}')
    res = _chat(store, conversations, recruiter, "how are we doing?", generate=gen)
    lines = res.message.content.splitlines()
    assert lines[0] == "**Dashboard Summary:**"
    assert "• **Total Candidates:** 2" in lines
    assert "• **Active Jobs:** 2 of 3" in lines
    assert res.message.metadata.intent_source == "model"


def test_model_free_text_is_returned_verbatim(store, conversations, recruiter, model_says) -> None:
    gen = model_says("I can help with recruiting questions.")
    res = _chat(store, conversations, recruiter, "hello there", generate=gen)
    assert res.message.content == "I can help with recruiting questions."
    assert res.pending_action is None
    assert conversations.get(res.conversation_id, organization_id="org-1", user_id="u-1").pending_action is None


def test_help_reply_when_nothing_resolves(store, conversations, recruiter, no_model) -> None:
    res = _chat(store, conversations, recruiter, "sing me a song", generate=no_model)
    assert res.message.content == HELP_REPLY


def test_read_only_tool_never_pends_even_if_confirmed_in_chat(store, conversations, recruiter, no_model) -> None:
    res = _chat(store, conversations, recruiter, "yes", generate=no_model)
    assert res.pending_action is None
    conv = conversations.get(res.conversation_id, organization_id="org-1", user_id="u-1")
    assert conv.pending_action is None


def test_permission_denied_creates_no_pending_action(store, conversations, client_user, model_says) -> None:
    gen = model_says('{"tool": "update_job", "args": {"job_id": "j-1", "status": "closed"}}')
    res = _chat(store, conversations, client_user, "close this job", path="/jobs/j-1", generate=gen)
    assert res.message.content == "You don't have permission to do that."
    assert res.pending_action is None
    assert store.writes == []


def test_invalid_mutating_args_ask_for_detail(store, conversations, recruiter, model_says) -> None:
    gen = model_says('{"tool": "update_application_stage", "args": {"application_id": "a-1"}}')
    res = _chat(store, conversations, recruiter, "move it forward", generate=gen)
    assert res.pending_action is None
    assert res.message.content.startswith("I need a bit more detail to do that:")


def test_unparseable_interview_time_is_not_proposed(store, conversations, recruiter, model_says) -> None:
    gen = model_says(
        '{"tool": "schedule_interview", "args": {"application_id": "a-1", "scheduled_at": "next tuesday"}}'
    )
    res = _chat(store, conversations, recruiter, "book an interview next tuesday", generate=gen)
    assert res.pending_action is None
    assert res.requires_confirmation is False
    assert res.message.content == (
        "I need a bit more detail to do that: scheduled_at must be an ISO datetime."
    )
    conv = conversations.get(res.conversation_id, organization_id="org-1", user_id="u-1")
    assert conv.pending_action is None


def test_concurrent_confirmations_execute_once(store, conversations, recruiter, no_model, monkeypatch) -> None:
    res = _chat(store, conversations, recruiter, "add note: ping", path="/candidates/c-42", generate=no_model)
    action_id = res.pending_action.id

    real_insert = store.insert

    def _slow_insert(*args, **kwargs):
        time.sleep(0.05)
        return real_insert(*args, **kwargs)

    monkeypatch.setattr(store, "insert", _slow_insert)

    barrier = threading.Barrier(4)
    outcomes = []

    def _confirm() -> None:
        barrier.wait()
        out = _execute(store, conversations, recruiter, action_id, res.conversation_id, True)
        outcomes.append(out.success)

    threads = [threading.Thread(target=_confirm) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == [False, False, False, True]
    assert len(store.rows("notes")) == 1


def test_model_cannot_override_organization(store, conversations, recruiter, model_says) -> None:
    gen = model_says('{"tool": "get_candidate", "args": {"candidate_id": "c-99", "organization_id": "org-2"}}')
    res = _chat(store, conversations, recruiter, "show c-99", generate=gen)
    assert "Other Tenant Person" not in res.message.content
    assert res.message.content == "Error: Candidate not found: c-99"


def test_in_chat_yes_confirms_pending_action(store, conversations, recruiter, no_model) -> None:
    first = _chat(
        store, conversations, recruiter, "add note: call back Monday", path="/clients/cl-1", generate=no_model
    )
    assert first.requires_confirmation is True
    res = _chat(
        store, conversations, recruiter, "yes please", conversation_id=first.conversation_id, generate=no_model
    )
    assert res.message.content == "Note added to client cl-1."
    assert res.message.metadata.intent_source == "confirmation"
    assert res.message.actions[0].status == "executed"
    assert len(store.rows("notes")) == 1


def test_in_chat_no_cancels_pending_action(store, conversations, recruiter, no_model) -> None:
    first = _chat(
        store, conversations, recruiter, "add note: call back Monday", path="/clients/cl-1", generate=no_model
    )
    res = _chat(store, conversations, recruiter, "no", conversation_id=first.conversation_id, generate=no_model)
    assert res.message.content == CANCELLED_REPLY
    assert store.writes == []


def test_second_proposal_replaces_first(store, conversations, recruiter, no_model) -> None:
    first = _chat(store, conversations, recruiter, "add note: one", path="/candidates/c-42", generate=no_model)
    second = _chat(
        store,
        conversations,
        recruiter,
        "add note: two",
        path="/candidates/c-42",
        conversation_id=first.conversation_id,
        generate=no_model,
    )
    assert "replaces your earlier pending action" in second.message.content
    conv = conversations.get(first.conversation_id, organization_id="org-1", user_id="u-1")
    assert conv.pending_action.id == second.pending_action.id

    stale = _execute(store, conversations, recruiter, first.pending_action.id, first.conversation_id, True)
    assert stale.success is False
    ok = _execute(store, conversations, recruiter, second.pending_action.id, first.conversation_id, True)
    assert ok.success is True
    assert [n["content"] for n in store.rows("notes")] == ["two"]


def test_second_proposal_rejected_under_reject_policy(store, conversations, recruiter, no_model) -> None:
    policy = CopilotPolicy(redact_secrets=False, pending_conflict="reject")
    first = _chat(
        store, conversations, recruiter, "add note: one", path="/candidates/c-42", policy=policy, generate=no_model
    )
    second = _chat(
        store,
        conversations,
        recruiter,
        "add note: two",
        path="/candidates/c-42",
        policy=policy,
        conversation_id=first.conversation_id,
        generate=no_model,
    )
    assert second.pending_action.id == first.pending_action.id
    assert "You still have a pending action" in second.message.content


def test_expired_action_cannot_be_confirmed(store, conversations, recruiter, no_model) -> None:
    first = _chat(store, conversations, recruiter, "add note: late", path="/candidates/c-42", generate=no_model)
    conv = conversations.get(first.conversation_id, organization_id="org-1", user_id="u-1")
    conv.pending_action.created_at = utcnow() - timedelta(hours=1)

    out = _execute(store, conversations, recruiter, first.pending_action.id, first.conversation_id, True)
    assert out.success is False
    assert out.message == EXPIRED_REPLY
    assert store.writes == []


def test_cancel_via_execute(store, conversations, recruiter, no_model) -> None:
    first = _chat(store, conversations, recruiter, "add note: nope", path="/candidates/c-42", generate=no_model)
    out = _execute(store, conversations, recruiter, first.pending_action.id, first.conversation_id, False)
    assert out.success is True
    assert out.message == CANCELLED_REPLY
    conv = conversations.get(first.conversation_id, organization_id="org-1", user_id="u-1")
    assert conv.pending_action.status == "cancelled"
    assert store.writes == []


def test_execute_unknown_conversation(store, conversations, recruiter) -> None:
    cancel = _execute(store, conversations, recruiter, "action-x", "conv-missing", False)
    assert cancel.success is True
    confirm = _execute(store, conversations, recruiter, "action-x", "conv-missing", True)
    assert confirm.success is False
    assert confirm.message == STALE_REPLY


def test_role_rechecked_at_execution(store, conversations, recruiter, model_says) -> None:
    from copilot.auth.models import CopilotCaller

    gen = model_says('{"tool": "update_job", "args": {"job_id": "j-1", "status": "closed"}}')
    first = _chat(store, conversations, recruiter, "close it", path="/jobs/j-1", generate=gen)
    demoted = CopilotCaller(user_id="u-1", organization_id="org-1", role="client")
    out = _execute(store, conversations, demoted, first.pending_action.id, first.conversation_id, True)
    assert out.success is False
    assert out.message == "You don't have permission to do that."
    assert store.get("org-1", "jobs", "j-1")["status"] == "active"


def test_conversation_ownership(store, conversations, recruiter, no_model) -> None:
    from copilot.auth.models import CopilotCaller

    res = _chat(store, conversations, recruiter, "show me jobs", generate=no_model)
    intruder = CopilotCaller(user_id="u-2", organization_id="org-2", role="admin")
    with pytest.raises(ConversationNotFound):
        _chat(store, conversations, intruder, "show me jobs", conversation_id=res.conversation_id, generate=no_model)


def test_temp_conversation_id_starts_new_conversation(store, conversations, recruiter, no_model) -> None:
    res = _chat(store, conversations, recruiter, "show me jobs", conversation_id="temp-123", generate=no_model)
    assert res.conversation_id != "temp-123"
    conv = conversations.get(res.conversation_id, organization_id="org-1", user_id="u-1")
    assert [m.role for m in conv.messages] == ["user", "assistant"]
    assert conv.title == "show me jobs"


def test_history_is_sent_to_model(store, conversations, recruiter, model_says) -> None:
    gen = model_says("Sure.")
    first = _chat(store, conversations, recruiter, "hello", generate=gen)
    _chat(store, conversations, recruiter, "again", conversation_id=first.conversation_id, generate=gen)
    second_call = gen.calls[1]
    assert [m["content"] for m in second_call[1:]] == ["hello", "Sure.", "again"]
