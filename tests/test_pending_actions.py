"""
Tests for the pending-action state machine (copilot/chat/confirmation.py).
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from copilot.chat.confirmation import (
    CANCELLED_REPLY,
    EXPIRED_REPLY,
    STALE_REPLY,
    ActionTransitionError,
    describe_action,
    outstanding_action,
    propose_action,
    resolve_action,
    transition,
)
from copilot.chat.tools import ToolResult
from copilot.chat.types import Conversation, PendingAction, ToolInvocation, utcnow

TTL = 900


def _conv() -> Conversation:
    return Conversation(organization_id="org-1", user_id="u-1")


def _note(content: str = "great fit") -> ToolInvocation:
    return ToolInvocation(tool="add_note", args={"entity_type": "candidate", "entity_id": "c-42", "content": content})


class _Dispatch:
    def __init__(self, result: ToolResult | None = None, exc: Exception | None = None) -> None:
        self.calls = []
        self._result = result or ToolResult(
            ok=True, result={"success": True, "note": {"entity_type": "candidate", "entity_id": "c-42"}}
        )
        self._exc = exc

    def __call__(self, action: PendingAction) -> ToolResult:
        self.calls.append(action.id)
        if self._exc is not None:
            raise self._exc
        return self._result


def test_describe_action() -> None:
    assert describe_action(_note()) == "Add note to candidate c-42"
    assert (
        describe_action(ToolInvocation(tool="update_job", args={"job_id": "j-1", "status": "closed"}))
        == "Update job j-1 (set status to closed)"
    )
    assert (
        describe_action(ToolInvocation(tool="update_application_stage", args={"application_id": "a-1", "stage": "offer"}))
        == "Move application a-1 to stage offer"
    )


def test_transition_rejects_illegal_moves() -> None:
    a = PendingAction(tool="add_note", description="x")
    with pytest.raises(ActionTransitionError):
        transition(a, "executed")
    transition(a, "cancelled")
    with pytest.raises(ActionTransitionError):
        transition(a, "confirmed")


def test_propose_creates_single_pending_action() -> None:
    conv = _conv()
    out = propose_action(conv, _note(), conflict="replace", ttl_seconds=TTL)
    assert out.action.status == "pending"
    assert out.action.description == "Add note to candidate c-42"
    assert conv.pending_action is out.action
    assert out.replaced is None


def test_second_proposal_replaces_with_warning() -> None:
    conv = _conv()
    first = propose_action(conv, _note("one"), conflict="replace", ttl_seconds=TTL).action
    out = propose_action(conv, _note("two"), conflict="replace", ttl_seconds=TTL)
    assert out.replaced is first
    assert first.status == "cancelled"
    assert first.error == "superseded"
    assert conv.pending_action is out.action
    assert out.action.args["content"] == "two"


def test_second_proposal_rejected_under_reject_policy() -> None:
    conv = _conv()
    first = propose_action(conv, _note("one"), conflict="reject", ttl_seconds=TTL).action
    out = propose_action(conv, _note("two"), conflict="reject", ttl_seconds=TTL)
    assert out.rejected is True
    assert out.action is first
    assert first.status == "pending"
    assert conv.pending_action is first


def test_confirm_current_id_executes_once() -> None:
    conv = _conv()
    action = propose_action(conv, _note(), conflict="replace", ttl_seconds=TTL).action
    dispatch = _Dispatch()
    out = resolve_action(conv, action.id, True, dispatch, ttl_seconds=TTL)
    assert out.success is True
    assert out.message == "Note added to candidate c-42."
    assert action.status == "executed"
    assert dispatch.calls == [action.id]

    # Replay of the same confirmation is stale.
    again = resolve_action(conv, action.id, True, dispatch, ttl_seconds=TTL)
    assert again.success is False
    assert again.message == STALE_REPLY
    assert dispatch.calls == [action.id]


def test_confirm_other_id_is_noop() -> None:
    conv = _conv()
    action = propose_action(conv, _note(), conflict="replace", ttl_seconds=TTL).action
    dispatch = _Dispatch()
    out = resolve_action(conv, "action-forged", True, dispatch, ttl_seconds=TTL)
    assert out.success is False
    assert out.message == STALE_REPLY
    assert action.status == "pending"
    assert dispatch.calls == []


def test_confirm_superseded_id_is_stale() -> None:
    conv = _conv()
    first = propose_action(conv, _note("one"), conflict="replace", ttl_seconds=TTL).action
    second = propose_action(conv, _note("two"), conflict="replace", ttl_seconds=TTL).action
    dispatch = _Dispatch()
    out = resolve_action(conv, first.id, True, dispatch, ttl_seconds=TTL)
    assert out.success is False
    assert second.status == "pending"
    assert dispatch.calls == []


def test_cancel_never_dispatches() -> None:
    conv = _conv()
    action = propose_action(conv, _note(), conflict="replace", ttl_seconds=TTL).action
    dispatch = _Dispatch()
    out = resolve_action(conv, action.id, False, dispatch, ttl_seconds=TTL)
    assert out.success is True
    assert out.message == CANCELLED_REPLY
    assert action.status == "cancelled"
    assert dispatch.calls == []


def test_cancel_unknown_id_succeeds_without_state_change() -> None:
    conv = _conv()
    action = propose_action(conv, _note(), conflict="replace", ttl_seconds=TTL).action
    out = resolve_action(conv, "action-other", False, _Dispatch(), ttl_seconds=TTL)
    assert out.success is True
    assert out.action is None
    assert action.status == "pending"


def test_failed_dispatch_marks_failed() -> None:
    conv = _conv()
    action = propose_action(conv, _note(), conflict="replace", ttl_seconds=TTL).action
    dispatch = _Dispatch(result=ToolResult(ok=False, error="Candidate not found: c-42", error_kind="not_found"))
    out = resolve_action(conv, action.id, True, dispatch, ttl_seconds=TTL)
    assert out.success is False
    assert out.message == "Error: Candidate not found: c-42"
    assert action.status == "failed"
    assert action.error == "Candidate not found: c-42"


def test_dispatch_exception_marks_failed() -> None:
    conv = _conv()
    action = propose_action(conv, _note(), conflict="replace", ttl_seconds=TTL).action
    out = resolve_action(conv, action.id, True, _Dispatch(exc=RuntimeError("db down")), ttl_seconds=TTL)
    assert out.success is False
    assert action.status == "failed"
    assert out.message == "Error: db down"


def test_expired_action_is_cancelled_and_cannot_be_confirmed() -> None:
    conv = _conv()
    action = propose_action(conv, _note(), conflict="replace", ttl_seconds=TTL).action
    action.created_at = utcnow() - timedelta(seconds=TTL + 5)

    assert outstanding_action(conv, ttl_seconds=TTL) is None
    assert action.status == "cancelled"
    assert action.error == "expired"

    dispatch = _Dispatch()
    out = resolve_action(conv, action.id, True, dispatch, ttl_seconds=TTL)
    assert out.success is False
    assert out.message == EXPIRED_REPLY
    assert dispatch.calls == []


def test_never_two_non_terminal_actions() -> None:
    conv = _conv()
    actions = [propose_action(conv, _note(str(i)), conflict="replace", ttl_seconds=TTL).action for i in range(4)]
    live = [a for a in actions if not a.is_terminal]
    assert len(live) == 1
    assert live[0] is conv.pending_action
