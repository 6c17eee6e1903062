"""
Pending-action state machine.

    pending -> confirmed -> executed | failed
    pending -> cancelled

A conversation holds at most one non-terminal action. Confirm/cancel requests
must carry the id of that action; anything else is rejected without touching
state or the backing store.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, FrozenSet, Optional

from copilot.authz.policy import PendingConflict
from copilot.chat.catalogue import ToolName
from copilot.chat.formatting import format_error, format_result
from copilot.chat.tools import ToolResult
from copilot.chat.types import ActionStatus, Conversation, PendingAction, ToolInvocation, utcnow

logger = logging.getLogger(__name__)

CANCELLED_REPLY = "Action cancelled. Let me know if you need anything else."
STALE_REPLY = "That action is no longer pending. It may have already been completed, cancelled or replaced."
EXPIRED_REPLY = "That action expired before it was confirmed. Ask again if you still want to do it."

_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"executed", "failed"}),
}


class ActionTransitionError(ValueError):
    """Raised on a state change the action lifecycle does not permit."""


def transition(
    action: PendingAction, to: ActionStatus, *, result: Any = None, error: Optional[str] = None
) -> PendingAction:
    if to not in _TRANSITIONS.get(action.status, frozenset()):
        raise ActionTransitionError(f"{action.id}: {action.status} -> {to}")
    prev = action.status
    action.status = to
    action.updated_at = utcnow()
    if result is not None:
        action.result = result
    if error is not None:
        action.error = error
    logger.info("Action %s (%s): %s -> %s", action.id, action.tool, prev, to)
    return action


def describe_action(inv: ToolInvocation) -> str:
    a = inv.args or {}
    t = inv.tool
    if t == ToolName.ADD_NOTE.value:
        return f"Add note to {a.get('entity_type')} {a.get('entity_id')}"
    if t == ToolName.CREATE_CANDIDATE.value:
        return f"Create candidate {a.get('full_name') or ''}".strip()
    if t == ToolName.UPDATE_CANDIDATE.value:
        return f"Update candidate {a.get('candidate_id')}"
    if t == ToolName.CREATE_JOB.value:
        return f"Create job {a.get('title') or ''}".strip()
    if t == ToolName.UPDATE_JOB.value:
        suffix = f" (set status to {a['status']})" if a.get("status") else ""
        return f"Update job {a.get('job_id')}{suffix}"
    if t == ToolName.UPDATE_APPLICATION_STAGE.value:
        return f"Move application {a.get('application_id')} to stage {a.get('stage')}"
    if t == ToolName.SCHEDULE_INTERVIEW.value:
        return f"Schedule interview for application {a.get('application_id')} at {a.get('scheduled_at')}"
    return f"Run {t}"


def is_expired(action: PendingAction, *, ttl_seconds: int, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    return action.status == "pending" and now - action.created_at > timedelta(seconds=int(ttl_seconds))


def outstanding_action(
    conv: Conversation, *, ttl_seconds: int, now: Optional[datetime] = None
) -> Optional[PendingAction]:
    """
    Return the conversation's non-terminal action, expiring it first if it is too old.
    """
    a = conv.pending_action
    if a is None or a.is_terminal:
        return None
    if is_expired(a, ttl_seconds=ttl_seconds, now=now):
        transition(a, "cancelled", error="expired")
        return None
    return a


@dataclass(frozen=True)
class ProposalOutcome:
    action: PendingAction
    replaced: Optional[PendingAction] = None
    rejected: bool = False  # existing action kept; `action` is the existing one


def propose_action(
    conv: Conversation,
    inv: ToolInvocation,
    *,
    conflict: PendingConflict,
    ttl_seconds: int,
) -> ProposalOutcome:
    """
    Turn a mutating invocation into the conversation's pending action. Nothing is written.
    """
    existing = outstanding_action(conv, ttl_seconds=ttl_seconds)
    replaced: Optional[PendingAction] = None
    if existing is not None:
        if conflict == "reject":
            logger.info("Proposal %s rejected: action %s still pending", inv.tool, existing.id)
            return ProposalOutcome(action=existing, rejected=True)
        transition(existing, "cancelled", error="superseded")
        replaced = existing

    action = PendingAction(tool=inv.tool, args=dict(inv.args or {}), description=describe_action(inv))
    conv.pending_action = action
    return ProposalOutcome(action=action, replaced=replaced)


@dataclass(frozen=True)
class ResolveOutcome:
    success: bool
    message: str
    action: Optional[PendingAction] = None
    result: Any = None


def resolve_action(
    conv: Conversation,
    action_id: str,
    confirmed: bool,
    dispatch: Callable[[PendingAction], ToolResult],
    *,
    ttl_seconds: int,
) -> ResolveOutcome:
    """
    Confirm or cancel the conversation's pending action.

    - confirm + current id: pending -> confirmed -> executed|failed (dispatch runs once)
    - cancel + current id: pending -> cancelled (no dispatch)
    - cancel + other id: acknowledged, no state change
    - confirm + other/stale/expired id: rejected, no state change
    """
    current = outstanding_action(conv, ttl_seconds=ttl_seconds)
    matches = current is not None and current.id == action_id

    if not confirmed:
        if matches and current is not None:
            transition(current, "cancelled")
            return ResolveOutcome(success=True, message=CANCELLED_REPLY, action=current)
        logger.info("Cancel for non-current action %s ignored (conversation %s)", action_id, conv.id)
        return ResolveOutcome(success=True, message=CANCELLED_REPLY)

    if not matches or current is None:
        last = conv.pending_action
        if last is not None and last.id == action_id and last.error == "expired":
            logger.info("Confirmation for expired action %s rejected", action_id)
            return ResolveOutcome(success=False, message=EXPIRED_REPLY, action=last)
        logger.warning("Stale confirmation rejected: action=%s conversation=%s", action_id, conv.id)
        return ResolveOutcome(success=False, message=STALE_REPLY)

    transition(current, "confirmed")
    try:
        res = dispatch(current)
    except Exception as e:
        logger.exception("Dispatch for action %s raised", current.id)
        res = ToolResult(ok=False, error=str(e) or type(e).__name__, error_kind="handler_error")

    if res.ok:
        transition(current, "executed", result=res.result)
        return ResolveOutcome(
            success=True, message=format_result(current.tool, res.result), action=current, result=res.result
        )
    transition(current, "failed", error=res.error or "failed")
    return ResolveOutcome(success=False, message=format_error(res.error, res.error_kind), action=current)
