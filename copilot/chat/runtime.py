from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, TypedDict

from copilot.auth.models import CopilotCaller
from copilot.authz.policy import CopilotPolicy, is_tool_allowed
from copilot.chat.catalogue import lookup
from copilot.chat.confirmation import (
    ResolveOutcome,
    outstanding_action,
    propose_action,
    resolve_action,
)
from copilot.chat.context import resolve_context
from copilot.chat.formatting import format_error, format_result
from copilot.chat.intents import detect_confirmation_reply
from copilot.chat.resolver import GenerateFn, resolve_intent
from copilot.chat.tools import ArgumentError, ToolResult, check_args, run_tool
from copilot.chat.types import (
    Conversation,
    CopilotContext,
    CopilotMessage,
    MessageMetadata,
    PendingAction,
    ToolInvocation,
)
from copilot.graphs.tracing import build_invoke_config
from copilot.memory.conversations import ConversationStore
from copilot.storage.base import RecordStore

logger = logging.getLogger(__name__)

TEMP_CONVERSATION_PREFIX = "temp-"


class ConversationNotFound(LookupError):
    pass


@dataclass(frozen=True)
class ChatTurnResult:
    conversation_id: str
    message: CopilotMessage
    pending_action: Optional[PendingAction] = None
    requires_confirmation: bool = False


class _TurnState(TypedDict, total=False):
    utterance: str
    history: List[CopilotMessage]
    context: CopilotContext
    invocation: Optional[ToolInvocation]
    source: str
    llm_error: Optional[str]
    reply: str
    tool_used: Optional[str]
    pending_action: Optional[PendingAction]
    requires_confirmation: bool


def _dispatcher(*, policy: CopilotPolicy, store: RecordStore, caller: CopilotCaller):
    def _dispatch(action: PendingAction) -> ToolResult:
        # Role is re-checked at execution time by run_tool.
        return run_tool(
            store=store,
            tool=action.tool,
            args=action.args,
            organization_id=caller.organization_id,
            user_id=caller.user_id,
            role=caller.role,
            confirmed=True,
            user_name=caller.display_name,
            default_limit=policy.default_result_limit,
            max_limit=policy.max_result_limit,
        )

    return _dispatch


def _proposal_reply(action: PendingAction, *, replaced: Optional[PendingAction], rejected: bool) -> str:
    if rejected:
        return (
            f"You still have a pending action: **{action.description}**.\n"
            "Please confirm or cancel it before starting another one."
        )
    lines = []
    if replaced is not None:
        lines.append(f"Note: this replaces your earlier pending action ({replaced.description}), which has been cancelled.")
        lines.append("")
    lines.append(f"I can do that: **{action.description}**.")
    lines.append("Please confirm to proceed, or cancel.")
    return "\n".join(lines)


def _run_turn_graph(
    *,
    policy: CopilotPolicy,
    store: RecordStore,
    caller: CopilotCaller,
    conv: Conversation,
    utterance: str,
    history: List[CopilotMessage],
    context: CopilotContext,
    generate: Optional[GenerateFn],
) -> _TurnState:
    """
    One chat turn as a LangGraph graph:

        resolve -> dispatch | propose | deny | END
    """
    from langgraph.graph import END, StateGraph  # type: ignore[import-not-found]

    def resolve_step(state):
        res = resolve_intent(
            state.get("utterance") or "",
            state.get("history") or [],
            state["context"],
            policy=policy,
            generate=generate,
        )
        return {
            **state,
            "invocation": res.invocation,
            "source": res.source,
            "llm_error": res.llm_error,
            "reply": res.reply,
        }

    def route_after_resolve(state) -> str:
        inv = state.get("invocation")
        if inv is None:
            return "end"
        d = lookup(inv.tool)
        if d is None:
            return "end"
        if not is_tool_allowed(inv.tool, caller.role):
            return "deny"
        return "propose" if d.mutating else "dispatch"

    def deny_step(state):
        inv = state["invocation"]
        logger.info("Permission denied: role=%s tool=%s conversation=%s", caller.role, inv.tool, conv.id)
        return {**state, "tool_used": inv.tool, "reply": format_error(None, "permission_denied")}

    def dispatch_step(state):
        inv = state["invocation"]
        res = run_tool(
            store=store,
            tool=inv.tool,
            args=inv.args,
            organization_id=caller.organization_id,
            user_id=caller.user_id,
            role=caller.role,
            confirmed=False,
            user_name=caller.display_name,
            default_limit=policy.default_result_limit,
            max_limit=policy.max_result_limit,
        )
        reply = format_result(inv.tool, res.result) if res.ok else format_error(res.error, res.error_kind)
        return {**state, "tool_used": inv.tool, "reply": reply}

    def propose_step(state):
        inv = state["invocation"]
        d = lookup(inv.tool)
        try:
            clean = check_args(d, inv.args) if d is not None else dict(inv.args)
        except ArgumentError as e:
            return {**state, "tool_used": inv.tool, "reply": f"I need a bit more detail to do that: {e}."}
        out = propose_action(
            conv,
            ToolInvocation(tool=inv.tool, args=clean),
            conflict=policy.pending_conflict,
            ttl_seconds=policy.pending_action_ttl_seconds,
        )
        return {
            **state,
            "tool_used": inv.tool,
            "pending_action": out.action,
            "requires_confirmation": True,
            "reply": _proposal_reply(out.action, replaced=out.replaced, rejected=out.rejected),
        }

    g = StateGraph(_TurnState)
    g.add_node("resolve", resolve_step)
    g.add_node("dispatch", dispatch_step)
    g.add_node("propose", propose_step)
    g.add_node("deny", deny_step)
    g.set_entry_point("resolve")
    g.add_conditional_edges(
        "resolve",
        route_after_resolve,
        {"dispatch": "dispatch", "propose": "propose", "deny": "deny", "end": END},
    )
    g.add_edge("dispatch", END)
    g.add_edge("propose", END)
    g.add_edge("deny", END)

    app = g.compile()
    init: _TurnState = {
        "utterance": utterance,
        "history": history,
        "context": context,
        "invocation": None,
        "source": "none",
        "llm_error": None,
        "reply": "",
        "tool_used": None,
        "pending_action": None,
        "requires_confirmation": False,
    }
    cfg = build_invoke_config(
        kind="copilot_chat",
        run_name=f"copilot_chat:{conv.id}",
        metadata={"conversation_id": conv.id, "organization_id": caller.organization_id, "role": caller.role},
    )
    return app.invoke(init, config=cfg)


def _open_conversation(
    conversations: ConversationStore, caller: CopilotCaller, conversation_id: Optional[str]
) -> Conversation:
    cid = (conversation_id or "").strip()
    if not cid or cid.startswith(TEMP_CONVERSATION_PREFIX):
        return conversations.create(organization_id=caller.organization_id, user_id=caller.user_id)
    conv = conversations.get(cid, organization_id=caller.organization_id, user_id=caller.user_id)
    if conv is None:
        raise ConversationNotFound(cid)
    return conv


def run_chat(
    *,
    policy: CopilotPolicy,
    store: RecordStore,
    conversations: ConversationStore,
    caller: CopilotCaller,
    message: str,
    current_path: Optional[str] = None,
    current_page: Optional[str] = None,
    conversation_id: Optional[str] = None,
    generate: Optional[GenerateFn] = None,
) -> ChatTurnResult:
    """
    Handle one user utterance.

    Read-only tools run immediately; mutating tools become the conversation's
    pending action. While an action is pending, a plain yes/no reply confirms
    or cancels it. Raises ConversationNotFound for ids the caller does not own.
    """
    conv = _open_conversation(conversations, caller, conversation_id)

    with conversations.locked(conv.id):
        ctx = resolve_context(
            current_path or "/",
            organization_id=caller.organization_id,
            user_id=caller.user_id,
            role=caller.role,
            current_page=current_page,
        )
        history = list(conv.messages)
        conversations.append(conv, CopilotMessage(role="user", content=message))

        pending = outstanding_action(conv, ttl_seconds=policy.pending_action_ttl_seconds)
        reply_kind = detect_confirmation_reply(message) if pending is not None else None
        if pending is not None and reply_kind is not None:
            outcome = resolve_action(
                conv,
                pending.id,
                reply_kind == "confirm",
                _dispatcher(policy=policy, store=store, caller=caller),
                ttl_seconds=policy.pending_action_ttl_seconds,
            )
            assistant = CopilotMessage(
                role="assistant",
                content=outcome.message,
                actions=[outcome.action.model_copy()] if outcome.action is not None else None,
                metadata=MessageMetadata(tool_used=pending.tool, intent_source="confirmation"),
            )
            conversations.append(conv, assistant)
            return ChatTurnResult(conversation_id=conv.id, message=assistant)

        out = _run_turn_graph(
            policy=policy,
            store=store,
            caller=caller,
            conv=conv,
            utterance=message,
            history=history,
            context=ctx,
            generate=generate,
        )
        pending_action: Optional[PendingAction] = out.get("pending_action")
        requires_confirmation = bool(out.get("requires_confirmation")) and pending_action is not None
        assistant = CopilotMessage(
            role="assistant",
            content=str(out.get("reply") or "").strip() or "OK.",
            actions=[pending_action.model_copy()] if requires_confirmation and pending_action is not None else None,
            metadata=MessageMetadata(
                tool_used=out.get("tool_used"),
                intent_source=out.get("source") or "none",  # type: ignore[arg-type]
            ),
        )
        conversations.append(conv, assistant)
        logger.info(
            "Chat turn: conversation=%s source=%s tool=%s pending=%s",
            conv.id,
            out.get("source"),
            out.get("tool_used"),
            pending_action.id if requires_confirmation and pending_action is not None else None,
        )
        return ChatTurnResult(
            conversation_id=conv.id,
            message=assistant,
            pending_action=pending_action if requires_confirmation else None,
            requires_confirmation=requires_confirmation,
        )


def execute_action(
    *,
    policy: CopilotPolicy,
    store: RecordStore,
    conversations: ConversationStore,
    caller: CopilotCaller,
    action_id: str,
    conversation_id: str,
    confirmed: bool,
) -> ResolveOutcome:
    """
    Confirm or cancel a pending action by id.

    Cancels always succeed (state changes only on an id match); confirms of
    stale, replayed or unknown ids fail without side effects.
    """
    conv = conversations.get(conversation_id, organization_id=caller.organization_id, user_id=caller.user_id)
    if conv is None:
        logger.warning("Execute for unknown conversation %s (confirmed=%s)", conversation_id, confirmed)
        return resolve_action(
            Conversation(organization_id=caller.organization_id, user_id=caller.user_id),
            action_id,
            confirmed,
            _dispatcher(policy=policy, store=store, caller=caller),
            ttl_seconds=policy.pending_action_ttl_seconds,
        )

    with conversations.locked(conv.id):
        outcome = resolve_action(
            conv,
            action_id,
            confirmed,
            _dispatcher(policy=policy, store=store, caller=caller),
            ttl_seconds=policy.pending_action_ttl_seconds,
        )
        if outcome.action is not None:
            conversations.append(
                conv,
                CopilotMessage(
                    role="assistant",
                    content=outcome.message,
                    actions=[outcome.action.model_copy()],
                    metadata=MessageMetadata(tool_used=outcome.action.tool, intent_source="confirmation"),
                ),
            )
        return outcome
