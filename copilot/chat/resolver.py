from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from copilot.authz.policy import CopilotPolicy, redact_text
from copilot.chat.catalogue import list_for, lookup
from copilot.chat.context import describe_context
from copilot.chat.intents import detect_intent
from copilot.chat.types import CopilotContext, CopilotMessage, IntentSource, ToolInvocation
from copilot.llm.client import generate_text

logger = logging.getLogger(__name__)

HELP_REPLY = (
    "I'm not sure how to help with that. I can:\n"
    "- Search candidates, jobs, clients and applications\n"
    "- View candidate, job and client details\n"
    "- Show upcoming interviews and dashboard stats\n"
    "- Add notes, update records and schedule interviews (after you confirm)\n\n"
    'Try "Show me active jobs" or "Add a note to this candidate saying ...".'
)

GenerateFn = Callable[[Sequence[Dict[str, str]]], Tuple[Optional[str], Optional[str]]]


@dataclass(frozen=True)
class Resolution:
    invocation: Optional[ToolInvocation]
    reply: str = ""
    source: IntentSource = "none"
    llm_error: Optional[str] = None


def build_system_prompt(context: CopilotContext) -> str:
    tools = "\n".join(d.prompt_line() for d in list_for(context.user_role))
    return (
        "You are the assistant inside a recruitment CRM. You help recruiters find and update "
        "candidates, jobs, clients, applications, interviews and notes.\n\n"
        "Current context:\n"
        f"{describe_context(context)}\n\n"
        "Available tools (`?` marks optional parameters):\n"
        f"{tools}\n\n"
        "Rules:\n"
        "- If a tool is needed, reply with ONLY a JSON object: "
        '{"tool": "<tool name>", "args": {...}}\n'
        "- Use at most one tool per reply. Never invent IDs; use the viewed entity when the user says "
        '"this candidate/job/client".\n'
        "- Changes (create/update/schedule/add note) are confirmed by the user before they run.\n"
        "- If no tool is needed, answer briefly in plain text."
    )


def _json_candidate(text: str) -> Optional[str]:
    t = (text or "").strip()
    start = t.find("{")
    end = t.rfind("}")
    if start == -1 or end <= start:
        return None
    return t[start : end + 1]


def parse_tool_call(text: str) -> Optional[ToolInvocation]:
    """
    Two-stage parse of model output.

    1. Structural: slice the first `{` through the last `}` and json-decode it.
    2. Strict: a string `tool` naming a catalogued tool and an object `args`
       (missing args means {}).

    Any failure means "no tool"; this never raises.
    """
    raw = _json_candidate(text)
    if raw is None:
        return None
    try:
        obj: Any = json.loads(raw)
    except (ValueError, TypeError):
        return None
    if not isinstance(obj, dict):
        return None
    tool = obj.get("tool")
    if not isinstance(tool, str) or not tool.strip():
        return None
    args = obj.get("args", {})
    if args is None:
        args = {}
    if not isinstance(args, dict):
        return None
    if lookup(tool) is None:
        logger.info("Model proposed unknown tool %r; ignoring", tool[:80])
        return None
    return ToolInvocation(tool=tool.strip(), args=args)


def _history_messages(history: Sequence[CopilotMessage], *, policy: CopilotPolicy) -> List[Dict[str, str]]:
    if policy.max_history_messages <= 0:
        return []
    out: List[Dict[str, str]] = []
    for m in list(history)[-policy.max_history_messages :]:
        if m.role not in ("user", "assistant"):
            continue
        content = redact_text(m.content) if policy.redact_secrets else m.content
        out.append({"role": m.role, "content": content})
    return out


def resolve_intent(
    utterance: str,
    history: Sequence[CopilotMessage],
    context: CopilotContext,
    *,
    policy: CopilotPolicy,
    generate: Optional[GenerateFn] = None,
) -> Resolution:
    """
    Resolve an utterance to at most one tool invocation.

    Model first; on error, timeout or no parsable tool the keyword classifier
    runs. With neither, the model's free text (or a help reply) is returned.
    """
    gen = generate or generate_text
    user_text = redact_text(utterance) if policy.redact_secrets else utterance
    messages = [{"role": "system", "content": build_system_prompt(context)}]
    messages.extend(_history_messages(history, policy=policy))
    messages.append({"role": "user", "content": user_text})

    try:
        text, err = gen(messages)
    except Exception as e:
        # Injected generators may not honour the never-raise contract.
        logger.warning("Intent model call raised %s; using fallback", type(e).__name__)
        text, err = None, f"llm_error:{type(e).__name__}"

    if err:
        logger.info("Intent model unavailable (%s); using keyword fallback", err)
    else:
        inv = parse_tool_call(text or "")
        if inv is not None:
            logger.info("Intent resolved by model: %s", inv.tool)
            return Resolution(invocation=inv, source="model")

    inv = detect_intent(utterance, context)
    if inv is not None:
        logger.info("Intent resolved by fallback: %s", inv.tool)
        return Resolution(invocation=inv, source="fallback", llm_error=err)

    free_text = (text or "").strip()
    if free_text:
        return Resolution(invocation=None, reply=free_text, source="none", llm_error=err)
    return Resolution(invocation=None, reply=HELP_REPLY, source="none", llm_error=err)
