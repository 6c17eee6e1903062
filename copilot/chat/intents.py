"""
Deterministic intent detection.

Used when the model path is unavailable or yields no tool. Matching is keyword
based on the normalised utterance; the first matching rule wins.
"""
from __future__ import annotations

import re
from typing import Literal, Optional

from copilot.chat.catalogue import NOTE_ENTITY_TYPES, ToolName
from copilot.chat.types import CopilotContext, ToolInvocation

ConfirmationReply = Literal["confirm", "cancel"]


def _norm(s: str) -> str:
    return re.sub(r"\s+", " ", (s or "").strip().lower())


def _has_any(s: str, words: tuple[str, ...]) -> bool:
    return any(w in s for w in words)


# ---------------------------------------------------------------------------
# Fast-path patterns (anchored: must match the ENTIRE normalised message)
# ---------------------------------------------------------------------------

_CONFIRM_PATTERNS = re.compile(
    r"^(y|yes|yep|yeah|yup|sure|ok|okay|confirm|confirmed|do\s+it|go\s+ahead|proceed|"
    r"yes,?\s+(please|do\s+it|go\s+ahead|confirm)|please\s+(do|proceed|confirm))[.!\s]*$",
    re.IGNORECASE,
)

_CANCEL_PATTERNS = re.compile(
    r"^(n|no|nope|nah|cancel|stop|abort|never\s*mind|nevermind|don'?t|do\s+not|"
    r"no,?\s+(thanks|thank\s+you|cancel(\s+it)?|don'?t))[.!\s]*$",
    re.IGNORECASE,
)

# "add a note to this candidate saying ...", "add note: ..."
_NOTE_PATTERN = re.compile(
    r"^\s*(?:please\s+)?(?:add|leave|write|create)\s+(?:a\s+)?note\b"
    r"(?:\s+(?:to|on|for)\s+(?:this|the)\s+(?:candidate|job|client|record|profile))?"
    r"\s*(?:saying|says|that\s+says|:|-)\s*(?P<content>.+?)\s*$",
    re.IGNORECASE | re.DOTALL,
)


def detect_confirmation_reply(utterance: str) -> Optional[ConfirmationReply]:
    """Classify a short yes/no reply to an outstanding action."""
    s = _norm(utterance)
    if not s:
        return None
    if _CONFIRM_PATTERNS.match(s):
        return "confirm"
    if _CANCEL_PATTERNS.match(s):
        return "cancel"
    return None


def _detect_note(utterance: str, context: Optional[CopilotContext]) -> Optional[ToolInvocation]:
    m = _NOTE_PATTERN.match(utterance or "")
    if not m:
        return None
    content = (m.group("content") or "").strip().strip("\"'").strip()
    if not content:
        return None
    if context is None or not context.entity_id or context.entity_type not in NOTE_ENTITY_TYPES:
        return None
    return ToolInvocation(
        tool=ToolName.ADD_NOTE.value,
        args={"entity_type": context.entity_type, "entity_id": context.entity_id, "content": content},
    )


def detect_intent(utterance: str, context: Optional[CopilotContext] = None) -> Optional[ToolInvocation]:
    """
    Keyword classifier.

    Returns None when nothing matches; callers then fall through to the model's
    free text or the help reply.
    """
    note = _detect_note(utterance, context)
    if note is not None:
        return note

    s = _norm(utterance)
    if not s:
        return None

    if _has_any(s, ("dashboard", "summary", "stats", "statistics")):
        return ToolInvocation(tool=ToolName.GET_DASHBOARD_STATS.value, args={})

    if _has_any(s, ("job", "position", "opening")):
        args: dict = {}
        if _has_any(s, ("active", "live", "open")):
            args["status"] = "active"
        if "how many" in s:
            args["limit"] = 100
        return ToolInvocation(tool=ToolName.SEARCH_JOBS.value, args=args)

    if _has_any(s, ("candidate", "applicant", "talent")):
        args = {}
        if "how many" in s:
            args["limit"] = 100
        return ToolInvocation(tool=ToolName.SEARCH_CANDIDATES.value, args=args)

    if "interview" in s and _has_any(s, ("upcoming", "scheduled", "coming")):
        return ToolInvocation(tool=ToolName.GET_UPCOMING_INTERVIEWS.value, args={})

    if _has_any(s, ("client", "company")):
        return ToolInvocation(tool=ToolName.SEARCH_CLIENTS.value, args={})

    return None
