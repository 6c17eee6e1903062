from __future__ import annotations

from typing import Dict, Optional, Tuple

from copilot.chat.types import CopilotContext, CopilotRole

_ENTITY_COLLECTIONS: Dict[str, str] = {
    "candidates": "candidate",
    "jobs": "job",
    "clients": "client",
    "applications": "application",
    "interviews": "interview",
}


def _path_segments(path: str) -> list[str]:
    p = str(path or "")
    for sep in ("?", "#"):
        if sep in p:
            p = p.split(sep, 1)[0]
    return [seg for seg in p.strip().split("/") if seg]


def entity_from_path(path: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Return (entity_type, entity_id) for paths like `/candidates/c-42`.

    Collection pages (`/candidates`) and unknown sections yield (None, None).
    """
    segs = _path_segments(path)
    if len(segs) < 2:
        return None, None
    entity_type = _ENTITY_COLLECTIONS.get(segs[0].lower())
    if entity_type is None:
        return None, None
    return entity_type, segs[1]


def resolve_context(
    path: str,
    *,
    organization_id: str,
    user_id: str,
    role: CopilotRole,
    current_page: Optional[str] = None,
) -> CopilotContext:
    segs = _path_segments(path)
    page = (current_page or "").strip() or (segs[0].lower() if segs else "dashboard")
    entity_type, entity_id = entity_from_path(path)
    return CopilotContext(
        current_page=page,
        current_path="/" + "/".join(segs),
        entity_type=entity_type,
        entity_id=entity_id,
        organization_id=organization_id,
        user_id=user_id,
        user_role=role,
    )


def describe_context(ctx: CopilotContext) -> str:
    lines = [
        f"- Current page: {ctx.current_page}",
        f"- User role: {ctx.user_role}",
    ]
    if ctx.entity_type and ctx.entity_id:
        lines.append(f"- Viewing {ctx.entity_type}: {ctx.entity_id}")
    return "\n".join(lines)
