from __future__ import annotations

from dataclasses import dataclass

from copilot.chat.types import ROLES, CopilotRole


@dataclass(frozen=True)
class CopilotCaller:
    """Authenticated caller, as carried in the signed session."""

    user_id: str
    organization_id: str
    role: CopilotRole = "client"
    name: str = ""

    @property
    def display_name(self) -> str:
        return self.name or self.user_id


def normalize_role(raw: object) -> CopilotRole:
    """Unknown or missing roles degrade to the least privileged role."""
    r = str(raw or "").strip().lower()
    if r in ROLES:
        return r  # type: ignore[return-value]
    return "client"
