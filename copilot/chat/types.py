from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

CopilotRole = Literal["admin", "recruiter", "client"]
EntityType = Literal["candidate", "job", "client", "application", "interview"]
MessageRole = Literal["user", "assistant", "system"]
ActionStatus = Literal["pending", "confirmed", "executed", "failed", "cancelled"]
IntentSource = Literal["model", "fallback", "confirmation", "none"]

ROLES = ("admin", "recruiter", "client")
TERMINAL_STATUSES = frozenset({"executed", "failed", "cancelled"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:16]}"


class _CamelModel(BaseModel):
    # Wire format is camelCase (browser client); Python side stays snake_case.
    model_config = ConfigDict(populate_by_name=True)


class CopilotContext(_CamelModel):
    current_page: str = Field("dashboard", alias="currentPage")
    current_path: str = Field("/", alias="currentPath")
    entity_type: Optional[EntityType] = Field(None, alias="entityType")
    entity_id: Optional[str] = Field(None, alias="entityId")
    organization_id: str = Field("", alias="organizationId")
    user_id: str = Field("", alias="userId")
    user_role: CopilotRole = Field("client", alias="userRole")


class ToolInvocation(BaseModel):
    """A tool name plus arguments, proposed but not executed yet."""

    tool: str
    args: Dict[str, Any] = Field(default_factory=dict)


class PendingAction(_CamelModel):
    id: str = Field(default_factory=lambda: new_id("action"))
    tool: str
    args: Dict[str, Any] = Field(default_factory=dict)
    description: str
    status: ActionStatus = "pending"
    requires_confirmation: bool = Field(True, alias="requiresConfirmation")
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")
    result: Any = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class MessageMetadata(_CamelModel):
    tool_used: Optional[str] = Field(None, alias="toolUsed")
    confidence: Optional[float] = None
    intent_source: Optional[IntentSource] = Field(None, alias="intentSource")


class CopilotMessage(_CamelModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=lambda: new_id("msg"))
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    actions: Optional[List[PendingAction]] = None
    metadata: Optional[MessageMetadata] = None


class Conversation(_CamelModel):
    id: str = Field(default_factory=lambda: new_id("conv"))
    organization_id: str = Field(alias="organizationId")
    user_id: str = Field(alias="userId")
    title: Optional[str] = None
    messages: List[CopilotMessage] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")
    pending_action: Optional[PendingAction] = Field(None, alias="pendingAction")

    def append(self, message: CopilotMessage) -> None:
        self.messages.append(message)
        self.updated_at = message.timestamp
        if self.title is None and message.role == "user":
            self.title = message.content.strip()[:60] or None


# ---- Boundary request/response shapes ----


class RequestContext(_CamelModel):
    """Context as sent by the browser; only navigation fields are trusted."""

    current_page: Optional[str] = Field(None, alias="currentPage")
    current_path: Optional[str] = Field(None, alias="currentPath")


class ChatRequest(_CamelModel):
    message: str = Field(min_length=1)
    conversation_id: Optional[str] = Field(None, alias="conversationId")
    context: RequestContext

    @field_validator("message", mode="before")
    @classmethod
    def _strip_message(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class ChatResponse(_CamelModel):
    message: CopilotMessage
    conversation_id: str = Field(alias="conversationId")
    requires_confirmation: bool = Field(False, alias="requiresConfirmation")
    pending_action: Optional[PendingAction] = Field(None, alias="pendingAction")


class ExecuteActionRequest(_CamelModel):
    action_id: str = Field(min_length=1, alias="actionId")
    conversation_id: str = Field(min_length=1, alias="conversationId")
    confirmed: bool


class ExecuteActionResponse(_CamelModel):
    success: bool
    message: str
    result: Any = None
