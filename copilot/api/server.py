"""
Copilot HTTP API.

Chat and action-execution endpoints for the recruitment CRM copilot. Every
non-public route requires a signed session; organization, user and role come
from that session only.
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
import time
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from copilot.auth.deps import require_caller
from copilot.authz.policy import load_copilot_policy
from copilot.chat.catalogue import catalogue_summary
from copilot.chat.runtime import ConversationNotFound, execute_action, run_chat
from copilot.chat.types import (
    ChatRequest,
    ChatResponse,
    ExecuteActionRequest,
    ExecuteActionResponse,
)
from copilot.memory.config import load_store_config
from copilot.memory.conversations import ConversationStore
from copilot.storage.base import RecordStore

logger = logging.getLogger(__name__)

app = FastAPI(title="Recruit Copilot")

_store: Optional[RecordStore] = None
_conversations: Optional[ConversationStore] = None
_services_lock = threading.Lock()


def _get_store() -> RecordStore:
    global _store
    if _store is not None:
        return _store
    with _services_lock:
        if _store is None:
            from copilot.storage.postgres_store import get_record_store

            _store = get_record_store()
        return _store


def _get_conversations() -> ConversationStore:
    global _conversations
    if _conversations is not None:
        return _conversations
    with _services_lock:
        if _conversations is None:
            cfg = load_store_config()
            _conversations = ConversationStore(
                max_conversations_per_user=cfg.max_conversations_per_user,
                max_messages_per_conversation=cfg.max_messages_per_conversation,
            )
        return _conversations


def _is_public_path(path: str) -> bool:
    return path == "/healthz"


@app.middleware("http")
async def authenticate_and_log(request: Request, call_next):
    """Attach the session caller and log every request."""
    start_time = time.time()
    try:
        path = request.url.path or ""
        if request.method != "OPTIONS" and not _is_public_path(path):
            from copilot.auth.deps import authenticate_request

            caller = authenticate_request(request)
            if caller is None:
                # No `WWW-Authenticate`: the browser client handles 401 itself.
                logger.debug("%s %s - 401", request.method, path)
                return JSONResponse(status_code=401, content={"detail": "Unauthorized"})
            request.state.caller = caller

        response = await call_next(request)
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, path, response.status_code, process_time)
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
        raise


@app.get("/healthz")
def healthz() -> Dict[str, Any]:
    return {"ok": True}


@app.post("/api/copilot/chat")
async def copilot_chat(request: Request, req: Dict[str, Any]) -> Dict[str, Any]:
    """
    Request body:
      { message: string, conversationId?: string, context: {currentPage?, currentPath?} }
    """
    caller = require_caller(request)
    policy = load_copilot_policy()
    if not policy.enabled:
        raise HTTPException(status_code=403, detail="Copilot is disabled")

    try:
        creq = ChatRequest.model_validate(req)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Message and context are required")

    try:
        res = await asyncio.to_thread(
            run_chat,
            policy=policy,
            store=_get_store(),
            conversations=_get_conversations(),
            caller=caller,
            message=creq.message,
            current_path=creq.context.current_path,
            current_page=creq.context.current_page,
            conversation_id=creq.conversation_id,
        )
    except ConversationNotFound:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except Exception:
        logger.exception("Copilot chat failed")
        raise HTTPException(status_code=500, detail="Failed to process message")

    out = ChatResponse(
        message=res.message,
        conversation_id=res.conversation_id,
        requires_confirmation=res.requires_confirmation,
        pending_action=res.pending_action,
    )
    return out.model_dump(mode="json", by_alias=True)


@app.post("/api/copilot/execute")
async def copilot_execute(request: Request, req: Dict[str, Any]) -> Dict[str, Any]:
    """
    Request body:
      { actionId: string, conversationId: string, confirmed: boolean }
    """
    caller = require_caller(request)
    policy = load_copilot_policy()
    if not policy.enabled:
        raise HTTPException(status_code=403, detail="Copilot is disabled")

    try:
        ereq = ExecuteActionRequest.model_validate(req)
    except ValidationError:
        raise HTTPException(status_code=400, detail="actionId, conversationId and confirmed are required")

    try:
        outcome = await asyncio.to_thread(
            execute_action,
            policy=policy,
            store=_get_store(),
            conversations=_get_conversations(),
            caller=caller,
            action_id=ereq.action_id,
            conversation_id=ereq.conversation_id,
            confirmed=ereq.confirmed,
        )
    except Exception:
        logger.exception("Copilot execute failed")
        raise HTTPException(status_code=500, detail="Failed to execute action")

    out = ExecuteActionResponse(success=outcome.success, message=outcome.message, result=outcome.result)
    return out.model_dump(mode="json", by_alias=True)


@app.get("/api/copilot/conversations")
async def copilot_conversations(request: Request) -> Dict[str, Any]:
    caller = require_caller(request)
    items = []
    for c in _get_conversations().list_for(organization_id=caller.organization_id, user_id=caller.user_id):
        pending = c.pending_action if c.pending_action is not None and not c.pending_action.is_terminal else None
        items.append(
            {
                "id": c.id,
                "title": c.title,
                "createdAt": c.created_at.isoformat(),
                "updatedAt": c.updated_at.isoformat(),
                "messageCount": len(c.messages),
                "pendingActionId": pending.id if pending is not None else None,
            }
        )
    return {"conversations": items}


@app.get("/api/copilot/conversations/{conversation_id}")
async def copilot_conversation(conversation_id: str, request: Request) -> Dict[str, Any]:
    caller = require_caller(request)
    conv = _get_conversations().get(conversation_id, organization_id=caller.organization_id, user_id=caller.user_id)
    if conv is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"conversation": conv.model_dump(mode="json", by_alias=True)}


@app.get("/api/copilot/tools")
async def copilot_tools(request: Request) -> Dict[str, Any]:
    caller = require_caller(request)
    return {"role": caller.role, "tools": catalogue_summary(caller.role)}


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    import uvicorn

    # Configure logging for the application
    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    logger.info("Starting copilot server on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
