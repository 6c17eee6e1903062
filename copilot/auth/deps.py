from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request

from copilot.auth.config import load_auth_config
from copilot.auth.models import CopilotCaller
from copilot.auth.session import decode_session, session_cookie_name


def _bearer_token(request: Request) -> Optional[str]:
    raw = (request.headers.get("authorization") or "").strip()
    if not raw:
        return None
    scheme, _, token = raw.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def authenticate_request(request: Request) -> Optional[CopilotCaller]:
    """
    Authenticate a request and return the caller if present/valid.

    Accepts the session cookie or an `Authorization: Bearer <session token>` header.
    """
    cfg = load_auth_config()

    caller = decode_session(cfg, _bearer_token(request))
    if caller is not None:
        return caller
    return decode_session(cfg, request.cookies.get(session_cookie_name(cfg)))


def require_caller(request: Request) -> CopilotCaller:
    caller = getattr(request.state, "caller", None)
    if not isinstance(caller, CopilotCaller):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return caller
