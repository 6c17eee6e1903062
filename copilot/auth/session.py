from __future__ import annotations

import json
from dataclasses import asdict
from typing import Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

from copilot.auth.config import AuthConfig
from copilot.auth.models import CopilotCaller, normalize_role


def session_cookie_name(cfg: AuthConfig) -> str:
    # `__Host-` requires Secure + Path=/ + no Domain; browsers may reject it on HTTP.
    return "__Host-copilot_session" if cfg.cookie_secure else "copilot_session"


SESSION_SALT = "recruit-copilot-session-v1"


def _serializer(cfg: AuthConfig) -> Optional[URLSafeTimedSerializer]:
    if not cfg.session_secret:
        return None
    return URLSafeTimedSerializer(secret_key=cfg.session_secret, salt=SESSION_SALT)


def encode_session(cfg: AuthConfig, caller: CopilotCaller) -> Optional[str]:
    s = _serializer(cfg)
    if s is None:
        return None
    raw = json.dumps(asdict(caller), separators=(",", ":"), sort_keys=True)
    return s.dumps(raw)


def decode_session(cfg: AuthConfig, value: str | None) -> Optional[CopilotCaller]:
    if not value:
        return None
    s = _serializer(cfg)
    if s is None:
        return None
    try:
        raw = s.loads(value, max_age=cfg.session_ttl_seconds)
        data = json.loads(raw)
        if not isinstance(data, dict):
            return None
        user_id = str(data.get("user_id") or "").strip()
        org_id = str(data.get("organization_id") or "").strip()
        # A session without an organization cannot scope anything.
        if not user_id or not org_id:
            return None
        return CopilotCaller(
            user_id=user_id,
            organization_id=org_id,
            role=normalize_role(data.get("role")),
            name=str(data.get("name") or ""),
        )
    except (BadSignature, BadTimeSignature, ValueError):
        return None

