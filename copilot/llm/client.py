"""
Provider-agnostic LLM client (text mode).

Goals:
- One uniform way to call any chat model: `generate_text(messages) -> (text, err_code)`.
- Stable, non-sensitive error codes.
- Never raise (callers have a deterministic keyword fallback).

Env (core):
- LLM_PROVIDER: openai | anthropic | vertexai (unset: not configured)
- LLM_MODEL, LLM_TEMPERATURE, LLM_MAX_OUTPUT_TOKENS
- LLM_TIMEOUT_SECONDS: client timeout (default: 20, range: 2-120)
- LLM_MOCK=1: return a deterministic stub (no external calls)

OpenAI requirements:
- OPENAI_API_KEY (required), OPENAI_BASE_URL (optional, for compatible endpoints)

Anthropic requirements:
- ANTHROPIC_API_KEY (required)

Vertex requirements:
- GOOGLE_CLOUD_PROJECT, GOOGLE_CLOUD_LOCATION and Application Default Credentials
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

MOCK_TEXT = "LLM_MOCK enabled: no external call was made."

_PROVIDERS = ("openai", "anthropic", "vertexai")

_DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-5-haiku-latest",
    "vertexai": "gemini-2.5-flash",
}


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "y", "on")


def _provider() -> str:
    p = (os.getenv("LLM_PROVIDER") or "").strip().lower()
    if p in ("vertex", "gcp_vertexai"):
        return "vertexai"
    return p


def is_configured() -> bool:
    return _env_bool("LLM_MOCK", False) or _provider() in _PROVIDERS


@dataclass(frozen=True)
class LLMConfig:
    provider: str
    model: str
    temperature: float
    max_output_tokens: int
    timeout: int = 20


def _load_config() -> LLMConfig:
    provider = _provider()
    model = (os.getenv("LLM_MODEL") or "").strip() or _DEFAULT_MODELS.get(provider, "")
    try:
        temperature = float((os.getenv("LLM_TEMPERATURE") or "").strip() or "0.1")
    except Exception:
        temperature = 0.1
    try:
        max_output_tokens = int((os.getenv("LLM_MAX_OUTPUT_TOKENS") or "").strip() or "1024")
    except Exception:
        max_output_tokens = 1024
    try:
        timeout = int((os.getenv("LLM_TIMEOUT_SECONDS") or "").strip() or "20")
    except Exception:
        timeout = 20

    # Keep bounds sane
    temperature = max(0.0, min(temperature, 1.0))
    max_output_tokens = max(64, min(max_output_tokens, 8192))
    timeout = max(2, min(timeout, 120))

    return LLMConfig(
        provider=provider,
        model=model,
        temperature=temperature,
        max_output_tokens=max_output_tokens,
        timeout=timeout,
    )


def _classify_error(e: Exception, *, model: str) -> str:
    msg = str(e or "").replace("\n", " ").strip()
    up = msg.upper()
    name = type(e).__name__.upper()

    # Timeouts first: SDKs wrap them in many exception types.
    if isinstance(e, TimeoutError) or "TIMEOUT" in name:
        return "timeout"
    if "408" in msg or "TIMEOUT" in up or "TIMED OUT" in up:
        return "timeout"
    if "504" in msg:
        return "gateway_timeout"
    if "DEADLINE_EXCEEDED" in up or "DEADLINE EXCEEDED" in up:
        return "deadline_exceeded"

    if "PERMISSION_DENIED" in up or "403" in msg:
        return "permission_denied"
    if "UNAUTHENTICATED" in up or "401" in msg or "AUTHENTICATION" in name:
        return "unauthenticated"
    if "API_KEY" in up and ("INVALID" in up or "MISSING" in up):
        return "unauthenticated"
    if "429" in msg or ("RATE" in up and "LIMIT" in up) or "RATELIMIT" in name or "OVERLOADED" in up:
        return "rate_limited"
    if "404" in msg or "NOT FOUND" in up:
        return f"model_not_found:{model}"
    if "CONTEXT LENGTH" in up or "MAX_TOKENS" in up or "MAXIMUM CONTEXT" in up:
        return "max_tokens_truncated"
    if "CONNECTION" in name or "CONNECTION" in up:
        return "connection_error"

    return f"llm_error:{type(e).__name__}"


def _get_llm_instance(cfg: LLMConfig) -> Tuple[Any, Optional[str]]:
    """
    Factory returning the LangChain chat model for the configured provider.

    Returns: (llm_instance, error_code). Exactly one is None.
    """
    if cfg.provider == "openai":
        api_key = (os.getenv("OPENAI_API_KEY") or "").strip()
        if not api_key:
            return None, "missing_api_key"
        try:
            from langchain_openai import ChatOpenAI  # type: ignore[import-not-found]
        except Exception:
            return None, "sdk_import_failed:langchain_openai"
        kwargs: Dict[str, Any] = {}
        base_url = (os.getenv("OPENAI_BASE_URL") or "").strip()
        if base_url:
            kwargs["base_url"] = base_url
        llm = ChatOpenAI(
            model=cfg.model,
            temperature=cfg.temperature,
            max_tokens=cfg.max_output_tokens,
            api_key=api_key,
            timeout=cfg.timeout,
            max_retries=1,
            **kwargs,
        )
        return llm, None

    if cfg.provider == "anthropic":
        api_key = (os.getenv("ANTHROPIC_API_KEY") or "").strip()
        if not api_key:
            return None, "missing_api_key"
        try:
            from langchain_anthropic import ChatAnthropic  # type: ignore[import-not-found]
        except Exception:
            return None, "sdk_import_failed:langchain_anthropic"
        llm = ChatAnthropic(
            model=cfg.model,
            temperature=cfg.temperature,
            max_tokens=cfg.max_output_tokens,
            anthropic_api_key=api_key,
            timeout=cfg.timeout,
            max_retries=1,
        )
        return llm, None

    if cfg.provider == "vertexai":
        project = (os.getenv("GOOGLE_CLOUD_PROJECT") or "").strip()
        location = (os.getenv("GOOGLE_CLOUD_LOCATION") or "").strip()
        if not project:
            return None, "missing_gcp_project"
        if not location:
            return None, "missing_gcp_location"
        try:
            from langchain_google_vertexai import ChatVertexAI  # type: ignore[import-not-found]
        except Exception:
            return None, "sdk_import_failed:langchain_google_vertexai"
        llm = ChatVertexAI(
            model=cfg.model,
            temperature=cfg.temperature,
            max_output_tokens=cfg.max_output_tokens,
            project=project,
            location=location,
            timeout=cfg.timeout,
            max_retries=1,
        )
        return llm, None

    return None, "provider_not_configured"


def _to_messages(messages: Sequence[Dict[str, str]]) -> List[Any]:
    from langchain_core.messages import AIMessage, HumanMessage, SystemMessage  # type: ignore[import-not-found]

    out: List[Any] = []
    for m in messages:
        role = str(m.get("role") or "user")
        content = str(m.get("content") or "")
        if role == "system":
            out.append(SystemMessage(content=content))
        elif role == "assistant":
            out.append(AIMessage(content=content))
        else:
            out.append(HumanMessage(content=content))
    return out


def _content_text(content: Any) -> str:
    # Some providers return a list of content blocks instead of a string.
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict):
                parts.append(str(block.get("text") or ""))
            else:
                parts.append(str(block))
        return "".join(parts)
    return str(content or "")


def generate_text(messages: Sequence[Dict[str, str]]) -> Tuple[Optional[str], Optional[str]]:
    """
    Provider-agnostic chat call.

    Args:
        messages: [{role: system|user|assistant, content: str}, ...]

    Returns: (text, err_code). Exactly one is non-None.
    """
    if _env_bool("LLM_MOCK", False):
        return MOCK_TEXT, None

    cfg = _load_config()
    llm, err = _get_llm_instance(cfg)
    if err:
        return None, err

    try:
        msg = llm.invoke(_to_messages(messages))
        text = _content_text(getattr(msg, "content", None)).strip()
        return (text, None) if text else (None, "empty_response")
    except Exception as e:
        code = _classify_error(e, model=cfg.model)
        logger.warning("LLM call failed: provider=%s code=%s", cfg.provider, code)
        return None, code
