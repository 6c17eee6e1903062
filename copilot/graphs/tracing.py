from __future__ import annotations

import logging
import os
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "y", "on")


def _api_key() -> Optional[str]:
    return (os.getenv("LANGSMITH_API_KEY") or "").strip() or (os.getenv("LANGCHAIN_API_KEY") or "").strip() or None


def tracing_enabled() -> bool:
    """
    Return True when LangSmith tracing should be enabled.

    Env-gated: LANGSMITH_TRACING (or LANGCHAIN_TRACING_V2) plus an API key.
    """
    want = _env_bool("LANGSMITH_TRACING", False) or _env_bool("LANGCHAIN_TRACING_V2", False)
    if not want:
        return False
    if not _api_key():
        logger.warning(
            "LangSmith tracing requested but no API key found (LANGSMITH_API_KEY/LANGCHAIN_API_KEY). Tracing disabled."
        )
        return False
    return True


def _project_name() -> str:
    return (os.getenv("LANGSMITH_PROJECT") or "").strip() or (os.getenv("LANGCHAIN_PROJECT") or "").strip() or "copilot"


def _tags() -> Optional[List[str]]:
    raw = (os.getenv("LANGSMITH_TAGS") or "").strip()
    if not raw:
        return None
    return [x.strip() for x in raw.split(",") if x.strip()]


def _callbacks() -> List[Any]:
    try:
        from langchain_core.tracers.langchain import LangChainTracer  # type: ignore[import-not-found]
        from langsmith import Client  # type: ignore[import-not-found]
    except Exception as e:
        logger.warning("LangSmith tracing enabled but dependencies unavailable: %s", type(e).__name__)
        return []
    return [LangChainTracer(project_name=_project_name(), client=Client(api_key=_api_key()), tags=_tags())]


def build_invoke_config(*, kind: str, run_name: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Build a RunnableConfig dict for a LangGraph invocation ({} when tracing is off).
    """
    if not tracing_enabled():
        return {}
    md = dict(metadata or {})
    md["kind"] = str(kind or "unknown")
    cfg: Dict[str, Any] = {"metadata": md, "run_name": run_name}
    callbacks = _callbacks()
    if callbacks:
        cfg["callbacks"] = callbacks
    tags = _tags()
    if tags:
        cfg["tags"] = tags
    return cfg


def trace_tool_call(*, tool: str, args: Dict[str, Any], fn: Callable[[], Any]) -> Any:
    """
    Run `fn()` inside a LangSmith tool span when tracing is enabled.

    `fn` runs exactly once; its exceptions propagate to the caller.
    """
    if not tracing_enabled():
        return fn()
    try:
        from langsmith.run_helpers import traceable  # type: ignore[import-not-found]
    except Exception:
        return fn()

    @traceable(name=f"tool:{tool}", run_type="tool")
    def _wrapped(_tool: str, _args: Dict[str, Any]):
        return fn()

    return _wrapped(str(tool), dict(args or {}))
