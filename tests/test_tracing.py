from __future__ import annotations

import pytest

from copilot.graphs.tracing import build_invoke_config, trace_tool_call, tracing_enabled


def test_tracing_off_by_default() -> None:
    assert tracing_enabled() is False
    assert build_invoke_config(kind="copilot_chat", run_name="x") == {}


def test_tracing_requested_without_key_stays_off(monkeypatch) -> None:
    monkeypatch.setenv("LANGSMITH_TRACING", "true")
    monkeypatch.delenv("LANGSMITH_API_KEY", raising=False)
    monkeypatch.delenv("LANGCHAIN_API_KEY", raising=False)
    assert tracing_enabled() is False


def test_tool_call_runs_once_and_propagates() -> None:
    calls = []

    def _fn():
        calls.append(1)
        raise RuntimeError("write failed")

    with pytest.raises(RuntimeError):
        trace_tool_call(tool="add_note", args={}, fn=_fn)
    assert calls == [1]
