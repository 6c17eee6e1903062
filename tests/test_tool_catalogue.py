from __future__ import annotations

import pytest

from copilot.chat.catalogue import (
    CATALOGUE,
    ToolName,
    UnknownToolError,
    catalogue_summary,
    list_for,
    lookup,
    require_tool,
    tool_names,
)


def test_every_tool_name_is_catalogued_once() -> None:
    assert sorted(tool_names()) == sorted(t.value for t in ToolName)
    assert len(CATALOGUE) == 16


def test_lookup_unknown_tool_is_not_found() -> None:
    assert lookup("drop_all_tables") is None
    assert lookup("") is None
    with pytest.raises(UnknownToolError):
        require_tool("drop_all_tables")


def test_lookup_strips_whitespace() -> None:
    d = lookup("  search_jobs ")
    assert d is not None
    assert d.name is ToolName.SEARCH_JOBS


def test_catalogue_is_read_only() -> None:
    with pytest.raises(TypeError):
        CATALOGUE["evil"] = CATALOGUE["search_jobs"]  # type: ignore[index]


def test_required_params_are_declared_parameters() -> None:
    for d in CATALOGUE.values():
        for r in d.required:
            assert r in d.parameters, f"{d.name.value}: {r}"


def test_mutating_tools() -> None:
    mutating = {d.name.value for d in CATALOGUE.values() if d.mutating}
    assert mutating == {
        "create_candidate",
        "update_candidate",
        "create_job",
        "update_job",
        "update_application_stage",
        "schedule_interview",
        "add_note",
    }


def test_list_for_client_hides_staff_only_tools() -> None:
    names = {d.name.value for d in list_for("client")}
    assert "search_jobs" in names
    assert "add_note" in names
    assert "create_job" not in names
    assert "update_application_stage" not in names
    assert len(list_for("recruiter")) == 16


def test_prompt_line_marks_optional_params_and_enums() -> None:
    line = require_tool("search_jobs").prompt_line()
    assert line.startswith("- search_jobs(")
    assert "query?: string" in line
    assert "status?: string one of ['draft', 'active', 'paused', 'closed', 'filled']" in line

    add_note = require_tool("add_note").prompt_line()
    assert "content: string" in add_note


def test_catalogue_summary_shape() -> None:
    out = catalogue_summary("admin")
    by_name = {t["name"]: t for t in out}
    assert by_name["get_candidate"]["required"] == ["candidate_id"]
    assert by_name["get_candidate"]["mutating"] is False
    assert by_name["add_note"]["mutating"] is True
