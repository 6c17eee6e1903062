"""
Deterministic rendering of tool results into chat replies.

Pure functions keyed on tool name. Every tool renders its empty case and its
error case as distinct sentences; anything unrecognised falls back to
indented JSON.
"""
from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional

from dateutil import parser as date_parser

from copilot.chat.catalogue import ToolName

_ERROR_PREFIXES = {
    "permission_denied": "You don't have permission to do that.",
    "unknown_tool": "I can't do that: it isn't one of the operations I support.",
    "confirmation_required": "That action needs your confirmation before I can run it.",
}


def _when(ts: Any) -> str:
    if not ts:
        return "TBD"
    try:
        return date_parser.isoparse(str(ts)).strftime("%a %d %b %Y, %H:%M UTC")
    except (ValueError, TypeError, OverflowError):
        return str(ts)


def _as_int(v: Any) -> int:
    try:
        return int(v or 0)
    except (TypeError, ValueError):
        return 0


def format_error(error: Optional[str], error_kind: Optional[str] = None) -> str:
    if error_kind in _ERROR_PREFIXES:
        return _ERROR_PREFIXES[str(error_kind)]
    return f"Error: {error or 'unknown error'}"


def _fmt_search_jobs(data: Dict[str, Any]) -> Optional[str]:
    jobs = data.get("jobs")
    if not isinstance(jobs, list):
        return None
    if not jobs:
        return "No jobs found matching your criteria."
    lines = []
    for i, j in enumerate(jobs, 1):
        sen = f" | {j['seniority']}" if j.get("seniority") else ""
        lines.append(
            f"{i}. **{j.get('title') or 'Untitled'}**\n"
            f"   Status: {j.get('status') or 'Unknown'}\n"
            f"   Location: {j.get('location') or 'Not specified'}{sen}"
        )
    return f"Found **{len(jobs)}** job(s):\n\n" + "\n\n".join(lines)


def _fmt_search_candidates(data: Dict[str, Any]) -> Optional[str]:
    cands = data.get("candidates")
    if not isinstance(cands, list):
        return None
    if not cands:
        return "No candidates found matching your criteria."
    lines = []
    for i, c in enumerate(cands, 1):
        lines.append(
            f"{i}. **{c.get('full_name') or 'Unknown'}**\n"
            f"   {c.get('current_title') or 'No title'} at {c.get('current_company') or 'Unknown'}\n"
            f"   Location: {c.get('location') or 'Not specified'}"
        )
    return f"Found **{len(cands)}** candidate(s):\n\n" + "\n\n".join(lines)


def _fmt_dashboard(data: Dict[str, Any]) -> Optional[str]:
    total_jobs = _as_int(data.get("total_jobs"))
    lines = [
        "**Dashboard Summary:**",
        f"• **Total Candidates:** {_as_int(data.get('total_candidates'))}",
        f"• **Active Jobs:** {_as_int(data.get('active_jobs'))} of {total_jobs}",
        f"• **Pending Applications:** {_as_int(data.get('pending_applications'))}",
        f"• **Upcoming Interviews:** {_as_int(data.get('upcoming_interviews'))}",
    ]
    breakdown = data.get("jobs_by_status")
    if isinstance(breakdown, dict) and breakdown:
        parts = ", ".join(f"{k}: {_as_int(v)}" for k, v in breakdown.items())
        lines.append(f"\nJobs by status: {parts}")
    return "\n".join(lines)


def _fmt_upcoming_interviews(data: Dict[str, Any]) -> Optional[str]:
    items = data.get("interviews")
    if not isinstance(items, list):
        return None
    if not items:
        return "No upcoming interviews scheduled."
    lines = []
    for i, it in enumerate(items, 1):
        lines.append(
            f"{i}. **{it.get('candidate_name') or 'Unknown'}** - {it.get('job_title') or 'Unknown position'}\n"
            f"   Scheduled: {_when(it.get('scheduled_at'))}"
        )
    return f"**Upcoming Interviews:** {len(items)}\n\n" + "\n\n".join(lines)


def _fmt_search_applications(data: Dict[str, Any]) -> Optional[str]:
    apps = data.get("applications")
    if not isinstance(apps, list):
        return None
    if not apps:
        return "No applications found."
    lines = []
    for i, a in enumerate(apps, 1):
        lines.append(
            f"{i}. **{a.get('candidate_name') or 'Unknown'}** for {a.get('job_title') or 'Unknown position'}\n"
            f"   Stage: {a.get('stage') or 'Unknown'} | Status: {a.get('status') or 'Unknown'}"
        )
    return f"Found **{len(apps)}** application(s):\n\n" + "\n\n".join(lines)


def _fmt_search_clients(data: Dict[str, Any]) -> Optional[str]:
    clients = data.get("clients")
    if not isinstance(clients, list):
        return None
    if not clients:
        return "No clients found."
    lines = []
    for i, c in enumerate(clients, 1):
        lines.append(
            f"{i}. **{c.get('name') or 'Unknown'}**\n"
            f"   Contact: {c.get('contact_person') or 'N/A'}\n"
            f"   Status: {c.get('status') or 'Unknown'}"
        )
    return f"Found **{len(clients)}** client(s):\n\n" + "\n\n".join(lines)


def _notes_block(notes: Any) -> List[str]:
    if not isinstance(notes, list) or not notes:
        return ["Notes: none"]
    out = [f"Notes ({len(notes)}):"]
    for n in notes[:5]:
        out.append(f"- {n.get('content') or ''} ({n.get('author_name') or 'Unknown'})")
    return out


def _fmt_get_candidate(data: Dict[str, Any]) -> Optional[str]:
    c = data.get("candidate")
    if not isinstance(c, dict):
        return None
    lines = [
        f"**{c.get('full_name') or 'Unknown'}**",
        f"{c.get('current_title') or 'No title'} at {c.get('current_company') or 'Unknown'}",
        f"Email: {c.get('email') or 'N/A'} | Phone: {c.get('phone') or 'N/A'}",
        f"Location: {c.get('location') or 'Not specified'}",
    ]
    return "\n".join(lines + _notes_block(c.get("notes")))


def _fmt_get_job(data: Dict[str, Any]) -> Optional[str]:
    j = data.get("job")
    if not isinstance(j, dict):
        return None
    apps = j.get("applications") if isinstance(j.get("applications"), list) else []
    lines = [
        f"**{j.get('title') or 'Untitled'}**",
        f"Client: {j.get('client_name') or 'N/A'}",
        f"Status: {j.get('status') or 'Unknown'} | Location: {j.get('location') or 'Not specified'}",
        f"Applicants: {len(apps)}",
    ]
    for a in apps[:10]:
        lines.append(f"- {a.get('candidate_name') or 'Unknown'} ({a.get('stage') or 'unknown stage'})")
    return "\n".join(lines + _notes_block(j.get("notes")))


def _fmt_get_client(data: Dict[str, Any]) -> Optional[str]:
    c = data.get("client")
    if not isinstance(c, dict):
        return None
    jobs = c.get("jobs") if isinstance(c.get("jobs"), list) else []
    lines = [
        f"**{c.get('name') or 'Unknown'}**",
        f"Contact: {c.get('contact_person') or 'N/A'} ({c.get('contact_email') or 'no email'})",
        f"Status: {c.get('status') or 'Unknown'} | Industry: {c.get('industry') or 'N/A'}",
        f"Jobs: {len(jobs)}" if jobs else "Jobs: none",
    ]
    for jb in jobs[:10]:
        lines.append(f"- {jb.get('title') or 'Untitled'} ({jb.get('status') or 'unknown'})")
    return "\n".join(lines + _notes_block(c.get("notes")))


def _fmt_write(key: str, label: Callable[[Dict[str, Any]], str]) -> Callable[[Dict[str, Any]], Optional[str]]:
    def _fmt(data: Dict[str, Any]) -> Optional[str]:
        row = data.get(key)
        if not isinstance(row, dict):
            return None
        return label(row)

    return _fmt


_FORMATTERS: Dict[str, Callable[[Dict[str, Any]], Optional[str]]] = {
    ToolName.SEARCH_JOBS.value: _fmt_search_jobs,
    ToolName.SEARCH_CANDIDATES.value: _fmt_search_candidates,
    ToolName.GET_DASHBOARD_STATS.value: _fmt_dashboard,
    ToolName.GET_UPCOMING_INTERVIEWS.value: _fmt_upcoming_interviews,
    ToolName.SEARCH_APPLICATIONS.value: _fmt_search_applications,
    ToolName.SEARCH_CLIENTS.value: _fmt_search_clients,
    ToolName.GET_CANDIDATE.value: _fmt_get_candidate,
    ToolName.GET_JOB.value: _fmt_get_job,
    ToolName.GET_CLIENT.value: _fmt_get_client,
    ToolName.CREATE_CANDIDATE.value: _fmt_write(
        "candidate", lambda r: f"Created candidate **{r.get('full_name') or 'Unknown'}**."
    ),
    ToolName.UPDATE_CANDIDATE.value: _fmt_write(
        "candidate", lambda r: f"Updated candidate **{r.get('full_name') or r.get('id')}**."
    ),
    ToolName.CREATE_JOB.value: _fmt_write(
        "job", lambda r: f"Created job **{r.get('title') or 'Untitled'}** (status: {r.get('status') or 'draft'})."
    ),
    ToolName.UPDATE_JOB.value: _fmt_write(
        "job", lambda r: f"Updated job **{r.get('title') or r.get('id')}** (status: {r.get('status') or 'Unknown'})."
    ),
    ToolName.UPDATE_APPLICATION_STAGE.value: _fmt_write(
        "application", lambda r: f"Moved application {r.get('id')} to stage **{r.get('stage')}**."
    ),
    ToolName.SCHEDULE_INTERVIEW.value: _fmt_write(
        "interview", lambda r: f"Interview scheduled for {_when(r.get('scheduled_at'))}."
    ),
    ToolName.ADD_NOTE.value: _fmt_write(
        "note", lambda r: f"Note added to {r.get('entity_type')} {r.get('entity_id')}."
    ),
}


def format_result(tool: str, result: Any) -> str:
    """
    Render a successful tool payload for the chat transcript.

    Error payloads (`{"error": ...}`) render as "Error: ..."; non-dict or empty
    payloads render as "No results found."
    """
    if not result or not isinstance(result, dict):
        return "No results found."
    if result.get("error"):
        return f"Error: {result['error']}"
    fmt = _FORMATTERS.get(str(tool or ""))
    if fmt is not None:
        out = fmt(result)
        if out is not None:
            return out
    return json.dumps(result, indent=2, ensure_ascii=False, default=str)
