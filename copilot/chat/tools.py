from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Literal, Mapping, Optional
from uuid import UUID

from dateutil import parser as date_parser

from copilot.authz.policy import is_tool_allowed
from copilot.chat.catalogue import ToolDefinition, ToolName, lookup
from copilot.chat.types import utcnow
from copilot.graphs.tracing import trace_tool_call
from copilot.storage.base import RecordQuery, RecordStore

logger = logging.getLogger(__name__)

ErrorKind = Literal[
    "unknown_tool",
    "permission_denied",
    "confirmation_required",
    "invalid_args",
    "not_found",
    "handler_error",
]

# Caller-supplied organization ids are never honoured; scope comes from the session.
_SCOPE_ARG_KEYS = frozenset({"organization_id", "organizationId", "org_id", "orgId"})


@dataclass(frozen=True)
class ToolResult:
    ok: bool
    result: Any = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None


@dataclass(frozen=True)
class ToolScope:
    """Explicit per-call scope handed to every handler."""

    organization_id: str
    user_id: str
    user_name: str = "AI Assistant"
    default_limit: int = 10
    max_limit: int = 100


class ArgumentError(ValueError):
    pass


def _fail(kind: ErrorKind, error: str) -> ToolResult:
    return ToolResult(ok=False, error=error, error_kind=kind)


def _jsonable(v: Any) -> Any:
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    if isinstance(v, UUID):
        return str(v)
    if isinstance(v, Decimal):
        return float(v)
    if isinstance(v, dict):
        return {k: _jsonable(x) for k, x in v.items()}
    if isinstance(v, (list, tuple)):
        return [_jsonable(x) for x in v]
    return v


def _project(row: Optional[Mapping[str, Any]], fields: Iterable[str]) -> Dict[str, Any]:
    row = row or {}
    return {f: _jsonable(row.get(f)) for f in fields}


# ---------------------------------------------------------------------------
# Argument validation
# ---------------------------------------------------------------------------


def _coerce(name: str, typ: str, v: Any) -> Any:
    if typ == "string":
        if isinstance(v, (dict, list)):
            raise ArgumentError(f"{name} must be a string")
        return str(v).strip()
    if typ == "number":
        if isinstance(v, bool):
            raise ArgumentError(f"{name} must be a number")
        if isinstance(v, (int, float)):
            return int(v) if float(v).is_integer() else v
        try:
            f = float(str(v).strip())
        except (TypeError, ValueError):
            raise ArgumentError(f"{name} must be a number")
        return int(f) if f.is_integer() else f
    if typ == "boolean":
        if isinstance(v, bool):
            return v
        s = str(v).strip().lower()
        if s in ("1", "true", "yes", "y", "on"):
            return True
        if s in ("0", "false", "no", "n", "off"):
            return False
        raise ArgumentError(f"{name} must be a boolean")
    return v


def validate_args(definition: ToolDefinition, args: Any) -> Dict[str, Any]:
    """
    Coerce and check `args` against the tool's parameter schema.

    Unknown keys and organization overrides are dropped; None and empty
    strings count as absent. Raises ArgumentError on the first violation.
    """
    if args is None:
        args = {}
    if not isinstance(args, dict):
        raise ArgumentError("args must be an object")

    out: Dict[str, Any] = {}
    for k, v in args.items():
        if k in _SCOPE_ARG_KEYS:
            logger.warning("Dropping caller-supplied %s for tool %s", k, definition.name.value)
            continue
        spec = definition.parameters.get(k)
        if spec is None or v is None:
            continue
        val = _coerce(k, spec.type, v)
        if val == "":
            continue
        if spec.enum and val not in spec.enum:
            raise ArgumentError(f"{k} must be one of: {', '.join(spec.enum)}")
        out[k] = val

    missing = [r for r in definition.required if r not in out]
    if missing:
        raise ArgumentError(f"missing required argument(s): {', '.join(missing)}")
    return out


def _limit(args: Dict[str, Any], scope: ToolScope) -> int:
    try:
        n = int(args.get("limit") or scope.default_limit)
    except (TypeError, ValueError):
        n = scope.default_limit
    return max(1, min(n, scope.max_limit))


def _parse_when(raw: str) -> datetime:
    try:
        dt = date_parser.isoparse(str(raw))
    except (ValueError, TypeError, OverflowError):
        raise ArgumentError("scheduled_at must be an ISO datetime")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def check_args(definition: ToolDefinition, args: Any) -> Dict[str, Any]:
    """Every argument check that runs before a handler, for proposals and dispatch alike."""
    clean = validate_args(definition, args)
    if definition.name == ToolName.SCHEDULE_INTERVIEW:
        _parse_when(clean["scheduled_at"])
    return clean


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

_CANDIDATE_FIELDS = ("id", "full_name", "email", "current_title", "current_company", "location", "phone")
_JOB_FIELDS = ("id", "title", "status", "location", "seniority", "client_id")
_CLIENT_FIELDS = ("id", "name", "contact_person", "contact_email", "status", "industry")
_NOTE_FIELDS = ("id", "content", "author_name", "created_at")
_APPLICATION_FIELDS = ("id", "job_id", "candidate_id", "stage", "status", "applied_at")

_ENTITY_TABLES = {"candidate": "candidates", "job": "jobs", "client": "clients"}

Handler = Callable[[RecordStore, ToolScope, Dict[str, Any]], ToolResult]


def _notes_for(store: RecordStore, scope: ToolScope, entity_type: str, entity_id: str) -> List[Dict[str, Any]]:
    rows = store.select(
        scope.organization_id,
        RecordQuery(
            table="notes",
            equals={"entity_type": entity_type, "entity_id": entity_id},
            order_by="created_at",
            descending=True,
            limit=20,
        ),
    )
    return [_project(r, _NOTE_FIELDS) for r in rows]


def _describe_application(store: RecordStore, scope: ToolScope, app: Mapping[str, Any]) -> Dict[str, Any]:
    out = _project(app, _APPLICATION_FIELDS)
    cand = store.get(scope.organization_id, "candidates", str(app.get("candidate_id") or ""))
    job = store.get(scope.organization_id, "jobs", str(app.get("job_id") or ""))
    out["candidate_name"] = (cand or {}).get("full_name")
    out["job_title"] = (job or {}).get("title")
    return out


def _search_candidates(store: RecordStore, scope: ToolScope, args: Dict[str, Any]) -> ToolResult:
    contains = {k: args[k] for k in ("location", "current_company", "current_title") if k in args}
    rows = store.select(
        scope.organization_id,
        RecordQuery(
            table="candidates",
            contains=contains,
            search=args.get("query"),
            search_columns=("full_name", "email", "current_title"),
            order_by="created_at",
            descending=True,
            limit=_limit(args, scope),
        ),
    )
    items = [_project(r, _CANDIDATE_FIELDS) for r in rows]
    return ToolResult(ok=True, result={"count": len(items), "candidates": items})


def _get_candidate(store: RecordStore, scope: ToolScope, args: Dict[str, Any]) -> ToolResult:
    cid = args["candidate_id"]
    row = store.get(scope.organization_id, "candidates", cid)
    if row is None:
        return _fail("not_found", f"Candidate not found: {cid}")
    cand = _jsonable(row)
    cand.pop("organization_id", None)
    cand["notes"] = _notes_for(store, scope, "candidate", cid)
    return ToolResult(ok=True, result={"candidate": cand})


def _create_candidate(store: RecordStore, scope: ToolScope, args: Dict[str, Any]) -> ToolResult:
    row = store.insert(scope.organization_id, "candidates", dict(args))
    return ToolResult(ok=True, result={"success": True, "candidate": _project(row, _CANDIDATE_FIELDS)})


def _update_candidate(store: RecordStore, scope: ToolScope, args: Dict[str, Any]) -> ToolResult:
    cid = args["candidate_id"]
    fields = {k: v for k, v in args.items() if k != "candidate_id"}
    if not fields:
        return _fail("invalid_args", "No candidate fields to update")
    row = store.update(scope.organization_id, "candidates", cid, fields)
    if row is None:
        return _fail("not_found", f"Candidate not found: {cid}")
    return ToolResult(ok=True, result={"success": True, "candidate": _project(row, _CANDIDATE_FIELDS)})


def _search_jobs(store: RecordStore, scope: ToolScope, args: Dict[str, Any]) -> ToolResult:
    equals = {k: args[k] for k in ("status", "client_id") if k in args}
    contains = {"location": args["location"]} if "location" in args else {}
    rows = store.select(
        scope.organization_id,
        RecordQuery(
            table="jobs",
            equals=equals,
            contains=contains,
            search=args.get("query"),
            search_columns=("title", "description_text"),
            order_by="created_at",
            descending=True,
            limit=_limit(args, scope),
        ),
    )
    items = [_project(r, _JOB_FIELDS) for r in rows]
    return ToolResult(ok=True, result={"count": len(items), "jobs": items})


def _get_job(store: RecordStore, scope: ToolScope, args: Dict[str, Any]) -> ToolResult:
    jid = args["job_id"]
    row = store.get(scope.organization_id, "jobs", jid)
    if row is None:
        return _fail("not_found", f"Job not found: {jid}")
    job = _jsonable(row)
    job.pop("organization_id", None)
    client = store.get(scope.organization_id, "clients", str(row.get("client_id") or "")) if row.get("client_id") else None
    job["client_name"] = (client or {}).get("name")
    apps = store.select(scope.organization_id, RecordQuery(table="applications", equals={"job_id": jid}, limit=50))
    job["applications"] = [_describe_application(store, scope, a) for a in apps]
    job["notes"] = _notes_for(store, scope, "job", jid)
    return ToolResult(ok=True, result={"job": job})


def _create_job(store: RecordStore, scope: ToolScope, args: Dict[str, Any]) -> ToolResult:
    values = dict(args)
    if "description" in values:
        values["description_text"] = values.pop("description")
    if values.get("client_id") and store.get(scope.organization_id, "clients", values["client_id"]) is None:
        return _fail("not_found", f"Client not found: {values['client_id']}")
    values.setdefault("status", "draft")
    row = store.insert(scope.organization_id, "jobs", values)
    return ToolResult(ok=True, result={"success": True, "job": _project(row, _JOB_FIELDS)})


def _update_job(store: RecordStore, scope: ToolScope, args: Dict[str, Any]) -> ToolResult:
    jid = args["job_id"]
    fields = {k: v for k, v in args.items() if k != "job_id"}
    if "description" in fields:
        fields["description_text"] = fields.pop("description")
    if not fields:
        return _fail("invalid_args", "No job fields to update")
    row = store.update(scope.organization_id, "jobs", jid, fields)
    if row is None:
        return _fail("not_found", f"Job not found: {jid}")
    return ToolResult(ok=True, result={"success": True, "job": _project(row, _JOB_FIELDS)})


def _search_applications(store: RecordStore, scope: ToolScope, args: Dict[str, Any]) -> ToolResult:
    equals = {k: args[k] for k in ("job_id", "candidate_id", "stage", "status") if k in args}
    rows = store.select(
        scope.organization_id,
        RecordQuery(
            table="applications",
            equals=equals,
            order_by="applied_at",
            descending=True,
            limit=_limit(args, scope),
        ),
    )
    items = [_describe_application(store, scope, r) for r in rows]
    return ToolResult(ok=True, result={"count": len(items), "applications": items})


def _update_application_stage(store: RecordStore, scope: ToolScope, args: Dict[str, Any]) -> ToolResult:
    aid = args["application_id"]
    row = store.update(scope.organization_id, "applications", aid, {"stage": args["stage"]})
    if row is None:
        return _fail("not_found", f"Application not found: {aid}")
    if args.get("notes") and row.get("candidate_id"):
        store.insert(
            scope.organization_id,
            "notes",
            {
                "entity_type": "candidate",
                "entity_id": str(row["candidate_id"]),
                "content": f"Stage changed to {args['stage']}: {args['notes']}",
                "author_id": scope.user_id,
                "author_name": scope.user_name,
            },
        )
    return ToolResult(ok=True, result={"success": True, "application": _project(row, _APPLICATION_FIELDS)})


def _schedule_interview(store: RecordStore, scope: ToolScope, args: Dict[str, Any]) -> ToolResult:
    aid = args["application_id"]
    when = _parse_when(args["scheduled_at"])
    if store.get(scope.organization_id, "applications", aid) is None:
        return _fail("not_found", f"Application not found: {aid}")
    row = store.insert(
        scope.organization_id,
        "interviews",
        {"application_id": aid, "scheduled_at": when, "notes": args.get("notes"), "status": "scheduled"},
    )
    return ToolResult(
        ok=True,
        result={
            "success": True,
            "interview": _project(row, ("id", "application_id", "scheduled_at", "status", "notes")),
        },
    )


def _get_upcoming_interviews(store: RecordStore, scope: ToolScope, args: Dict[str, Any]) -> ToolResult:
    try:
        days = int(args.get("days_ahead") or 7)
    except (TypeError, ValueError):
        days = 7
    days = max(1, min(days, 90))
    now = utcnow()
    rows = store.select(
        scope.organization_id,
        RecordQuery(
            table="interviews",
            gte={"scheduled_at": now},
            lte={"scheduled_at": now + timedelta(days=days)},
            order_by="scheduled_at",
            limit=_limit(args, scope),
        ),
    )
    items = []
    for r in rows:
        it = _project(r, ("id", "application_id", "scheduled_at", "status", "notes"))
        app = store.get(scope.organization_id, "applications", str(r.get("application_id") or ""))
        desc = _describe_application(store, scope, app) if app else {}
        it["candidate_name"] = desc.get("candidate_name")
        it["job_title"] = desc.get("job_title")
        items.append(it)
    return ToolResult(ok=True, result={"count": len(items), "days_ahead": days, "interviews": items})


def _search_clients(store: RecordStore, scope: ToolScope, args: Dict[str, Any]) -> ToolResult:
    equals = {"status": args["status"]} if "status" in args else {}
    rows = store.select(
        scope.organization_id,
        RecordQuery(
            table="clients",
            equals=equals,
            search=args.get("query"),
            search_columns=("name", "contact_person"),
            order_by="name",
            limit=_limit(args, scope),
        ),
    )
    items = [_project(r, _CLIENT_FIELDS) for r in rows]
    return ToolResult(ok=True, result={"count": len(items), "clients": items})


def _get_client(store: RecordStore, scope: ToolScope, args: Dict[str, Any]) -> ToolResult:
    cid = args["client_id"]
    row = store.get(scope.organization_id, "clients", cid)
    if row is None:
        return _fail("not_found", f"Client not found: {cid}")
    client = _jsonable(row)
    client.pop("organization_id", None)
    jobs = store.select(scope.organization_id, RecordQuery(table="jobs", equals={"client_id": cid}, limit=50))
    client["jobs"] = [_project(j, ("id", "title", "status")) for j in jobs]
    client["notes"] = _notes_for(store, scope, "client", cid)
    return ToolResult(ok=True, result={"client": client})


def _add_note(store: RecordStore, scope: ToolScope, args: Dict[str, Any]) -> ToolResult:
    etype, eid = args["entity_type"], args["entity_id"]
    if store.get(scope.organization_id, _ENTITY_TABLES[etype], eid) is None:
        return _fail("not_found", f"{etype.capitalize()} not found: {eid}")
    row = store.insert(
        scope.organization_id,
        "notes",
        {
            "entity_type": etype,
            "entity_id": eid,
            "content": args["content"],
            "author_id": scope.user_id,
            "author_name": scope.user_name,
        },
    )
    return ToolResult(
        ok=True,
        result={"success": True, "note": _project(row, ("id", "entity_type", "entity_id") + _NOTE_FIELDS[1:])},
    )


def _get_dashboard_stats(store: RecordStore, scope: ToolScope, args: Dict[str, Any]) -> ToolResult:
    org = scope.organization_id
    stats: Dict[str, Any] = {
        "total_candidates": store.count(org, RecordQuery(table="candidates")),
        "total_jobs": store.count(org, RecordQuery(table="jobs")),
        "active_jobs": store.count(org, RecordQuery(table="jobs", equals={"status": "active"})),
        "pending_applications": store.count(org, RecordQuery(table="applications", equals={"status": "active"})),
        "upcoming_interviews": store.count(org, RecordQuery(table="interviews", gte={"scheduled_at": utcnow()})),
    }
    if args.get("include_breakdown"):
        from copilot.chat.catalogue import JOB_STATUSES

        stats["jobs_by_status"] = {
            s: store.count(org, RecordQuery(table="jobs", equals={"status": s})) for s in JOB_STATUSES
        }
    return ToolResult(ok=True, result=stats)


_HANDLERS: Dict[ToolName, Handler] = {
    ToolName.SEARCH_CANDIDATES: _search_candidates,
    ToolName.GET_CANDIDATE: _get_candidate,
    ToolName.CREATE_CANDIDATE: _create_candidate,
    ToolName.UPDATE_CANDIDATE: _update_candidate,
    ToolName.SEARCH_JOBS: _search_jobs,
    ToolName.GET_JOB: _get_job,
    ToolName.CREATE_JOB: _create_job,
    ToolName.UPDATE_JOB: _update_job,
    ToolName.SEARCH_APPLICATIONS: _search_applications,
    ToolName.UPDATE_APPLICATION_STAGE: _update_application_stage,
    ToolName.SCHEDULE_INTERVIEW: _schedule_interview,
    ToolName.GET_UPCOMING_INTERVIEWS: _get_upcoming_interviews,
    ToolName.SEARCH_CLIENTS: _search_clients,
    ToolName.GET_CLIENT: _get_client,
    ToolName.ADD_NOTE: _add_note,
    ToolName.GET_DASHBOARD_STATS: _get_dashboard_stats,
}


def run_tool(
    *,
    store: RecordStore,
    tool: str,
    args: Dict[str, Any],
    organization_id: str,
    user_id: str,
    role: str,
    confirmed: bool = False,
    user_name: Optional[str] = None,
    default_limit: int = 10,
    max_limit: int = 100,
) -> ToolResult:
    """
    Execute a single catalogued tool with permission and confirmation enforcement.

    Checks run in a fixed order: catalogue lookup, role, confirmation (mutating
    tools only), argument validation, then the handler. Nothing touches the
    store before every check has passed.
    """
    tool = (tool or "").strip()
    definition = lookup(tool)
    if definition is None:
        logger.warning("Tool call refused: unknown tool %r", tool)
        return _fail("unknown_tool", f"unknown_tool:{tool or '<empty>'}")

    if not is_tool_allowed(tool, role):
        logger.info("Tool call refused: role=%s not allowed for %s", role, tool)
        return _fail("permission_denied", f"permission_denied:{tool}")

    if definition.mutating and not confirmed:
        return _fail("confirmation_required", f"confirmation_required:{tool}")

    try:
        clean = check_args(definition, args)
    except ArgumentError as e:
        logger.info("Tool call refused: invalid args for %s: %s", tool, e)
        return _fail("invalid_args", str(e))

    scope = ToolScope(
        organization_id=organization_id,
        user_id=user_id,
        user_name=user_name or "AI Assistant",
        default_limit=default_limit,
        max_limit=max_limit,
    )
    handler = _HANDLERS[definition.name]
    logger.info("Tool call: %s args=%s org=%s", tool, sorted(clean.keys()), organization_id)
    try:
        return trace_tool_call(tool=tool, args=clean, fn=lambda: handler(store, scope, clean))
    except ArgumentError as e:
        return _fail("invalid_args", str(e))
    except Exception as e:
        logger.exception("Tool %s failed", tool)
        return _fail("handler_error", str(e) or type(e).__name__)
