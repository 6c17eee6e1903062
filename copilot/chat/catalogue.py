"""Tool catalogue: the only operations the copilot can ever perform.

Each tool is described once here (name, parameter schema, required params,
role allow-list, mutating flag). Everything downstream (prompt, permission
gate, dispatcher, formatter) keys off `ToolName`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple


class ToolName(str, Enum):
    SEARCH_CANDIDATES = "search_candidates"
    GET_CANDIDATE = "get_candidate"
    CREATE_CANDIDATE = "create_candidate"
    UPDATE_CANDIDATE = "update_candidate"
    SEARCH_JOBS = "search_jobs"
    GET_JOB = "get_job"
    CREATE_JOB = "create_job"
    UPDATE_JOB = "update_job"
    SEARCH_APPLICATIONS = "search_applications"
    UPDATE_APPLICATION_STAGE = "update_application_stage"
    SCHEDULE_INTERVIEW = "schedule_interview"
    GET_UPCOMING_INTERVIEWS = "get_upcoming_interviews"
    SEARCH_CLIENTS = "search_clients"
    GET_CLIENT = "get_client"
    ADD_NOTE = "add_note"
    GET_DASHBOARD_STATS = "get_dashboard_stats"


JOB_STATUSES = ("draft", "active", "paused", "closed", "filled")
APPLICATION_STATUSES = ("active", "rejected", "hired", "withdrawn")
CLIENT_STATUSES = ("active", "inactive")
NOTE_ENTITY_TYPES = ("candidate", "job", "client")

_STAFF = frozenset({"admin", "recruiter"})


class UnknownToolError(KeyError):
    """Raised when a tool name does not resolve in the catalogue."""


@dataclass(frozen=True)
class ParamSpec:
    type: str  # string|number|boolean
    description: str
    enum: Optional[Tuple[str, ...]] = None


@dataclass(frozen=True)
class ToolDefinition:
    name: ToolName
    description: str
    parameters: Mapping[str, ParamSpec] = field(default_factory=dict)
    required: Tuple[str, ...] = ()
    roles: Optional[FrozenSet[str]] = None
    mutating: bool = False

    def prompt_line(self) -> str:
        params = []
        for pname, spec in self.parameters.items():
            req = "" if pname in self.required else "?"
            enum = f" one of {list(spec.enum)}" if spec.enum else ""
            params.append(f"{pname}{req}: {spec.type}{enum}")
        return f"- {self.name.value}({', '.join(params)}): {self.description}"


def _p(type_: str, description: str, enum: Optional[Tuple[str, ...]] = None) -> ParamSpec:
    return ParamSpec(type=type_, description=description, enum=enum)


_LIMIT = _p("number", "Maximum number of results to return (default: 10)")

_DEFINITIONS: Tuple[ToolDefinition, ...] = (
    # candidates
    ToolDefinition(
        name=ToolName.SEARCH_CANDIDATES,
        description="Search candidates by name, email, title, location or current company.",
        parameters={
            "query": _p("string", "Search query (name, email, or keywords)"),
            "location": _p("string", "Location filter (city, state, or country)"),
            "current_company": _p("string", "Filter by current company"),
            "current_title": _p("string", "Filter by current job title"),
            "limit": _LIMIT,
        },
    ),
    ToolDefinition(
        name=ToolName.GET_CANDIDATE,
        description="Get a candidate's profile and notes by ID.",
        parameters={"candidate_id": _p("string", "The unique identifier of the candidate")},
        required=("candidate_id",),
    ),
    ToolDefinition(
        name=ToolName.CREATE_CANDIDATE,
        description="Create a new candidate record.",
        parameters={
            "full_name": _p("string", "Full name of the candidate"),
            "email": _p("string", "Email address"),
            "phone": _p("string", "Phone number"),
            "current_title": _p("string", "Current job title"),
            "current_company": _p("string", "Current employer"),
            "location": _p("string", "Location (city, state/country)"),
            "linkedin_url": _p("string", "LinkedIn profile URL"),
            "source": _p("string", "Source of the candidate (e.g., LinkedIn, Referral)"),
        },
        required=("full_name",),
        roles=_STAFF,
        mutating=True,
    ),
    ToolDefinition(
        name=ToolName.UPDATE_CANDIDATE,
        description="Update an existing candidate's details.",
        parameters={
            "candidate_id": _p("string", "The unique identifier of the candidate"),
            "full_name": _p("string", "Full name of the candidate"),
            "email": _p("string", "Email address"),
            "phone": _p("string", "Phone number"),
            "current_title": _p("string", "Current job title"),
            "current_company": _p("string", "Current employer"),
            "location": _p("string", "Location (city, state/country)"),
        },
        required=("candidate_id",),
        roles=_STAFF,
        mutating=True,
    ),
    # jobs
    ToolDefinition(
        name=ToolName.SEARCH_JOBS,
        description="Search jobs by title, status, client or location.",
        parameters={
            "query": _p("string", "Search query (job title or keywords)"),
            "status": _p("string", "Filter by job status", JOB_STATUSES),
            "client_id": _p("string", "Filter by client ID"),
            "location": _p("string", "Filter by location"),
            "limit": _LIMIT,
        },
    ),
    ToolDefinition(
        name=ToolName.GET_JOB,
        description="Get a job's details, client, applicants and notes by ID.",
        parameters={"job_id": _p("string", "The unique identifier of the job")},
        required=("job_id",),
    ),
    ToolDefinition(
        name=ToolName.CREATE_JOB,
        description="Create a new job posting.",
        parameters={
            "title": _p("string", "Job title"),
            "description": _p("string", "Full job description"),
            "client_id": _p("string", "Client ID for the job"),
            "location": _p("string", "Job location"),
            "employment_type": _p("string", "Type of employment (e.g., Full-time, Contract)"),
            "seniority": _p("string", "Seniority level (e.g., Senior, Mid-level)"),
        },
        required=("title",),
        roles=_STAFF,
        mutating=True,
    ),
    ToolDefinition(
        name=ToolName.UPDATE_JOB,
        description="Update an existing job posting's details or status.",
        parameters={
            "job_id": _p("string", "The unique identifier of the job"),
            "title": _p("string", "Job title"),
            "status": _p("string", "Job status", JOB_STATUSES),
            "description": _p("string", "Full job description"),
        },
        required=("job_id",),
        roles=_STAFF,
        mutating=True,
    ),
    # applications
    ToolDefinition(
        name=ToolName.SEARCH_APPLICATIONS,
        description="Search applications by job, candidate, pipeline stage or status.",
        parameters={
            "job_id": _p("string", "Filter by job ID"),
            "candidate_id": _p("string", "Filter by candidate ID"),
            "stage": _p("string", "Filter by pipeline stage"),
            "status": _p("string", "Filter by application status", APPLICATION_STATUSES),
            "limit": _LIMIT,
        },
    ),
    ToolDefinition(
        name=ToolName.UPDATE_APPLICATION_STAGE,
        description="Move an application to a different pipeline stage.",
        parameters={
            "application_id": _p("string", "The unique identifier of the application"),
            "stage": _p("string", "The new pipeline stage"),
            "notes": _p("string", "Optional notes about the stage change"),
        },
        required=("application_id", "stage"),
        roles=_STAFF,
        mutating=True,
    ),
    # interviews
    ToolDefinition(
        name=ToolName.SCHEDULE_INTERVIEW,
        description="Schedule an interview for an application.",
        parameters={
            "application_id": _p("string", "The application ID to schedule the interview for"),
            "scheduled_at": _p("string", "ISO datetime for the interview"),
            "notes": _p("string", "Optional notes about the interview"),
        },
        required=("application_id", "scheduled_at"),
        roles=_STAFF,
        mutating=True,
    ),
    ToolDefinition(
        name=ToolName.GET_UPCOMING_INTERVIEWS,
        description="List upcoming interviews.",
        parameters={
            "days_ahead": _p("number", "Number of days to look ahead (default: 7)"),
            "limit": _LIMIT,
        },
    ),
    # clients
    ToolDefinition(
        name=ToolName.SEARCH_CLIENTS,
        description="Search clients by name or contact.",
        parameters={
            "query": _p("string", "Search query (client name or contact)"),
            "status": _p("string", "Filter by client status", CLIENT_STATUSES),
            "limit": _LIMIT,
        },
    ),
    ToolDefinition(
        name=ToolName.GET_CLIENT,
        description="Get a client's details and jobs by ID.",
        parameters={"client_id": _p("string", "The unique identifier of the client")},
        required=("client_id",),
    ),
    # notes
    ToolDefinition(
        name=ToolName.ADD_NOTE,
        description="Add a note to a candidate, job or client.",
        parameters={
            "entity_type": _p("string", "Type of entity to add the note to", NOTE_ENTITY_TYPES),
            "entity_id": _p("string", "The unique identifier of the entity"),
            "content": _p("string", "The note content"),
        },
        required=("entity_type", "entity_id", "content"),
        mutating=True,
    ),
    # dashboard
    ToolDefinition(
        name=ToolName.GET_DASHBOARD_STATS,
        description="Summary statistics: candidates, jobs, pending applications, upcoming interviews.",
        parameters={"include_breakdown": _p("boolean", "Include breakdown by status")},
    ),
)

CATALOGUE: Mapping[str, ToolDefinition] = MappingProxyType({d.name.value: d for d in _DEFINITIONS})


def lookup(name: str) -> Optional[ToolDefinition]:
    return CATALOGUE.get(str(name or "").strip())


def require_tool(name: str) -> ToolDefinition:
    tool = lookup(name)
    if tool is None:
        raise UnknownToolError(str(name))
    return tool


def list_for(role: str) -> List[ToolDefinition]:
    """Tools visible to `role`; tools without an allow-list are visible to every role."""
    return [d for d in CATALOGUE.values() if d.roles is None or role in d.roles]


def tool_names() -> List[str]:
    return list(CATALOGUE.keys())


def catalogue_summary(role: str) -> List[Dict[str, object]]:
    out: List[Dict[str, object]] = []
    for d in list_for(role):
        out.append(
            {
                "name": d.name.value,
                "description": d.description,
                "parameters": {k: v.type for k, v in d.parameters.items()},
                "required": list(d.required),
                "mutating": d.mutating,
            }
        )
    return out
