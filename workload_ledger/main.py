from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

import workload_ledger.db as app_db
from workload_ledger.capacity import CapacitySnapshot
from workload_ledger.domain import ActivityEntry, Assignment, Initiative
from workload_ledger.enums import HealthTier, InitiativeStatus, ProjectStatus, WorkloadLevel
from workload_ledger.errors import LedgerError
from workload_ledger.health import ProjectHealthReport
from workload_ledger.ledger import AssignmentLedger
from workload_ledger.sql_store import SqlEntityStore

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Workload Capacity Ledger")

PERMISSIONS_HEADER = "X-Caller-Permissions"
CALLER_HEADER = "X-Caller-Id"


@app.middleware("http")
async def disable_cache_for_api(request: Request, call_next):
    response = await call_next(request)
    if request.url.path.startswith("/api/"):
        response.headers["Cache-Control"] = "no-store, no-cache, max-age=0, must-revalidate"
        response.headers["Pragma"] = "no-cache"
    return response


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


class AssignPayload(BaseModel):
    employee_id: str = Field(min_length=1)
    involvement_percentage: int = Field(ge=1, le=100)
    role: str = Field(min_length=1)

    @field_validator("role")
    @classmethod
    def role_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("role must not be blank")
        return value


class AssignmentPatchPayload(BaseModel):
    involvement_percentage: int | None = Field(default=None, ge=1, le=100)
    role: str | None = None


class InitiativeAssignPayload(BaseModel):
    employee_id: str = Field(min_length=1)
    workload_percentage: int = Field(ge=1, le=20)


class ProjectStatusPayload(BaseModel):
    status: ProjectStatus

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        return ProjectStatus.parse(value)


class InitiativeStatusPayload(BaseModel):
    status: InitiativeStatus

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value):
        return InitiativeStatus.parse(value)


class CapsPatchPayload(BaseModel):
    workload_cap: int | None = Field(default=None, ge=0)
    over_beyond_cap: int | None = Field(default=None, ge=0)


class CapacityOut(BaseModel):
    employee_id: str
    workload_cap: int
    over_beyond_cap: int
    project_workload: int
    over_beyond_workload: int
    total_workload: int
    available_capacity: int
    over_beyond_available: int
    is_overloaded: bool
    workload_level: WorkloadLevel
    warnings: list[str]

    @classmethod
    def from_snapshot(cls, snapshot: CapacitySnapshot) -> "CapacityOut":
        return cls(**snapshot.as_dict())


class WorkloadSummaryOut(BaseModel):
    total_employees: int
    overloaded_employees: int
    average_workload: float
    total_project_workload: int
    total_initiative_workload: int
    capacity_utilization: float


class AssignmentOut(BaseModel):
    project_id: str
    employee_id: str
    role: str
    involvement_percentage: int
    assigned_at: datetime
    updated_at: datetime

    @classmethod
    def from_assignment(cls, assignment: Assignment) -> "AssignmentOut":
        return cls(
            project_id=assignment.project_id,
            employee_id=assignment.employee_id,
            role=assignment.role,
            involvement_percentage=assignment.involvement_percentage,
            assigned_at=assignment.assigned_at,
            updated_at=assignment.updated_at,
        )


class InitiativeOut(BaseModel):
    id: str
    title: str
    status: InitiativeStatus
    assigned_to: str | None = None
    workload_percentage: int
    created_by: str

    @classmethod
    def from_initiative(cls, initiative: Initiative) -> "InitiativeOut":
        return cls(
            id=initiative.id,
            title=initiative.title,
            status=initiative.status,
            assigned_to=initiative.assigned_to,
            workload_percentage=initiative.workload_percentage,
            created_by=initiative.created_by,
        )


class ProjectStatusOut(BaseModel):
    id: str
    status: ProjectStatus


class ProjectHealthOut(BaseModel):
    project_id: str
    progress: float
    health: HealthTier
    risks: list[str]
    total_involvement: int
    completed_milestones: int
    total_milestones: int
    overdue_milestones: int
    team_size: int
    hours_utilization: float | None = None
    burn_rate: float | None = None

    @classmethod
    def from_report(cls, report: ProjectHealthReport) -> "ProjectHealthOut":
        return cls(
            project_id=report.project_id,
            progress=report.progress,
            health=report.health,
            risks=list(report.risks),
            total_involvement=report.total_involvement,
            completed_milestones=report.completed_milestones,
            total_milestones=report.total_milestones,
            overdue_milestones=report.overdue_milestones,
            team_size=report.team_size,
            hours_utilization=report.hours_utilization,
            burn_rate=report.burn_rate,
        )


class ActivityOut(BaseModel):
    id: int | None = None
    actor_id: str | None = None
    action: str
    entity_type: str
    entity_id: str
    employee_id: str | None = None
    details: str
    created_at: datetime

    @classmethod
    def from_entry(cls, entry: ActivityEntry) -> "ActivityOut":
        return cls(
            id=entry.id,
            actor_id=entry.actor_id,
            action=entry.action,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
            employee_id=entry.employee_id,
            details=entry.details,
            created_at=entry.created_at,
        )


@dataclass(frozen=True)
class Caller:
    id: str
    permissions: frozenset[str]


_LEDGER: AssignmentLedger | None = None


def get_ledger() -> AssignmentLedger:
    global _LEDGER
    if _LEDGER is None:
        timeout = float(os.getenv("LEDGER_LOCK_TIMEOUT_SECONDS", "5"))
        _LEDGER = AssignmentLedger(SqlEntityStore(app_db.new_session), lock_timeout=timeout)
    return _LEDGER


def get_caller(
    caller_id: str | None = Header(default=None, alias=CALLER_HEADER),
    permissions: str = Header(default="", alias=PERMISSIONS_HEADER),
) -> Caller:
    # Identity and flags are established upstream; this only reads them.
    if not caller_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Caller identity required")
    flags = frozenset(p.strip() for p in permissions.split(",") if p.strip())
    return Caller(id=caller_id, permissions=flags)


def require(permission: str) -> Callable[..., Caller]:
    def dependency(caller: Caller = Depends(get_caller)) -> Caller:
        if permission not in caller.permissions:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Permission {permission} required")
        return caller

    return dependency


@app.get("/api/employees/{employee_id}/capacity", response_model=CapacityOut)
def get_capacity(
    employee_id: str,
    _: Caller = Depends(require("capacity:read")),
    ledger: AssignmentLedger = Depends(get_ledger),
) -> CapacityOut:
    return CapacityOut.from_snapshot(ledger.get_capacity(employee_id))


@app.patch("/api/employees/{employee_id}/caps", response_model=CapacityOut)
def patch_caps(
    employee_id: str,
    payload: CapsPatchPayload,
    caller: Caller = Depends(require("employees:write")),
    ledger: AssignmentLedger = Depends(get_ledger),
) -> CapacityOut:
    if payload.workload_cap is None and payload.over_beyond_cap is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No updates were provided")
    snapshot = ledger.set_employee_caps(
        employee_id,
        workload_cap=payload.workload_cap,
        over_beyond_cap=payload.over_beyond_cap,
        actor_id=caller.id,
    )
    return CapacityOut.from_snapshot(snapshot)


@app.get("/api/capacity/summary", response_model=WorkloadSummaryOut)
def capacity_summary(
    _: Caller = Depends(require("capacity:read")),
    ledger: AssignmentLedger = Depends(get_ledger),
) -> WorkloadSummaryOut:
    summary = ledger.workload_summary()
    return WorkloadSummaryOut(
        total_employees=summary.total_employees,
        overloaded_employees=summary.overloaded_employees,
        average_workload=summary.average_workload,
        total_project_workload=summary.total_project_workload,
        total_initiative_workload=summary.total_initiative_workload,
        capacity_utilization=summary.capacity_utilization,
    )


@app.post(
    "/api/projects/{project_id}/assignments",
    response_model=AssignmentOut,
    status_code=status.HTTP_201_CREATED,
)
def assign_to_project(
    project_id: str,
    payload: AssignPayload,
    caller: Caller = Depends(require("assignments:write")),
    ledger: AssignmentLedger = Depends(get_ledger),
) -> AssignmentOut:
    assignment = ledger.assign(
        project_id,
        payload.employee_id,
        payload.involvement_percentage,
        payload.role,
        actor_id=caller.id,
    )
    return AssignmentOut.from_assignment(assignment)


@app.patch("/api/projects/{project_id}/assignments/{employee_id}", response_model=AssignmentOut)
def update_assignment(
    project_id: str,
    employee_id: str,
    payload: AssignmentPatchPayload,
    caller: Caller = Depends(require("assignments:write")),
    ledger: AssignmentLedger = Depends(get_ledger),
) -> AssignmentOut:
    if payload.involvement_percentage is None and payload.role is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No updates were provided")
    if payload.role is not None and not payload.role.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Role must not be blank")
    assignment = ledger.update(
        project_id,
        employee_id,
        involvement_percentage=payload.involvement_percentage,
        role=payload.role,
        actor_id=caller.id,
    )
    return AssignmentOut.from_assignment(assignment)


@app.delete("/api/projects/{project_id}/assignments/{employee_id}")
def remove_assignment(
    project_id: str,
    employee_id: str,
    caller: Caller = Depends(require("assignments:write")),
    ledger: AssignmentLedger = Depends(get_ledger),
) -> dict[str, bool]:
    ledger.remove(project_id, employee_id, actor_id=caller.id)
    return {"ok": True}


@app.get("/api/projects/{project_id}/health", response_model=ProjectHealthOut)
def project_health(
    project_id: str,
    _: Caller = Depends(require("capacity:read")),
    ledger: AssignmentLedger = Depends(get_ledger),
) -> ProjectHealthOut:
    return ProjectHealthOut.from_report(ledger.evaluate_project(project_id))


@app.patch("/api/projects/{project_id}/status", response_model=ProjectStatusOut)
def patch_project_status(
    project_id: str,
    payload: ProjectStatusPayload,
    caller: Caller = Depends(require("projects:write")),
    ledger: AssignmentLedger = Depends(get_ledger),
) -> ProjectStatusOut:
    project = ledger.set_project_status(project_id, payload.status, actor_id=caller.id)
    return ProjectStatusOut(id=project.id, status=project.status)


@app.post("/api/initiatives/{initiative_id}/assignment", response_model=InitiativeOut)
def assign_initiative(
    initiative_id: str,
    payload: InitiativeAssignPayload,
    caller: Caller = Depends(require("initiatives:write")),
    ledger: AssignmentLedger = Depends(get_ledger),
) -> InitiativeOut:
    initiative = ledger.assign_initiative(
        initiative_id,
        payload.employee_id,
        payload.workload_percentage,
        actor_id=caller.id,
    )
    return InitiativeOut.from_initiative(initiative)


@app.delete("/api/initiatives/{initiative_id}/assignment/{employee_id}", response_model=InitiativeOut)
def unassign_initiative(
    initiative_id: str,
    employee_id: str,
    caller: Caller = Depends(require("initiatives:write")),
    ledger: AssignmentLedger = Depends(get_ledger),
) -> InitiativeOut:
    return InitiativeOut.from_initiative(ledger.unassign_initiative(initiative_id, employee_id, actor_id=caller.id))


@app.patch("/api/initiatives/{initiative_id}/status", response_model=InitiativeOut)
def patch_initiative_status(
    initiative_id: str,
    payload: InitiativeStatusPayload,
    caller: Caller = Depends(require("initiatives:write")),
    ledger: AssignmentLedger = Depends(get_ledger),
) -> InitiativeOut:
    return InitiativeOut.from_initiative(
        ledger.set_initiative_status(initiative_id, payload.status, actor_id=caller.id)
    )


@app.get("/api/activity", response_model=list[ActivityOut])
def list_activity(
    limit: int = 100,
    _: Caller = Depends(require("capacity:read")),
    ledger: AssignmentLedger = Depends(get_ledger),
) -> list[ActivityOut]:
    limit = max(1, min(limit, 500))
    return [ActivityOut.from_entry(entry) for entry in ledger.recent_activity(limit)]


@app.get("/health")
def health() -> dict[str, bool | str]:
    return {"ok": True, "env": os.getenv("ENVIRONMENT", "local")}
