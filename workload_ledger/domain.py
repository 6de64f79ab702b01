from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

from workload_ledger.enums import InitiativeStatus, Priority, ProjectStatus, UserRole

DEFAULT_WORKLOAD_CAP = 100
DEFAULT_OVER_BEYOND_CAP = 20


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class Employee:
    id: str
    name: str
    email: str | None = None
    role: UserRole = UserRole.EMPLOYEE
    workload_cap: int | None = DEFAULT_WORKLOAD_CAP
    over_beyond_cap: int | None = DEFAULT_OVER_BEYOND_CAP
    manager_id: str | None = None
    skills: set[str] = field(default_factory=set)
    is_active: bool = True

    @property
    def effective_workload_cap(self) -> int:
        return DEFAULT_WORKLOAD_CAP if self.workload_cap is None else self.workload_cap

    @property
    def effective_over_beyond_cap(self) -> int:
        return DEFAULT_OVER_BEYOND_CAP if self.over_beyond_cap is None else self.over_beyond_cap


@dataclass
class Budget:
    amount: float
    currency: str = "USD"


@dataclass
class Milestone:
    id: str
    title: str
    due_date: datetime
    completed: bool = False
    completed_at: datetime | None = None

    def is_overdue(self, now: datetime) -> bool:
        return not self.completed and as_utc(self.due_date) < as_utc(now)


@dataclass
class Assignment:
    project_id: str
    employee_id: str
    role: str
    involvement_percentage: int
    assigned_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class EmployeeAssignment:
    """An assignment seen from the employee side, with the owning project's state."""

    assignment: Assignment
    project_title: str
    project_status: ProjectStatus


@dataclass
class Project:
    id: str
    title: str
    manager_id: str | None = None
    status: ProjectStatus = ProjectStatus.PENDING
    priority: Priority = Priority.MEDIUM
    milestones: list[Milestone] = field(default_factory=list)
    assignments: list[Assignment] = field(default_factory=list)
    estimated_hours: float | None = None
    actual_hours: float | None = None
    budget: Budget | None = None
    tags: list[str] = field(default_factory=list)

    def assignment_for(self, employee_id: str) -> Assignment | None:
        for assignment in self.assignments:
            if assignment.employee_id == employee_id:
                return assignment
        return None


@dataclass
class Initiative:
    id: str
    title: str
    created_by: str
    workload_percentage: int
    status: InitiativeStatus = InitiativeStatus.PENDING
    assigned_to: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status == InitiativeStatus.ACTIVE


@dataclass
class ActivityEntry:
    action: str
    entity_type: str
    entity_id: str
    details: str
    actor_id: str | None = None
    employee_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    id: int | None = None


def clone_project(project: Project) -> Project:
    return replace(
        project,
        milestones=[replace(m) for m in project.milestones],
        assignments=[replace(a) for a in project.assignments],
        budget=replace(project.budget) if project.budget else None,
        tags=list(project.tags),
    )
