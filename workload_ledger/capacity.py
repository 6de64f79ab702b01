from __future__ import annotations

from dataclasses import dataclass

from workload_ledger.enums import CAPACITY_ROLES, InitiativeStatus, ProjectStatus, WorkloadLevel
from workload_ledger.errors import NotFound
from workload_ledger.store import EntityReader

HIGH_INVOLVEMENT_THRESHOLD = 50


@dataclass(frozen=True)
class CapacitySnapshot:
    """Point-in-time workload totals for one employee, all in percent.

    Built fresh for every operation and never cached: it is only valid for
    the view it was computed from.
    """

    employee_id: str
    workload_cap: int
    over_beyond_cap: int
    project_workload: int
    over_beyond_workload: int
    warnings: tuple[str, ...] = ()

    @property
    def total_workload(self) -> int:
        return self.project_workload + self.over_beyond_workload

    @property
    def available_capacity(self) -> int:
        return max(0, self.workload_cap - self.project_workload)

    @property
    def over_beyond_available(self) -> int:
        return max(0, self.over_beyond_cap - self.over_beyond_workload)

    @property
    def is_overloaded(self) -> bool:
        return self.total_workload > self.workload_cap or self.over_beyond_workload > self.over_beyond_cap

    @property
    def workload_level(self) -> WorkloadLevel:
        return workload_level(self.total_workload)

    def as_dict(self) -> dict:
        return {
            "employee_id": self.employee_id,
            "workload_cap": self.workload_cap,
            "over_beyond_cap": self.over_beyond_cap,
            "project_workload": self.project_workload,
            "over_beyond_workload": self.over_beyond_workload,
            "total_workload": self.total_workload,
            "available_capacity": self.available_capacity,
            "over_beyond_available": self.over_beyond_available,
            "is_overloaded": self.is_overloaded,
            "workload_level": self.workload_level.value,
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class WorkloadSummary:
    total_employees: int
    overloaded_employees: int
    average_workload: float
    total_project_workload: int
    total_initiative_workload: int
    capacity_utilization: float


def workload_level(total_workload: int) -> WorkloadLevel:
    if total_workload > 100:
        return WorkloadLevel.OVERLOAD
    if total_workload > 80:
        return WorkloadLevel.HIGH
    if total_workload > 50:
        return WorkloadLevel.MEDIUM
    return WorkloadLevel.LOW


def compute_capacity(reader: EntityReader, employee_id: str) -> CapacitySnapshot:
    employee = reader.get_employee(employee_id)
    if employee is None:
        raise NotFound("employee", employee_id)

    assignments = reader.employee_assignments(employee_id, project_status=ProjectStatus.ACTIVE)
    initiatives = reader.employee_initiatives(employee_id, status=InitiativeStatus.ACTIVE)

    project_workload = sum(row.assignment.involvement_percentage for row in assignments)
    over_beyond_workload = sum(i.workload_percentage for i in initiatives)
    workload_cap = employee.effective_workload_cap
    over_beyond_cap = employee.effective_over_beyond_cap

    warnings = []
    total = project_workload + over_beyond_workload
    if total > workload_cap:
        warnings.append(f"Total workload ({total:.1f}%) exceeds capacity ({workload_cap}%)")
    if over_beyond_workload > over_beyond_cap:
        warnings.append(f"Over & Beyond workload ({over_beyond_workload:.1f}%) exceeds capacity ({over_beyond_cap}%)")
    for row in assignments:
        if row.assignment.involvement_percentage > HIGH_INVOLVEMENT_THRESHOLD:
            warnings.append(
                f"High involvement ({row.assignment.involvement_percentage}%) in project: {row.project_title}"
            )

    return CapacitySnapshot(
        employee_id=employee_id,
        workload_cap=workload_cap,
        over_beyond_cap=over_beyond_cap,
        project_workload=project_workload,
        over_beyond_workload=over_beyond_workload,
        warnings=tuple(warnings),
    )


def compute_capacities(reader: EntityReader, employee_ids: list[str]) -> list[CapacitySnapshot]:
    return [compute_capacity(reader, employee_id) for employee_id in employee_ids]


def workload_summary(reader: EntityReader) -> WorkloadSummary:
    employees = [e for e in reader.list_employees() if e.role in CAPACITY_ROLES]
    snapshots = compute_capacities(reader, [e.id for e in employees])

    total_project = sum(s.project_workload for s in snapshots)
    total_initiative = sum(s.over_beyond_workload for s in snapshots)
    total_caps = sum(s.workload_cap for s in snapshots)
    average = sum(s.total_workload for s in snapshots) / len(snapshots) if snapshots else 0.0
    utilization = total_project / total_caps * 100 if total_caps > 0 else 0.0

    return WorkloadSummary(
        total_employees=len(snapshots),
        overloaded_employees=sum(1 for s in snapshots if s.is_overloaded),
        average_workload=average,
        total_project_workload=total_project,
        total_initiative_workload=total_initiative,
        capacity_utilization=utilization,
    )
