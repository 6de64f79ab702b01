"""Project health: progress, tier and risk list derived from committed state.

This is the only place these values are computed, so every consumer (API,
dashboards, exports) agrees on them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from workload_ledger.domain import Project, utcnow
from workload_ledger.enums import HealthTier, ProjectStatus

OVER_ALLOCATION_THRESHOLD = 120
LOW_PROGRESS_THRESHOLD = 25
HOURS_OVERRUN_FACTOR = 1.5


@dataclass(frozen=True)
class ProjectHealthReport:
    project_id: str
    progress: float
    health: HealthTier
    risks: list[str] = field(default_factory=list)
    total_involvement: int = 0
    completed_milestones: int = 0
    total_milestones: int = 0
    overdue_milestones: int = 0
    team_size: int = 0
    hours_utilization: float | None = None
    burn_rate: float | None = None


def calculate_progress(project: Project) -> float:
    if not project.milestones:
        return 0.0
    completed = sum(1 for m in project.milestones if m.completed)
    return completed / len(project.milestones) * 100


def calculate_total_involvement(project: Project) -> int:
    return sum(a.involvement_percentage for a in project.assignments)


def evaluate(project: Project, now: datetime | None = None) -> ProjectHealthReport:
    now = now or utcnow()
    is_active = project.status == ProjectStatus.ACTIVE
    progress = calculate_progress(project)
    total_involvement = calculate_total_involvement(project)
    overdue = sum(1 for m in project.milestones if m.is_overdue(now))

    no_assignees = is_active and not project.assignments
    over_allocated = total_involvement > OVER_ALLOCATION_THRESHOLD
    low_progress = is_active and progress < LOW_PROGRESS_THRESHOLD
    hours_overrun = bool(
        project.estimated_hours
        and project.actual_hours
        and project.actual_hours > project.estimated_hours * HOURS_OVERRUN_FACTOR
    )

    if no_assignees or over_allocated or overdue:
        health = HealthTier.CRITICAL
    elif low_progress:
        health = HealthTier.WARNING
    else:
        health = HealthTier.HEALTHY

    risks = []
    if no_assignees:
        risks.append("No team members assigned")
    if over_allocated:
        risks.append(f"Over-allocated ({total_involvement}%)")
    if overdue:
        risks.append(f"{overdue} overdue milestone(s)")
    if low_progress:
        risks.append("Low progress rate")
    if hours_overrun:
        risks.append("Significantly over estimated hours")

    hours_utilization = None
    if project.estimated_hours and project.actual_hours:
        hours_utilization = project.actual_hours / project.estimated_hours * 100

    burn_rate = None
    if project.budget and project.actual_hours:
        burn_rate = project.budget.amount / project.actual_hours

    return ProjectHealthReport(
        project_id=project.id,
        progress=progress,
        health=health,
        risks=risks,
        total_involvement=total_involvement,
        completed_milestones=sum(1 for m in project.milestones if m.completed),
        total_milestones=len(project.milestones),
        overdue_milestones=overdue,
        team_size=len(project.assignments),
        hours_utilization=hours_utilization,
        burn_rate=burn_rate,
    )
