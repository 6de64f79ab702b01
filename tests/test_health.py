from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from workload_ledger.domain import Assignment, Budget, Milestone, Project
from workload_ledger.enums import HealthTier, ProjectStatus
from workload_ledger.errors import NotFound
from workload_ledger.health import calculate_progress, evaluate

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _milestones(done: int, total: int, due_in_days: int = 30) -> list[Milestone]:
    return [
        Milestone(id=f"m{n}", title=f"Milestone {n}", due_date=NOW + timedelta(days=due_in_days), completed=n < done)
        for n in range(total)
    ]


def _team(*pcts: int, project_id: str = "p1") -> list[Assignment]:
    return [Assignment(project_id, f"e{n}", "dev", pct) for n, pct in enumerate(pcts)]


def test_over_allocation_is_critical_with_risk():
    project = Project(
        id="p1",
        title="Apollo",
        status=ProjectStatus.ACTIVE,
        milestones=_milestones(1, 2),
        assignments=_team(60, 50, 40),
    )

    report = evaluate(project, NOW)

    assert report.health == HealthTier.CRITICAL
    assert report.total_involvement == 150
    assert report.risks == ["Over-allocated (150%)"]


def test_active_project_without_assignees_is_critical():
    project = Project(id="p1", title="Apollo", status=ProjectStatus.ACTIVE, milestones=_milestones(2, 2))

    report = evaluate(project, NOW)

    assert report.health == HealthTier.CRITICAL
    assert report.risks == ["No team members assigned"]
    assert report.team_size == 0


def test_low_progress_warns_only_when_active():
    active = Project(
        id="p1", title="Apollo", status=ProjectStatus.ACTIVE, milestones=_milestones(1, 10), assignments=_team(50)
    )
    pending = Project(id="p2", title="Gemini", status=ProjectStatus.PENDING, milestones=_milestones(1, 10))

    active_report = evaluate(active, NOW)
    pending_report = evaluate(pending, NOW)

    assert active_report.health == HealthTier.WARNING
    assert active_report.risks == ["Low progress rate"]
    assert active_report.progress == pytest.approx(10.0)
    assert pending_report.health == HealthTier.HEALTHY
    assert pending_report.risks == []


def test_zero_milestones_means_zero_progress():
    project = Project(id="p1", title="Apollo", status=ProjectStatus.ACTIVE, assignments=_team(40))

    assert calculate_progress(project) == 0.0
    report = evaluate(project, NOW)
    assert report.progress == 0.0
    assert report.health == HealthTier.WARNING


def test_overdue_milestones_are_critical_and_completed_ones_are_not_overdue():
    milestones = _milestones(1, 4, due_in_days=-1)
    project = Project(
        id="p1", title="Apollo", status=ProjectStatus.COMPLETED, milestones=milestones, assignments=_team(30)
    )

    report = evaluate(project, NOW)

    assert report.health == HealthTier.CRITICAL
    assert report.overdue_milestones == 3
    assert report.risks == ["3 overdue milestone(s)"]


def test_risks_keep_their_order():
    project = Project(
        id="p1",
        title="Apollo",
        status=ProjectStatus.ACTIVE,
        milestones=_milestones(0, 2, due_in_days=-3),
        estimated_hours=100,
        actual_hours=200,
    )

    report = evaluate(project, NOW)

    assert report.risks == [
        "No team members assigned",
        "2 overdue milestone(s)",
        "Low progress rate",
        "Significantly over estimated hours",
    ]


def test_hours_overrun_alone_does_not_change_the_tier():
    project = Project(
        id="p1",
        title="Apollo",
        status=ProjectStatus.ACTIVE,
        milestones=_milestones(3, 4),
        assignments=_team(50, 50),
        estimated_hours=100,
        actual_hours=151,
        budget=Budget(amount=30200.0),
    )

    report = evaluate(project, NOW)

    assert report.health == HealthTier.HEALTHY
    assert report.risks == ["Significantly over estimated hours"]
    assert report.hours_utilization == pytest.approx(151.0)
    assert report.burn_rate == pytest.approx(200.0)
    assert (report.completed_milestones, report.total_milestones) == (3, 4)


def test_metrics_are_absent_without_hours():
    project = Project(id="p1", title="Apollo", milestones=_milestones(1, 1), budget=Budget(amount=1000.0))

    report = evaluate(project, NOW)

    assert report.hours_utilization is None
    assert report.burn_rate is None


def test_ledger_evaluates_stored_project(ledger, store):
    store.add_project(
        Project(id="p1", title="Apollo", status=ProjectStatus.ACTIVE, milestones=_milestones(2, 2, due_in_days=5))
    )

    report = ledger.evaluate_project("p1")

    assert report.health == HealthTier.CRITICAL
    assert report.progress == pytest.approx(100.0)
    with pytest.raises(NotFound):
        ledger.evaluate_project("missing")
