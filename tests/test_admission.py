from __future__ import annotations

import pytest

from workload_ledger.admission import (
    check_activation,
    check_assignment,
    check_caps,
    check_initiative,
    check_involvement_update,
    validate_initiative_workload,
    validate_involvement,
)
from workload_ledger.capacity import CapacitySnapshot
from workload_ledger.domain import Assignment
from workload_ledger.errors import AlreadyAssigned, CapacityExceeded, InvalidPercentage, OverBeyondCapExceeded


def _snapshot(project_workload=0, over_beyond_workload=0, workload_cap=100, over_beyond_cap=20):
    return CapacitySnapshot(
        employee_id="e1",
        workload_cap=workload_cap,
        over_beyond_cap=over_beyond_cap,
        project_workload=project_workload,
        over_beyond_workload=over_beyond_workload,
    )


def test_assignment_rejected_with_requested_and_available():
    with pytest.raises(CapacityExceeded) as excinfo:
        check_assignment(_snapshot(project_workload=80), "p1", None, 25)
    assert (excinfo.value.requested, excinfo.value.available) == (25, 20)
    assert excinfo.value.shortfall == 5
    assert "short by 5%" in excinfo.value.message


def test_assignment_exactly_filling_capacity_is_admitted():
    assert check_assignment(_snapshot(project_workload=80), "p1", None, 20) is None


def test_existing_pair_is_already_assigned_before_capacity_is_checked():
    existing = Assignment("p1", "e1", "dev", 10)
    with pytest.raises(AlreadyAssigned):
        check_assignment(_snapshot(project_workload=100), "p1", existing, 50)


def test_update_excludes_own_current_involvement():
    snapshot = _snapshot(project_workload=100)
    check_involvement_update(snapshot, current_pct=40, new_pct=40)
    check_involvement_update(snapshot, current_pct=40, new_pct=10)
    with pytest.raises(CapacityExceeded) as excinfo:
        check_involvement_update(snapshot, current_pct=40, new_pct=41)
    assert excinfo.value.available == 40


def test_initiative_uses_employee_cap():
    check_initiative(_snapshot(over_beyond_workload=10), 10)
    with pytest.raises(OverBeyondCapExceeded) as excinfo:
        check_initiative(_snapshot(over_beyond_workload=10), 11)
    assert (excinfo.value.requested, excinfo.value.available) == (11, 10)

    with pytest.raises(OverBeyondCapExceeded):
        check_initiative(_snapshot(over_beyond_cap=5), 6)


def test_initiative_reassignment_replaces_current_load():
    check_initiative(_snapshot(over_beyond_workload=20), 15, current_pct=15)
    with pytest.raises(OverBeyondCapExceeded):
        check_initiative(_snapshot(over_beyond_workload=20), 16, current_pct=15)


def test_activation_needs_room_for_the_involvement():
    check_activation(_snapshot(project_workload=70), 30)
    with pytest.raises(CapacityExceeded):
        check_activation(_snapshot(project_workload=70), 31)


def test_caps_cannot_drop_below_committed_load():
    snapshot = _snapshot(project_workload=60, over_beyond_workload=10)
    check_caps(snapshot, 60, 10)
    with pytest.raises(CapacityExceeded):
        check_caps(snapshot, 59, 20)
    with pytest.raises(OverBeyondCapExceeded):
        check_caps(snapshot, 100, 9)
    with pytest.raises(InvalidPercentage):
        check_caps(snapshot, -1, 20)


@pytest.mark.parametrize("pct", [0, 101, -5, 12.5, True, "50"])
def test_involvement_range(pct):
    with pytest.raises(InvalidPercentage):
        validate_involvement(pct)


@pytest.mark.parametrize("pct", [0, 21])
def test_initiative_workload_range(pct):
    with pytest.raises(InvalidPercentage):
        validate_initiative_workload(pct)
    assert validate_initiative_workload(20) == 20
