from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from workload_ledger.domain import Assignment, Employee, Project
from workload_ledger.enums import ProjectStatus
from workload_ledger.errors import Busy, CapacityExceeded
from workload_ledger.ledger import AssignmentLedger
from workload_ledger.locks import EmployeeLocks

FIXED_NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _seed(store, project_count: int):
    store.add_employee(Employee(id="e1", name="Ada"))
    store.add_employee(Employee(id="e2", name="Bo"))
    for n in range(project_count):
        store.add_project(Project(id=f"p{n}", title=f"Project {n}", status=ProjectStatus.ACTIVE))


def test_concurrent_assignments_never_overcommit(ledger, store):
    workers = 6
    _seed(store, workers)
    barrier = threading.Barrier(workers)

    def attempt(n: int):
        barrier.wait()
        try:
            ledger.assign(f"p{n}", "e1", 30, "dev")
            return "ok"
        except CapacityExceeded as exc:
            return exc

    with ThreadPoolExecutor(max_workers=workers) as pool:
        results = list(pool.map(attempt, range(workers)))

    accepted = [r for r in results if r == "ok"]
    rejected = [r for r in results if isinstance(r, CapacityExceeded)]
    assert len(accepted) == 3
    assert len(rejected) == 3
    assert all(exc.available == 10 for exc in rejected)

    snapshot = ledger.get_capacity("e1")
    assert snapshot.project_workload == 90
    assert snapshot.project_workload <= snapshot.workload_cap


def test_lock_timeout_raises_busy_and_commits_nothing(store):
    _seed(store, 1)
    ledger = AssignmentLedger(store, locks=EmployeeLocks(timeout=0.05))

    with ledger.locks.hold(["e1"]):
        with pytest.raises(Busy) as excinfo:
            ledger.assign("p0", "e1", 10, "dev")
        with pytest.raises(Busy):
            ledger.remove("p0", "e1")

    assert excinfo.value.retryable is True
    assert excinfo.value.employee_ids == ["e1"]
    assert store.project_assignments("p0") == []


def test_other_employees_are_not_blocked(store):
    _seed(store, 1)
    ledger = AssignmentLedger(store, locks=EmployeeLocks(timeout=0.05))

    with ledger.locks.hold(["e1"]):
        ledger.assign("p0", "e2", 50, "dev")

    assert ledger.get_capacity("e2").project_workload == 50


def test_multi_employee_hold_releases_partial_acquisition():
    locks = EmployeeLocks(timeout=0.05)
    holder_ready = threading.Event()
    release = threading.Event()

    def hold_b():
        with locks.hold(["b"]):
            holder_ready.set()
            release.wait(2)

    thread = threading.Thread(target=hold_b)
    thread.start()
    holder_ready.wait(2)
    try:
        with pytest.raises(Busy):
            with locks.hold(["a", "b"]):
                pass
        # "a" was released when acquiring "b" timed out.
        with locks.hold(["a"], timeout=0.05):
            pass
    finally:
        release.set()
        thread.join()


def test_joining_a_project_waits_for_its_activation(store):
    store.add_employee(Employee(id="a", name="Ada"))
    store.add_employee(Employee(id="c", name="Cy"))
    store.add_project(
        Project(id="p1", title="Apollo", status=ProjectStatus.PENDING, assignments=[Assignment("p1", "a", "dev", 50)])
    )
    store.add_project(Project(id="p3", title="Gemini", status=ProjectStatus.ACTIVE))

    joiner: list[threading.Thread] = []
    outcome: dict[str, object] = {}

    def join_p1():
        outcome["join"] = ledger.assign("p1", "c", 60, "dev")

    def clock():
        # Runs inside the activation, after its admission check and before commit.
        if not joiner:
            thread = threading.Thread(target=join_p1)
            joiner.append(thread)
            thread.start()
            thread.join(0.2)
            outcome["blocked"] = thread.is_alive()
        return FIXED_NOW

    ledger = AssignmentLedger(store, lock_timeout=2.0, clock=clock)

    ledger.set_project_status("p1", "active")
    joiner[0].join(5)

    assert outcome["blocked"] is True
    assert outcome["join"].involvement_percentage == 60
    with pytest.raises(CapacityExceeded) as excinfo:
        ledger.assign("p3", "c", 80, "dev")
    assert excinfo.value.available == 40

    snapshot = ledger.get_capacity("c")
    assert snapshot.project_workload == 60
    assert snapshot.project_workload <= snapshot.workload_cap


def test_project_lock_timeout_is_busy(store):
    _seed(store, 1)
    ledger = AssignmentLedger(store, locks=EmployeeLocks(timeout=0.05))

    with ledger.locks.hold([], project_ids=["p0"]):
        with pytest.raises(Busy):
            ledger.assign("p0", "e2", 10, "dev")
        with pytest.raises(Busy) as excinfo:
            ledger.set_project_status("p0", "on-hold")

    assert excinfo.value.employee_ids == ["p0"]
    assert store.get_project("p0").status == ProjectStatus.ACTIVE
    ledger.assign("p0", "e2", 10, "dev")
