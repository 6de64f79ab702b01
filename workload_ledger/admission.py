"""Admission checks for capacity-consuming mutations.

Every check is a pure function of a :class:`CapacitySnapshot` taken inside
the ledger's critical section; none of them performs I/O. A check either
returns ``None`` (approved) or raises the matching :mod:`errors` type.
"""

from __future__ import annotations

from workload_ledger.capacity import CapacitySnapshot
from workload_ledger.domain import Assignment
from workload_ledger.errors import AlreadyAssigned, CapacityExceeded, InvalidPercentage, OverBeyondCapExceeded

MIN_INVOLVEMENT = 1
MAX_INVOLVEMENT = 100
MIN_INITIATIVE_WORKLOAD = 1
# Per-initiative ceiling; the employee's own over-beyond cap bounds the total.
OVER_BEYOND_CEILING = 20


def validate_involvement(pct: int) -> int:
    if isinstance(pct, bool) or not isinstance(pct, int) or not MIN_INVOLVEMENT <= pct <= MAX_INVOLVEMENT:
        raise InvalidPercentage("involvement_percentage", pct, MIN_INVOLVEMENT, MAX_INVOLVEMENT)
    return pct


def validate_initiative_workload(pct: int) -> int:
    if isinstance(pct, bool) or not isinstance(pct, int) or not MIN_INITIATIVE_WORKLOAD <= pct <= OVER_BEYOND_CEILING:
        raise InvalidPercentage("workload_percentage", pct, MIN_INITIATIVE_WORKLOAD, OVER_BEYOND_CEILING)
    return pct


def check_assignment(snapshot: CapacitySnapshot, project_id: str, existing: Assignment | None, pct: int) -> None:
    if existing is not None:
        raise AlreadyAssigned(project_id, snapshot.employee_id)
    if pct > snapshot.available_capacity:
        raise CapacityExceeded(snapshot.employee_id, pct, snapshot.available_capacity)


def check_involvement_update(snapshot: CapacitySnapshot, current_pct: int, new_pct: int) -> None:
    # The current involvement is being replaced, not added to.
    effective_available = snapshot.available_capacity + current_pct
    if new_pct > effective_available:
        raise CapacityExceeded(snapshot.employee_id, new_pct, effective_available)


def check_initiative(snapshot: CapacitySnapshot, pct: int, current_pct: int = 0) -> None:
    available = snapshot.over_beyond_cap - (snapshot.over_beyond_workload - current_pct)
    if pct > available:
        raise OverBeyondCapExceeded(snapshot.employee_id, pct, max(0, available))


def check_activation(snapshot: CapacitySnapshot, pct: int) -> None:
    if pct > snapshot.available_capacity:
        raise CapacityExceeded(snapshot.employee_id, pct, snapshot.available_capacity)


def check_caps(snapshot: CapacitySnapshot, workload_cap: int, over_beyond_cap: int) -> None:
    if workload_cap < 0:
        raise InvalidPercentage("workload_cap", workload_cap, 0)
    if over_beyond_cap < 0:
        raise InvalidPercentage("over_beyond_cap", over_beyond_cap, 0)
    if snapshot.project_workload > workload_cap:
        raise CapacityExceeded(snapshot.employee_id, snapshot.project_workload, workload_cap)
    if snapshot.over_beyond_workload > over_beyond_cap:
        raise OverBeyondCapExceeded(snapshot.employee_id, snapshot.over_beyond_workload, over_beyond_cap)
