"""The Assignment Ledger: the only code path that commits capacity changes.

Each mutation runs as lock -> transaction -> snapshot -> admission check ->
write -> commit, with the per-employee lock held throughout, so two
concurrent mutations for the same employee can never both be admitted
against the same stale snapshot. Changes to a project's membership and to
its status also hold that project's lock, so nobody can join a project
while its activation is being admitted.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterable, Iterator

from workload_ledger.admission import (
    check_activation,
    check_assignment,
    check_caps,
    check_initiative,
    check_involvement_update,
    validate_initiative_workload,
    validate_involvement,
)
from workload_ledger.capacity import CapacitySnapshot, WorkloadSummary, compute_capacity, workload_summary
from workload_ledger.domain import ActivityEntry, Assignment, Initiative, Project, utcnow
from workload_ledger.enums import InitiativeStatus, ProjectStatus
from workload_ledger.errors import Busy, LedgerError, NotFound
from workload_ledger.health import ProjectHealthReport, evaluate
from workload_ledger.locks import EmployeeLocks
from workload_ledger.store import EntityReader, EntityStore, EntityTransaction

logger = logging.getLogger(__name__)

# How many times a mutation whose lock set depends on stored state re-reads
# that state before giving up with Busy.
MAX_LOCK_ATTEMPTS = 3


def _require_project(reader: EntityReader, project_id: str) -> Project:
    project = reader.get_project(project_id)
    if project is None:
        raise NotFound("project", project_id)
    return project


def _require_initiative(reader: EntityReader, initiative_id: str) -> Initiative:
    initiative = reader.get_initiative(initiative_id)
    if initiative is None:
        raise NotFound("initiative", initiative_id)
    return initiative


def _clean_role(role: str) -> str:
    cleaned = (role or "").strip()
    if not cleaned:
        raise ValueError("role must not be empty")
    return cleaned


class AssignmentLedger:
    def __init__(
        self,
        store: EntityStore,
        locks: EmployeeLocks | None = None,
        lock_timeout: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.locks = locks or EmployeeLocks(timeout=lock_timeout)
        self.clock = clock

    # Reads: lock-free, one consistent view each.

    def get_capacity(self, employee_id: str) -> CapacitySnapshot:
        with self.store.read_view() as view:
            return compute_capacity(view, employee_id)

    def evaluate_project(self, project_id: str, now: datetime | None = None) -> ProjectHealthReport:
        with self.store.read_view() as view:
            project = _require_project(view, project_id)
        return evaluate(project, now or self.clock())

    def workload_summary(self) -> WorkloadSummary:
        with self.store.read_view() as view:
            return workload_summary(view)

    def recent_activity(self, limit: int = 100) -> list[ActivityEntry]:
        return self.store.list_activity(limit)

    # Mutations.

    @contextmanager
    def _mutation(
        self, action: str, employee_ids: Iterable[str], project_id: str | None = None
    ) -> Iterator[EntityTransaction]:
        """Lock, open a transaction, and commit when the block exits cleanly.

        Passing ``project_id`` also takes that project's lock, which every
        membership change and every status change of the project holds.
        """
        ids = sorted(set(employee_ids))
        project_ids = [project_id] if project_id is not None else []
        try:
            with self.locks.hold(ids, project_ids=project_ids):
                with self.store.transaction() as tx:
                    if project_id is not None:
                        tx.lock_project(project_id)
                    tx.lock_employees(ids)
                    yield tx
        except LedgerError as exc:
            logger.info("Rejected %s for %s: %s", action, ", ".join(ids) or project_id or "-", exc.message)
            raise

    def _run_locked(
        self,
        action: str,
        resolve_ids: Callable[[EntityReader], set[str]],
        body: Callable[[EntityTransaction], object],
        project_id: str | None = None,
    ):
        """Run ``body`` holding the locks of every employee ``resolve_ids`` names.

        The ids are read before locking and read again inside the
        transaction; if the set grew in between, the attempt commits nothing
        and starts over.
        """
        ids: set[str] = set()
        for _ in range(MAX_LOCK_ATTEMPTS):
            ids = resolve_ids(self.store)
            with self._mutation(action, ids, project_id) as tx:
                if resolve_ids(tx) <= ids:
                    return body(tx)
        logger.warning("Gave up on %s: affected employees kept changing", action)
        raise Busy(sorted(ids), self.locks.timeout)

    def assign(
        self,
        project_id: str,
        employee_id: str,
        involvement_percentage: int,
        role: str,
        actor_id: str | None = None,
    ) -> Assignment:
        validate_involvement(involvement_percentage)
        role = _clean_role(role)
        with self._mutation("assign", [employee_id], project_id) as tx:
            project = _require_project(tx, project_id)
            snapshot = compute_capacity(tx, employee_id)
            check_assignment(snapshot, project_id, project.assignment_for(employee_id), involvement_percentage)

            now = self.clock()
            assignment = Assignment(
                project_id=project_id,
                employee_id=employee_id,
                role=role,
                involvement_percentage=involvement_percentage,
                assigned_at=now,
                updated_at=now,
            )
            tx.add_assignment(assignment)
            tx.record_activity(
                ActivityEntry(
                    actor_id=actor_id,
                    action="assignment.created",
                    entity_type="project",
                    entity_id=project_id,
                    employee_id=employee_id,
                    details=f"Assigned {employee_id} to project with {involvement_percentage}% involvement as {role}",
                    created_at=now,
                )
            )
        logger.info(
            "Assigned %s to project %s at %s%% (available was %s%%)",
            employee_id,
            project_id,
            involvement_percentage,
            snapshot.available_capacity,
        )
        return assignment

    def update(
        self,
        project_id: str,
        employee_id: str,
        involvement_percentage: int | None = None,
        role: str | None = None,
        actor_id: str | None = None,
    ) -> Assignment:
        if involvement_percentage is not None:
            validate_involvement(involvement_percentage)
        if role is not None:
            role = _clean_role(role)

        with self._mutation("update_assignment", [employee_id], project_id) as tx:
            project = _require_project(tx, project_id)
            current = project.assignment_for(employee_id)
            if current is None:
                raise NotFound("assignment", f"{project_id}/{employee_id}")
            if involvement_percentage is None and role is None:
                return current
            if involvement_percentage is not None:
                snapshot = compute_capacity(tx, employee_id)
                check_involvement_update(snapshot, current.involvement_percentage, involvement_percentage)

            now = self.clock()
            tx.update_assignment(project_id, employee_id, now, involvement_percentage, role)
            updated = replace(
                current,
                involvement_percentage=(
                    current.involvement_percentage if involvement_percentage is None else involvement_percentage
                ),
                role=current.role if role is None else role,
                updated_at=now,
            )
            tx.record_activity(
                ActivityEntry(
                    actor_id=actor_id,
                    action="assignment.updated",
                    entity_type="project",
                    entity_id=project_id,
                    employee_id=employee_id,
                    details=(
                        f"Updated {employee_id}: involvement {current.involvement_percentage}% -> "
                        f"{updated.involvement_percentage}%, role {updated.role}"
                    ),
                    created_at=now,
                )
            )
        logger.info(
            "Updated assignment %s on project %s to %s%%", employee_id, project_id, updated.involvement_percentage
        )
        return updated

    def remove(self, project_id: str, employee_id: str, actor_id: str | None = None) -> None:
        with self._mutation("remove_assignment", [employee_id], project_id) as tx:
            project = _require_project(tx, project_id)
            current = project.assignment_for(employee_id)
            if current is None:
                raise NotFound("assignment", f"{project_id}/{employee_id}")
            now = self.clock()
            tx.delete_assignment(project_id, employee_id)
            tx.record_activity(
                ActivityEntry(
                    actor_id=actor_id,
                    action="assignment.removed",
                    entity_type="project",
                    entity_id=project_id,
                    employee_id=employee_id,
                    details=f"Unassigned {employee_id} from project, releasing {current.involvement_percentage}%",
                    created_at=now,
                )
            )
        logger.info("Removed %s from project %s", employee_id, project_id)

    def assign_initiative(
        self,
        initiative_id: str,
        employee_id: str,
        workload_percentage: int,
        actor_id: str | None = None,
    ) -> Initiative:
        validate_initiative_workload(workload_percentage)

        def resolve(reader: EntityReader) -> set[str]:
            initiative = _require_initiative(reader, initiative_id)
            return {employee_id} | ({initiative.assigned_to} if initiative.assigned_to else set())

        def body(tx: EntityTransaction) -> Initiative:
            initiative = _require_initiative(tx, initiative_id)
            snapshot = compute_capacity(tx, employee_id)
            # Re-assigning to the same employee replaces the load already counted.
            current = (
                initiative.workload_percentage
                if initiative.assigned_to == employee_id and initiative.is_active
                else 0
            )
            check_initiative(snapshot, workload_percentage, current)

            now = self.clock()
            tx.set_initiative_assignment(initiative_id, employee_id, workload_percentage)
            previous = f" (previously {initiative.assigned_to})" if initiative.assigned_to not in (None, employee_id) else ""
            tx.record_activity(
                ActivityEntry(
                    actor_id=actor_id,
                    action="initiative.assigned",
                    entity_type="initiative",
                    entity_id=initiative_id,
                    employee_id=employee_id,
                    details=f"Assigned {employee_id} at {workload_percentage}% Over & Beyond{previous}",
                    created_at=now,
                )
            )
            return replace(initiative, assigned_to=employee_id, workload_percentage=workload_percentage)

        initiative = self._run_locked("assign_initiative", resolve, body)
        logger.info("Assigned initiative %s to %s at %s%%", initiative_id, employee_id, workload_percentage)
        return initiative

    def unassign_initiative(self, initiative_id: str, employee_id: str, actor_id: str | None = None) -> Initiative:
        with self._mutation("unassign_initiative", [employee_id]) as tx:
            initiative = _require_initiative(tx, initiative_id)
            if initiative.assigned_to != employee_id:
                raise NotFound("initiative assignment", f"{initiative_id}/{employee_id}")
            tx.set_initiative_assignment(initiative_id, None)
            tx.record_activity(
                ActivityEntry(
                    actor_id=actor_id,
                    action="initiative.unassigned",
                    entity_type="initiative",
                    entity_id=initiative_id,
                    employee_id=employee_id,
                    details=f"Unassigned {employee_id}, releasing {initiative.workload_percentage}% Over & Beyond",
                    created_at=self.clock(),
                )
            )
        logger.info("Unassigned initiative %s from %s", initiative_id, employee_id)
        return replace(initiative, assigned_to=None)

    def set_project_status(
        self, project_id: str, status: ProjectStatus | str, actor_id: str | None = None
    ) -> Project:
        status = ProjectStatus.parse(status)

        def resolve(reader: EntityReader) -> set[str]:
            return {a.employee_id for a in _require_project(reader, project_id).assignments}

        def body(tx: EntityTransaction) -> Project:
            project = _require_project(tx, project_id)
            if project.status == status:
                return project
            if status == ProjectStatus.ACTIVE:
                # Activation makes every assignment count; re-admit each one.
                for assignment in sorted(project.assignments, key=lambda a: a.employee_id):
                    check_activation(compute_capacity(tx, assignment.employee_id), assignment.involvement_percentage)
            tx.set_project_status(project_id, status)
            tx.record_activity(
                ActivityEntry(
                    actor_id=actor_id,
                    action="project.status_changed",
                    entity_type="project",
                    entity_id=project_id,
                    details=f"Status changed from {project.status.value} to {status.value}",
                    created_at=self.clock(),
                )
            )
            return replace(project, status=status)

        project = self._run_locked("set_project_status", resolve, body, project_id)
        logger.info("Project %s is now %s", project_id, project.status.value)
        return project

    def set_initiative_status(
        self, initiative_id: str, status: InitiativeStatus | str, actor_id: str | None = None
    ) -> Initiative:
        status = InitiativeStatus.parse(status)

        def resolve(reader: EntityReader) -> set[str]:
            assignee = _require_initiative(reader, initiative_id).assigned_to
            return {assignee} if assignee else set()

        def body(tx: EntityTransaction) -> Initiative:
            initiative = _require_initiative(tx, initiative_id)
            if initiative.status == status:
                return initiative
            if status == InitiativeStatus.ACTIVE and initiative.assigned_to:
                check_initiative(compute_capacity(tx, initiative.assigned_to), initiative.workload_percentage)
            tx.set_initiative_status(initiative_id, status)
            tx.record_activity(
                ActivityEntry(
                    actor_id=actor_id,
                    action="initiative.status_changed",
                    entity_type="initiative",
                    entity_id=initiative_id,
                    employee_id=initiative.assigned_to,
                    details=f"Status changed from {initiative.status.value} to {status.value}",
                    created_at=self.clock(),
                )
            )
            return replace(initiative, status=status)

        initiative = self._run_locked("set_initiative_status", resolve, body)
        logger.info("Initiative %s is now %s", initiative_id, initiative.status.value)
        return initiative

    def set_employee_caps(
        self,
        employee_id: str,
        workload_cap: int | None = None,
        over_beyond_cap: int | None = None,
        actor_id: str | None = None,
    ) -> CapacitySnapshot:
        with self._mutation("set_employee_caps", [employee_id]) as tx:
            snapshot = compute_capacity(tx, employee_id)
            new_workload_cap = snapshot.workload_cap if workload_cap is None else workload_cap
            new_over_beyond_cap = snapshot.over_beyond_cap if over_beyond_cap is None else over_beyond_cap
            check_caps(snapshot, new_workload_cap, new_over_beyond_cap)

            tx.set_employee_caps(employee_id, new_workload_cap, new_over_beyond_cap)
            tx.record_activity(
                ActivityEntry(
                    actor_id=actor_id,
                    action="employee.caps_changed",
                    entity_type="employee",
                    entity_id=employee_id,
                    employee_id=employee_id,
                    details=(
                        f"Caps changed to {new_workload_cap}% workload, "
                        f"{new_over_beyond_cap}% Over & Beyond"
                    ),
                    created_at=self.clock(),
                )
            )
        logger.info("Caps for %s set to %s/%s", employee_id, new_workload_cap, new_over_beyond_cap)
        return self.get_capacity(employee_id)
