"""Entity Store interface and the in-memory implementation.

The ledger never touches storage directly: it reads through an
:class:`EntityReader` and writes through an :class:`EntityTransaction`
obtained from :meth:`EntityStore.transaction`. A transaction either commits
every write it recorded or none of them.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Callable, Iterator

from workload_ledger.domain import (
    ActivityEntry,
    Assignment,
    Employee,
    EmployeeAssignment,
    Initiative,
    Project,
    clone_project,
)
from workload_ledger.enums import InitiativeStatus, ProjectStatus


class EntityReader(ABC):
    @abstractmethod
    def get_employee(self, employee_id: str) -> Employee | None:
        pass

    @abstractmethod
    def list_employees(self) -> list[Employee]:
        pass

    @abstractmethod
    def get_project(self, project_id: str) -> Project | None:
        pass

    @abstractmethod
    def get_initiative(self, initiative_id: str) -> Initiative | None:
        pass

    @abstractmethod
    def project_assignments(self, project_id: str) -> list[Assignment]:
        pass

    @abstractmethod
    def employee_assignments(
        self, employee_id: str, project_status: ProjectStatus | None = None
    ) -> list[EmployeeAssignment]:
        pass

    @abstractmethod
    def employee_initiatives(
        self, employee_id: str, status: InitiativeStatus | None = None
    ) -> list[Initiative]:
        pass

    @abstractmethod
    def list_activity(self, limit: int = 100) -> list[ActivityEntry]:
        pass


class EntityTransaction(EntityReader):
    """Read view plus the write primitives one ledger mutation may use."""

    def lock_employees(self, employee_ids: list[str]) -> None:
        """Take storage-level locks on the employees a mutation touches, if the backend has any."""

    def lock_project(self, project_id: str) -> None:
        """Take a storage-level lock on a project whose membership or status may change."""

    @abstractmethod
    def add_assignment(self, assignment: Assignment) -> None:
        pass

    @abstractmethod
    def update_assignment(
        self,
        project_id: str,
        employee_id: str,
        updated_at: datetime,
        involvement_percentage: int | None = None,
        role: str | None = None,
    ) -> None:
        pass

    @abstractmethod
    def delete_assignment(self, project_id: str, employee_id: str) -> None:
        pass

    @abstractmethod
    def set_initiative_assignment(
        self, initiative_id: str, employee_id: str | None, workload_percentage: int | None = None
    ) -> None:
        pass

    @abstractmethod
    def set_initiative_status(self, initiative_id: str, status: InitiativeStatus) -> None:
        pass

    @abstractmethod
    def set_project_status(self, project_id: str, status: ProjectStatus) -> None:
        pass

    @abstractmethod
    def set_employee_caps(self, employee_id: str, workload_cap: int, over_beyond_cap: int) -> None:
        pass

    @abstractmethod
    def record_activity(self, entry: ActivityEntry) -> None:
        pass


class EntityStore(EntityReader):
    @abstractmethod
    def transaction(self):
        """Context manager yielding an :class:`EntityTransaction`.

        Leaving the block normally commits; an exception rolls back and
        propagates.
        """

    @contextmanager
    def read_view(self) -> Iterator[EntityReader]:
        """A reader over one consistent view, for multi-query reads."""
        yield self


class InMemoryEntityStore(EntityStore):
    """Process-local store, used by tests and single-process deployments.

    Every read returns copies, so callers can never mutate committed state
    except through a transaction.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._employees: dict[str, Employee] = {}
        self._projects: dict[str, Project] = {}
        self._initiatives: dict[str, Initiative] = {}
        self._activity: list[ActivityEntry] = []

    # Seeding, done by the CRUD layer outside the ledger.

    def add_employee(self, employee: Employee) -> Employee:
        with self._lock:
            self._employees[employee.id] = replace(employee, skills=set(employee.skills))
        return employee

    def add_project(self, project: Project) -> Project:
        with self._lock:
            self._projects[project.id] = clone_project(project)
        return project

    def add_initiative(self, initiative: Initiative) -> Initiative:
        with self._lock:
            self._initiatives[initiative.id] = replace(initiative)
        return initiative

    # Reads.

    def get_employee(self, employee_id: str) -> Employee | None:
        with self._lock:
            employee = self._employees.get(employee_id)
            return replace(employee, skills=set(employee.skills)) if employee else None

    def list_employees(self) -> list[Employee]:
        with self._lock:
            return [replace(e, skills=set(e.skills)) for e in self._employees.values()]

    def get_project(self, project_id: str) -> Project | None:
        with self._lock:
            project = self._projects.get(project_id)
            return clone_project(project) if project else None

    def get_initiative(self, initiative_id: str) -> Initiative | None:
        with self._lock:
            initiative = self._initiatives.get(initiative_id)
            return replace(initiative) if initiative else None

    def project_assignments(self, project_id: str) -> list[Assignment]:
        with self._lock:
            project = self._projects.get(project_id)
            if project is None:
                return []
            return [replace(a) for a in project.assignments]

    def employee_assignments(
        self, employee_id: str, project_status: ProjectStatus | None = None
    ) -> list[EmployeeAssignment]:
        with self._lock:
            rows = []
            for project in self._projects.values():
                if project_status is not None and project.status != project_status:
                    continue
                assignment = project.assignment_for(employee_id)
                if assignment is not None:
                    rows.append(EmployeeAssignment(replace(assignment), project.title, project.status))
            return rows

    def employee_initiatives(
        self, employee_id: str, status: InitiativeStatus | None = None
    ) -> list[Initiative]:
        with self._lock:
            return [
                replace(i)
                for i in self._initiatives.values()
                if i.assigned_to == employee_id and (status is None or i.status == status)
            ]

    def list_activity(self, limit: int = 100) -> list[ActivityEntry]:
        with self._lock:
            return [replace(entry) for entry in reversed(self._activity[-limit:])]

    @contextmanager
    def read_view(self) -> Iterator[EntityReader]:
        with self._lock:
            yield self

    @contextmanager
    def transaction(self) -> Iterator[_InMemoryTransaction]:
        tx = _InMemoryTransaction(self)
        yield tx
        with self._lock:
            for apply in tx.pending:
                apply()


class _InMemoryTransaction(EntityTransaction):
    """Reads go straight to the store; writes are queued until commit."""

    def __init__(self, store: InMemoryEntityStore) -> None:
        self._store = store
        self.pending: list[Callable[[], None]] = []

    def get_employee(self, employee_id):
        return self._store.get_employee(employee_id)

    def list_employees(self):
        return self._store.list_employees()

    def get_project(self, project_id):
        return self._store.get_project(project_id)

    def get_initiative(self, initiative_id):
        return self._store.get_initiative(initiative_id)

    def project_assignments(self, project_id):
        return self._store.project_assignments(project_id)

    def employee_assignments(self, employee_id, project_status=None):
        return self._store.employee_assignments(employee_id, project_status)

    def employee_initiatives(self, employee_id, status=None):
        return self._store.employee_initiatives(employee_id, status)

    def list_activity(self, limit=100):
        return self._store.list_activity(limit)

    def add_assignment(self, assignment: Assignment) -> None:
        staged = replace(assignment)

        def apply():
            self._store._projects[staged.project_id].assignments.append(staged)

        self.pending.append(apply)

    def update_assignment(self, project_id, employee_id, updated_at, involvement_percentage=None, role=None):
        def apply():
            assignment = self._store._projects[project_id].assignment_for(employee_id)
            if involvement_percentage is not None:
                assignment.involvement_percentage = involvement_percentage
            if role is not None:
                assignment.role = role
            assignment.updated_at = updated_at

        self.pending.append(apply)

    def delete_assignment(self, project_id, employee_id):
        def apply():
            project = self._store._projects[project_id]
            project.assignments = [a for a in project.assignments if a.employee_id != employee_id]

        self.pending.append(apply)

    def set_initiative_assignment(self, initiative_id, employee_id, workload_percentage=None):
        def apply():
            initiative = self._store._initiatives[initiative_id]
            initiative.assigned_to = employee_id
            if workload_percentage is not None:
                initiative.workload_percentage = workload_percentage

        self.pending.append(apply)

    def set_initiative_status(self, initiative_id, status):
        def apply():
            self._store._initiatives[initiative_id].status = status

        self.pending.append(apply)

    def set_project_status(self, project_id, status):
        def apply():
            self._store._projects[project_id].status = status

        self.pending.append(apply)

    def set_employee_caps(self, employee_id, workload_cap, over_beyond_cap):
        def apply():
            employee = self._store._employees[employee_id]
            employee.workload_cap = workload_cap
            employee.over_beyond_cap = over_beyond_cap

        self.pending.append(apply)

    def record_activity(self, entry: ActivityEntry) -> None:
        staged = replace(entry)

        def apply():
            staged.id = len(self._store._activity) + 1
            self._store._activity.append(staged)

        self.pending.append(apply)
