from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, selectinload

from workload_ledger.domain import (
    ActivityEntry,
    Assignment,
    Budget,
    Employee,
    EmployeeAssignment,
    Initiative,
    Milestone,
    Project,
    as_utc,
)
from workload_ledger.enums import InitiativeStatus, Priority, ProjectStatus, UserRole
from workload_ledger.models import (
    ActivityRecord,
    AssignmentRecord,
    EmployeeRecord,
    InitiativeRecord,
    MilestoneRecord,
    ProjectRecord,
)
from workload_ledger.store import EntityStore, EntityTransaction


def _to_employee(record: EmployeeRecord) -> Employee:
    return Employee(
        id=record.id,
        name=record.name,
        email=record.email,
        role=UserRole.parse(record.role),
        workload_cap=record.workload_cap,
        over_beyond_cap=record.over_beyond_cap,
        manager_id=record.manager_id,
        skills=set(record.skills or []),
        is_active=record.is_active,
    )


def _to_assignment(record: AssignmentRecord) -> Assignment:
    return Assignment(
        project_id=record.project_id,
        employee_id=record.employee_id,
        role=record.role,
        involvement_percentage=record.involvement_percentage,
        assigned_at=as_utc(record.assigned_at),
        updated_at=as_utc(record.updated_at),
    )


def _to_project(record: ProjectRecord) -> Project:
    budget = None
    if record.budget_amount is not None:
        budget = Budget(amount=record.budget_amount, currency=record.budget_currency or "USD")
    return Project(
        id=record.id,
        title=record.title,
        manager_id=record.manager_id,
        status=ProjectStatus.parse(record.status),
        priority=Priority.parse(record.priority),
        milestones=[
            Milestone(
                id=m.id,
                title=m.title,
                due_date=as_utc(m.due_date),
                completed=m.completed,
                completed_at=as_utc(m.completed_at) if m.completed_at else None,
            )
            for m in record.milestones
        ],
        assignments=[_to_assignment(a) for a in record.assignments],
        estimated_hours=record.estimated_hours,
        actual_hours=record.actual_hours,
        budget=budget,
        tags=list(record.tags or []),
    )


def _to_initiative(record: InitiativeRecord) -> Initiative:
    return Initiative(
        id=record.id,
        title=record.title,
        created_by=record.created_by,
        workload_percentage=record.workload_percentage,
        status=InitiativeStatus.parse(record.status),
        assigned_to=record.assigned_to,
    )


def _to_activity(record: ActivityRecord) -> ActivityEntry:
    return ActivityEntry(
        id=record.id,
        actor_id=record.actor_id,
        action=record.action,
        entity_type=record.entity_type,
        entity_id=record.entity_id,
        employee_id=record.employee_id,
        details=record.details,
        created_at=as_utc(record.created_at),
    )


def _begin_snapshot(db: Session) -> None:
    # Every query of a read view must see the same committed state.
    if db.get_bind().dialect.name == "sqlite":
        # pysqlite defers BEGIN until the first write; start the transaction now.
        db.connection().exec_driver_sql("BEGIN")
    else:
        db.connection(execution_options={"isolation_level": "REPEATABLE READ"})


class _SessionReads(ABC):
    """Read queries shared by the store and its transactions."""

    @abstractmethod
    def _session_scope(self):
        """Context manager yielding the session the next query runs in."""

    def get_employee(self, employee_id: str) -> Employee | None:
        with self._session_scope() as db:
            record = db.get(EmployeeRecord, employee_id)
            return _to_employee(record) if record else None

    def list_employees(self) -> list[Employee]:
        with self._session_scope() as db:
            records = db.scalars(select(EmployeeRecord).order_by(EmployeeRecord.id)).all()
            return [_to_employee(r) for r in records]

    def get_project(self, project_id: str) -> Project | None:
        with self._session_scope() as db:
            record = db.scalar(
                select(ProjectRecord)
                .where(ProjectRecord.id == project_id)
                .options(selectinload(ProjectRecord.assignments), selectinload(ProjectRecord.milestones))
            )
            return _to_project(record) if record else None

    def get_initiative(self, initiative_id: str) -> Initiative | None:
        with self._session_scope() as db:
            record = db.get(InitiativeRecord, initiative_id)
            return _to_initiative(record) if record else None

    def project_assignments(self, project_id: str) -> list[Assignment]:
        with self._session_scope() as db:
            records = db.scalars(
                select(AssignmentRecord)
                .where(AssignmentRecord.project_id == project_id)
                .order_by(AssignmentRecord.id)
            ).all()
            return [_to_assignment(r) for r in records]

    def employee_assignments(
        self, employee_id: str, project_status: ProjectStatus | None = None
    ) -> list[EmployeeAssignment]:
        query = (
            select(AssignmentRecord, ProjectRecord.title, ProjectRecord.status)
            .join(ProjectRecord, AssignmentRecord.project_id == ProjectRecord.id)
            .where(AssignmentRecord.employee_id == employee_id)
            .order_by(AssignmentRecord.id)
        )
        if project_status is not None:
            query = query.where(ProjectRecord.status == project_status.value)
        with self._session_scope() as db:
            rows = db.execute(query).all()
            return [
                EmployeeAssignment(_to_assignment(record), title, ProjectStatus.parse(status))
                for record, title, status in rows
            ]

    def employee_initiatives(
        self, employee_id: str, status: InitiativeStatus | None = None
    ) -> list[Initiative]:
        query = select(InitiativeRecord).where(InitiativeRecord.assigned_to == employee_id)
        if status is not None:
            query = query.where(InitiativeRecord.status == status.value)
        with self._session_scope() as db:
            return [_to_initiative(r) for r in db.scalars(query.order_by(InitiativeRecord.id)).all()]

    def list_activity(self, limit: int = 100) -> list[ActivityEntry]:
        with self._session_scope() as db:
            records = db.scalars(
                select(ActivityRecord).order_by(ActivityRecord.id.desc()).limit(limit)
            ).all()
            return [_to_activity(r) for r in records]


class SqlEntityStore(_SessionReads, EntityStore):
    """Entity Store backed by SQLAlchemy.

    ``session_factory`` is called for every read and every transaction, so it
    can be a ``sessionmaker`` or a callable that looks one up lazily.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        finally:
            db.close()

    @contextmanager
    def read_view(self) -> Iterator[SqlTransaction]:
        db = self._session_factory()
        try:
            _begin_snapshot(db)
            yield SqlTransaction(db)
        finally:
            db.rollback()
            db.close()

    @contextmanager
    def transaction(self) -> Iterator[SqlTransaction]:
        db = self._session_factory()
        try:
            yield SqlTransaction(db)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # Seeding, done by the CRUD layer outside the ledger.

    def add_employee(self, employee: Employee) -> Employee:
        with self._session_scope() as db:
            db.add(
                EmployeeRecord(
                    id=employee.id,
                    name=employee.name,
                    email=employee.email,
                    role=employee.role.value,
                    workload_cap=employee.workload_cap,
                    over_beyond_cap=employee.over_beyond_cap,
                    manager_id=employee.manager_id,
                    skills=sorted(employee.skills),
                    is_active=employee.is_active,
                )
            )
            db.commit()
        return employee

    def add_project(self, project: Project) -> Project:
        with self._session_scope() as db:
            record = ProjectRecord(
                id=project.id,
                title=project.title,
                manager_id=project.manager_id,
                status=project.status.value,
                priority=project.priority.value,
                estimated_hours=project.estimated_hours,
                actual_hours=project.actual_hours,
                budget_amount=project.budget.amount if project.budget else None,
                budget_currency=project.budget.currency if project.budget else None,
                tags=list(project.tags),
            )
            record.milestones = [
                MilestoneRecord(
                    id=m.id,
                    title=m.title,
                    due_date=m.due_date,
                    completed=m.completed,
                    completed_at=m.completed_at,
                )
                for m in project.milestones
            ]
            record.assignments = [
                AssignmentRecord(
                    employee_id=a.employee_id,
                    role=a.role,
                    involvement_percentage=a.involvement_percentage,
                    assigned_at=a.assigned_at,
                    updated_at=a.updated_at,
                )
                for a in project.assignments
            ]
            db.add(record)
            db.commit()
        return project

    def add_initiative(self, initiative: Initiative) -> Initiative:
        with self._session_scope() as db:
            db.add(
                InitiativeRecord(
                    id=initiative.id,
                    title=initiative.title,
                    status=initiative.status.value,
                    workload_percentage=initiative.workload_percentage,
                    assigned_to=initiative.assigned_to,
                    created_by=initiative.created_by,
                )
            )
            db.commit()
        return initiative


class SqlTransaction(_SessionReads, EntityTransaction):
    """One session; reads and writes share it, the store commits or rolls back."""

    def __init__(self, db: Session) -> None:
        self.db = db

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        yield self.db

    def lock_employees(self, employee_ids: list[str]) -> None:
        # Row locks for multi-process deployments; a no-op on SQLite.
        self.db.execute(
            select(EmployeeRecord.id)
            .where(EmployeeRecord.id.in_(sorted(employee_ids)))
            .order_by(EmployeeRecord.id)
            .with_for_update()
        ).all()

    def lock_project(self, project_id: str) -> None:
        self.db.execute(
            select(ProjectRecord.id).where(ProjectRecord.id == project_id).with_for_update()
        ).all()

    def _assignment(self, project_id: str, employee_id: str) -> AssignmentRecord:
        return self.db.scalars(
            select(AssignmentRecord).where(
                AssignmentRecord.project_id == project_id,
                AssignmentRecord.employee_id == employee_id,
            )
        ).one()

    def add_assignment(self, assignment: Assignment) -> None:
        self.db.add(
            AssignmentRecord(
                project_id=assignment.project_id,
                employee_id=assignment.employee_id,
                role=assignment.role,
                involvement_percentage=assignment.involvement_percentage,
                assigned_at=assignment.assigned_at,
                updated_at=assignment.updated_at,
            )
        )
        self.db.flush()

    def update_assignment(self, project_id, employee_id, updated_at, involvement_percentage=None, role=None):
        record = self._assignment(project_id, employee_id)
        if involvement_percentage is not None:
            record.involvement_percentage = involvement_percentage
        if role is not None:
            record.role = role
        record.updated_at = updated_at
        self.db.flush()

    def delete_assignment(self, project_id, employee_id):
        self.db.execute(
            delete(AssignmentRecord).where(
                AssignmentRecord.project_id == project_id,
                AssignmentRecord.employee_id == employee_id,
            )
        )

    def set_initiative_assignment(self, initiative_id, employee_id, workload_percentage=None):
        record = self.db.get(InitiativeRecord, initiative_id)
        record.assigned_to = employee_id
        if workload_percentage is not None:
            record.workload_percentage = workload_percentage
        self.db.flush()

    def set_initiative_status(self, initiative_id, status):
        record = self.db.get(InitiativeRecord, initiative_id)
        record.status = status.value
        self.db.flush()

    def set_project_status(self, project_id, status):
        record = self.db.get(ProjectRecord, project_id)
        record.status = status.value
        self.db.flush()

    def set_employee_caps(self, employee_id, workload_cap, over_beyond_cap):
        record = self.db.get(EmployeeRecord, employee_id)
        record.workload_cap = workload_cap
        record.over_beyond_cap = over_beyond_cap
        self.db.flush()

    def record_activity(self, entry: ActivityEntry) -> None:
        self.db.add(
            ActivityRecord(
                actor_id=entry.actor_id,
                action=entry.action,
                entity_type=entry.entity_type,
                entity_id=entry.entity_id,
                employee_id=entry.employee_id,
                details=entry.details,
                created_at=entry.created_at,
            )
        )
