from __future__ import annotations

import inspect as pyinspect
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

import workload_ledger.db as app_db
from workload_ledger.domain import Employee, Project
from workload_ledger.enums import ProjectStatus
from workload_ledger.ledger import AssignmentLedger
from workload_ledger.sql_store import SqlEntityStore, _SessionReads

ROOT = Path(__file__).resolve().parents[1]


def test_read_view_runs_inside_one_transaction():
    store = SqlEntityStore(app_db.new_session)
    store.add_employee(Employee(id="e1", name="Ada"))

    with store.read_view() as view:
        assert view.get_employee("e1").name == "Ada"
        assert view.db.in_transaction()
        assert view.db.connection().connection.dbapi_connection.in_transaction


def test_session_reads_mixin_is_abstract():
    assert pyinspect.isabstract(_SessionReads)
    assert "_session_scope" in _SessionReads.__abstractmethods__


def test_migrations_build_a_schema_the_ledger_can_use(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'migrated.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    config = Config(str(ROOT / "alembic.ini"))
    config.set_main_option("script_location", str(ROOT / "alembic"))

    command.upgrade(config, "head")

    engine = app_db.make_engine(url)
    try:
        inspector = inspect(engine)
        assert set(app_db.Base.metadata.tables) <= set(inspector.get_table_names())
        uniques = inspector.get_unique_constraints("project_assignments")
        assert any(set(u["column_names"]) == {"project_id", "employee_id"} for u in uniques)

        store = SqlEntityStore(app_db.make_session_factory(engine))
        store.add_employee(Employee(id="e1", name="Ada"))
        store.add_project(Project(id="p1", title="Apollo", status=ProjectStatus.ACTIVE))
        ledger = AssignmentLedger(store)
        ledger.assign("p1", "e1", 40, "dev")
        assert ledger.get_capacity("e1").available_capacity == 60
    finally:
        engine.dispose()
