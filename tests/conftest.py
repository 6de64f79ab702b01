from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy.orm import sessionmaker

import workload_ledger.db as app_db
import workload_ledger.main as app_main
from workload_ledger import models  # noqa: F401
from workload_ledger.ledger import AssignmentLedger
from workload_ledger.sql_store import SqlEntityStore
from workload_ledger.store import InMemoryEntityStore

FIXED_NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def reset_database(tmp_path, monkeypatch):
    db_file = tmp_path / "test_ledger.db"
    db_url = f"sqlite:///{db_file}"
    monkeypatch.setenv("DATABASE_URL", db_url)

    # Rebuild DB bindings per test so every test gets its own writable SQLite file.
    app_db.engine.dispose()
    app_db.DATABASE_URL = app_db.get_database_url()
    app_db.engine = app_db.make_engine(app_db.DATABASE_URL)
    app_db.SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=app_db.engine,
        expire_on_commit=False,
    )
    monkeypatch.setattr(app_main, "_LEDGER", None)

    app_db.Base.metadata.drop_all(bind=app_db.engine)
    app_db.Base.metadata.create_all(bind=app_db.engine)
    yield
    app_db.Base.metadata.drop_all(bind=app_db.engine)
    app_db.engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "memory":
        return InMemoryEntityStore()
    return SqlEntityStore(app_db.new_session)


@pytest.fixture
def ledger(store):
    return AssignmentLedger(store, lock_timeout=2.0, clock=lambda: FIXED_NOW)
