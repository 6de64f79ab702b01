from logging.config import fileConfig
import os
import sys

from alembic import context
from sqlalchemy import pool

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from workload_ledger.db import Base, get_database_url, make_engine
from workload_ledger import models  # noqa

config = context.config
if config.config_file_name is not None:
    # Keep the service's own loggers alive when migrations run in-process.
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def _migration_options(url: str) -> dict:
    # SQLite cannot ALTER constraints in place; batch mode rebuilds the table.
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    url = get_database_url()
    context.configure(url=url, literal_binds=True, **_migration_options(url))
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    url = get_database_url()
    connectable = make_engine(url, poolclass=pool.NullPool)
    with connectable.connect() as connection:
        context.configure(connection=connection, **_migration_options(url))
        with context.begin_transaction():
            context.run_migrations()
    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
