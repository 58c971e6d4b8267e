# alembic/env.py
"""
Migration environment for the front desk database (doctors, patients,
timesheet slots and visit records).

The connection URL always comes from Settings.database_url, so `alembic
upgrade head` migrates the same database the API and the stations use.
"""

from logging.config import fileConfig

from sqlalchemy import create_engine, pool
from alembic import context

from app.core.config import get_settings
from app.models.base import Base
from app.models import employee, patient, timesheet, visit  # noqa: F401  register tables

config = context.config

# Loggers come from the [loggers] sections of alembic.ini
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

settings = get_settings()


def get_url() -> str:
    """Front desk DATABASE_URL (SQLite file by default)."""
    return settings.database_url


def run_migrations_offline() -> None:
    """Emit the front desk schema as SQL without connecting."""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """
    Migrate the live database.

    SQLite cannot ALTER most constraints in place, so batch mode is turned
    on for it (copy-and-move table rebuilds).
    """
    connectable = create_engine(get_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
