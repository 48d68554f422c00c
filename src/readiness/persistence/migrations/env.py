"""Alembic environment configuration for readiness migrations.

Loaded by Alembic only; programmatic entry points live in
readiness.persistence.migrate. Uses READINESS_DATABASE_ADMIN_URL for
migration connections.
"""

from __future__ import annotations

from alembic import context

from readiness.persistence.db import DatabaseRole, get_database_url, get_engine

target_metadata = None


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode, emitting SQL to stdout."""
    context.configure(
        url=get_database_url(DatabaseRole.ADMIN),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode.

    Reuses a connection handed over via config.attributes (see
    readiness.persistence.migrate.run_upgrade), otherwise connects with the
    admin engine.
    """
    connection = context.config.attributes.get("connection")
    if connection is not None:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()
        return

    with get_engine(DatabaseRole.ADMIN).connect() as conn:
        context.configure(connection=conn, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
