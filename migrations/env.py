"""Alembic environment for dbmigrate.

``dbmigrate`` hands over an open connection through ``config.attributes``.
When Alembic is driven directly (``alembic -c alembic.ini revision ...``) the
URL comes from ``DATABASE_URL`` instead, falling back to alembic.ini.

Each revision runs in its own transaction so a failing revision leaves the
ones before it applied.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool

from alembic import context

from dbmigrate.core.migrations.runner import normalize_database_url

config = context.config

# Plain schema migrations; no ORM metadata to autogenerate from.
target_metadata = None


def _configure(connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        transaction_per_migration=True,
        render_as_batch=True,  # SQLite ALTER TABLE support
        on_version_apply=config.attributes.get("on_version_apply"),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode (SQL script output only)."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        transaction_per_migration=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live connection."""
    connection = config.attributes.get("connection")
    if connection is not None:
        _configure(connection)
        return

    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        _configure(connection)


if config.attributes.get("connection") is None:
    database_url = os.environ.get("DATABASE_URL")
    if database_url:
        database_url = normalize_database_url(database_url.strip())
        config.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))

    if config.config_file_name is not None:
        fileConfig(config.config_file_name)

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
