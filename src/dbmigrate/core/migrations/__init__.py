"""Schema migration engine for dbmigrate.

Alembic does the real work: it parses the revision scripts, computes the
delta, executes DDL and keeps the applied-version ledger in the
``alembic_version`` table. This package binds it to a migration source and a
database URL and reports the outcome as a ``MigrationResult``.

Modules
-------
runner     MigrationRunner class with up() / pending() / current_revision()
locking    PostgreSQL advisory lock held while revisions are applied
"""

from dbmigrate.core.migrations.runner import (
    MIGRATIONS_DIR,
    MigrationResult,
    MigrationRunner,
    MigrationStep,
)

__all__ = ["MIGRATIONS_DIR", "MigrationResult", "MigrationRunner", "MigrationStep"]
