"""Alembic-backed migration runner.

Binds an Alembic script directory to a database URL and exposes the one
operation the driver needs, ``up()``: apply every revision between the
database's watermark and the head of the script directory, in ascending order,
one transaction per revision, stopping at the first failure.

Construction never touches the database. The engine is created lazily with a
``NullPool`` and only ``up()`` and the read-only queries open a connection.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import Script, ScriptDirectory
from alembic.util import CommandError
from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Connection, Engine, make_url
from sqlalchemy.exc import ArgumentError, NoSuchModuleError
from sqlalchemy.pool import NullPool

from dbmigrate.core.errors import (
    ConstructionError,
    ErrorCategory,
    ExecutionError,
    MigrateError,
)
from dbmigrate.core.logging import get_logger
from dbmigrate.core.migrations.locking import (
    DEFAULT_LOCK_TIMEOUT,
    advisory_lock_key,
    migration_lock,
)

logger = get_logger(__name__)

# Fixed migration source, relative to the working directory.
MIGRATIONS_DIR = "migrations"

POSTGRES_DRIVER = "postgresql+psycopg2://"
_DRIVERLESS_POSTGRES = ("postgres://", "postgresql://")


def normalize_database_url(url: str) -> str:
    """Pin driverless PostgreSQL URLs to psycopg2.

    Accepts the ``postgres://`` scheme that SQLAlchemy no longer does. A URL
    that names its driver (``postgresql+asyncpg://``) is left alone.

    Example:
        >>> normalize_database_url("postgres://app@db:5432/app?sslmode=disable")
        'postgresql+psycopg2://app@db:5432/app?sslmode=disable'
    """
    for scheme in _DRIVERLESS_POSTGRES:
        if url.startswith(scheme):
            return POSTGRES_DRIVER + url[len(scheme):]
    return url


@dataclass(frozen=True)
class MigrationStep:
    """A single Alembic revision."""

    revision: str
    description: str = ""
    down_revision: str | None = None

    @classmethod
    def from_script(cls, script: Script) -> MigrationStep:
        down = script.down_revision
        if isinstance(down, (tuple, list)):
            down = ",".join(down)
        return cls(
            revision=script.revision,
            description=(script.doc or "").strip(),
            down_revision=down,
        )


@dataclass
class MigrationResult:
    """Result of a migration run.

    ``previous`` and ``current`` are the watermarks before and after the run
    (``None`` for an empty database); ``applied`` lists the revisions applied,
    oldest first.
    """

    previous: str | None = None
    current: str | None = None
    head: str | None = None
    applied: list[MigrationStep] = field(default_factory=list)

    @property
    def no_change(self) -> bool:
        return len(self.applied) == 0


class MigrationRunner:
    """Applies Alembic revisions from a script directory.

    Parameters
    ----------
    source
        Alembic script directory (``env.py`` plus ``versions/``).
    database_url
        SQLAlchemy connection URL; ``postgres://`` is accepted.
    lock_timeout
        Seconds to wait for another runner's PostgreSQL advisory lock.

    Every construction failure raises ``ConstructionError``; every failure in
    ``up()`` raises ``ExecutionError``.

    Example::

        from dbmigrate.core.migrations import MigrationRunner

        with MigrationRunner("migrations", "sqlite:///app.db") as runner:
            result = runner.up()
            print(f"Applied {len(result.applied)} migrations")
    """

    def __init__(
        self,
        source: Path | str,
        database_url: str,
        *,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    ) -> None:
        self._source = Path(source)
        self._lock_timeout = lock_timeout
        self._url = self._parse_url(database_url)
        self._engine = self._create_engine()
        self._config = Config()
        self._config.set_main_option("path_separator", "os")
        self._config.set_main_option(
            "script_location", str(self._source.resolve()).replace("%", "%%")
        )
        self._script = self._load_script_directory()
        self._head = self._resolve_head()
        self._lock_key = advisory_lock_key(self._url.database)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def source(self) -> Path:
        return self._source

    @property
    def redacted_url(self) -> str:
        """The database URL with its password hidden, safe for logs."""
        return self._url.render_as_string(hide_password=True)

    def head_revision(self) -> str | None:
        """Return the newest revision in the script directory."""
        return self._head

    def current_revision(self) -> str | None:
        """Return the database's applied-version watermark."""
        try:
            with self._engine.connect() as connection:
                return self._read_revision(connection)
        except Exception as exc:
            raise self._execution_error(exc) from exc

    def pending(self) -> list[MigrationStep]:
        """Return revisions beyond the watermark, oldest first."""
        try:
            with self._engine.connect() as connection:
                current = self._read_revision(connection)
            return self._steps_between(current, self._head)
        except Exception as exc:
            raise self._execution_error(exc) from exc

    def up(self) -> MigrationResult:
        """Apply all pending revisions.

        Returns a ``MigrationResult`` whose ``applied`` list is empty when the
        database was already at head. Raises ``ExecutionError`` (or its
        subclass ``LockTimeoutError``) on failure; revisions committed before
        the failing one stay applied.
        """
        progress: list[str] = []

        def _on_version_apply(*, step: Any, **_: Any) -> None:
            progress.append(step.up_revision_id)
            logger.info(
                "migration.applied",
                revision=step.up_revision_id,
                description=(step.up_revision.doc or "").strip(),
            )

        previous: str | None = None
        pending: list[MigrationStep] = []
        try:
            with self._engine.connect() as connection:
                with migration_lock(
                    connection, key=self._lock_key, timeout=self._lock_timeout
                ):
                    previous = self._read_revision(connection)
                    # Alembic must see an idle connection to open one transaction per revision.
                    connection.commit()
                    pending = self._steps_between(previous, self._head)
                    logger.info(
                        "migrations.pending",
                        current=previous,
                        head=self._head,
                        count=len(pending),
                    )

                    self._config.attributes["connection"] = connection
                    self._config.attributes["on_version_apply"] = _on_version_apply
                    try:
                        command.upgrade(self._config, "head")
                    finally:
                        self._config.attributes.pop("connection", None)
                        self._config.attributes.pop("on_version_apply", None)

                    current = self._read_revision(connection)
                    connection.commit()
        except MigrateError as exc:
            raise exc.with_context(stage="apply", database=self.redacted_url)
        except Exception as exc:
            failed = pending[len(progress)] if len(progress) < len(pending) else None
            error = self._execution_error(exc, failed)
            error.with_context(applied=list(progress))
            raise error from exc

        return MigrationResult(
            previous=previous,
            current=current,
            head=self._head,
            applied=self._steps_between(previous, current),
        )

    def close(self) -> None:
        """Dispose of the engine."""
        self._engine.dispose()

    def __enter__(self) -> MigrationRunner:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _parse_url(self, database_url: str) -> URL:
        try:
            return make_url(normalize_database_url(database_url))
        except (ArgumentError, ValueError) as exc:
            raise ConstructionError(
                f"invalid database URL: {exc}", cause=exc
            ).with_context(stage="construct") from exc

    def _create_engine(self) -> Engine:
        try:
            return create_engine(self._url, poolclass=NullPool)
        except NoSuchModuleError as exc:
            raise ConstructionError(
                f"unsupported database scheme {self._url.drivername!r}", cause=exc
            ).with_context(stage="construct", database=self.redacted_url) from exc
        except (ArgumentError, ImportError) as exc:
            raise ConstructionError(
                f"cannot create engine for {self._url.drivername!r}: {exc}", cause=exc
            ).with_context(stage="construct", database=self.redacted_url) from exc

    def _load_script_directory(self) -> ScriptDirectory:
        try:
            script = ScriptDirectory.from_config(self._config)
        except CommandError as exc:
            raise self._source_error(f"migration source not found: {self._source}", exc) from exc
        if not (self._source / "env.py").is_file():
            raise self._source_error(f"migration source {self._source} has no env.py")
        return script

    def _resolve_head(self) -> str | None:
        try:
            return self._script.get_current_head()
        except CommandError as exc:
            raise self._source_error(f"cannot resolve head revision: {exc}", exc) from exc
        except Exception as exc:
            raise self._source_error(f"cannot load revisions from {self._source}: {exc}", exc) from exc

    def _source_error(self, message: str, cause: BaseException | None = None) -> ConstructionError:
        error = ConstructionError(message, category=ErrorCategory.SOURCE, cause=cause)
        error.with_context(stage="construct", source=str(self._source))
        return error

    def _execution_error(
        self, exc: BaseException, failed: MigrationStep | None = None
    ) -> ExecutionError:
        if failed is not None:
            message = f"migration {failed.revision} failed: {exc}"
        else:
            message = str(exc)
        error = ExecutionError(message, cause=exc)
        error.with_context(
            stage="apply",
            database=self.redacted_url,
            revision=failed.revision if failed else None,
        )
        return error

    @staticmethod
    def _read_revision(connection: Connection) -> str | None:
        return MigrationContext.configure(connection).get_current_revision()

    def _steps_between(self, lower: str | None, upper: str | None) -> list[MigrationStep]:
        """Revisions after ``lower`` up to and including ``upper``, oldest first."""
        if upper is None or upper == lower:
            return []
        scripts = [
            script
            for script in self._script.walk_revisions(base=lower or "base", head=upper)
            if script.revision != lower
        ]
        scripts.reverse()
        return [MigrationStep.from_script(script) for script in scripts]
