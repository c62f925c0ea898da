"""Migration driver: one run of "apply all pending migrations".

The driver walks a short linear state machine and never loops back::

    START ─► CONFIG_LOADED ─► ENGINE_CONSTRUCTED ─► APPLIED ─► SUCCESS
      │            │                  │
      └────────────┴──────────────────┴──────────────────────► FATAL

Every failure is a ``MigrateError`` that moves the driver to ``FATAL`` and
propagates to the caller unchanged; nothing is retried and nothing is
compensated. "Nothing to apply" is a normal ``SUCCESS``.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum
from pathlib import Path

from dbmigrate.core.errors import MigrateError
from dbmigrate.core.logging import bind_context, get_logger, unbind_context
from dbmigrate.core.migrations import MIGRATIONS_DIR, MigrationResult, MigrationRunner
from dbmigrate.core.settings import MigrateSettings, get_settings

logger = get_logger(__name__)


class DriverState(str, Enum):
    START = "start"
    CONFIG_LOADED = "config_loaded"
    ENGINE_CONSTRUCTED = "engine_constructed"
    APPLIED = "applied"
    SUCCESS = "success"
    FATAL = "fatal"


class MigrationDriver:
    """Runs the configured migrations once.

    Args:
        settings: Pre-loaded settings; read from the environment when omitted
        source: Migration source directory
        runner_factory: Builds the engine from ``(source, database_url)``
    """

    def __init__(
        self,
        settings: MigrateSettings | None = None,
        *,
        source: Path | str = MIGRATIONS_DIR,
        runner_factory: Callable[[Path | str, str], MigrationRunner] = MigrationRunner,
    ) -> None:
        self._settings = settings
        self._source = source
        self._runner_factory = runner_factory
        self.state = DriverState.START

    def run(self) -> MigrationResult:
        """Apply all pending migrations and return the outcome.

        Raises ``MigrateError`` on any fatal condition.
        """
        try:
            database_url = self._load_config()
            runner = self._construct(database_url)
            bind_context(source=str(runner.source), database=runner.redacted_url)
            with runner:
                result = self._apply(runner)
        except MigrateError as exc:
            self._fail(exc)
            raise
        except Exception as exc:
            error = MigrateError(f"unexpected error: {exc}", cause=exc)
            error.with_context(stage=self.state.value)
            self._fail(error)
            raise error from exc
        finally:
            unbind_context("source", "database")

        self._transition(DriverState.SUCCESS)
        if result.no_change:
            logger.info("migrations.completed", changed=False, current=result.current)
        else:
            logger.info(
                "migrations.completed",
                changed=True,
                applied=len(result.applied),
                previous=result.previous,
                current=result.current,
            )
        return result

    # ------------------------------------------------------------------

    def _load_config(self) -> str:
        settings = self._settings if self._settings is not None else get_settings()
        database_url = settings.require_database_url()
        self._transition(DriverState.CONFIG_LOADED)
        return database_url

    def _construct(self, database_url: str) -> MigrationRunner:
        runner = self._runner_factory(self._source, database_url)
        self._transition(DriverState.ENGINE_CONSTRUCTED)
        return runner

    def _apply(self, runner: MigrationRunner) -> MigrationResult:
        logger.info("migrations.starting", head=runner.head_revision())
        result = runner.up()
        self._transition(DriverState.APPLIED)
        return result

    def _fail(self, error: MigrateError) -> None:
        self._transition(DriverState.FATAL)
        logger.error("migrations.failed", **error.to_dict())

    def _transition(self, state: DriverState) -> None:
        logger.debug("driver.transition", previous=self.state.value, state=state.value)
        self.state = state


def run_migrations(
    settings: MigrateSettings | None = None,
    *,
    source: Path | str = MIGRATIONS_DIR,
) -> MigrationResult:
    """Convenience wrapper: build a ``MigrationDriver`` and run it."""
    return MigrationDriver(settings, source=source).run()
