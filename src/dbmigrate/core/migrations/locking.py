"""Cross-runner migration lock.

Two deployment jobs racing against the same database must never apply the same
revision twice. On PostgreSQL the runner holds a session-level advisory lock
for the whole apply; the second job waits, then sees the first job's
watermark and has nothing left to do.

Other dialects get a no-op lock. On SQLite a racing runner only fails when a
revision conflicts with objects the other one created; data-only revisions can
be applied twice, so SQLite deployments must not run migrations concurrently.
"""

from __future__ import annotations

import time
import zlib
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from dbmigrate.core.errors import LockTimeoutError
from dbmigrate.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_LOCK_TIMEOUT = 15.0
_POLL_INTERVAL = 0.5


def advisory_lock_key(database: str | None, version_table: str = "alembic_version") -> int:
    """Derive a stable 32-bit advisory lock key for a database/version table."""
    return zlib.crc32(f"{database or ''}:{version_table}".encode())


@contextmanager
def migration_lock(
    connection: Connection,
    *,
    key: int,
    timeout: float = DEFAULT_LOCK_TIMEOUT,
) -> Iterator[None]:
    """Hold the migration lock on ``connection`` for the duration of the block.

    Raises ``LockTimeoutError`` when the lock is not free within ``timeout``
    seconds. The lock is released even when the block raises.
    """
    if connection.dialect.name != "postgresql":
        yield
        return

    deadline = time.monotonic() + timeout
    while True:
        acquired = connection.execute(
            text("SELECT pg_try_advisory_lock(:key)"), {"key": key}
        ).scalar()
        connection.commit()
        if acquired:
            break
        if time.monotonic() >= deadline:
            raise LockTimeoutError(timeout).with_context(lock_key=key)
        logger.info("migration.lock_waiting", lock_key=key)
        time.sleep(_POLL_INTERVAL)

    logger.debug("migration.lock_acquired", lock_key=key)
    try:
        yield
    finally:
        _release(connection, key)


def _release(connection: Connection, key: int) -> None:
    # A failed migration leaves the transaction aborted; unlock needs a clean one.
    try:
        connection.rollback()
        connection.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": key})
        connection.commit()
    except SQLAlchemyError as exc:
        # Session locks die with their connection.
        logger.warning("migration.lock_release_failed", lock_key=key, error=str(exc))
        return
    logger.debug("migration.lock_released", lock_key=key)
