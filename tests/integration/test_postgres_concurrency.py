"""Concurrent runners against a live PostgreSQL database.

Opt-in: set ``TEST_POSTGRES_URL`` to a database the tests may freely drop
tables in, e.g. ``postgresql://postgres@localhost/dbmigrate_test``.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path

import pytest
from sqlalchemy import create_engine, text

from dbmigrate.core.errors import LockTimeoutError, MigrateError
from dbmigrate.core.migrations import MigrationResult, MigrationRunner

POSTGRES_URL = os.environ.get("TEST_POSTGRES_URL")

pytestmark = pytest.mark.skipif(not POSTGRES_URL, reason="TEST_POSTGRES_URL not set")


@pytest.fixture
def clean_database():
    engine = create_engine(POSTGRES_URL)
    with engine.begin() as conn:
        for table in ("alembic_version", "conc_0001", "conc_0002"):
            conn.execute(text(f"DROP TABLE IF EXISTS {table}"))
    yield POSTGRES_URL
    engine.dispose()


@pytest.fixture
def slow_revisions(migrations_dir: Path, write_revision) -> Path:
    write_revision(migrations_dir, "0001", None, "CREATE TABLE conc_0001 (id INTEGER); SELECT pg_sleep(1)")
    write_revision(migrations_dir, "0002", "0001", "CREATE TABLE conc_0002 (id INTEGER)")
    return migrations_dir


def _run_concurrently(source: Path, url: str, **runner_kwargs) -> list[MigrationResult | MigrateError]:
    outcomes: list[MigrationResult | MigrateError] = []
    lock = threading.Lock()
    start = threading.Barrier(2)

    def _worker() -> None:
        with MigrationRunner(source, url, **runner_kwargs) as runner:
            start.wait()
            try:
                outcome: MigrationResult | MigrateError = runner.up()
            except MigrateError as exc:
                outcome = exc
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=_worker) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


class TestConcurrentRunners:
    def test_second_runner_waits_then_sees_no_change(self, clean_database, slow_revisions):
        outcomes = _run_concurrently(slow_revisions, clean_database)

        assert all(isinstance(o, MigrationResult) for o in outcomes), outcomes
        applied = sorted(len(o.applied) for o in outcomes)
        assert applied == [0, 2]
        assert all(o.current == "0002" for o in outcomes)

    def test_short_lock_timeout_fails_cleanly(self, clean_database, slow_revisions):
        outcomes = _run_concurrently(slow_revisions, clean_database, lock_timeout=0)

        results = [o for o in outcomes if isinstance(o, MigrationResult)]
        errors = [o for o in outcomes if isinstance(o, MigrateError)]
        assert len(results) + len(errors) == 2
        assert sum(len(r.applied) for r in results) == 2
        assert all(isinstance(e, LockTimeoutError) for e in errors)
