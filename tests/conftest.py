"""
Shared pytest fixtures and configuration for dbmigrate tests.

This module provides:
- Environment isolation (no DATABASE_URL / .env leaking in from the host)
- Migration source directories built from the shipped ``migrations/env.py``
- SQLite database URLs in ``tmp_path``
- ``write_revision`` for laying down Alembic revisions

Usage:
    def test_something(migrations_dir, database_url, write_revision):
        write_revision(migrations_dir, "0001", None, "CREATE TABLE t (id INTEGER)")
"""

import shutil
import sys
from collections.abc import Callable
from pathlib import Path

import pytest
from sqlalchemy import create_engine, inspect

# Ensure dbmigrate package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dbmigrate.core.logging import clear_context

REPO_ROOT = Path(__file__).parent.parent
ENV_PY = REPO_ROOT / "migrations" / "env.py"

REVISION_TEMPLATE = '''"""{message}"""
from alembic import op

revision = {revision!r}
down_revision = {down_revision!r}
branch_labels = None
depends_on = None


def upgrade():
    op.execute({sql!r})


def downgrade():
    pass
'''


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """
    Run every test in an empty working directory with no migration env vars.

    Keeps a developer's DATABASE_URL or .env file from leaking into tests.
    """
    for key in ("DATABASE_URL", "LOG_LEVEL", "LOG_JSON"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_context()


# =============================================================================
# Migration Source Fixtures
# =============================================================================


@pytest.fixture
def migrations_dir(tmp_path: Path) -> Path:
    """An empty Alembic script directory at ``<tmp_path>/migrations``."""
    source = tmp_path / "migrations"
    (source / "versions").mkdir(parents=True)
    shutil.copy(ENV_PY, source / "env.py")
    return source


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """URL of a not-yet-created SQLite database file."""
    return f"sqlite:///{tmp_path / 'app.db'}"


@pytest.fixture
def write_revision() -> Callable[..., Path]:
    """Factory that writes one revision file into a migration source."""

    def _write(
        source: Path,
        revision: str,
        down_revision: str | None,
        sql: str,
        message: str | None = None,
    ) -> Path:
        path = source / "versions" / f"{revision}_step.py"
        path.write_text(
            REVISION_TEMPLATE.format(
                message=message or f"step {revision}",
                revision=revision,
                down_revision=down_revision,
                sql=sql,
            ),
            encoding="utf-8",
        )
        return path

    return _write


@pytest.fixture
def linear_revisions(migrations_dir: Path, write_revision) -> list[str]:
    """Three revisions 0001 -> 0002 -> 0003, each creating table_<n>."""
    revisions = ["0001", "0002", "0003"]
    down = None
    for rev in revisions:
        write_revision(migrations_dir, rev, down, f"CREATE TABLE table_{rev} (id INTEGER PRIMARY KEY)")
        down = rev
    return revisions


@pytest.fixture
def table_names(database_url: str) -> Callable[[], set[str]]:
    """Callable returning the tables currently present in the test database."""

    def _tables() -> set[str]:
        engine = create_engine(database_url)
        try:
            return set(inspect(engine).get_table_names())
        finally:
            engine.dispose()

    return _tables
