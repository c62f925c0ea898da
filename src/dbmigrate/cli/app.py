"""
Typer application for dbmigrate.

``dbmigrate`` takes no arguments: it reads ``DATABASE_URL``, applies every
pending migration from ``migrations/`` and exits 0, or prints the fatal error
and exits 1.
"""

from __future__ import annotations

import typer

from dbmigrate.cli.utils import output_error, output_result
from dbmigrate.core.errors import ConfigError, MigrateError
from dbmigrate.core.logging import configure_logging, get_logger
from dbmigrate.core.settings import get_settings
from dbmigrate.driver import MigrationDriver

logger = get_logger(__name__)

app = typer.Typer(
    name="dbmigrate",
    help="Apply pending database schema migrations.",
    add_completion=False,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("dbmigrate")
        except PackageNotFoundError:
            from dbmigrate import __version__ as v
        typer.echo(f"dbmigrate {v}")
        raise typer.Exit()


@app.command()
def migrate(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Apply all pending migrations from [bold]migrations/[/bold] to DATABASE_URL."""
    try:
        settings = get_settings()
    except ConfigError as exc:
        configure_logging()
        logger.error("migrations.failed", **exc.to_dict())
        output_error(exc)

    configure_logging(level=settings.log_level, json_format=settings.log_json)

    try:
        result = MigrationDriver(settings).run()
    except MigrateError as exc:
        output_error(exc)

    output_result(result)


def run() -> None:
    """Console-script entry point."""
    app()
