"""
CLI utility helpers: output formatting for migration results and errors.
"""

from __future__ import annotations

from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from dbmigrate.core.errors import MigrateError
from dbmigrate.core.migrations import MigrationResult

console = Console()
err_console = Console(stderr=True)


def output_result(result: MigrationResult) -> None:
    """Render a successful ``MigrationResult`` to the terminal."""
    if result.no_change:
        at = result.current or "base"
        console.print(f"[dim]No pending migrations; database is at {at}.[/dim]")
    else:
        _print_applied(result)
    console.print("[bold green]Migrations completed successfully.[/bold green]")


def output_error(error: MigrateError) -> NoReturn:
    """Print the fatal error line and exit non-zero."""
    err_console.print(
        f"[bold red]Error[/bold red] ({error.category.value}): {escape(error.message)}",
        highlight=False,
    )
    raise typer.Exit(code=1)


# ── Private helpers ──────────────────────────────────────────────────────


def _print_applied(result: MigrationResult) -> None:
    table = Table(title="Applied migrations", show_lines=False, pad_edge=False)
    table.add_column("revision")
    table.add_column("description", overflow="fold")
    for step in result.applied:
        table.add_row(step.revision, escape(step.description))
    console.print(table)
    console.print(f"[dim]{result.previous or 'base'} -> {result.current}[/dim]")
