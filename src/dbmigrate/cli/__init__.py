"""
CLI layer for dbmigrate.

A single Typer command that delegates to ``dbmigrate.driver``. This package
handles only terminal transport: coloured output and the exit status.

Entry point::

    DATABASE_URL=postgres://app:secret@db:5432/app dbmigrate
"""

from dbmigrate.cli.app import app

__all__ = ["app"]
