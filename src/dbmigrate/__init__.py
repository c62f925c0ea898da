"""
dbmigrate: apply pending database schema migrations.

Reads ``DATABASE_URL``, binds Alembic to the ``migrations/`` directory and
upgrades the database to the newest revision. "Nothing to apply" is success.
"""

__version__ = "0.1.0"
