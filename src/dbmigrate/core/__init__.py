"""Core primitives: errors, settings, logging and the migration engine."""
