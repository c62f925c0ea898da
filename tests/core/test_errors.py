"""Tests for dbmigrate.core.errors."""

from __future__ import annotations

import pytest

from dbmigrate.core.errors import (
    ConfigError,
    ConstructionError,
    ErrorCategory,
    ErrorContext,
    ExecutionError,
    InvalidConfigError,
    LockTimeoutError,
    MigrateError,
    MissingConfigError,
)


class TestErrorContext:
    def test_to_dict_excludes_none(self):
        ctx = ErrorContext(stage="apply", revision=None)
        assert ctx.to_dict() == {"stage": "apply"}

    def test_metadata_merged(self):
        ctx = ErrorContext(source="migrations")
        ctx.metadata["applied"] = ["0001"]
        assert ctx.to_dict() == {"source": "migrations", "applied": ["0001"]}


class TestMigrateError:
    def test_defaults(self):
        error = MigrateError("boom")
        assert error.category == ErrorCategory.INTERNAL
        assert error.retryable is False
        assert error.cause is None
        assert str(error) == "boom"

    def test_cause_is_chained(self):
        original = ValueError("bad")
        error = MigrateError("wrapped", cause=original)
        assert error.cause is original
        assert error.__cause__ is original

    def test_with_context_sets_known_and_extra_fields(self):
        error = MigrateError("boom").with_context(stage="apply", lock_key=3)
        assert error.context.stage == "apply"
        assert error.context.metadata == {"lock_key": 3}

    def test_with_context_keeps_existing_values(self):
        error = MigrateError("boom").with_context(stage="construct")
        error.with_context(stage="apply", database="sqlite://")
        assert error.context.stage == "construct"
        assert error.context.database == "sqlite://"

    def test_to_dict(self):
        error = ExecutionError("disk full", cause=OSError("ENOSPC"))
        error.with_context(stage="apply", revision="0002")
        d = error.to_dict()
        assert d == {
            "error_type": "ExecutionError",
            "message": "disk full",
            "category": "DATABASE",
            "retryable": False,
            "context": {"stage": "apply", "revision": "0002"},
            "cause": "ENOSPC",
        }

    def test_repr(self):
        assert repr(ConfigError("x")) == "ConfigError('x', category=CONFIG)"


class TestHierarchy:
    @pytest.mark.parametrize(
        ("error", "category"),
        [
            (MissingConfigError("DATABASE_URL"), ErrorCategory.CONFIG),
            (InvalidConfigError("LOG_LEVEL", "LOUD"), ErrorCategory.CONFIG),
            (ConstructionError("bad url"), ErrorCategory.DATABASE),
            (ConstructionError("no dir", category=ErrorCategory.SOURCE), ErrorCategory.SOURCE),
            (ExecutionError("failed"), ErrorCategory.DATABASE),
            (LockTimeoutError(15), ErrorCategory.DATABASE),
        ],
    )
    def test_categories(self, error, category):
        assert isinstance(error, MigrateError)
        assert error.category == category

    def test_missing_config_message(self):
        error = MissingConfigError("DATABASE_URL")
        assert error.key == "DATABASE_URL"
        assert error.message == "DATABASE_URL env var is required"
        assert error.retryable is False

    def test_invalid_config_message(self):
        error = InvalidConfigError("LOG_LEVEL", "LOUD")
        assert error.message == "Invalid configuration for LOG_LEVEL: 'LOUD'"

    def test_lock_timeout_is_retryable_execution_error(self):
        error = LockTimeoutError(15.0)
        assert isinstance(error, ExecutionError)
        assert error.retryable is True
        assert error.timeout == 15.0
        assert error.message == "could not acquire migration lock within 15s"
