"""
Structured error types for dbmigrate.

Every failure the migration driver can hit is one of three kinds, and each
kind is fatal for the process. Instead of letting raw SQLAlchemy or Alembic
exceptions escape, the engine wrapper and the driver raise a typed
``MigrateError`` that carries:

- **Category:** What kind of error (config, source, database)
- **Retryable:** Whether running the command again may succeed
- **Context:** The driver stage, migration source, redacted database URL
- **Cause:** The chained underlying exception

Architecture:
    ::

        ┌───────────────────────────────────────────────────────────┐
        │                       MigrateError                        │
        │         (category, retryable, context, cause)             │
        ├───────────────────────────────────────────────────────────┤
        │                                                           │
        │  ConfigError          ConstructionError   ExecutionError  │
        │  (CONFIG)             (SOURCE/DATABASE)   (DATABASE)      │
        │       │                                        │          │
        │  MissingConfigError                    LockTimeoutError   │
        │  InvalidConfigError                    (retryable)        │
        └───────────────────────────────────────────────────────────┘

Guardrails:
    ❌ DON'T: Raise for the "nothing to apply" outcome
    ✅ DO: Return a ``MigrationResult`` with an empty ``applied`` list

    ❌ DON'T: Put the raw connection URL into the context
    ✅ DO: Render it with the password hidden first

    ❌ DON'T: Swallow the original exception
    ✅ DO: Pass it as cause= for error chaining

Usage:
    from dbmigrate.core.errors import ExecutionError

    try:
        command.upgrade(config, "head")
    except Exception as exc:
        raise ExecutionError(f"upgrade failed: {exc}", cause=exc)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Error categories used for the fatal error line and structured logs.

    Attributes:
        CONFIG: Missing or invalid environment configuration
        SOURCE: Migration source directory or revision scripts
        DATABASE: Connection URL, DBAPI driver, SQL execution, locking
        INTERNAL: Bugs, unexpected state
    """

    CONFIG = "CONFIG"
    SOURCE = "SOURCE"
    DATABASE = "DATABASE"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to a ``MigrateError``.

    Attributes:
        stage: Driver stage the error occurred in (config, construct, apply)
        source: Migration source directory
        database: Database URL with the password hidden
        revision: Revision involved, when known
        metadata: Additional key-value pairs
    """

    stage: str | None = None
    source: str | None = None
    database: str | None = None
    revision: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["stage", "source", "database", "revision"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class MigrateError(Exception):
    """
    Base exception for all dbmigrate errors.

    Subclasses set ``default_category`` and ``default_retryable`` so callers
    only pass what differs from the defaults.

    Examples:
        >>> error = MigrateError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(stage="apply").context.stage
        'apply'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> MigrateError:
        """
        Add context to this error (fluent API).

        Known fields are set on the ``ErrorContext``; anything else lands in
        ``metadata``. Fields that are already set are kept, so an inner layer
        that knows more wins over an outer one.
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                if getattr(self.context, key) is None:
                    setattr(self.context, key, value)
            else:
                self.context.metadata.setdefault(key, value)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }

        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict

        if self.cause is not None:
            result["cause"] = str(self.cause)

        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(MigrateError):
    """
    Configuration error.

    Never retryable - the environment must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class MissingConfigError(ConfigError):
    """Required configuration is missing."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"{key} env var is required")


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None, **kwargs: Any):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}", **kwargs)


# =============================================================================
# CONSTRUCTION ERRORS
# =============================================================================


class ConstructionError(MigrateError):
    """The migration engine cannot be built from its source and URL."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


# =============================================================================
# EXECUTION ERRORS
# =============================================================================


class ExecutionError(MigrateError):
    """Applying pending migrations failed."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class LockTimeoutError(ExecutionError):
    """Another runner held the migration lock for longer than the timeout."""

    default_retryable = True

    def __init__(self, timeout: float, message: str | None = None, **kwargs: Any):
        self.timeout = timeout
        super().__init__(
            message or f"could not acquire migration lock within {timeout:g}s",
            **kwargs,
        )


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "MigrateError",
    "ConfigError",
    "MissingConfigError",
    "InvalidConfigError",
    "ConstructionError",
    "ExecutionError",
    "LockTimeoutError",
]
