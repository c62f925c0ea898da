"""Environment-driven settings for the migration driver.

The driver has exactly one required input, ``DATABASE_URL``. Logging knobs
(``LOG_LEVEL``, ``LOG_JSON``) ride along so the command behaves the same way
in a terminal and in a deployment job. A ``.env`` file in the working
directory is honoured; real environment variables take precedence.

The migration source directory is deliberately *not* a setting.

Examples:
    >>> from dbmigrate.core.settings import get_settings
    >>> settings = get_settings()
    >>> url = settings.require_database_url()
"""

from __future__ import annotations

from pydantic import ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from dbmigrate.core.errors import InvalidConfigError, MissingConfigError

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class MigrateSettings(BaseSettings):
    """Settings read from the process environment.

    Fields
    ──────
    database_url : Connection URL of the target database (``DATABASE_URL``)
    log_level    : Structlog log level (``LOG_LEVEL``)
    log_json     : JSON log lines; ``None`` means auto-detect from the TTY
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str = ""

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    @field_validator("log_level")
    @classmethod
    def _normalise_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"must be one of {', '.join(LOG_LEVELS)}")
        return level

    def require_database_url(self) -> str:
        """Return the connection URL or raise ``MissingConfigError``.

        Whitespace-only values count as missing.
        """
        url = self.database_url.strip()
        if not url:
            raise MissingConfigError("DATABASE_URL").with_context(stage="config")
        return url


def get_settings() -> MigrateSettings:
    """Load settings, turning pydantic validation failures into config errors."""
    try:
        return MigrateSettings()
    except ValidationError as exc:
        first = exc.errors()[0]
        key = str(first["loc"][0]).upper() if first.get("loc") else "settings"
        raise InvalidConfigError(
            key,
            first.get("input"),
            f"Invalid configuration for {key}: {first['msg']}",
            cause=exc,
        ).with_context(stage="config") from exc
