"""Library configuration using Pydantic Settings.

Values can be provided via environment variables or fall back to the
defaults below. A ``Settings`` instance is intended to be retrieved via
``get_settings`` which caches the object for reuse across the process.

Environment variable prefix: ``EXCEVENT_`` (e.g. ``EXCEVENT_LOG_LEVEL``).
"""

from functools import lru_cache
from typing import Literal, get_args

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"]
LOG_LEVELS: tuple[str, ...] = get_args(LogLevel)


class Settings(BaseSettings):
    """Runtime library settings.

    Attributes map directly to environment variables using the ``EXCEVENT_``
    prefix (case-insensitive). For example, ``log_level`` <- ``EXCEVENT_LOG_LEVEL``.
    """

    log_level: LogLevel = Field(
        default="INFO",
        description="Log level used by setup_logging when none is given",
    )
    strict_until: bool = Field(
        default=False,
        description="Raise instead of warning when an until() subscription has no event source",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: str | None) -> str:
        """Accept log level names in any case; unset means INFO."""
        if value is None:
            return "INFO"

        level = str(value).strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {value}. Must be one of: {', '.join(LOG_LEVELS)}")
        return level

    model_config = SettingsConfigDict(
        env_prefix="EXCEVENT_",
        case_sensitive=False,
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )


@lru_cache
def get_settings() -> Settings:
    """Return the cached ``Settings`` instance.

    The first invocation reads environment variables / .env file; subsequent
    calls reuse the same object to ensure consistent config.
    """

    return Settings()


__all__ = ["LOG_LEVELS", "LogLevel", "Settings", "get_settings"]
