"""Environment-driven defaults for symkit."""

from __future__ import annotations

from functools import cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SymkitSettings(BaseSettings):
    """Package-wide defaults, read from `SYMKIT_*` environment variables.

    Attributes:
        log_level (str): Default minimum level for `enable_logging`.
        log_format (Literal["short", "full"]): Default format for `enable_logging`.
        strict_coverage (bool): Default for the parser's `strict_coverage` flag.
        suppress_parity_warning (bool): Default for forest tie warnings.

    Examples:
        >>> settings = SymkitSettings(strict_coverage=True)
        >>> settings.strict_coverage
        True
    """

    model_config = SettingsConfigDict(env_prefix="SYMKIT_", env_file=".env", env_file_encoding="utf-8", extra="ignore")

    log_level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level shown by enable_logging when no level is passed.",
    )
    log_format: Literal["short", "full"] = Field(
        default="short",
        description="Log line format used by enable_logging when no format is passed.",
    )
    strict_coverage: bool = Field(
        default=False,
        description="Raise instead of warn when a parsed rule underflows the uncovered distribution.",
    )
    suppress_parity_warning: bool = Field(
        default=False,
        description="Silence the ParityWarning emitted on tied forest votes.",
    )


@cache
def get_settings() -> SymkitSettings:
    """Return the process-wide settings, read once from the environment.

    Returns:
        SymkitSettings: The cached settings instance. Call
            `get_settings.cache_clear()` to re-read the environment.
    """
    return SymkitSettings()
