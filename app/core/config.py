"""Settings for the platform API, grouped by concern.

``APP_ENV`` (development, testing, staging, production) picks the
``.env.<env>`` file at the project root. Variables already exported in the
process environment are overridden by that file when it exists.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_ENV = os.getenv("APP_ENV", "development")

PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILES = {
    env: f".env.{env}" for env in ("development", "testing", "staging", "production")
}

_env_path = PROJECT_ROOT / ENV_FILES.get(APP_ENV, ENV_FILES["development"])
_env_file = str(_env_path) if _env_path.is_file() else None

# Nested BaseSettings ignore env_file, so the file is pushed into os.environ
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


def _build_app_settings() -> "AppSettings":
    """Read AppSettings from the environment (fields come from env, not kwargs)."""

    return AppSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    """Build rate limit settings from environment."""

    return RateLimitSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    """Build logging settings from environment."""

    return LogSettings()  # type: ignore[call-arg]


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    api_key_required: bool = Field(
        True,
        description="Whether API key authentication is required on protected routes",
    )
    api_keys: str | None = Field(
        None,
        description="Comma-separated list of valid API keys for authentication",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Request rate limiter configuration.

    The named presets (login, password_reset, api_access) are fixed; only the
    ``default`` preset can be tuned from the environment.
    """

    enabled: bool = Field(
        True,
        description="Enable request rate limiting",
    )
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers on responses",
    )
    default_points: int = Field(
        100,
        description="Requests allowed per window for the default preset",
        ge=1,
    )
    default_duration_seconds: float = Field(
        60,
        description="Window length in seconds for the default preset",
        gt=0,
    )
    default_block_duration_seconds: float = Field(
        900,
        description="Seconds a key stays blocked after exceeding the default preset",
        ge=0,
    )
    global_preset: str | None = Field(
        None,
        description="Preset applied to every request by the global middleware (disabled when unset)",
    )
    exempt_paths: str = Field(
        "/health,/docs,/openapi.json",
        description="Comma-separated paths skipped by the global middleware",
    )
    cleanup_enabled: bool = Field(
        True,
        description="Run the periodic sweep that removes idle trackers",
    )
    cleanup_interval_seconds: float = Field(
        3600,
        description="Seconds between two sweeps of the tracker registry",
        gt=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(
        "INFO",
        description="Root log level (DEBUG, INFO, WARNING, ERROR)",
    )
    format: str = Field(
        "json",
        description="Log format: json or plain",
    )
    output: str = Field(
        "stdout",
        description="Log destination: stdout or file",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (default logs/app.log)",
    )
    max_bytes: int = Field(
        5_242_880,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(
        5,
        description="Number of rotated log files to keep",
        ge=0,
    )
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Each group reads its own env prefix (APP_, RATE_LIMIT_, LOG_).
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=_build_app_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
