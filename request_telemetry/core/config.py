"""Configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file

Only the declarative part of the setup lives here (log sink, message
templates). Callables such as the log-level selector and body predicates are
configured in code through ``TelemetryOptions``.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Nested BaseSettings don't inherit env_file, so populate os.environ up front
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


DEFAULT_SUCCESS_TEMPLATE = "{ResolvedAction} OK ({RequestPath})"
DEFAULT_FAILURE_TEMPLATE = "{ResolvedAction} Fail: {ErrorMessage} ({RequestPath})"
DEFAULT_NOT_RESOLVED_TEMPLATE = (
    "{RequestMethod} {RequestPath} responded {StatusCode} in {Elapsed} ms"
)


class LogSettings(BaseSettings):
    """Log sink configuration."""

    level: str = Field(
        "INFO",
        description="Root log level (DEBUG, INFO, WARNING, ERROR)",
    )
    format: str = Field(
        "json",
        description="Output format: json or plain",
    )
    output: str = Field(
        "stdout",
        description="Where logs are written: stdout or file",
    )
    file_path: str | None = Field(
        None,
        description="Log file path when output=file (defaults to logs/requests.log)",
    )
    max_bytes: int = Field(
        0,
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
        description="Header used to read and echo the request correlation id",
    )
    configure_root: bool = Field(
        True,
        description="Install the sink on the root logger during setup",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class TelemetrySettings(BaseSettings):
    """Request telemetry defaults.

    Message templates use named placeholders (``{ResolvedAction}``,
    ``{RequestPath}``, ``{ErrorMessage}``, ``{RequestMethod}``,
    ``{StatusCode}``, ``{Elapsed}``) filled from the request's tags.
    """

    logger_name: str = Field(
        "request_telemetry",
        description="Name of the logger receiving one record per request",
    )
    success_template: str = Field(
        DEFAULT_SUCCESS_TEMPLATE,
        description="Template for a resolved action that completed",
    )
    failure_template: str = Field(
        DEFAULT_FAILURE_TEMPLATE,
        description="Template for a resolved action that raised",
    )
    not_resolved_template: str = Field(
        DEFAULT_NOT_RESOLVED_TEMPLATE,
        description="Template for requests that matched no action",
    )

    model_config = SettingsConfigDict(
        env_prefix="TELEMETRY_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    """

    app_env: str = APP_ENV
    log: LogSettings = Field(default_factory=LogSettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
