"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
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

# Map environments to their respective .env files (relative to PROJECT_ROOT)
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


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    title: str = Field(
        "Survey Guard API",
        description="Title exposed in the OpenAPI document",
    )
    allowed_origins: str | None = Field(
        None,
        description="Comma-separated list of browser origins allowed to call /api routes",
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: 'json' or 'plain'")
    output: str = Field("stdout", description="Log output: 'stdout' or 'file'")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (0 disables rotation)",
        ge=0,
    )
    backup_count: int = Field(5, description="Rotated log files to keep", ge=0)
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to propagate the request correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class StoreSettings(BaseSettings):
    """Key/value store configuration (primary Redis, local fallback)."""

    redis_url: str | None = Field(
        None,
        description="Redis connection URL; when unset only the local fallback store is used",
    )
    timeout_seconds: float = Field(
        2.0,
        description="Socket and connect timeout applied to every primary store call",
        gt=0,
    )
    key_prefix: str = Field(
        "survey_guard",
        description="Prefix applied to every key written to the primary store",
    )
    fallback_dir: str = Field(
        ".cache/survey_guard",
        description="Directory holding the local fallback JSON documents",
    )
    cleanup_interval_seconds: int = Field(
        300,
        description="Interval of the background sweep removing expired fallback entries",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="STORE_",
        case_sensitive=False,
    )


class VerificationSettings(BaseSettings):
    """Email one-time code configuration."""

    allowed_domain: str = Field(
        "castel-afrique.com",
        description="Only addresses on this domain may request a code",
    )
    code_length: int = Field(6, description="Number of digits in a code", ge=1, le=12)
    code_ttl_seconds: int = Field(300, description="Lifetime of an issued code", ge=1)
    max_attempts: int = Field(3, description="Failed checks allowed per code", ge=1)
    expired_grace_seconds: int = Field(
        60,
        description="How long an expired entry is kept so it reports 'expired' instead of 'not_found'",
        ge=0,
    )
    hash_secret: str | None = Field(
        None,
        description="Optional HMAC key used when hashing codes",
    )

    model_config = SettingsConfigDict(
        env_prefix="VERIFY_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Per-policy rate limits."""

    enabled: bool = Field(True, description="Enable rate limiting on gated endpoints")
    include_headers: bool = Field(
        True,
        description="Include X-RateLimit-* and Retry-After headers",
    )

    submit_requests: int = Field(3, ge=1)
    submit_window_seconds: int = Field(60, ge=1)
    questions_requests: int = Field(10, ge=1)
    questions_window_seconds: int = Field(60, ge=1)
    code_request_requests: int = Field(5, ge=1)
    code_request_window_seconds: int = Field(600, ge=1)
    default_requests: int = Field(20, ge=1)
    default_window_seconds: int = Field(60, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class SubmissionSettings(BaseSettings):
    """Duplicate-submission tracking."""

    retention_days: int = Field(
        30,
        description="How long an accepted submission blocks a new one",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="SUBMISSION_",
        case_sensitive=False,
    )


class SmtpSettings(BaseSettings):
    """Outbound mail transport."""

    host: str | None = Field(None, description="SMTP server host")
    port: int = Field(465, description="SMTP server port")
    user: str | None = Field(None, description="SMTP username")
    password: str | None = Field(None, description="SMTP password or app password")
    sender: str | None = Field(None, description="From header; defaults to the SMTP user")
    use_tls: bool = Field(True, description="Use implicit TLS (port 465) instead of STARTTLS")
    timeout_seconds: float = Field(10.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="SMTP_",
        case_sensitive=False,
    )


class WorkflowSettings(BaseSettings):
    """External workflow backend receiving accepted submissions."""

    submit_url: str | None = Field(
        None,
        description="HTTP trigger URL of the workflow that persists survey answers",
    )
    timeout_seconds: float = Field(15.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="WORKFLOW_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are invalid.
    """

    app_env: str = APP_ENV
    app: AppSettings = Field(default_factory=AppSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    verification: VerificationSettings = Field(default_factory=VerificationSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    submission: SubmissionSettings = Field(default_factory=SubmissionSettings)
    smtp: SmtpSettings = Field(default_factory=SmtpSettings)
    workflow: WorkflowSettings = Field(default_factory=WorkflowSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.app_env.lower() == "development"


# Global settings instance - composed from domain-specific settings
settings = Settings()
