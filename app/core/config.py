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


def _build_llm_settings() -> "LLMSettings":
    """Build LLM settings from environment.

    Static type checkers treat required fields as constructor arguments,
    which is not how BaseSettings is intended to be used.
    """

    return LLMSettings()  # type: ignore[call-arg]


def _build_app_settings() -> "AppSettings":
    return AppSettings()  # type: ignore[call-arg]


def _build_log_settings() -> "LogSettings":
    return LogSettings()  # type: ignore[call-arg]


def _build_rate_limit_settings() -> "RateLimitSettings":
    return RateLimitSettings()  # type: ignore[call-arg]


class LLMSettings(BaseSettings):
    """LLM provider configuration for the chat endpoint."""

    provider: str = Field(
        ...,
        description="LLM provider name (e.g., openai)",
    )
    model: str = Field(
        ...,
        description="Model name (e.g., gpt-4o-mini)",
    )
    api_key: str | None = Field(
        None,
        description="API key for cloud providers (required for OpenAI)",
    )
    base_url: str | None = Field(
        None,
        description="Custom API endpoint for OpenAI-compatible servers",
    )
    timeout_seconds: float = Field(
        45.0,
        description="Request timeout in seconds",
    )
    temperature: float = Field(
        0.7,
        description="Sampling temperature for chat replies",
    )
    max_tokens: int | None = Field(
        500,
        description="Upper bound on completion tokens per reply",
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        case_sensitive=False,
    )


class AppSettings(BaseSettings):
    """Application-wide configuration."""

    debug: bool = Field(
        False,
        description="Enable debug mode with verbose logging",
    )
    system_prompt: str = Field(
        "You are a helpful assistant. Answer concisely and stay on topic.",
        description="System prompt prepended to every conversation",
    )
    max_messages: int = Field(
        50,
        description="Maximum number of messages accepted per chat request",
        ge=1,
    )
    max_message_chars: int = Field(
        8000,
        description="Maximum characters accepted in a single message",
        ge=1,
    )

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging output configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="Log format: json or plain")
    output: str = Field("stdout", description="Log destination: stdout or file")
    file_path: str | None = Field(None, description="Log file path when output=file")
    max_bytes: int | None = Field(
        10 * 1024 * 1024,
        description="Rotate the log file after this many bytes (None disables rotation)",
    )
    backup_count: int = Field(5, description="Number of rotated log files to keep")
    request_id_header: str = Field(
        "X-Request-ID",
        description="Header used to read and echo the correlation id",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Admission-control thresholds for every dimension.

    All windows are in seconds. Defaults: 10 requests/hour, 5000 units/day,
    3 concurrent sessions, bursts of 5 requests per 10 seconds.
    """

    enabled: bool = Field(
        True,
        description="Enable admission control on the chat endpoint",
    )

    requests_limit: int = Field(10, description="Requests allowed per window", ge=1)
    requests_window_seconds: int = Field(3600, description="Request window size", ge=1)
    burst_limit: int = Field(5, description="Requests allowed per burst window", ge=1)
    burst_window_seconds: int = Field(10, description="Burst window size", ge=1)

    usage_limit: int = Field(5000, description="Estimated units allowed per window", ge=1)
    usage_window_seconds: int = Field(86400, description="Usage budget window size", ge=1)
    chars_per_unit: float = Field(
        4.0,
        description="Characters per estimated unit (approximate tokens)",
        gt=0,
    )
    reconcile_actual_usage: bool = Field(
        True,
        description="Correct reserved units with the token usage reported by the LLM",
    )

    sessions_limit: int = Field(3, description="Concurrent sessions per client", ge=1)
    sessions_window_seconds: int = Field(
        86400,
        description="Session set lifetime before it resets",
        ge=1,
    )
    sessions_exempt_keys: str | None = Field(
        None,
        description="Comma-separated client keys that bypass the session cap",
    )
    sessions_retry_seconds: int = Field(
        60,
        description="Advisory retry hint when the session cap is reached",
        ge=1,
    )

    sweep_requests_interval_seconds: int = Field(600, ge=1)
    sweep_usage_interval_seconds: int = Field(3600, ge=1)
    sweep_sessions_interval_seconds: int = Field(3600, ge=1)
    sweep_grace_seconds: int = Field(
        60,
        description="How long an expired entry is kept before the sweeper deletes it",
        ge=0,
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if required settings are missing.
    """

    app_env: str = APP_ENV
    llm: LLMSettings = Field(default_factory=_build_llm_settings)
    app: AppSettings = Field(default_factory=_build_app_settings)
    log: LogSettings = Field(default_factory=_build_log_settings)
    rate_limit: RateLimitSettings = Field(default_factory=_build_rate_limit_settings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )


settings = Settings()
