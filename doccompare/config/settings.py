"""
Application configuration via Pydantic Settings.

All values are sourced from environment variables or an .env file. The
Settings object is built once by the application factory and handed to
every component that needs it; components never read the environment.
"""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import (
    AnyHttpUrl,
    BeforeValidator,
    Field,
    SecretStr,
    model_validator,
)
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Environment(StrEnum):
    """Deployment environment identifiers."""

    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class LogLevel(StrEnum):
    """Structured log level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def _parse_cors_origins(value: str | list[str]) -> list[str]:
    """Accept comma-separated string or list for CORS origins."""
    if isinstance(value, list):
        return value
    return [origin.strip() for origin in value.split(",") if origin.strip()]


class Settings(BaseSettings):
    """
    Centralised, type-validated application configuration.

    Reads from environment variables with an optional .env file.
    API keys are Pydantic SecretStr to prevent accidental logging.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="forbid",
    )

    # ── Application ────────────────────────────────────────────────────── #
    app_name: str = Field(default="doccompare", description="Human-readable application name")
    app_version: str = Field(default="1.0.0", description="Semantic version string")
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (development|testing|production)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode. Must be False in production.",
    )

    # ── Server ─────────────────────────────────────────────────────────── #
    host: str = Field(default="127.0.0.1", description="Bind host. Default local-only.")
    port: int = Field(default=3000, ge=1024, le=65535, description="Bind port")
    workers: int = Field(default=1, ge=1, le=16, description="Uvicorn worker processes")

    # ── CORS ───────────────────────────────────────────────────────────── #
    cors_origins: Annotated[list[str], NoDecode, BeforeValidator(_parse_cors_origins)] = Field(
        default=["http://localhost:5173"],
        description="Comma-separated list of allowed CORS origins",
    )

    # ── Rate Limiting ──────────────────────────────────────────────────── #
    rate_limit_enabled: bool = Field(default=True, description="Apply slowapi rate limits")
    rate_limit_default: str = Field(
        default="100/minute",
        description="Default rate limit string (slowapi format)",
    )
    rate_limit_compare: str = Field(
        default="20/minute",
        description="Rate limit for the compare endpoint",
    )

    # ── Logging ────────────────────────────────────────────────────────── #
    log_level: LogLevel = Field(default=LogLevel.INFO, description="Minimum log level")
    log_json: bool = Field(default=True, description="Emit logs as JSON (False for dev console)")

    # ── Uploads ────────────────────────────────────────────────────────── #
    max_upload_size_mb: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum upload file size in MB, per side",
    )

    # ── Extraction (Pulse) ─────────────────────────────────────────────── #
    pulse_base_url: AnyHttpUrl = Field(
        default="https://api.runpulse.com",
        description="Extraction API base URL",
    )
    pulse_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Extraction API key. Comparisons fail with a configuration error when empty.",
    )
    pulse_poll_interval_seconds: float = Field(
        default=2.0,
        gt=0,
        le=60,
        description="Delay between job status polls for async extraction",
    )
    pulse_poll_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        le=3600,
        description="Deadline for an async extraction job to complete",
    )
    pulse_large_file_threshold_mb: float = Field(
        default=10.0,
        gt=0,
        description="Files at or above this size use the async extraction path",
    )
    pulse_request_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        le=600,
        description="HTTP timeout for extraction API calls (seconds)",
    )
    pulse_result_fetch_timeout_seconds: float = Field(
        default=20.0,
        gt=0,
        le=600,
        description="HTTP timeout when downloading URL-backed extraction results",
    )

    # ── Insights (Ollama) ──────────────────────────────────────────────── #
    insights_enabled: bool = Field(default=True, description="Generate LLM change insights")
    ollama_base_url: AnyHttpUrl = Field(
        default="http://127.0.0.1:11434",
        description="Ollama API base URL",
    )
    ollama_model: str = Field(
        default="llama3.1:8b",
        description="Ollama model name used for insights",
    )
    insights_timeout_seconds: float = Field(
        default=12.0,
        gt=0,
        le=600,
        description="Timeout for one insights generation (seconds)",
    )
    insights_temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=2.0,
        description="Sampling temperature for insights",
    )
    insights_circuit_breaker_threshold: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Consecutive failures before the insights circuit opens",
    )
    insights_circuit_breaker_timeout_seconds: int = Field(
        default=60,
        ge=1,
        le=3600,
        description="Seconds to wait before testing the insights circuit again",
    )
    insights_prompt_path: Path | None = Field(
        default=None,
        description="Override for the insights prompt template file",
    )

    # ── Diff digest bounds ─────────────────────────────────────────────── #
    excerpt_max_snippets: int = Field(
        default=12, ge=1, le=100, description="Max excerpts per bucket sent to insights"
    )
    excerpt_max_len: int = Field(
        default=220, ge=8, le=5000, description="Max characters per excerpt"
    )
    structured_sample_size: int = Field(
        default=30, ge=0, le=1000, description="Structured changes sent to insights"
    )
    structured_sample_value_len: int = Field(
        default=120, ge=8, le=5000, description="Max characters per sampled string value"
    )
    structured_diff_response_limit: int = Field(
        default=200, ge=0, le=10000, description="Structured changes returned in the response"
    )

    # ── Validators ─────────────────────────────────────────────────────── #

    @model_validator(mode="after")
    def production_safety_checks(self) -> Settings:
        if self.environment == Environment.PRODUCTION and self.debug:
            raise ValueError("debug must be False in production")
        return self

    @property
    def large_file_threshold_bytes(self) -> int:
        return max(1, int(self.pulse_large_file_threshold_mb * 1024 * 1024))

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the cached Settings singleton.

    Only the application factory and the CLI entry point call this; request
    handlers receive the instance stored on ``app.state``.
    """
    return Settings()
