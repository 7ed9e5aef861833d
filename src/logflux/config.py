"""
Configuration management.

Uses Pydantic Settings for environment variable handling and validation.
A YAML file may seed values; environment variables always win.
"""

import json
import os
from functools import lru_cache
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.retry import RetryPolicy

CONFIG_FILE_ENV = "LOGFLUX_CONFIG_FILE"


def load_config_file(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    if config_path is None:
        config_path = os.environ.get(CONFIG_FILE_ENV)

    if config_path is None:
        # Look for logflux.yaml in common locations
        possible_paths = [
            "logflux.yaml",
            os.path.join(os.path.expanduser("~"), ".config", "logflux", "logflux.yaml"),
        ]

        for path in possible_paths:
            if os.path.exists(path):
                config_path = path
                break
        else:
            return {}

    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
            return config_data
    return {}


class ServerSettings(BaseSettings):
    """Ingestion endpoint and credentials."""

    server_url: str = Field(default="http://localhost:8080", description="Ingestion API base URL")
    node: str = Field(default="default", min_length=1, max_length=255, description="Origin identifier")
    api_key: str = Field(default="lf_unset", description="API key (must start with 'lf_')")
    secret: str = Field(default="", description="Shared secret for payload encryption")
    timeout_seconds: float = Field(default=30.0, gt=0, description="HTTP request timeout")

    @field_validator("server_url")
    def validate_server_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("Server URL must start with 'http://' or 'https://'")
        return v.rstrip("/")

    @field_validator("api_key")
    def validate_api_key(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith("lf_"):
            raise ValueError("API key must start with 'lf_'")
        return v

    @property
    def ingest_url(self) -> str:
        """Full ingestion URL."""
        return f"{self.server_url}/v1/ingest"

    @property
    def masked_api_key(self) -> str:
        if len(self.api_key) <= 8:
            return "***"
        return f"{self.api_key[:4]}***{self.api_key[-4:]}"

    model_config = SettingsConfigDict(env_prefix="LOGFLUX_")


class PipelineSettings(BaseSettings):
    """Queue, worker pool and shutdown behaviour."""

    queue_size: int = Field(default=1000, gt=0, description="Queue capacity")
    worker_count: int = Field(default=2, gt=0, description="Number of delivery workers")
    failsafe_mode: bool = Field(default=True, description="Drop instead of block when the queue is full")
    flush_interval_seconds: float = Field(default=5.0, ge=0, description="Ticker interval (0 disables)")
    offer_timeout_seconds: Optional[float] = Field(
        default=None, ge=0, description="Max wait for queue space in strict mode (None waits forever)"
    )
    poll_interval_seconds: float = Field(default=1.0, gt=0, description="Worker poll timeout")
    shutdown_flush_timeout_seconds: float = Field(default=10.0, ge=0, description="Drain budget on close")
    shutdown_grace_period_seconds: float = Field(default=5.0, ge=0, description="Worker join budget on close")

    model_config = SettingsConfigDict(env_prefix="LOGFLUX_PIPELINE_")


class RetrySettings(BaseSettings):
    """Backoff parameters for delivery retries."""

    max_attempts: int = Field(default=5, ge=0, description="Retries after the first attempt")
    initial_delay_seconds: float = Field(default=0.1, ge=0, description="Delay before the first retry")
    max_delay_seconds: float = Field(default=30.0, ge=0, description="Delay cap")
    backoff_factor: float = Field(default=2.0, ge=1.0, description="Exponential multiplier")
    jitter_enabled: bool = Field(default=True, description="Apply ±5% random jitter")

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay_seconds,
            max_delay=self.max_delay_seconds,
            backoff_factor=self.backoff_factor,
            jitter_enabled=self.jitter_enabled,
        )

    model_config = SettingsConfigDict(env_prefix="LOGFLUX_RETRY_")


class Settings(BaseSettings):
    """Main SDK settings."""

    log_level: str = Field(default="INFO", description="Log level for SDK diagnostics")

    # Component settings
    server: ServerSettings = Field(default_factory=ServerSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)

    model_config = SettingsConfigDict(env_prefix="LOGFLUX_", case_sensitive=False)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance with config file and env support."""

    # Load config file data
    config_data = load_config_file()

    # Config file provides defaults, env vars override
    if config_data:
        _set_env_from_config(config_data)

    return Settings()


def _set_env_from_config(config_data: Dict[str, Any]) -> None:
    """Set environment variables from config file if not already set."""
    sections = {
        "server": ("LOGFLUX_", ServerSettings),
        "pipeline": ("LOGFLUX_PIPELINE_", PipelineSettings),
        "retry": ("LOGFLUX_RETRY_", RetrySettings),
    }

    for section, (prefix, model) in sections.items():
        values = config_data.get(section) or {}
        for key, value in values.items():
            if key not in model.model_fields or value is None:
                continue
            env_var = f"{prefix}{key.upper()}"
            if env_var not in os.environ:
                os.environ[env_var] = value if isinstance(value, str) else json.dumps(value)

    log_level = config_data.get("log_level")
    if log_level and "LOGFLUX_LOG_LEVEL" not in os.environ:
        os.environ["LOGFLUX_LOG_LEVEL"] = str(log_level)


def reload_settings() -> Settings:
    """Reload settings (clears cache)."""
    get_settings.cache_clear()
    return get_settings()
