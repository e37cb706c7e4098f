# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for storage locations, worker tuning, LLM provider
credentials and logging. Every value has a default and can be overridden
through the environment (e.g. CONVERTER_COUNT=5) or keyword arguments.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === STORAGE ===
    data_dir: Path = Path("~/.pageflow/files")
    db_path: Path = Path("~/.pageflow/pageflow.db")

    # === SPLITTER ===
    split_poll_interval_ms: int = 2000
    split_max_retries: int = 3
    split_retry_base_delay_ms: int = 1000
    split_render_dpi: int = 144
    office_converter_binary: str = "soffice"
    office_convert_timeout_ms: int = 180_000

    # === CONVERTER ===
    converter_count: int = 3
    converter_poll_interval_ms: int = 2000
    converter_timeout_ms: int = 120_000
    converter_max_retries: int = 3
    converter_retry_base_delay_ms: int = 2000
    converter_max_content_length: int = 200_000
    converter_max_tokens: int = 8192
    converter_temperature: float = 0.1

    # === MERGER ===
    merger_poll_interval_ms: int = 2000

    # === HEALTH CHECK ===
    health_check_interval_ms: int = 60_000
    task_timeout_ms: int = 300_000
    health_max_recoveries: int = 2

    # === PIPELINE ===
    # Above this share of permanently failed pages the whole task fails
    # instead of being merged as partial_failed.
    max_failed_page_ratio: float = 0.5

    # === LLM PROVIDERS ===
    llm_default_provider: str = "openai"
    llm_default_model: str = "gpt-4o"

    openai_api_key: str = ""
    openai_base_url: str = ""
    anthropic_api_key: str = ""
    anthropic_base_url: str = ""
    google_api_key: str = ""
    ollama_base_url: str = "http://localhost:11434"

    # === LOGGING ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator(
        "split_max_retries",
        "converter_count",
        "split_render_dpi",
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:  # noqa: N805
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return v

    @field_validator(
        "split_poll_interval_ms",
        "converter_poll_interval_ms",
        "merger_poll_interval_ms",
        "health_check_interval_ms",
        "converter_timeout_ms",
        "office_convert_timeout_ms",
        "task_timeout_ms",
    )
    @classmethod
    def validate_interval(cls, v: int, info) -> int:  # noqa: N805
        if v <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return v

    @field_validator("converter_max_retries", "health_max_recoveries")
    @classmethod
    def validate_non_negative(cls, v: int, info) -> int:  # noqa: N805
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if not 0.0 <= self.max_failed_page_ratio <= 1.0:
            errors.append("MAX_FAILED_PAGE_RATIO must be between 0 and 1")

        # A converter call still in flight must never look stuck.
        if self.task_timeout_ms <= self.converter_timeout_ms:
            errors.append("TASK_TIMEOUT_MS must be greater than CONVERTER_TIMEOUT_MS")
        if self.task_timeout_ms <= self.office_convert_timeout_ms:
            errors.append("TASK_TIMEOUT_MS must be greater than OFFICE_CONVERT_TIMEOUT_MS")

        if self.split_retry_base_delay_ms < 0 or self.converter_retry_base_delay_ms < 0:
            errors.append("Retry base delays must be >= 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def resolved_data_dir(self) -> Path:
        """Data directory with ~ expanded."""
        return self.data_dir.expanduser()

    @property
    def resolved_db_path(self) -> Path:
        """Database path with ~ expanded."""
        return self.db_path.expanduser()

    @property
    def heartbeat_interval_s(self) -> float:
        """How often a worker refreshes a claimed task during a long stage."""
        return self.task_timeout_ms / 4 / 1000

    def provider_credentials(self, provider: str) -> tuple[str, str]:
        """Return (api_key, base_url) for a provider type."""
        if provider in ("openai", "openai-responses"):
            return self.openai_api_key, self.openai_base_url
        if provider == "anthropic":
            return self.anthropic_api_key, self.anthropic_base_url
        if provider in ("gemini", "google"):
            return self.google_api_key, ""
        if provider == "ollama":
            return "", self.ollama_base_url
        return "", ""


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or embedding).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
