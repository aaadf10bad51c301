"""Configuration management using Pydantic Settings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(ValueError):
    """Raised for invalid configuration or unreadable input, before any work starts."""


ModelT = TypeVar("ModelT", bound=BaseModel)


class LogLevel(str, Enum):
    """Log level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ProbeConfig(BaseModel):
    """Misconfiguration probing configuration."""
    concurrency: int = 10
    timeout: float = 10.0
    user_agent: str = "Subscan/1.0"
    verbose: bool = False
    capture_headers: bool = False
    body_limit: int = 10 * 1024
    file_body_limit: int = 5 * 1024
    finding_budget: int = 5
    redirect_sentinel: str = "https://evil.com"
    active_checks: bool = True
    progress_interval: float = 2.0

    @field_validator("concurrency", "finding_budget", "body_limit", "file_body_limit")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Budgets and caps must be at least 1."""
        if v < 1:
            raise ValueError(f"must be >= 1, got {v}")
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate per-call timeout."""
        if v <= 0:
            raise ValueError(f"timeout must be positive, got {v}")
        return v


class ScoreConfig(BaseModel):
    """Scoring pass configuration (no active file or redirect checks)."""
    concurrency: int = 10
    timeout: float = 5.0
    verbose: bool = False

    @field_validator("concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:
        """Validate worker budget."""
        if v < 1:
            raise ValueError(f"concurrency must be >= 1, got {v}")
        return v


class DnsConfig(BaseModel):
    """DNS resolution configuration."""
    timeout: float = 5.0
    max_alias_hops: int = 10
    liveness_concurrency: int = 50
    nameservers: list[str] = Field(default_factory=list)

    @field_validator("max_alias_hops", "liveness_concurrency")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Hop limit and worker count must be at least 1."""
        if v < 1:
            raise ValueError(f"must be >= 1, got {v}")
        return v


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="SUBSCAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # General settings
    app_name: str = "Subscan"
    debug: bool = False
    log_level: LogLevel = LogLevel.INFO
    log_json: bool = False

    output_dir: Path = Field(default_factory=lambda: Path.cwd() / "output")

    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    score: ScoreConfig = Field(default_factory=ScoreConfig)
    dns: DnsConfig = Field(default_factory=DnsConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> "Settings":
        """Load settings from YAML file."""
        import yaml

        if not path.exists():
            return cls()

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}") from e

        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid config file {path}: {describe_errors(e)}") from e

    def to_yaml(self, path: Path) -> None:
        """Save settings to YAML file."""
        import yaml

        data = self.model_dump(mode="json")

        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """Load settings from config file or environment."""
    if config_path and config_path.exists():
        return Settings.from_yaml(config_path)
    return Settings()


def describe_errors(error: ValidationError) -> str:
    """Flatten a pydantic ValidationError into one line."""
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
        for err in error.errors()
    )


def apply_overrides(model: ModelT, **updates: Any) -> ModelT:
    """
    Copy a config section with overrides applied and validated.

    Unlike ``model_copy(update=...)``, the overrides go through the field
    validators.

    Raises:
        ConfigurationError: If an override fails validation
    """
    try:
        return type(model).model_validate({**model.model_dump(), **updates})
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {type(model).__name__}: {describe_errors(e)}") from e
