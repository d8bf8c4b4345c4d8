"""Configuration management for the capability router.

This module provides configuration models and loading functionality using Pydantic
for validation and type safety.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DOTENV_LOADED = False


def _load_env_once() -> None:
    """Load environment variables from a .env file exactly once."""

    global _DOTENV_LOADED
    if not _DOTENV_LOADED:
        load_dotenv()
        _DOTENV_LOADED = True


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand environment variables in configuration data."""

    if isinstance(data, str):
        return os.path.expandvars(data)
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    return data


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format",
    )
    log_file: str | None = Field(default=None, description="Log file path")
    max_bytes: int = Field(default=10485760, description="Max log file size (10MB)")
    backup_count: int = Field(default=5, description="Number of backup files")

    @field_validator("level")
    @classmethod
    def _validate_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level


class ProviderSettings(BaseModel):
    """Configuration for one external capability provider.

    Attributes:
        id: Provider identifier used by fallback chains and the broker
        type: Handle type (openai, local, openai_transcription, elevenlabs,
            twilio, telegram, pinecone, supabase, brave, duckduckgo)
        enabled: Whether the provider is registered at startup
        api_key: Credential for the provider (if required)
        base_url: Override for the provider API base URL
        timeout: Request timeout in seconds
        options: Handle-specific options
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., min_length=1, description="Provider identifier")
    type: str = Field(..., min_length=1, description="Handle type")
    enabled: bool = Field(default=True, description="Register this provider")
    api_key: str | None = Field(default=None, description="API key or token")
    base_url: str | None = Field(default=None, description="API base URL override")
    timeout: float = Field(default=30.0, gt=0.0, description="Request timeout in seconds")
    options: dict[str, Any] = Field(default_factory=dict, description="Handle options")


class QoSTierConfig(BaseModel):
    """A named quality-of-service bundle attached to every routing decision."""

    model_config = ConfigDict(frozen=True)

    name: Literal["realtime", "interactive", "batch"]
    max_tokens: int = Field(ge=1)
    temperature: float = Field(ge=0.0, le=2.0)
    model: str
    timeout_ms: int = Field(ge=1)
    priority: int = Field(ge=1)
    cost_multiplier: float = Field(gt=0.0)
    description: str = ""


def _default_qos_tiers() -> dict[str, QoSTierConfig]:
    return {
        "realtime": QoSTierConfig(
            name="realtime",
            max_tokens=512,
            temperature=0.3,
            model="gpt-3.5-turbo",
            timeout_ms=800,
            priority=1,
            cost_multiplier=1.5,
            description="voice and calls, ultra fast",
        ),
        "interactive": QoSTierConfig(
            name="interactive",
            max_tokens=1024,
            temperature=0.7,
            model="gpt-4",
            timeout_ms=3000,
            priority=2,
            cost_multiplier=1.0,
            description="chat and light tools, balanced",
        ),
        "batch": QoSTierConfig(
            name="batch",
            max_tokens=4096,
            temperature=0.5,
            model="gpt-4",
            timeout_ms=15000,
            priority=3,
            cost_multiplier=0.7,
            description="research and long tasks, thorough",
        ),
    }


class MemoryConfig(BaseModel):
    """Configuration for tiered conversation memory."""

    short_term_horizon_seconds: float = Field(default=3600.0, gt=0.0)
    mid_term_horizon_seconds: float = Field(default=86400.0, gt=0.0)
    long_term_horizon_seconds: float = Field(default=604800.0, gt=0.0)
    short_term_window: int = Field(default=10, ge=1, description="Recent turns to include")
    long_term_provider: str = Field(default="pinecone", description="Vector store provider id")
    long_term_top_k: int = Field(default=5, ge=1)


class CouncilConfig(BaseModel):
    """Configuration for the bounded secondary review."""

    enabled: bool = Field(default=True)
    finance_token_threshold: int = Field(
        default=1000,
        ge=0,
        description="Estimated tokens above which finance requests are reviewed",
    )
    max_retries: int = Field(default=1, ge=1)
    model: str = Field(default="gpt-3.5-turbo")


class SchedulerConfig(BaseModel):
    """Configuration for the maintenance scheduler."""

    enabled: bool = Field(default=True)
    timezone: str = Field(default="UTC")
    daily_reset_hour: int = Field(default=0, ge=0, le=23)
    daily_reset_minute: int = Field(default=0, ge=0, le=59)
    memory_sweep_minutes: int = Field(default=60, ge=1)
    cache_cleanup_minutes: int = Field(default=10, ge=1)


def _default_fallback_chains() -> dict[str, list[str]]:
    return {
        "completion": ["openai", "local"],
        "synthesis": ["elevenlabs"],
        "web_search": ["brave", "duckduckgo"],
        "vector_store": ["pinecone"],
    }


def _default_unit_prices() -> dict[str, float]:
    return {"gpt-3.5-turbo": 0.0015, "gpt-4": 0.03}


class RouterConfig(BaseSettings):
    """Main configuration for the capability router."""

    model_config = SettingsConfigDict(
        env_prefix="CAPROUTER_",
        env_nested_delimiter="__",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    daily_budget: float = Field(default=10.0, ge=0.0, description="Daily spend ceiling")
    max_retries: int = Field(default=3, ge=1, le=10, description="Attempts per provider call")
    backoff_base_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Backoff unit; delay after failed attempt n is base * 2**(n-1)",
    )
    probe_interval_ms: int = Field(default=30000, ge=1)
    probe_initial_delay_ms: int = Field(default=5000, ge=0)
    probe_timeout_ms: int = Field(default=10000, ge=1)
    health_failure_ceiling: int = Field(
        default=3,
        ge=0,
        description="Consecutive failures tolerated before the circuit opens",
    )
    intent_cache_ttl_ms: int = Field(default=300000, ge=1)
    intent_cache_max_size: int = Field(default=1000, ge=1)
    council_budget_ms: int = Field(default=120, ge=1)
    classifier_model: str = Field(default="gpt-3.5-turbo")

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    providers: list[ProviderSettings] = Field(default_factory=list)
    fallback_chains: dict[str, list[str]] = Field(default_factory=_default_fallback_chains)
    qos_tiers: dict[str, QoSTierConfig] = Field(default_factory=_default_qos_tiers)
    unit_prices: dict[str, float] = Field(default_factory=_default_unit_prices)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    council: CouncilConfig = Field(default_factory=CouncilConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)

    @field_validator("providers")
    @classmethod
    def _unique_provider_ids(cls, value: list[ProviderSettings]) -> list[ProviderSettings]:
        seen: set[str] = set()
        for provider in value:
            if provider.id in seen:
                raise ValueError(f"Duplicate provider id: {provider.id}")
            seen.add(provider.id)
        return value

    @field_validator("fallback_chains")
    @classmethod
    def _validate_chains(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        for service, chain in value.items():
            if not chain:
                raise ValueError(f"Fallback chain for '{service}' is empty")
            if len(set(chain)) != len(chain):
                raise ValueError(f"Fallback chain for '{service}' lists a provider twice")
        return value

    @field_validator("qos_tiers")
    @classmethod
    def _validate_tiers(cls, value: dict[str, QoSTierConfig]) -> dict[str, QoSTierConfig]:
        missing = {"realtime", "interactive", "batch"} - set(value)
        if missing:
            raise ValueError(f"Missing QoS tiers: {', '.join(sorted(missing))}")
        for key, tier in value.items():
            if tier.name != key:
                raise ValueError(f"QoS tier key '{key}' does not match tier name '{tier.name}'")
        return value

    def get_provider_settings(self, provider_id: str) -> ProviderSettings | None:
        """Return settings for a provider id, or None."""
        for provider in self.providers:
            if provider.id == provider_id:
                return provider
        return None

    @classmethod
    def from_yaml(cls, path: str | Path) -> RouterConfig:
        """Load configuration from a YAML file."""

        _load_env_once()
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, encoding="utf-8") as handle:
            try:
                config_data = yaml.safe_load(handle)
            except yaml.YAMLError as exc:
                raise ValueError(f"Invalid YAML in config file: {exc}") from exc

        if not config_data:
            config_data = {}

        config_data = _expand_env_vars(config_data)
        return cls(**config_data)

    @classmethod
    def from_json(cls, path: str | Path) -> RouterConfig:
        """Load configuration from a JSON file."""

        _load_env_once()
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, encoding="utf-8") as handle:
            try:
                config_data = json.load(handle)
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid JSON in config file: {exc}") from exc

        config_data = _expand_env_vars(config_data or {})
        return cls(**config_data)

    @classmethod
    def load(cls, path: str | Path | None = None) -> RouterConfig:
        """Load from a YAML/JSON file when given, else from the environment."""

        if path is None:
            _load_env_once()
            return cls()
        if Path(path).suffix.lower() == ".json":
            return cls.from_json(path)
        return cls.from_yaml(path)
