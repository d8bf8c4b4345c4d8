"""Tests for configuration management.

Tests cover:
- Defaults of the recognized options
- Fallback chain, provider and QoS tier validation
- YAML/JSON loading with environment variable expansion
- Environment-variable overrides via pydantic-settings
"""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from capability_router.core.config import (
    LoggingConfig,
    ProviderSettings,
    QoSTierConfig,
    RouterConfig,
)

# ==============================================================================
# Defaults
# ==============================================================================


class TestRouterConfigDefaults:
    """Tests for RouterConfig default values."""

    def test_recognized_options(self):
        config = RouterConfig()

        assert config.daily_budget == 10.0
        assert config.max_retries == 3
        assert config.probe_interval_ms == 30000
        assert config.health_failure_ceiling == 3
        assert config.intent_cache_ttl_ms == 300000
        assert config.council_budget_ms == 120

    def test_default_fallback_chains(self):
        config = RouterConfig()

        assert config.fallback_chains["completion"] == ["openai", "local"]
        assert config.fallback_chains["web_search"] == ["brave", "duckduckgo"]

    def test_default_qos_tiers(self):
        tiers = RouterConfig().qos_tiers

        assert tiers["realtime"].max_tokens == 512
        assert tiers["realtime"].timeout_ms == 800
        assert tiers["realtime"].cost_multiplier == 1.5
        assert tiers["interactive"].model == "gpt-4"
        assert tiers["batch"].max_tokens == 4096
        assert tiers["batch"].cost_multiplier == 0.7

    def test_memory_horizons(self):
        memory = RouterConfig().memory

        assert memory.short_term_horizon_seconds == 3600
        assert memory.mid_term_horizon_seconds == 86400
        assert memory.long_term_horizon_seconds == 604800
        assert memory.short_term_window == 10


# ==============================================================================
# Validation
# ==============================================================================


class TestRouterConfigValidation:
    """Tests for RouterConfig validators."""

    def test_empty_chain_rejected(self):
        with pytest.raises(ValidationError, match="empty"):
            RouterConfig(fallback_chains={"completion": []})

    def test_duplicate_chain_entry_rejected(self):
        with pytest.raises(ValidationError, match="twice"):
            RouterConfig(fallback_chains={"completion": ["openai", "openai"]})

    def test_duplicate_provider_ids_rejected(self):
        with pytest.raises(ValidationError, match="Duplicate provider id"):
            RouterConfig(
                providers=[
                    ProviderSettings(id="openai", type="openai"),
                    ProviderSettings(id="openai", type="local"),
                ]
            )

    def test_missing_tier_rejected(self):
        tiers = RouterConfig().qos_tiers
        del tiers["batch"]
        with pytest.raises(ValidationError, match="Missing QoS tiers: batch"):
            RouterConfig(qos_tiers=tiers)

    def test_tier_is_immutable(self):
        tier = RouterConfig().qos_tiers["interactive"]
        with pytest.raises(ValidationError):
            tier.max_tokens = 10  # type: ignore[misc]

    def test_tier_key_must_match_name(self):
        tiers = RouterConfig().qos_tiers
        tiers["batch"] = QoSTierConfig(
            name="interactive",
            max_tokens=1,
            temperature=0.1,
            model="gpt-4",
            timeout_ms=1,
            priority=1,
            cost_multiplier=1.0,
        )
        with pytest.raises(ValidationError, match="does not match"):
            RouterConfig(qos_tiers=tiers)

    def test_provider_settings_forbid_unknown_fields(self):
        with pytest.raises(ValidationError):
            ProviderSettings(id="x", type="openai", secret="nope")  # type: ignore[call-arg]

    def test_log_level_normalized(self):
        assert LoggingConfig(level="debug").level == "DEBUG"
        with pytest.raises(ValidationError):
            LoggingConfig(level="verbose")


# ==============================================================================
# Loading
# ==============================================================================


class TestRouterConfigLoading:
    """Tests for YAML/JSON loading."""

    def test_from_yaml_expands_env_vars(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_OPENAI_KEY", "sk-test")
        path = tmp_path / "router.yaml"
        path.write_text(
            """
daily_budget: 25
providers:
  - id: openai
    type: openai
    api_key: ${TEST_OPENAI_KEY}
fallback_chains:
  completion: [openai]
""",
            encoding="utf-8",
        )

        config = RouterConfig.from_yaml(path)

        assert config.daily_budget == 25
        assert config.get_provider_settings("openai").api_key == "sk-test"
        assert config.get_provider_settings("missing") is None
        assert config.fallback_chains == {"completion": ["openai"]}

    def test_from_yaml_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        assert RouterConfig.from_yaml(path).max_retries == 3

    def test_from_yaml_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            RouterConfig.from_yaml(tmp_path / "nope.yaml")

    def test_from_yaml_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("providers: [unclosed", encoding="utf-8")

        with pytest.raises(ValueError, match="Invalid YAML"):
            RouterConfig.from_yaml(path)

    def test_load_dispatches_on_suffix(self, tmp_path):
        path = tmp_path / "router.json"
        path.write_text(json.dumps({"max_retries": 5}), encoding="utf-8")

        assert RouterConfig.load(path).max_retries == 5

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("CAPROUTER_DAILY_BUDGET", "42.5")
        monkeypatch.setenv("CAPROUTER_MEMORY__SHORT_TERM_WINDOW", "4")

        config = RouterConfig()

        assert config.daily_budget == 42.5
        assert config.memory.short_term_window == 4
