"""Tests for the router exception hierarchy."""

from __future__ import annotations

import pytest

from capability_router.core.exceptions import (
    AllProvidersFailed,
    BudgetExceeded,
    ClassificationFailed,
    ConfigurationError,
    CouncilTimeout,
    CouncilUnavailable,
    DuplicateProvider,
    MaxRetriesExceeded,
    ProviderError,
    ProviderNotFound,
    ProviderUnhealthy,
    RouterError,
    UnsupportedOperation,
)


class TestExceptionHierarchy:
    """Tests for exception inheritance."""

    @pytest.mark.parametrize(
        "exc_type",
        [
            DuplicateProvider,
            ProviderNotFound,
            UnsupportedOperation,
            ProviderUnhealthy,
            MaxRetriesExceeded,
        ],
    )
    def test_provider_faults_are_provider_errors(self, exc_type):
        assert issubclass(exc_type, ProviderError)
        assert issubclass(exc_type, RouterError)

    @pytest.mark.parametrize(
        "exc_type",
        [
            AllProvidersFailed,
            ClassificationFailed,
            CouncilUnavailable,
            BudgetExceeded,
            ConfigurationError,
        ],
    )
    def test_router_errors(self, exc_type):
        assert issubclass(exc_type, RouterError)
        assert not issubclass(exc_type, ProviderError)

    def test_council_timeout_is_unavailable(self):
        assert issubclass(CouncilTimeout, CouncilUnavailable)


class TestExceptionPayloads:
    """Tests for attributes carried by the exceptions."""

    def test_max_retries_carries_last_error(self):
        cause = ConnectionError("reset")
        exc = MaxRetriesExceeded("openai", "chat", 3, cause)

        assert exc.provider_id == "openai"
        assert exc.attempts == 3
        assert exc.last_error is cause
        assert "openai.chat" in str(exc)
        assert "reset" in str(exc)

    def test_all_providers_failed_aggregates(self):
        errors = {"a": ProviderNotFound("a"), "b": ProviderUnhealthy("b", 4)}
        exc = AllProvidersFailed("completion", errors)

        assert exc.service == "completion"
        assert set(exc.errors) == {"a", "b"}
        assert "a:" in str(exc) and "b:" in str(exc)

    def test_budget_exceeded_message(self):
        exc = BudgetExceeded(9.5, 1.25, 10.0)

        assert exc.current_spend == 9.5
        assert exc.estimated_cost == 1.25
        assert exc.daily_budget == 10.0
        assert str(exc).startswith("Daily budget exceeded: $9.50 + $1.2500 > $10.00")

    def test_duplicate_provider_kinds(self):
        exc = DuplicateProvider("p", "completion", "web_search")

        assert exc.existing_kind == "completion"
        assert exc.new_kind == "web_search"

    def test_configuration_error_key(self):
        assert ConfigurationError("bad", "type").config_key == "type"
