"""Tests for the routing orchestrator."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from capability_router.broker import CapabilityBroker
from capability_router.core.config import ProviderSettings, RouterConfig
from capability_router.providers import Provider
from capability_router.routing import (
    CostSentinel,
    CouncilReviewer,
    IntentCategory,
    IntentClassifier,
    MemoryContextAssembler,
    MemoryStore,
    RoutingContext,
    RoutingOrchestrator,
    SpecialistCatalog,
    Urgency,
)
from tests.mocks import FakeCompletionHandle, completion

FINANCE_REPLY = {
    "category": "finance",
    "confidence": 0.9,
    "complexity": "moderate",
    "urgency": "high",
    "requiresTools": False,
    "estimatedTokens": 1500,
}

RESEARCH_REPLY = {
    "category": "research",
    "confidence": 0.8,
    "complexity": "complex",
    "urgency": "low",
    "requiresTools": True,
    "estimatedTokens": 800,
}


class HangingHandle(FakeCompletionHandle):
    """Completion handle whose calls never finish on their own."""

    def __init__(self) -> None:
        super().__init__()
        self.started = asyncio.Event()

    async def call(self, operation, params):
        self.calls.append((operation, params))
        self.started.set()
        await asyncio.sleep(3600)


def build_orchestrator(registry, broker, daily_budget: float = 10.0) -> RoutingOrchestrator:
    config = RouterConfig()
    return RoutingOrchestrator(
        registry=registry,
        broker=broker,
        classifier=IntentClassifier(broker),
        memory=MemoryContextAssembler(MemoryStore(config.memory), registry, broker),
        sentinel=CostSentinel(daily_budget, config.unit_prices),
        catalog=SpecialistCatalog(),
        council=CouncilReviewer(broker, config.council),
        qos_tiers=dict(config.qos_tiers),
        history_size=2,
    )


@pytest.fixture
def orchestrator(registry, broker):
    return build_orchestrator(registry, broker)


# ==============================================================================
# Routing
# ==============================================================================


class TestRoute:
    @pytest.mark.anyio
    async def test_finance_request_end_to_end(self, orchestrator, completion_handle):
        completion_handle.outcomes = [
            completion(FINANCE_REPLY),
            completion({"flags": [], "recommendation": "proceed", "reason": "routine"}),
        ]

        decision = await orchestrator.route("What's the weather effect on my portfolio?")

        assert decision.error is False
        assert decision.intent.category == IntentCategory.FINANCE
        assert decision.qos_tier.name == "interactive"
        assert decision.target_specialist == "finance"
        assert decision.council_verdict is not None
        assert decision.council_verdict.reason == "routine"
        assert decision.estimated_cost > 0
        assert list(decision.timing.stages_ms) == [
            "classify",
            "qos",
            "memory",
            "cost",
            "specialist",
            "council",
        ]
        assert completion_handle.call_count == 2

    @pytest.mark.anyio
    async def test_classifier_failure_routes_to_default(self, orchestrator, completion_handle):
        completion_handle.default = RuntimeError("down")

        decision = await orchestrator.route("hello there")

        assert decision.error is False
        assert decision.intent.category == IntentCategory.GENERAL
        assert decision.target_specialist == "coordinator"
        assert decision.council_verdict is None

    @pytest.mark.anyio
    async def test_voice_turn_is_realtime(self, orchestrator, completion_handle):
        completion_handle.default = completion(RESEARCH_REPLY)

        decision = await orchestrator.route("research this", RoutingContext(is_voice=True))

        assert decision.qos_tier.name == "realtime"

    @pytest.mark.anyio
    async def test_urgency_hint_overrides_classification(self, orchestrator, completion_handle):
        completion_handle.default = completion(RESEARCH_REPLY)

        batch = await orchestrator.route("survey the literature")
        hinted = await orchestrator.route(
            "survey the literature", RoutingContext(urgency_hint=Urgency.HIGH)
        )

        assert batch.qos_tier.name == "batch"
        assert hinted.qos_tier.name == "interactive"
        assert hinted.intent.urgency == Urgency.HIGH
        # classification is cached; the second call is the council review
        assert hinted.council_verdict is not None
        assert completion_handle.call_count == 2

    @pytest.mark.anyio
    async def test_preferred_specialist(self, orchestrator, completion_handle):
        completion_handle.default = completion(RESEARCH_REPLY)

        decision = await orchestrator.route(
            "plan my week", RoutingContext(preferred_specialist="fitness")
        )

        assert decision.target_specialist == "fitness"


# ==============================================================================
# Rejections
# ==============================================================================


class TestRejections:
    @pytest.mark.anyio
    async def test_budget_exceeded(self, registry, broker):
        orchestrator = build_orchestrator(registry, broker, daily_budget=0.0)

        decision = await orchestrator.route("this costs money")

        assert decision.error is True
        assert decision.error_kind == "budget_exceeded"
        assert decision.target_specialist == "coordinator"
        assert decision.qos_tier.name == "interactive"
        assert decision.details["daily_budget"] == 0.0
        assert orchestrator.get_status()["rejected"] == 1

    @pytest.mark.anyio
    async def test_unexpected_error(self, orchestrator):
        with patch.object(orchestrator.catalog, "select", side_effect=RuntimeError("boom")):
            decision = await orchestrator.route("hello")

        assert decision.error is True
        assert decision.error_kind == "routing_failed"
        assert "boom" in decision.reason
        assert decision.details == {"error_type": "RuntimeError"}

    @pytest.mark.anyio
    async def test_budget_rejection_reports_selected_tier(self, registry, broker):
        orchestrator = build_orchestrator(registry, broker, daily_budget=0.0)

        decision = await orchestrator.route("call me back", RoutingContext(is_voice=True))

        assert decision.error_kind == "budget_exceeded"
        assert decision.qos_tier.name == "realtime"

    @pytest.mark.anyio
    async def test_cancellation_is_not_a_rejection(self, registry):
        handle = HangingHandle()
        registry.register(Provider("openai", handle))
        broker = CapabilityBroker(registry, {"completion": ["openai"]}, backoff_base_seconds=0.0)
        orchestrator = build_orchestrator(registry, broker)

        task = asyncio.create_task(orchestrator.route("hello"))
        await asyncio.wait_for(handle.started.wait(), timeout=1.0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert handle.call_count == 1
        assert orchestrator.get_status()["rejected"] == 0


# ==============================================================================
# Outcomes and status
# ==============================================================================


class TestOutcomes:
    @pytest.mark.anyio
    async def test_report_outcome_once(self, orchestrator):
        decision = await orchestrator.route("hello")

        assert orchestrator.report_outcome(decision.id, True, actual_cost=0.0, actual_latency=50)
        assert not orchestrator.report_outcome(decision.id, True)

        metrics = orchestrator.catalog.metrics(decision.target_specialist)
        assert metrics.requests == 1
        assert orchestrator.get_cost_status().daily_spend == 0.0

    @pytest.mark.anyio
    async def test_history_is_bounded(self, orchestrator):
        first = await orchestrator.route("one")
        await orchestrator.route("two")
        await orchestrator.route("three")

        assert orchestrator.report_outcome(first.id, True) is False

    def test_report_unknown_decision(self, orchestrator):
        assert orchestrator.report_outcome("missing", False) is False

    @pytest.mark.anyio
    async def test_status(self, orchestrator):
        await orchestrator.route("hello")

        status = orchestrator.get_status()

        assert status["routed"] == 1
        assert status["cost"]["requests"] == 1
        assert status["providers"]["provider_count"] == 1
        assert status["monitor"] is None
        assert set(orchestrator.get_health_snapshot()) == {"openai"}


class TestFromConfig:
    def test_registers_enabled_providers(self):
        config = RouterConfig(
            providers=[
                ProviderSettings(id="openai", type="openai", api_key="sk-test"),
                ProviderSettings(id="ddg", type="duckduckgo", enabled=False),
            ],
            council_budget_ms=250,
        )

        orchestrator = RoutingOrchestrator.from_config(config)

        assert "openai" in orchestrator.registry
        assert "ddg" not in orchestrator.registry
        assert orchestrator.council.budget_ms == 250
        assert orchestrator.monitor is not None
        assert orchestrator.broker.get_chain("completion") is not None

    @pytest.mark.anyio
    async def test_aclose(self, registry, broker, completion_handle):
        orchestrator = build_orchestrator(registry, broker)

        await orchestrator.aclose()

        assert completion_handle.closed is True
