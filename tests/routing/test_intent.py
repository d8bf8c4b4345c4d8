"""Tests for intent classification and the intent cache."""

from __future__ import annotations

import asyncio

import pytest

from capability_router.broker import CapabilityBroker
from capability_router.core.exceptions import ClassificationFailed
from capability_router.providers import Provider
from capability_router.routing import (
    DEFAULT_INTENT,
    Complexity,
    IntentCache,
    IntentCategory,
    IntentClassifier,
    RoutingContext,
    Urgency,
)
from capability_router.routing.base import Intent
from capability_router.routing.intent import parse_intent
from tests.mocks import FakeCompletionHandle, completion

FINANCE_REPLY = {
    "category": "finance",
    "confidence": 0.9,
    "complexity": "moderate",
    "urgency": "high",
    "requiresTools": False,
    "estimatedTokens": 1500,
}


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class SlowCompletionHandle(FakeCompletionHandle):
    """Completion handle that yields to the event loop before answering."""

    async def call(self, operation, params):
        await asyncio.sleep(0.01)
        return await super().call(operation, params)


# ==============================================================================
# Reply parsing
# ==============================================================================


class TestParseIntent:
    def test_camel_case_fields(self):
        intent = parse_intent(
            '{"category": "research", "requiresTools": true, "estimatedTokens": 42}'
        )

        assert intent.category == IntentCategory.RESEARCH
        assert intent.requires_tools is True
        assert intent.estimated_tokens == 42

    def test_code_fence_stripped(self):
        intent = parse_intent('```json\n{"category": "fitness"}\n```')

        assert intent.category == IntentCategory.FITNESS

    def test_not_json(self):
        with pytest.raises(ClassificationFailed, match="not JSON"):
            parse_intent("I think this is about finance")

    def test_not_an_object(self):
        with pytest.raises(ClassificationFailed):
            parse_intent("[1, 2]")

    def test_unknown_category(self):
        with pytest.raises(ClassificationFailed, match="validation"):
            parse_intent('{"category": "astrology"}')

    def test_confidence_out_of_range(self):
        with pytest.raises(ClassificationFailed):
            parse_intent('{"category": "general", "confidence": 1.5}')


# ==============================================================================
# Cache
# ==============================================================================


class TestIntentCache:
    def test_key_is_stable_content_hash(self):
        key = IntentCache.make_key("hello")

        assert key == IntentCache.make_key("hello")
        assert key != IntentCache.make_key("hello!")
        assert len(key) == 32

    def test_hit_and_expiry(self):
        clock = FakeClock()
        cache = IntentCache(ttl_seconds=10, clock=clock)
        cache.set("k", DEFAULT_INTENT)

        clock.now = 9.9
        assert cache.get("k") == DEFAULT_INTENT

        clock.now = 10.0
        assert cache.get("k") is None
        assert len(cache) == 0

        stats = cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate_percent"] == 50.0

    def test_oldest_entry_evicted(self):
        clock = FakeClock()
        cache = IntentCache(max_size=2, clock=clock)
        cache.set("a", DEFAULT_INTENT)
        clock.now = 1.0
        cache.set("b", DEFAULT_INTENT)
        clock.now = 2.0
        cache.set("c", DEFAULT_INTENT)

        assert cache.get("a") is None
        assert cache.get("b") is not None
        assert cache.get("c") is not None

    def test_cleanup_expired(self):
        clock = FakeClock()
        cache = IntentCache(ttl_seconds=5, clock=clock)
        cache.set("old", DEFAULT_INTENT)
        clock.now = 4.0
        cache.set("new", DEFAULT_INTENT)
        clock.now = 6.0

        assert cache.cleanup_expired() == 1
        assert len(cache) == 1


# ==============================================================================
# Classifier
# ==============================================================================


class TestIntentClassifier:
    @pytest.mark.anyio
    async def test_classify_via_broker(self, broker, completion_handle):
        completion_handle.default = completion(FINANCE_REPLY)
        classifier = IntentClassifier(broker)

        intent = await classifier.classify("How is my portfolio doing?")

        assert intent.category == IntentCategory.FINANCE
        assert intent.urgency == Urgency.HIGH
        assert intent.estimated_tokens == 1500
        operation, params = completion_handle.calls[0]
        assert operation == "chat"
        assert params["model"] == "gpt-3.5-turbo"
        assert params["messages"][-1]["content"] == "How is my portfolio doing?"

    @pytest.mark.anyio
    async def test_repeat_message_is_cached(self, broker, completion_handle):
        completion_handle.default = completion(FINANCE_REPLY)
        classifier = IntentClassifier(broker)

        first = await classifier.classify("same message")
        second = await classifier.classify("same message")

        assert first == second
        assert completion_handle.call_count == 1
        assert classifier.get_stats()["remote_calls"] == 1

    @pytest.mark.anyio
    async def test_concurrent_identical_messages_single_call(self, registry):
        handle = SlowCompletionHandle(default=completion(FINANCE_REPLY))
        registry.register(Provider("openai", handle))
        classifier = IntentClassifier(CapabilityBroker(registry, {"completion": ["openai"]}))

        results = await asyncio.gather(*(classifier.classify("burst") for _ in range(5)))

        assert handle.call_count == 1
        assert all(r.category == IntentCategory.FINANCE for r in results)

    @pytest.mark.anyio
    async def test_provider_failure_falls_back(self, broker, completion_handle):
        completion_handle.default = RuntimeError("down")
        classifier = IntentClassifier(broker, max_retries=1)

        intent = await classifier.classify("anything")

        assert intent == DEFAULT_INTENT
        assert classifier.get_stats()["fallbacks"] == 1
        assert len(classifier.cache) == 0

    @pytest.mark.anyio
    async def test_malformed_reply_falls_back(self, broker, completion_handle):
        completion_handle.default = completion("not json at all")
        classifier = IntentClassifier(broker)

        intent = await classifier.classify("anything")

        assert intent.category == IntentCategory.GENERAL
        assert intent.complexity == Complexity.MODERATE
        assert intent.urgency == Urgency.MEDIUM

    @pytest.mark.anyio
    async def test_context_enrichment(self, broker, completion_handle):
        completion_handle.default = completion(FINANCE_REPLY)
        classifier = IntentClassifier(broker)
        context = RoutingContext(conversation_id="c-1", previous_message="earlier")

        enriched = await classifier.classify("follow up", context)
        plain = await classifier.classify("follow up")

        assert enriched.has_context is True
        assert enriched.is_follow_up is True
        assert plain.has_context is False
        assert plain.is_follow_up is False

    def test_default_intent_values(self):
        assert DEFAULT_INTENT == Intent(
            category=IntentCategory.GENERAL,
            confidence=0.5,
            complexity=Complexity.MODERATE,
            urgency=Urgency.MEDIUM,
            requires_tools=False,
            estimated_tokens=500,
        )
