"""Tests for tiered memory and the memory context assembler."""

from __future__ import annotations

import pytest

from capability_router.broker import CapabilityBroker
from capability_router.core.config import MemoryConfig
from capability_router.providers import Provider, VectorMatch
from capability_router.routing import (
    Intent,
    IntentCategory,
    MemoryContextAssembler,
    MemoryStore,
    MemoryTier,
)
from tests.mocks import FakeVectorHandle


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MemoryStore(MemoryConfig(short_term_window=3), clock=clock)


# ==============================================================================
# Store
# ==============================================================================


class TestMemoryStore:
    def test_recent_window(self, store):
        for i in range(5):
            store.remember(f"turn-{i}", f"message {i}")

        recent = store.recent(3)

        assert [item.key for item in recent] == ["turn-2", "turn-3", "turn-4"]
        assert all(item.tier == MemoryTier.SHORT_TERM for item in recent)

    def test_rewrite_moves_to_end(self, store):
        store.remember("a", 1)
        store.remember("b", 2)
        store.remember("a", 3)

        assert [item.key for item in store.recent(10)] == ["b", "a"]

    def test_short_term_decays_after_horizon(self, store, clock):
        store.remember("old", "stale")
        clock.now += 3601

        assert store.recent(10) == []

    def test_summary_write_count(self, store):
        store.summarize(IntentCategory.FINANCE, "first")
        item = store.summarize("finance", "second")

        assert item.content == "second"
        assert item.access_count == 2
        assert store.summary_for(IntentCategory.FINANCE).content == "second"
        assert store.summary_for(IntentCategory.FITNESS) is None

    def test_summary_decays_after_horizon(self, store, clock):
        store.summarize(IntentCategory.FINANCE, "summary")
        clock.now += 86401

        assert store.summary_for(IntentCategory.FINANCE) is None

    def test_pins_never_decay(self, store, clock):
        store.pin("allergy", "peanuts")
        clock.now += 10 * 604800

        store.decay_sweep()

        pins = store.pins()
        assert [item.key for item in pins] == ["allergy"]
        assert "pinned_at" in pins[0].metadata

    def test_unpin(self, store):
        store.pin("k", "v")

        assert store.unpin("k") is True
        assert store.unpin("k") is False
        assert store.pins() == []

    def test_decay_sweep_counts(self, store, clock):
        store.remember("old-turn", "x")
        store.summarize(IntentCategory.FITNESS, "old summary")
        store.add_long_term_ref("ref", "kept")
        clock.now += 86401
        store.remember("new-turn", "y")

        removed = store.decay_sweep()

        assert removed == {"short_term": 1, "mid_term": 1}
        stats = store.get_stats()
        assert stats["short_term"] == 1
        assert stats["mid_term"] == 0
        assert stats["long_term"] == 1

    def test_long_term_refs_filtered_by_horizon(self, store, clock):
        store.add_long_term_ref("ref", "note")
        clock.now += 604801

        assert store.long_term_refs() == []


# ==============================================================================
# Assembler
# ==============================================================================


class TestMemoryContextAssembler:
    @pytest.mark.anyio
    async def test_assemble_without_vector_store(self, store):
        store.remember("turn", "hello")
        store.summarize(IntentCategory.FINANCE, "portfolio talk")
        store.pin("pinned", "always")
        assembler = MemoryContextAssembler(store)

        context = await assembler.assemble("msg", Intent(category=IntentCategory.FINANCE))

        assert [i.key for i in context.short_term] == ["turn"]
        assert [i.content for i in context.mid_term] == ["portfolio talk"]
        assert context.long_term == []
        assert [i.key for i in context.pins] == ["pinned"]

    @pytest.mark.anyio
    async def test_decayed_turn_absent_unless_pinned(self, store, clock):
        store.remember("turn", "expires")
        store.pin("pinned-turn", "stays")
        clock.now += 3601
        assembler = MemoryContextAssembler(store)

        context = await assembler.assemble("msg", Intent())

        assert context.short_term == []
        assert [i.key for i in context.pins] == ["pinned-turn"]

    @pytest.mark.anyio
    async def test_summary_matches_intent_category(self, store):
        store.summarize(IntentCategory.FITNESS, "workout")
        assembler = MemoryContextAssembler(store)

        context = await assembler.assemble("msg", Intent(category=IntentCategory.FINANCE))

        assert context.mid_term == []

    @pytest.mark.anyio
    async def test_long_term_lookup(self, store, registry):
        handle = FakeVectorHandle(
            default=[VectorMatch(id="m1", score=0.8, metadata={"text": "likes index funds"})]
        )
        registry.register(Provider("pinecone", handle))
        broker = CapabilityBroker(registry, backoff_base_seconds=0)
        assembler = MemoryContextAssembler(store, registry, broker)

        context = await assembler.assemble("portfolio", Intent())

        assert [(i.key, i.content, i.score) for i in context.long_term] == [
            ("m1", "likes index funds", 0.8)
        ]
        operation, params = handle.calls[0]
        assert operation == "query"
        assert params == {"text": "portfolio", "top_k": 5}

    @pytest.mark.anyio
    async def test_long_term_failure_is_empty(self, store, registry):
        handle = FakeVectorHandle(default=RuntimeError("index offline"))
        registry.register(Provider("pinecone", handle))
        broker = CapabilityBroker(registry, backoff_base_seconds=0)
        assembler = MemoryContextAssembler(store, registry, broker)

        context = await assembler.assemble("portfolio", Intent())

        assert context.long_term == []
        assert handle.call_count == 1
        assert assembler.get_stats()["long_term_lookup_failures"] == 1

    @pytest.mark.anyio
    async def test_ineligible_vector_store_skipped(self, store, registry):
        handle = FakeVectorHandle(default=[])
        registry.register(Provider("pinecone", handle))
        for _ in range(4):
            registry.record_failure("pinecone", "boom")
        assembler = MemoryContextAssembler(store, registry, CapabilityBroker(registry))

        context = await assembler.assemble("portfolio", Intent())

        assert context.long_term == []
        assert handle.call_count == 0

    @pytest.mark.anyio
    async def test_unregistered_vector_store_skipped(self, store, registry):
        assembler = MemoryContextAssembler(store, registry, CapabilityBroker(registry))

        context = await assembler.assemble("portfolio", Intent())

        assert context.is_empty
