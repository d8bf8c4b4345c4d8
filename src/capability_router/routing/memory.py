"""Tiered conversation memory and the context assembler.

Short-term items are recent conversation turns, mid-term items are one
running summary per intent category, and long-term items are references
resolved through the vector store. Pins are kept separately and never decay.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from ..broker import CapabilityBroker, InvokeOptions
from ..core.config import MemoryConfig
from ..core.exceptions import ProviderError
from ..core.logger import get_logger
from ..providers.registry import ProviderRegistry
from .base import Intent, IntentCategory, MemoryContext, MemoryItem, MemoryTier

logger = get_logger("routing.memory")


class MemoryStore:
    """Process-wide memory tiers shared by conversation handling and routing.

    All mutations are serialized by a single lock; reads return copies.
    """

    def __init__(
        self,
        config: MemoryConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or MemoryConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._short_term: OrderedDict[str, MemoryItem] = OrderedDict()
        self._mid_term: dict[str, MemoryItem] = {}
        self._long_term: dict[str, MemoryItem] = {}
        self._pins: dict[str, MemoryItem] = {}

    def now(self) -> float:
        return self._clock()

    def horizon(self, tier: MemoryTier) -> float:
        if tier is MemoryTier.SHORT_TERM:
            return self.config.short_term_horizon_seconds
        if tier is MemoryTier.MID_TERM:
            return self.config.mid_term_horizon_seconds
        return self.config.long_term_horizon_seconds

    def _is_fresh(self, item: MemoryItem, now: float) -> bool:
        return now - item.timestamp <= self.horizon(item.tier)

    def remember(
        self, key: str, content: Any, metadata: dict[str, Any] | None = None
    ) -> MemoryItem:
        """Append a conversation turn to short-term memory.

        Re-using a key moves the item to the most recent position.
        """
        item = MemoryItem(
            key=key,
            content=content,
            tier=MemoryTier.SHORT_TERM,
            timestamp=self._clock(),
            metadata=metadata or {},
        )
        with self._lock:
            self._short_term.pop(key, None)
            self._short_term[key] = item
        return item

    def summarize(self, category: IntentCategory | str, summary: Any) -> MemoryItem:
        """Set the running mid-term summary for a category.

        ``access_count`` counts how many times the summary has been written.
        """
        key = IntentCategory(category).value
        with self._lock:
            previous = self._mid_term.get(key)
            item = MemoryItem(
                key=key,
                content=summary,
                tier=MemoryTier.MID_TERM,
                timestamp=self._clock(),
                access_count=(previous.access_count if previous else 0) + 1,
            )
            self._mid_term[key] = item
        return item

    def add_long_term_ref(
        self, key: str, content: Any, metadata: dict[str, Any] | None = None
    ) -> MemoryItem:
        item = MemoryItem(
            key=key,
            content=content,
            tier=MemoryTier.LONG_TERM,
            timestamp=self._clock(),
            metadata=metadata or {},
        )
        with self._lock:
            self._long_term[key] = item
        return item

    def pin(self, key: str, content: Any, tier: MemoryTier = MemoryTier.SHORT_TERM) -> MemoryItem:
        """Retain an item indefinitely."""
        item = MemoryItem(
            key=key,
            content=content,
            tier=tier,
            timestamp=self._clock(),
            metadata={"pinned_at": time.time()},
        )
        with self._lock:
            self._pins[key] = item
        logger.debug("Pinned memory item %s", key)
        return item

    def unpin(self, key: str) -> bool:
        with self._lock:
            return self._pins.pop(key, None) is not None

    def recent(self, limit: int) -> list[MemoryItem]:
        """Most recent short-term items within the horizon, oldest first."""
        now = self._clock()
        with self._lock:
            items = [item for item in self._short_term.values() if self._is_fresh(item, now)]
        return items[-limit:] if limit > 0 else []

    def summary_for(self, category: IntentCategory | str) -> MemoryItem | None:
        """Mid-term summary for a category if it has not decayed."""
        key = IntentCategory(category).value
        now = self._clock()
        with self._lock:
            item = self._mid_term.get(key)
        if item is None or not self._is_fresh(item, now):
            return None
        return item

    def long_term_refs(self) -> list[MemoryItem]:
        now = self._clock()
        with self._lock:
            return [item for item in self._long_term.values() if self._is_fresh(item, now)]

    def pins(self) -> list[MemoryItem]:
        with self._lock:
            return list(self._pins.values())

    def decay_sweep(self) -> dict[str, int]:
        """Remove short-term and mid-term items older than their horizon.

        Pins and long-term references are left alone.

        Returns:
            Number of removed items per tier
        """
        now = self._clock()
        with self._lock:
            stale_short = [
                k for k, item in self._short_term.items() if not self._is_fresh(item, now)
            ]
            for key in stale_short:
                del self._short_term[key]
            stale_mid = [k for k, item in self._mid_term.items() if not self._is_fresh(item, now)]
            for key in stale_mid:
                del self._mid_term[key]

        removed = {
            MemoryTier.SHORT_TERM.value: len(stale_short),
            MemoryTier.MID_TERM.value: len(stale_mid),
        }
        if stale_short or stale_mid:
            logger.info(
                "Memory decay sweep removed %d short-term and %d mid-term items",
                len(stale_short),
                len(stale_mid),
            )
        return removed

    def clear(self) -> None:
        with self._lock:
            self._short_term.clear()
            self._mid_term.clear()
            self._long_term.clear()
            self._pins.clear()

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "short_term": len(self._short_term),
                "mid_term": len(self._mid_term),
                "long_term": len(self._long_term),
                "pins": len(self._pins),
                "mid_term_accesses": {k: v.access_count for k, v in self._mid_term.items()},
            }


class MemoryContextAssembler:
    """Builds the memory snapshot attached to a routing decision.

    Long-term lookup goes through the broker and is only attempted when the
    configured vector store provider is registered and eligible; any failure
    yields an empty long-term result.
    """

    def __init__(
        self,
        store: MemoryStore,
        registry: ProviderRegistry | None = None,
        broker: CapabilityBroker | None = None,
        config: MemoryConfig | None = None,
    ) -> None:
        self.store = store
        self.registry = registry
        self.broker = broker
        self.config = config or store.config
        self._long_term_failures = 0

    async def assemble(self, message: str, intent: Intent) -> MemoryContext:
        long_term = self.store.long_term_refs()
        long_term.extend(await self._lookup_long_term(message))

        summary = self.store.summary_for(intent.category)
        return MemoryContext(
            short_term=self.store.recent(self.config.short_term_window),
            mid_term=[summary] if summary is not None else [],
            long_term=long_term,
            pins=self.store.pins(),
        )

    async def _lookup_long_term(self, message: str) -> list[MemoryItem]:
        provider_id = self.config.long_term_provider
        if self.broker is None or self.registry is None:
            return []
        if not self.registry.has(provider_id) or not self.registry.is_eligible(provider_id):
            return []

        try:
            matches = await self.broker.invoke(
                provider_id,
                "query",
                {"text": message, "top_k": self.config.long_term_top_k},
                InvokeOptions(max_retries=1),
            )
        except ProviderError as exc:
            self._long_term_failures += 1
            logger.warning("Long-term memory lookup via %s failed: %s", provider_id, exc)
            return []

        now = self.store.now()
        items = []
        for match in matches or []:
            metadata = dict(getattr(match, "metadata", {}) or {})
            items.append(
                MemoryItem(
                    key=str(getattr(match, "id", "")),
                    content=metadata.get("text", metadata),
                    tier=MemoryTier.LONG_TERM,
                    timestamp=now,
                    score=getattr(match, "score", None),
                    metadata=metadata,
                )
            )
        return items

    def decay_sweep(self) -> dict[str, int]:
        return self.store.decay_sweep()

    def get_stats(self) -> dict[str, Any]:
        stats = self.store.get_stats()
        stats["long_term_lookup_failures"] = self._long_term_failures
        return stats
