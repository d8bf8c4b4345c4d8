"""Intent classification with a content-hash TTL cache."""

from __future__ import annotations

import asyncio
import hashlib
import json
import re
import time
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from ..broker import CapabilityBroker, InvokeOptions
from ..core.exceptions import ClassificationFailed, RouterError
from ..core.logger import get_logger
from ..providers.base import CompletionResponse
from .base import DEFAULT_INTENT, Intent, RoutingContext

logger = get_logger("routing.intent")

CLASSIFICATION_PROMPT = """Classify the user's intent. Respond with JSON only:
{
  "category": "security|creative|research|learning|content|fashion|finance|fitness|general",
  "confidence": 0.0-1.0,
  "complexity": "simple|moderate|complex",
  "urgency": "low|medium|high",
  "requiresTools": true|false,
  "estimatedTokens": number
}"""

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class IntentCache:
    """In-memory intent cache keyed by message content hash.

    Entries are immutable once written and simply expire after the TTL.
    When ``max_size`` is reached the oldest entry is evicted.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache: dict[str, tuple[Intent, float]] = {}
        self._ttl = ttl_seconds
        self._max_size = max_size
        self._clock = clock
        self._hits = 0
        self._misses = 0

    @staticmethod
    def make_key(message: str) -> str:
        return hashlib.sha256(message.encode("utf-8")).hexdigest()[:32]

    def get(self, key: str) -> Intent | None:
        entry = self._cache.get(key)
        if entry is not None:
            intent, stored_at = entry
            if self._clock() - stored_at < self._ttl:
                self._hits += 1
                return intent
            del self._cache[key]

        self._misses += 1
        return None

    def set(self, key: str, intent: Intent) -> None:
        if key not in self._cache and len(self._cache) >= self._max_size:
            self._evict_oldest()
        self._cache[key] = (intent, self._clock())

    def _evict_oldest(self) -> None:
        if not self._cache:
            return
        oldest_key = min(self._cache, key=lambda k: self._cache[k][1])
        del self._cache[oldest_key]

    def cleanup_expired(self) -> int:
        """Remove expired entries. Returns the number removed."""
        now = self._clock()
        expired = [
            key for key, (_, stored_at) in self._cache.items() if now - stored_at >= self._ttl
        ]
        for key in expired:
            del self._cache[key]
        if expired:
            logger.info("Cleaned up %d expired intent cache entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        self._cache.clear()
        self._hits = 0
        self._misses = 0

    def __len__(self) -> int:
        return len(self._cache)

    def get_stats(self) -> dict[str, Any]:
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0.0
        return {
            "size": len(self._cache),
            "max_size": self._max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate_percent": round(hit_rate, 2),
            "ttl_seconds": self._ttl,
        }


def parse_intent(text: str) -> Intent:
    """Parse a structured classification reply into an Intent.

    Raises:
        ClassificationFailed: If the reply is not a valid classification
    """
    cleaned = _FENCE_RE.sub("", text.strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ClassificationFailed(f"Classification reply is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ClassificationFailed("Classification reply is not a JSON object")
    try:
        return Intent.model_validate(data)
    except ValidationError as exc:
        raise ClassificationFailed(f"Classification reply failed validation: {exc}") from exc


class IntentClassifier:
    """Maps an inbound message to an Intent.

    Identical messages within the cache TTL are classified once; concurrent
    requests for the same message wait on a per-key lock instead of issuing
    duplicate calls. Any classification failure yields ``DEFAULT_INTENT``.
    """

    def __init__(
        self,
        broker: CapabilityBroker,
        cache: IntentCache | None = None,
        service: str = "completion",
        model: str = "gpt-3.5-turbo",
        max_tokens: int = 200,
        temperature: float = 0.1,
        max_retries: int | None = None,
    ) -> None:
        self.broker = broker
        self.cache = cache or IntentCache()
        self.service = service
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.max_retries = max_retries
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._remote_calls = 0
        self._fallbacks = 0
        self._total_latency_ms = 0.0

    @staticmethod
    def _enrich(intent: Intent, context: RoutingContext | None) -> Intent:
        context = context or RoutingContext()
        return intent.model_copy(
            update={
                "has_context": bool(context.conversation_id),
                "is_follow_up": bool(context.previous_message),
            }
        )

    async def classify(self, message: str, context: RoutingContext | None = None) -> Intent:
        key = self.cache.make_key(message)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Intent cache hit for %s", key[:8])
            return self._enrich(cached, context)

        lock = self._key_locks.setdefault(key, asyncio.Lock())
        try:
            async with lock:
                cached = self.cache.get(key)
                if cached is not None:
                    return self._enrich(cached, context)

                try:
                    intent = await self._classify_remote(message)
                except ClassificationFailed as exc:
                    self._fallbacks += 1
                    logger.warning("Intent classification failed, using fallback: %s", exc)
                    return self._enrich(DEFAULT_INTENT, context)

                self.cache.set(key, intent)
        finally:
            if not lock.locked():
                self._key_locks.pop(key, None)

        logger.info(
            "Classified intent: %s (confidence=%.2f, complexity=%s, urgency=%s)",
            intent.category.value,
            intent.confidence,
            intent.complexity.value,
            intent.urgency.value,
        )
        return self._enrich(intent, context)

    async def _classify_remote(self, message: str) -> Intent:
        params = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": CLASSIFICATION_PROMPT},
                {"role": "user", "content": message},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        self._remote_calls += 1
        start = time.perf_counter()
        try:
            response = await self.broker.invoke_with_fallback(
                self.service,
                "chat",
                params,
                InvokeOptions(max_retries=self.max_retries),
            )
        except RouterError as exc:
            raise ClassificationFailed(str(exc)) from exc
        finally:
            self._total_latency_ms += (time.perf_counter() - start) * 1000

        text = response.text if isinstance(response, CompletionResponse) else str(response)
        return parse_intent(text)

    def get_stats(self) -> dict[str, Any]:
        return {
            "remote_calls": self._remote_calls,
            "fallbacks": self._fallbacks,
            "avg_latency_ms": (
                round(self._total_latency_ms / self._remote_calls, 2) if self._remote_calls else 0.0
            ),
            "cache": self.cache.get_stats(),
        }
