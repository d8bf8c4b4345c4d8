"""Provider registry holding configured providers and their health state."""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any

from ..core.exceptions import DuplicateProvider, ProviderNotFound
from ..core.logger import get_logger
from .base import CapabilityKind, HealthState, ProbeResult, Provider

logger = get_logger("providers.registry")

RecoveryListener = Callable[[str], None]


class ProviderRegistry:
    """Registry of capability providers.

    The registry is the only owner of provider entries. Health state is
    mutated through ``record_success``, ``record_failure`` and
    ``record_probe``; each update is atomic per provider.

    ``is_eligible`` is the circuit-breaker gate: a provider whose
    consecutive failures exceed ``health_failure_ceiling`` is refused
    until a success (usually a probe) resets the counter.
    """

    def __init__(self, health_failure_ceiling: int = 3) -> None:
        """Initialize the registry.

        Args:
            health_failure_ceiling: Consecutive failures tolerated before a
                provider stops being eligible for dispatch
        """
        self.health_failure_ceiling = health_failure_ceiling
        self._providers: dict[str, Provider] = {}
        self._lock = threading.RLock()
        self._recovery_listeners: list[RecoveryListener] = []

    def register(self, provider: Provider) -> None:
        """Add or replace a provider entry.

        Raises:
            DuplicateProvider: If the id is already registered with a
                different capability kind
        """
        with self._lock:
            existing = self._providers.get(provider.id)
            if existing is not None and existing.kind != provider.kind:
                raise DuplicateProvider(provider.id, existing.kind.value, provider.kind.value)
            self._providers[provider.id] = provider

        logger.info(
            "Registered provider: %s (kind=%s, operations=%s)",
            provider.id,
            provider.kind.value,
            ",".join(sorted(provider.handle.operations)),
        )

    def unregister(self, provider_id: str) -> bool:
        with self._lock:
            removed = self._providers.pop(provider_id, None)
        if removed is not None:
            logger.info("Unregistered provider: %s", provider_id)
            return True
        return False

    def get(self, provider_id: str) -> Provider:
        with self._lock:
            provider = self._providers.get(provider_id)
        if provider is None:
            raise ProviderNotFound(provider_id)
        return provider

    def has(self, provider_id: str) -> bool:
        with self._lock:
            return provider_id in self._providers

    def providers(self) -> list[Provider]:
        with self._lock:
            return list(self._providers.values())

    def by_kind(self, kind: CapabilityKind) -> list[Provider]:
        return [p for p in self.providers() if p.kind == kind]

    def __len__(self) -> int:
        with self._lock:
            return len(self._providers)

    def __contains__(self, provider_id: object) -> bool:
        return isinstance(provider_id, str) and self.has(provider_id)

    def is_eligible(self, provider_id: str) -> bool:
        """Return False if the provider's circuit is open or it is unknown."""
        with self._lock:
            provider = self._providers.get(provider_id)
        if provider is None:
            return False
        return provider.consecutive_failures <= self.health_failure_ceiling

    def record_success(self, provider_id: str, latency_ms: float | None) -> HealthState:
        return self.get(provider_id).record_success(latency_ms)

    def record_failure(
        self,
        provider_id: str,
        error: str,
        latency_ms: float | None = None,
    ) -> HealthState:
        state = self.get(provider_id).record_failure(error, latency_ms)
        if state.consecutive_failures == self.health_failure_ceiling + 1:
            logger.warning(
                "Provider %s circuit opened after %d consecutive failures",
                provider_id,
                state.consecutive_failures,
            )
        return state

    def record_probe(self, provider_id: str, result: ProbeResult) -> HealthState:
        """Apply a probe outcome; a successful probe notifies recovery listeners."""
        if not result.success:
            error = result.error or "probe failed"
            return self.record_failure(provider_id, error, result.latency_ms)

        state = self.record_success(provider_id, result.latency_ms)
        for listener in list(self._recovery_listeners):
            listener(provider_id)
        return state

    def add_recovery_listener(self, listener: RecoveryListener) -> None:
        """Register a callback invoked with the provider id after a successful probe."""
        self._recovery_listeners.append(listener)

    def snapshot(self) -> dict[str, HealthState]:
        """Return a copy of every provider's health state."""
        return {provider.id: provider.health for provider in self.providers()}

    def get_stats(self) -> dict[str, Any]:
        snapshot = self.snapshot()
        return {
            "provider_count": len(snapshot),
            "healthy": sum(1 for state in snapshot.values() if state.healthy),
            "eligible": sum(1 for pid in snapshot if self.is_eligible(pid)),
            "health_failure_ceiling": self.health_failure_ceiling,
        }

    async def aclose(self) -> None:
        """Close every provider handle."""
        for provider in self.providers():
            await provider.handle.aclose()
