"""Capability broker: health-gated dispatch with retry, backoff and fallback chains."""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

from .core.exceptions import (
    AllProvidersFailed,
    ConfigurationError,
    MaxRetriesExceeded,
    ProviderError,
    ProviderUnhealthy,
    UnsupportedOperation,
)
from .core.logger import get_logger
from .providers.registry import ProviderRegistry

logger = get_logger("broker")


class InvokeOptions(BaseModel):
    """Per-call overrides for the broker defaults."""

    max_retries: int | None = Field(default=None, ge=1, description="Attempts for this call")
    backoff_base_seconds: float | None = Field(default=None, ge=0.0)


@dataclass(frozen=True)
class FallbackChain:
    """Ordered provider ids serving one service, primary first."""

    service: str
    provider_ids: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.provider_ids:
            raise ConfigurationError(f"Fallback chain for '{self.service}' is empty", self.service)
        if len(set(self.provider_ids)) != len(self.provider_ids):
            raise ConfigurationError(
                f"Fallback chain for '{self.service}' lists a provider twice", self.service
            )

    def __iter__(self) -> Iterator[str]:
        return iter(self.provider_ids)

    def __len__(self) -> int:
        return len(self.provider_ids)


@dataclass
class RetryState:
    """Attempt counter for one (provider, operation) pair."""

    provider_id: str
    operation: str
    attempts: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def increment(self) -> int:
        with self._lock:
            self.attempts += 1
            return self.attempts

    def reset(self) -> None:
        with self._lock:
            self.attempts = 0

    def current(self) -> int:
        with self._lock:
            return self.attempts


class CapabilityBroker:
    """Performs operations against registered providers.

    Features:
    - Circuit gate: ineligible providers fail fast with ``ProviderUnhealthy``
    - Retry with exponential backoff per (provider, operation) pair
    - Every attempt outcome updates the provider's live health state
    - Deterministic fallback chains, primary first, no reordering

    A pair whose attempt counter reached the retry ceiling is rejected
    outright until a success or a successful probe resets it.

    Example:
        ```python
        broker = CapabilityBroker(registry, {"completion": ["openai", "local"]})
        response = await broker.invoke_with_fallback("completion", "chat", params)
        ```
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        fallback_chains: Mapping[str, Iterable[str]] | Iterable[FallbackChain] | None = None,
        max_retries: int = 3,
        backoff_base_seconds: float = 1.0,
    ) -> None:
        """Initialize the broker.

        Args:
            registry: Provider registry consulted before every dispatch
            fallback_chains: Service name to ordered provider ids, or chains
            max_retries: Default attempts per provider call
            backoff_base_seconds: Delay unit; retry n waits base * 2**(n-1)
        """
        self.registry = registry
        self.max_retries = max_retries
        self.backoff_base_seconds = backoff_base_seconds
        self._chains: dict[str, FallbackChain] = {}
        self._retry_states: dict[tuple[str, str], RetryState] = {}
        self._states_lock = threading.Lock()

        self._total_invocations = 0
        self._successful_invocations = 0
        self._failed_invocations = 0
        self._rejected_unhealthy = 0
        self._failover_count = 0

        if isinstance(fallback_chains, Mapping):
            for service, ids in fallback_chains.items():
                self.add_chain(FallbackChain(service, tuple(ids)))
        elif fallback_chains is not None:
            for chain in fallback_chains:
                self.add_chain(chain)

        registry.add_recovery_listener(self.reset_retry_state)

        logger.info(
            "CapabilityBroker initialized (chains=%d, max_retries=%d, backoff=%.2fs)",
            len(self._chains),
            max_retries,
            backoff_base_seconds,
        )

    def add_chain(self, chain: FallbackChain) -> None:
        self._chains[chain.service] = chain

    def get_chain(self, service: str) -> FallbackChain | None:
        return self._chains.get(service)

    @property
    def chains(self) -> dict[str, FallbackChain]:
        return dict(self._chains)

    def _state(self, provider_id: str, operation: str) -> RetryState:
        key = (provider_id, operation)
        with self._states_lock:
            state = self._retry_states.get(key)
            if state is None:
                state = RetryState(provider_id, operation)
                self._retry_states[key] = state
            return state

    def retry_attempts(self, provider_id: str, operation: str) -> int:
        """Current attempt counter for a pair (0 when never failed)."""
        return self._state(provider_id, operation).current()

    def reset_retry_state(self, provider_id: str, operation: str | None = None) -> None:
        """Clear retry counters for a provider, or for one of its operations."""
        with self._states_lock:
            states = [
                state
                for (pid, op), state in self._retry_states.items()
                if pid == provider_id and (operation is None or op == operation)
            ]
        for state in states:
            state.reset()

    async def invoke(
        self,
        provider_id: str,
        operation: str,
        params: dict[str, Any] | None = None,
        options: InvokeOptions | None = None,
    ) -> Any:
        """Perform one logical operation against a provider.

        Raises:
            ProviderNotFound: If the provider is not registered
            UnsupportedOperation: If the operation is not offered by the provider
            ProviderUnhealthy: If the provider circuit is open (no call made)
            MaxRetriesExceeded: If the retry budget is exhausted
        """
        params = params or {}
        options = options or InvokeOptions()
        max_retries = options.max_retries or self.max_retries
        backoff = (
            options.backoff_base_seconds
            if options.backoff_base_seconds is not None
            else self.backoff_base_seconds
        )

        provider = self.registry.get(provider_id)
        if not provider.supports(operation):
            raise UnsupportedOperation(provider_id, provider.kind.value, operation)

        state = self._state(provider_id, operation)
        self._total_invocations += 1
        last_error: Exception | None = None
        # Attempts made by this call; the shared counter can be reset by a
        # concurrent success
        made = 0

        while True:
            if not self.registry.is_eligible(provider_id):
                self._rejected_unhealthy += 1
                self._failed_invocations += 1
                raise ProviderUnhealthy(provider_id, provider.consecutive_failures)

            attempts = max(state.current(), made)
            if attempts >= max_retries:
                self._failed_invocations += 1
                raise MaxRetriesExceeded(provider_id, operation, attempts, last_error)

            start = time.perf_counter()
            try:
                result = await provider.handle.call(operation, params)
            except Exception as exc:
                latency_ms = (time.perf_counter() - start) * 1000
                last_error = exc
                error = str(exc) or type(exc).__name__
                self.registry.record_failure(provider_id, error, latency_ms)
                made += 1
                attempts = max(state.increment(), made)
                logger.warning(
                    "%s.%s failed (attempt %d/%d): %s",
                    provider_id,
                    operation,
                    attempts,
                    max_retries,
                    exc,
                )
                if attempts >= max_retries:
                    self._failed_invocations += 1
                    raise MaxRetriesExceeded(provider_id, operation, attempts, exc) from exc

                delay = backoff * (2 ** (made - 1))
                logger.debug("Retrying %s.%s in %.2fs", provider_id, operation, delay)
                await asyncio.sleep(delay)
                continue

            latency_ms = (time.perf_counter() - start) * 1000
            state.reset()
            self.registry.record_success(provider_id, latency_ms)
            self._successful_invocations += 1
            logger.debug("%s.%s completed in %.1fms", provider_id, operation, latency_ms)
            return result

    async def invoke_with_fallback(
        self,
        service: str,
        operation: str,
        params: dict[str, Any] | None = None,
        options: InvokeOptions | None = None,
    ) -> Any:
        """Try each provider of the service's fallback chain in order.

        A service without a configured chain is treated as a single-provider
        chain naming the service itself.

        Raises:
            AllProvidersFailed: If every provider in the chain failed
        """
        chain = self._chains.get(service) or FallbackChain(service, (service,))
        errors: dict[str, Exception] = {}

        for index, provider_id in enumerate(chain):
            try:
                result = await self.invoke(provider_id, operation, params, options)
            except ProviderError as exc:
                errors[provider_id] = exc
                logger.warning(
                    "%s failed for service %s, trying next in chain: %s",
                    provider_id,
                    service,
                    exc,
                )
                continue

            if index > 0:
                self._failover_count += 1
                logger.info("Failover to %s succeeded for service %s", provider_id, service)
            return result

        raise AllProvidersFailed(service, errors)

    def get_stats(self) -> dict[str, Any]:
        """Get broker statistics."""
        success_rate = (
            self._successful_invocations / self._total_invocations * 100
            if self._total_invocations > 0
            else 0.0
        )
        return {
            "total_invocations": self._total_invocations,
            "successful_invocations": self._successful_invocations,
            "failed_invocations": self._failed_invocations,
            "rejected_unhealthy": self._rejected_unhealthy,
            "success_rate_percent": round(success_rate, 2),
            "failover_count": self._failover_count,
            "chains": {name: list(chain) for name, chain in self._chains.items()},
        }
