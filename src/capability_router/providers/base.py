"""Base provider abstraction for external capability endpoints.

A provider couples an identifier, a capability kind and a handle that performs
the actual calls. Each capability kind has a closed set of operation names;
handles declare the subset they implement and are checked when the provider
is constructed, so unknown operations are caught before any call is made.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, Field

from ..core.exceptions import UnsupportedOperation
from ..core.logger import get_logger

logger = get_logger("providers.base")


class CapabilityKind(str, Enum):
    """Kinds of external capability a provider can offer."""

    COMPLETION = "completion"
    TRANSCRIPTION = "transcription"
    SYNTHESIS = "synthesis"
    TELEPHONY = "telephony"
    VECTOR_STORE = "vector_store"
    STRUCTURED_STORE = "structured_store"
    MESSAGING = "messaging"
    WEB_SEARCH = "web_search"


KIND_OPERATIONS: dict[CapabilityKind, frozenset[str]] = {
    CapabilityKind.COMPLETION: frozenset({"chat"}),
    CapabilityKind.TRANSCRIPTION: frozenset({"transcribe"}),
    CapabilityKind.SYNTHESIS: frozenset({"synthesize", "voices"}),
    CapabilityKind.TELEPHONY: frozenset({"call", "sms"}),
    CapabilityKind.VECTOR_STORE: frozenset({"upsert", "query"}),
    CapabilityKind.STRUCTURED_STORE: frozenset({"insert", "select", "update", "delete"}),
    CapabilityKind.MESSAGING: frozenset({"send_message", "send_photo"}),
    CapabilityKind.WEB_SEARCH: frozenset({"search"}),
}


class ProbeResult(BaseModel):
    """Outcome of a liveness probe."""

    success: bool
    latency_ms: float | None = None
    error: str | None = None


class HealthState(BaseModel):
    """Live health snapshot of one provider.

    Attributes:
        healthy: Whether the last observed outcome was a success
        latency_ms: Latency of the last observed call or probe
        consecutive_failures: Failures since the last success
        last_checked_at: When the state was last updated
        last_error: Message of the most recent failure
    """

    healthy: bool = True
    latency_ms: float | None = None
    consecutive_failures: int = 0
    last_checked_at: datetime | None = None
    last_error: str | None = None


class CompletionResponse(BaseModel):
    """Normalized result of a completion ``chat`` call."""

    text: str
    model: str | None = None
    tokens_used: int = 0
    raw: dict[str, Any] = Field(default_factory=dict)


class ProviderHandle(ABC):
    """Abstract handle used to perform calls against one external service.

    Subclasses set ``kind`` and ``operations`` and implement ``call``.
    ``probe`` times a lightweight ``_ping`` and never raises.
    """

    kind: ClassVar[CapabilityKind]
    operations: ClassVar[frozenset[str]]

    @abstractmethod
    async def call(self, operation: str, params: dict[str, Any]) -> Any:
        """Perform ``operation`` with ``params`` and return the service result."""

    async def _ping(self) -> bool:
        """Capability-appropriate liveness call. Returns True when alive."""
        return True

    async def probe(self) -> ProbeResult:
        """Run the liveness call and measure its latency."""
        start = time.perf_counter()
        try:
            alive = await self._ping()
        except Exception as exc:
            return ProbeResult(
                success=False,
                latency_ms=(time.perf_counter() - start) * 1000,
                error=str(exc) or type(exc).__name__,
            )
        latency_ms = (time.perf_counter() - start) * 1000
        if not alive:
            return ProbeResult(success=False, latency_ms=latency_ms, error="probe returned no data")
        return ProbeResult(success=True, latency_ms=latency_ms)

    async def aclose(self) -> None:
        """Release network resources held by the handle."""
        return None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} kind={self.kind.value}>"


class Provider:
    """A named capability endpoint with its live health state.

    Health counters are updated under a per-provider lock so concurrent
    request-path outcomes and probes never lose increments.
    """

    def __init__(self, provider_id: str, handle: ProviderHandle) -> None:
        kind = handle.kind
        unknown = set(handle.operations) - KIND_OPERATIONS[kind]
        if unknown:
            raise UnsupportedOperation(provider_id, kind.value, ", ".join(sorted(unknown)))

        self.id = provider_id
        self.kind = kind
        self.handle = handle
        self._health = HealthState()
        self._lock = threading.Lock()

    def supports(self, operation: str) -> bool:
        return operation in self.handle.operations

    @property
    def health(self) -> HealthState:
        """Copy of the current health state."""
        with self._lock:
            return self._health.model_copy()

    @property
    def consecutive_failures(self) -> int:
        with self._lock:
            return self._health.consecutive_failures

    def record_success(self, latency_ms: float | None) -> HealthState:
        with self._lock:
            self._health = HealthState(
                healthy=True,
                latency_ms=latency_ms,
                consecutive_failures=0,
                last_checked_at=datetime.now(UTC),
                last_error=None,
            )
            return self._health.model_copy()

    def record_failure(self, error: str, latency_ms: float | None = None) -> HealthState:
        with self._lock:
            self._health = HealthState(
                healthy=False,
                latency_ms=latency_ms,
                consecutive_failures=self._health.consecutive_failures + 1,
                last_checked_at=datetime.now(UTC),
                last_error=error,
            )
            return self._health.model_copy()

    def __repr__(self) -> str:
        return f"<Provider id={self.id} kind={self.kind.value}>"
