"""Background health monitor that periodically probes registered providers."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any

from ..core.logger import get_logger
from .base import HealthState, ProbeResult
from .registry import ProviderRegistry

logger = get_logger("providers.monitor")


class HealthMonitor:
    """Probes every registered provider on a fixed interval.

    The monitor runs as its own asyncio task, independent of request-path
    work. One probe runs shortly after ``start()``, then every
    ``interval_seconds``. Probe failures are recorded on the registry and
    logged; nothing raised by a probe escapes the loop.

    Example:
        ```python
        monitor = HealthMonitor(registry, interval_seconds=30)
        monitor.start()
        ...
        await monitor.stop()
        ```
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        interval_seconds: float = 30.0,
        initial_delay_seconds: float = 5.0,
        probe_timeout_seconds: float = 10.0,
    ) -> None:
        self.registry = registry
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self.probe_timeout_seconds = probe_timeout_seconds
        self._task: asyncio.Task[None] | None = None
        self._cycles = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def cycles(self) -> int:
        """Number of completed probe cycles."""
        return self._cycles

    async def probe(self, provider_id: str) -> HealthState:
        """Probe one provider and record the outcome.

        Raises:
            ProviderNotFound: If the provider is not registered
        """
        provider = self.registry.get(provider_id)
        try:
            result = await asyncio.wait_for(
                provider.handle.probe(),
                timeout=self.probe_timeout_seconds,
            )
        except TimeoutError:
            result = ProbeResult(
                success=False,
                latency_ms=self.probe_timeout_seconds * 1000,
                error="probe timed out",
            )
        except Exception as exc:
            result = ProbeResult(success=False, error=str(exc) or type(exc).__name__)

        if result.success:
            logger.debug("Probe ok: %s (%.1fms)", provider_id, result.latency_ms or 0.0)
        else:
            logger.warning("Health check failed for %s: %s", provider_id, result.error)

        return self.registry.record_probe(provider_id, result)

    async def probe_all(self) -> dict[str, HealthState]:
        """Probe every registered provider concurrently."""
        provider_ids = [provider.id for provider in self.registry.providers()]
        if not provider_ids:
            return {}

        logger.debug("Probing %d providers", len(provider_ids))
        results = await asyncio.gather(
            *(self.probe(pid) for pid in provider_ids),
            return_exceptions=True,
        )

        states: dict[str, HealthState] = {}
        for pid, outcome in zip(provider_ids, results, strict=True):
            if isinstance(outcome, HealthState):
                states[pid] = outcome
            elif isinstance(outcome, BaseException):
                # Provider unregistered mid-cycle
                logger.warning("Skipped probe result for %s: %s", pid, outcome)
        self._cycles += 1
        return states

    async def _run(self) -> None:
        await asyncio.sleep(self.initial_delay_seconds)
        while True:
            try:
                await self.probe_all()
            except Exception:
                logger.exception("Health probe cycle failed; continuing on next tick")
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        """Start the probe loop on the running event loop."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="provider-health-monitor")
        logger.info(
            "Health monitor started (interval=%.1fs, initial_delay=%.1fs)",
            self.interval_seconds,
            self.initial_delay_seconds,
        )

    async def stop(self) -> None:
        """Cancel the probe loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Health monitor stopped")

    def get_stats(self) -> dict[str, Any]:
        return {
            "running": self.is_running,
            "cycles": self._cycles,
            "interval_seconds": self.interval_seconds,
        }
