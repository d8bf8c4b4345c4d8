"""Routing orchestrator: composes the routing pipeline for each inbound message.

Stages run in a fixed order per request:
classify -> select tier -> assemble memory -> cost check -> select
specialist -> council review (only when risk criteria match).
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from ..broker import CapabilityBroker
from ..core.config import QoSTierConfig, RouterConfig
from ..core.exceptions import BudgetExceeded
from ..core.logger import get_logger
from ..providers.base import HealthState, Provider
from ..providers.handles import build_handle
from ..providers.monitor import HealthMonitor
from ..providers.registry import ProviderRegistry
from .base import (
    DecisionTiming,
    RejectedDecision,
    RoutingContext,
    RoutingDecision,
    new_decision_id,
)
from .cost import CostLedger, CostSentinel
from .council import CouncilReviewer
from .intent import IntentCache, IntentClassifier
from .memory import MemoryContextAssembler, MemoryStore
from .qos import INTERACTIVE, select_qos_tier
from .specialists import SpecialistCatalog

logger = get_logger("routing.orchestrator")


@dataclass
class _DecisionRecord:
    specialist_id: str
    estimated_cost: float


class RoutingOrchestrator:
    """Routes inbound messages to specialists.

    All shared state (registry, caches, memory, ledger) is owned by the
    components passed in; the orchestrator only sequences them.

    Example:
        ```python
        orchestrator = RoutingOrchestrator.from_config(RouterConfig.load("router.yaml"))
        decision = await orchestrator.route("What's the weather effect on my portfolio?")
        if not decision.error:
            print(decision.target_specialist, decision.qos_tier.name)
        ```
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        broker: CapabilityBroker,
        classifier: IntentClassifier,
        memory: MemoryContextAssembler,
        sentinel: CostSentinel,
        catalog: SpecialistCatalog,
        council: CouncilReviewer,
        qos_tiers: dict[str, QoSTierConfig],
        monitor: HealthMonitor | None = None,
        history_size: int = 1000,
    ) -> None:
        self.registry = registry
        self.broker = broker
        self.classifier = classifier
        self.memory = memory
        self.sentinel = sentinel
        self.catalog = catalog
        self.council = council
        self.qos_tiers = qos_tiers
        self.monitor = monitor
        self.history_size = history_size
        self._history: OrderedDict[str, _DecisionRecord] = OrderedDict()
        self._history_lock = threading.Lock()
        self._routed = 0
        self._rejected = 0

    @classmethod
    def from_config(cls, config: RouterConfig) -> RoutingOrchestrator:
        """Build the full component graph from configuration.

        Raises:
            ConfigurationError: If a provider handle cannot be built
            DuplicateProvider: If two providers share an id with different kinds
        """
        registry = ProviderRegistry(health_failure_ceiling=config.health_failure_ceiling)
        for settings in config.providers:
            if not settings.enabled:
                logger.debug("Skipping disabled provider %s", settings.id)
                continue
            registry.register(Provider(settings.id, build_handle(settings)))

        broker = CapabilityBroker(
            registry,
            config.fallback_chains,
            max_retries=config.max_retries,
            backoff_base_seconds=config.backoff_base_seconds,
        )
        cache = IntentCache(
            ttl_seconds=config.intent_cache_ttl_ms / 1000,
            max_size=config.intent_cache_max_size,
        )
        store = MemoryStore(config.memory)
        monitor = HealthMonitor(
            registry,
            interval_seconds=config.probe_interval_ms / 1000,
            initial_delay_seconds=config.probe_initial_delay_ms / 1000,
            probe_timeout_seconds=config.probe_timeout_ms / 1000,
        )
        return cls(
            registry=registry,
            broker=broker,
            classifier=IntentClassifier(broker, cache, model=config.classifier_model),
            memory=MemoryContextAssembler(store, registry, broker, config.memory),
            sentinel=CostSentinel(config.daily_budget, config.unit_prices),
            catalog=SpecialistCatalog(),
            council=CouncilReviewer(broker, config.council, budget_ms=config.council_budget_ms),
            qos_tiers=dict(config.qos_tiers),
            monitor=monitor,
        )

    async def route(
        self, message: str, context: RoutingContext | None = None
    ) -> RoutingDecision | RejectedDecision:
        """Route one message.

        Never raises for routing-step faults: budget exhaustion and unexpected
        errors come back as a ``RejectedDecision`` with a readable reason.
        """
        context = context or RoutingContext()
        decision_id = new_decision_id()
        started_at = datetime.now(UTC)
        start = time.perf_counter()
        stages: dict[str, float] = {}
        logger.debug("Routing %s", decision_id)

        tier: QoSTierConfig | None = None
        try:
            mark = time.perf_counter()
            intent = await self.classifier.classify(message, context)
            if context.urgency_hint is not None:
                intent = intent.model_copy(update={"urgency": context.urgency_hint})
            stages["classify"] = _elapsed_ms(mark)

            mark = time.perf_counter()
            tier = select_qos_tier(intent, context, self.qos_tiers)
            stages["qos"] = _elapsed_ms(mark)

            mark = time.perf_counter()
            memory_context = await self.memory.assemble(message, intent)
            stages["memory"] = _elapsed_ms(mark)

            mark = time.perf_counter()
            cost = self.sentinel.check(tier, message)
            stages["cost"] = _elapsed_ms(mark)

            mark = time.perf_counter()
            specialist = self.catalog.select(intent, context)
            stages["specialist"] = _elapsed_ms(mark)

            verdict = None
            if self.council.requires_review(intent, specialist):
                mark = time.perf_counter()
                verdict = await self.council.review(message, intent, specialist)
                stages["council"] = _elapsed_ms(mark)
        except BudgetExceeded as exc:
            self._rejected += 1
            return self._reject(
                decision_id, str(exc), "budget_exceeded", _budget_details(exc), tier
            )
        except Exception as exc:
            self._rejected += 1
            logger.exception("Routing failed for %s", decision_id)
            return self._reject(
                decision_id,
                f"Routing failed: {exc}",
                "routing_failed",
                {"error_type": type(exc).__name__},
                tier,
            )

        total_ms = _elapsed_ms(start)
        decision = RoutingDecision(
            id=decision_id,
            intent=intent,
            target_specialist=specialist.id,
            qos_tier=tier,
            memory_context=memory_context,
            council_verdict=verdict,
            estimated_cost=cost.estimated_cost,
            timing=DecisionTiming(started_at=started_at, total_ms=total_ms, stages_ms=stages),
        )
        self._remember(decision_id, _DecisionRecord(specialist.id, cost.estimated_cost))
        self._routed += 1
        logger.info("Routing complete: %s (%s) in %.1fms", specialist.id, tier.name, total_ms)
        return decision

    def _reject(
        self,
        decision_id: str,
        reason: str,
        error_kind: str,
        details: dict[str, Any],
        tier: QoSTierConfig | None = None,
    ) -> RejectedDecision:
        logger.warning("Routing %s rejected: %s", decision_id, reason)
        return RejectedDecision(
            id=decision_id,
            reason=reason,
            error_kind=error_kind,  # type: ignore[arg-type]
            target_specialist=self.catalog.default_id,
            qos_tier=tier or self.qos_tiers[INTERACTIVE],
            details=details,
        )

    def _remember(self, decision_id: str, record: _DecisionRecord) -> None:
        with self._history_lock:
            self._history[decision_id] = record
            while len(self._history) > self.history_size:
                self._history.popitem(last=False)

    def report_outcome(
        self,
        decision_id: str,
        success: bool,
        actual_cost: float | None = None,
        actual_latency: float | None = None,
    ) -> bool:
        """Feed the outcome of a routed request back into metrics.

        Args:
            decision_id: Id of a recent routing decision
            success: Whether the specialist call succeeded
            actual_cost: Actual spend, replacing the reserved estimate
            actual_latency: Specialist latency in milliseconds

        Returns:
            False if the decision is unknown or already reported
        """
        with self._history_lock:
            record = self._history.pop(decision_id, None)
        if record is None:
            logger.warning("Outcome reported for unknown decision %s", decision_id)
            return False

        self.catalog.record_outcome(record.specialist_id, success, actual_latency, actual_cost)
        if actual_cost is not None:
            self.sentinel.reconcile(record.estimated_cost, actual_cost)
        return True

    def get_health_snapshot(self) -> dict[str, HealthState]:
        return self.registry.snapshot()

    def get_cost_status(self) -> CostLedger:
        return self.sentinel.status()

    def get_status(self) -> dict[str, Any]:
        return {
            "routed": self._routed,
            "rejected": self._rejected,
            "cost": self.sentinel.get_stats(),
            "memory": self.memory.get_stats(),
            "intent_cache": self.classifier.cache.get_stats(),
            "classifier": self.classifier.get_stats(),
            "council": self.council.get_stats(),
            "specialists": self.catalog.get_stats(),
            "providers": self.registry.get_stats(),
            "broker": self.broker.get_stats(),
            "monitor": self.monitor.get_stats() if self.monitor else None,
        }

    def start(self) -> None:
        """Start the background health monitor, if one is attached."""
        if self.monitor is not None:
            self.monitor.start()

    async def aclose(self) -> None:
        if self.monitor is not None:
            await self.monitor.stop()
        await self.registry.aclose()


def _elapsed_ms(since: float) -> float:
    return (time.perf_counter() - since) * 1000


def _budget_details(exc: BudgetExceeded) -> dict[str, Any]:
    return {
        "current_spend": exc.current_spend,
        "estimated_cost": exc.estimated_cost,
        "daily_budget": exc.daily_budget,
    }
