"""Specialist catalog and target selection."""

from __future__ import annotations

import threading
from typing import Any

from pydantic import BaseModel, Field

from ..core.logger import get_logger
from .base import Intent, IntentCategory, RoutingContext

logger = get_logger("routing.specialists")


class Specialist(BaseModel):
    """A downstream agent that handles one category of request.

    Attributes:
        id: Identifier returned as the routing target
        name: Display name
        role: Short role description
        categories: Intent categories this specialist serves
        capabilities: Capability tags
        handles_finance: Handles sensitive financial matters
        handles_security: Handles security matters
        available: Whether the specialist accepts new work
    """

    id: str = Field(description="Specialist identifier")
    name: str = Field(description="Display name")
    role: str = Field(default="", description="Role description")
    categories: list[IntentCategory] = Field(default_factory=list)
    capabilities: list[str] = Field(default_factory=list)
    handles_finance: bool = False
    handles_security: bool = False
    available: bool = True


class SpecialistMetrics(BaseModel):
    """Outcome counters for one specialist."""

    requests: int = 0
    successes: int = 0
    failures: int = 0
    total_latency_ms: float = 0.0
    latency_samples: int = 0
    total_cost: float = 0.0

    @property
    def error_rate(self) -> float:
        return self.failures / self.requests if self.requests else 0.0

    @property
    def avg_latency_ms(self) -> float:
        return self.total_latency_ms / self.latency_samples if self.latency_samples else 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "requests": self.requests,
            "successes": self.successes,
            "error_rate": round(self.error_rate, 4),
            "avg_latency_ms": round(self.avg_latency_ms, 2),
            "total_cost": round(self.total_cost, 6),
        }


DEFAULT_SPECIALISTS: tuple[Specialist, ...] = (
    Specialist(
        id="coordinator",
        name="Coordinator",
        role="general assistance and hand-off",
        categories=[IntentCategory.GENERAL],
        capabilities=["conversation", "planning"],
    ),
    Specialist(
        id="security",
        name="Security",
        role="threat analysis and account safety",
        categories=[IntentCategory.SECURITY],
        capabilities=["analysis", "audit"],
        handles_security=True,
    ),
    Specialist(
        id="creative",
        name="Creative",
        role="ideation and creative writing",
        categories=[IntentCategory.CREATIVE],
        capabilities=["creative_writing", "design"],
    ),
    Specialist(
        id="research",
        name="Research",
        role="web research and synthesis",
        categories=[IntentCategory.RESEARCH],
        capabilities=["search", "summarization"],
    ),
    Specialist(
        id="learning",
        name="Learning",
        role="tutoring and explanations",
        categories=[IntentCategory.LEARNING],
        capabilities=["explanation", "quizzes"],
    ),
    Specialist(
        id="content",
        name="Content",
        role="posts, scripts and copy",
        categories=[IntentCategory.CONTENT],
        capabilities=["copywriting", "editing"],
    ),
    Specialist(
        id="fashion",
        name="Fashion",
        role="style and wardrobe advice",
        categories=[IntentCategory.FASHION],
        capabilities=["recommendation"],
    ),
    Specialist(
        id="finance",
        name="Finance",
        role="budgets, markets and portfolios",
        categories=[IntentCategory.FINANCE],
        capabilities=["analysis", "math"],
        handles_finance=True,
    ),
    Specialist(
        id="fitness",
        name="Fitness",
        role="training plans and nutrition",
        categories=[IntentCategory.FITNESS],
        capabilities=["planning", "coaching"],
    ),
)


class SpecialistCatalog:
    """Registry of specialists with per-specialist outcome metrics."""

    def __init__(
        self,
        specialists: list[Specialist] | tuple[Specialist, ...] | None = None,
        default_id: str = "coordinator",
    ) -> None:
        entries = specialists if specialists is not None else DEFAULT_SPECIALISTS
        self._specialists: dict[str, Specialist] = {s.id: s.model_copy() for s in entries}
        if default_id not in self._specialists:
            raise ValueError(f"Default specialist '{default_id}' is not in the catalog")
        self.default_id = default_id
        self._by_category: dict[IntentCategory, str] = {}
        for specialist in self._specialists.values():
            for category in specialist.categories:
                self._by_category.setdefault(category, specialist.id)
        self._metrics: dict[str, SpecialistMetrics] = {
            sid: SpecialistMetrics() for sid in self._specialists
        }
        self._lock = threading.Lock()

    def get(self, specialist_id: str) -> Specialist | None:
        return self._specialists.get(specialist_id)

    def list(self) -> list[Specialist]:
        return list(self._specialists.values())

    def is_available(self, specialist_id: str) -> bool:
        specialist = self._specialists.get(specialist_id)
        return specialist is not None and specialist.available

    def set_available(self, specialist_id: str, available: bool) -> bool:
        specialist = self._specialists.get(specialist_id)
        if specialist is None:
            return False
        specialist.available = available
        logger.info("Specialist %s %s", specialist_id, "enabled" if available else "disabled")
        return True

    @property
    def default(self) -> Specialist:
        return self._specialists[self.default_id]

    def select(self, intent: Intent, context: RoutingContext | None = None) -> Specialist:
        """Choose the target specialist for an intent.

        A preferred specialist from the context wins when it is known and
        available. Otherwise the category's specialist is used, falling back
        to the default when that one is unavailable.
        """
        if context is not None and context.preferred_specialist:
            preferred = context.preferred_specialist
            if self.is_available(preferred):
                return self._specialists[preferred]
            logger.warning("Preferred specialist %s is unknown or unavailable", preferred)

        specialist_id = self._by_category.get(intent.category, self.default_id)
        if not self.is_available(specialist_id):
            logger.warning(
                "Specialist %s unavailable, routing to %s", specialist_id, self.default_id
            )
            specialist_id = self.default_id
        return self._specialists[specialist_id]

    def record_outcome(
        self,
        specialist_id: str,
        success: bool,
        latency_ms: float | None = None,
        cost: float | None = None,
    ) -> None:
        with self._lock:
            metrics = self._metrics.setdefault(specialist_id, SpecialistMetrics())
            metrics.requests += 1
            if success:
                metrics.successes += 1
            else:
                metrics.failures += 1
            if latency_ms is not None:
                metrics.total_latency_ms += latency_ms
                metrics.latency_samples += 1
            if cost is not None:
                metrics.total_cost += cost

    def metrics(self, specialist_id: str) -> SpecialistMetrics | None:
        with self._lock:
            metrics = self._metrics.get(specialist_id)
            return metrics.model_copy() if metrics else None

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            return {sid: metrics.as_dict() for sid, metrics in self._metrics.items()}
