"""Daily budget gate for routed requests."""

from __future__ import annotations

import math
import threading
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..core.config import QoSTierConfig
from ..core.exceptions import BudgetExceeded
from ..core.logger import get_logger

logger = get_logger("routing.cost")

CHARS_PER_TOKEN = 3


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CostLedger(BaseModel):
    """Snapshot of the running spend counters."""

    model_config = ConfigDict(frozen=True)

    daily_spend: float = 0.0
    monthly_spend: float = 0.0
    requests: int = 0
    tokens: int = 0
    daily_budget: float = 0.0
    remaining_budget: float = 0.0
    last_reset_at: datetime = Field(default_factory=_utcnow)


class CostCheck(BaseModel):
    """Result of an admitted budget check."""

    model_config = ConfigDict(frozen=True)

    estimated_cost: float
    estimated_tokens: int
    remaining_budget: float


def estimate_tokens(message: str) -> int:
    return math.ceil(len(message) / CHARS_PER_TOKEN)


class CostSentinel:
    """Gates requests against a daily spending budget.

    A check either reserves its estimate against the ledger or rejects the
    request outright; there is no queueing or degradation.
    """

    def __init__(
        self,
        daily_budget: float = 10.0,
        unit_prices: Mapping[str, float] | None = None,
        fallback_price_model: str = "gpt-3.5-turbo",
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize the sentinel.

        Args:
            daily_budget: Spend ceiling per day
            unit_prices: Model name to price per 1K tokens
            fallback_price_model: Model whose price applies to unpriced models
            now: Wall clock used for reset bookkeeping
        """
        self.daily_budget = daily_budget
        self.unit_prices = dict(unit_prices or {"gpt-3.5-turbo": 0.0015, "gpt-4": 0.03})
        self.fallback_price_model = fallback_price_model
        self._now = now
        self._lock = threading.Lock()
        self._daily_spend = 0.0
        self._monthly_spend = 0.0
        self._requests = 0
        self._tokens = 0
        self._rejections = 0
        self._last_reset_at = now()

    def unit_price(self, model: str) -> float:
        """Price per 1K tokens; unknown models are charged at the fallback model's price."""
        if model in self.unit_prices:
            return self.unit_prices[model]
        return self.unit_prices.get(self.fallback_price_model, 0.0)

    def estimate_cost(self, qos_tier: QoSTierConfig, message: str) -> float:
        tokens = estimate_tokens(message)
        return tokens * self.unit_price(qos_tier.model) / 1000 * qos_tier.cost_multiplier

    def check(self, qos_tier: QoSTierConfig, message: str) -> CostCheck:
        """Reserve the estimated cost of a request against today's budget.

        Raises:
            BudgetExceeded: If the estimate would push spend past the budget
        """
        tokens = estimate_tokens(message)
        estimate = self.estimate_cost(qos_tier, message)

        with self._lock:
            if self._daily_spend + estimate > self.daily_budget:
                self._rejections += 1
                current = self._daily_spend
                exceeded = True
            else:
                self._daily_spend += estimate
                self._monthly_spend += estimate
                self._requests += 1
                self._tokens += tokens
                remaining = self.daily_budget - self._daily_spend
                exceeded = False

        if exceeded:
            logger.warning(
                "Budget exceeded: $%.4f spent, $%.4f estimated, $%.2f budget",
                current,
                estimate,
                self.daily_budget,
            )
            raise BudgetExceeded(current, estimate, self.daily_budget)

        return CostCheck(
            estimated_cost=estimate, estimated_tokens=tokens, remaining_budget=remaining
        )

    def reconcile(self, estimated_cost: float, actual_cost: float) -> None:
        """Replace a reserved estimate with the reported actual cost."""
        delta = actual_cost - estimated_cost
        with self._lock:
            self._daily_spend = max(0.0, self._daily_spend + delta)
            self._monthly_spend = max(0.0, self._monthly_spend + delta)

    def reset(self) -> None:
        """Zero the daily counters. The monthly counter rolls over with the month."""
        now = self._now()
        with self._lock:
            spent = self._daily_spend
            if (now.year, now.month) != (self._last_reset_at.year, self._last_reset_at.month):
                self._monthly_spend = 0.0
            self._daily_spend = 0.0
            self._requests = 0
            self._tokens = 0
            self._last_reset_at = now
        logger.info("Daily cost counters reset (previous spend $%.4f)", spent)

    def status(self) -> CostLedger:
        with self._lock:
            return CostLedger(
                daily_spend=self._daily_spend,
                monthly_spend=self._monthly_spend,
                requests=self._requests,
                tokens=self._tokens,
                daily_budget=self.daily_budget,
                remaining_budget=max(0.0, self.daily_budget - self._daily_spend),
                last_reset_at=self._last_reset_at,
            )

    def get_stats(self) -> dict[str, Any]:
        stats = self.status().model_dump(mode="json")
        stats["rejections"] = self._rejections
        return stats
