"""Bounded advisory review for high-risk requests."""

from __future__ import annotations

import json
import time
from typing import Any

import httpx
from pydantic import ValidationError

from ..broker import CapabilityBroker, InvokeOptions
from ..core.config import CouncilConfig
from ..core.exceptions import (
    AllProvidersFailed,
    CouncilTimeout,
    CouncilUnavailable,
    MaxRetriesExceeded,
    RouterError,
)
from ..core.logger import get_logger
from ..providers.base import CompletionResponse
from .base import Complexity, CouncilVerdict, Intent, Urgency
from .specialists import Specialist

logger = get_logger("routing.council")

COUNCIL_MEMBERS = ("security", "research", "learning")
COUNCIL_FLAGS = ("missing_source", "risky_action", "cost_spike")
UNAVAILABLE_REASON = "council_unavailable"

COUNCIL_PROMPT = """Brief council review (max 20 words):
Message: "{message}"
Target specialist: {specialist}
Intent: {category} ({confidence:.2f} confidence)

Flags to check: {flags}

Respond with JSON: {{"flags": ["flag1", "flag2"],
"recommendation": "proceed|caution|block", "reason": "brief reason"}}"""


class CouncilReviewer:
    """Runs a single, soft-time-boxed review call through the broker.

    The time budget is measured and reported on the verdict but never used
    to cancel the in-flight call. Any failure produces a ``proceed`` verdict
    with reason ``council_unavailable``.
    """

    def __init__(
        self,
        broker: CapabilityBroker,
        config: CouncilConfig | None = None,
        budget_ms: float = 120.0,
        service: str = "completion",
        max_tokens: int = 100,
        temperature: float = 0.1,
    ) -> None:
        self.broker = broker
        self.config = config or CouncilConfig()
        self.budget_ms = budget_ms
        self.service = service
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._reviews = 0
        self._unavailable = 0
        self._over_budget = 0

    def requires_review(self, intent: Intent, specialist: Specialist) -> bool:
        if not self.config.enabled:
            return False
        if intent.urgency is Urgency.HIGH and intent.complexity is Complexity.COMPLEX:
            return True
        threshold = self.config.finance_token_threshold
        if specialist.handles_finance and intent.estimated_tokens > threshold:
            return True
        return specialist.handles_security

    async def review(self, message: str, intent: Intent, specialist: Specialist) -> CouncilVerdict:
        self._reviews += 1
        logger.info("Council review for %s: %s", specialist.id, ", ".join(COUNCIL_MEMBERS))
        start = time.perf_counter()
        try:
            verdict = await self._request_verdict(message, intent, specialist)
        except CouncilUnavailable as exc:
            elapsed_ms = (time.perf_counter() - start) * 1000
            self._unavailable += 1
            logger.warning("Council review failed, proceeding by default: %s", exc)
            return CouncilVerdict(
                recommendation="proceed",
                reason=UNAVAILABLE_REASON,
                elapsed_ms=elapsed_ms,
                within_budget=elapsed_ms <= self.budget_ms,
            )

        elapsed_ms = (time.perf_counter() - start) * 1000
        within_budget = elapsed_ms <= self.budget_ms
        if not within_budget:
            self._over_budget += 1
            logger.warning(
                "Council review took %.1fms (budget %dms)", elapsed_ms, self.budget_ms
            )
        logger.info("Council decision: %s (%.1fms)", verdict["recommendation"], elapsed_ms)
        return CouncilVerdict(**verdict, elapsed_ms=elapsed_ms, within_budget=within_budget)

    async def _request_verdict(
        self, message: str, intent: Intent, specialist: Specialist
    ) -> dict[str, Any]:
        prompt = COUNCIL_PROMPT.format(
            message=message,
            specialist=specialist.id,
            category=intent.category.value,
            confidence=intent.confidence,
            flags=", ".join(COUNCIL_FLAGS),
        )
        params = {
            "model": self.config.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        try:
            response = await self.broker.invoke_with_fallback(
                self.service,
                "chat",
                params,
                InvokeOptions(max_retries=self.config.max_retries),
            )
        except AllProvidersFailed as exc:
            if exc.errors and all(_timed_out(err) for err in exc.errors.values()):
                raise CouncilTimeout(f"Council review timed out: {exc}") from exc
            raise CouncilUnavailable(str(exc)) from exc
        except RouterError as exc:
            raise CouncilUnavailable(str(exc)) from exc

        text = response.text if isinstance(response, CompletionResponse) else str(response)
        return parse_verdict(text)

    def get_stats(self) -> dict[str, Any]:
        return {
            "reviews": self._reviews,
            "unavailable": self._unavailable,
            "over_budget": self._over_budget,
            "budget_ms": self.budget_ms,
        }


def parse_verdict(text: str) -> dict[str, Any]:
    """Validate a council reply into verdict fields.

    Raises:
        CouncilUnavailable: If the reply is not a valid verdict
    """
    cleaned = text.strip().removeprefix("```json").removeprefix("```").removesuffix("```").strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise CouncilUnavailable(f"Council reply is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise CouncilUnavailable("Council reply is not a JSON object")
    flags = data.get("flags") or []
    if isinstance(flags, str):
        flags = [flags]
    if not isinstance(flags, list):
        raise CouncilUnavailable("Council reply flags must be a list of strings")
    try:
        verdict = CouncilVerdict(
            flags=flags,
            recommendation=data.get("recommendation", "proceed"),
            reason=str(data.get("reason", "")),
        )
    except (ValidationError, TypeError) as exc:
        raise CouncilUnavailable(f"Council reply failed validation: {exc}") from exc
    return verdict.model_dump(include={"flags", "recommendation", "reason"})


def _timed_out(error: Exception) -> bool:
    if isinstance(error, MaxRetriesExceeded):
        error = error.last_error  # type: ignore[assignment]
    return isinstance(error, (TimeoutError, httpx.TimeoutException))
