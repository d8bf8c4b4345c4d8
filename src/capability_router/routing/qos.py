"""QoS tier selection."""

from __future__ import annotations

from collections.abc import Mapping

from ..core.config import QoSTierConfig
from ..core.logger import get_logger
from .base import Complexity, Intent, IntentCategory, RoutingContext, Urgency

logger = get_logger("routing.qos")

REALTIME = "realtime"
INTERACTIVE = "interactive"
BATCH = "batch"


def select_tier_name(intent: Intent, context: RoutingContext | None = None) -> str:
    """Pick a tier name. Rules are evaluated top to bottom, first match wins.

    1. voice or call turn -> realtime
    2. high urgency -> interactive
    3. complex research -> batch
    4. otherwise -> interactive
    """
    if context is not None and context.is_realtime:
        return REALTIME
    if intent.urgency is Urgency.HIGH:
        return INTERACTIVE
    if intent.complexity is Complexity.COMPLEX and intent.category is IntentCategory.RESEARCH:
        return BATCH
    return INTERACTIVE


def select_qos_tier(
    intent: Intent,
    context: RoutingContext | None,
    tiers: Mapping[str, QoSTierConfig],
) -> QoSTierConfig:
    """Resolve the tier for an intent against the configured tier table."""
    name = select_tier_name(intent, context)
    tier = tiers[name]
    logger.info("Selected QoS tier %s for %s request", tier.name, intent.category.value)
    return tier
