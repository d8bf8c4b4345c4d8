"""Per-request routing pipeline.

This package provides:
- Intent classification with a content-hash cache
- QoS tier selection
- Tiered memory and context assembly
- Daily cost gating
- Specialist selection and council review
- The orchestrator composing them into a routing decision

Example:
    ```python
    from capability_router.routing import RoutingContext, RoutingOrchestrator

    orchestrator = RoutingOrchestrator.from_config(config)
    decision = await orchestrator.route("Plan my week", RoutingContext(is_voice=True))
    ```
"""

from .base import (
    DEFAULT_INTENT,
    Complexity,
    CouncilVerdict,
    DecisionTiming,
    Intent,
    IntentCategory,
    MemoryContext,
    MemoryItem,
    MemoryTier,
    RejectedDecision,
    RoutingContext,
    RoutingDecision,
    Urgency,
)
from .cost import CostCheck, CostLedger, CostSentinel
from .council import CouncilReviewer
from .intent import IntentCache, IntentClassifier, parse_intent
from .memory import MemoryContextAssembler, MemoryStore
from .orchestrator import RoutingOrchestrator
from .qos import select_qos_tier, select_tier_name
from .specialists import DEFAULT_SPECIALISTS, Specialist, SpecialistCatalog

__all__ = [
    "DEFAULT_INTENT",
    "Complexity",
    "CouncilVerdict",
    "DecisionTiming",
    "Intent",
    "IntentCategory",
    "MemoryContext",
    "MemoryItem",
    "MemoryTier",
    "RejectedDecision",
    "RoutingContext",
    "RoutingDecision",
    "Urgency",
    "CostCheck",
    "CostLedger",
    "CostSentinel",
    "CouncilReviewer",
    "IntentCache",
    "IntentClassifier",
    "parse_intent",
    "MemoryContextAssembler",
    "MemoryStore",
    "RoutingOrchestrator",
    "select_qos_tier",
    "select_tier_name",
    "DEFAULT_SPECIALISTS",
    "Specialist",
    "SpecialistCatalog",
]
