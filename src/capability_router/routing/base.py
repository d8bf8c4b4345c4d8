"""Base types and models for the routing pipeline.

This module provides the enums and models shared by the classifier, tier
selector, memory assembler, cost sentinel, council reviewer and orchestrator.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ..core.config import QoSTierConfig


class IntentCategory(str, Enum):
    """Closed set of request categories."""

    SECURITY = "security"
    CREATIVE = "creative"
    RESEARCH = "research"
    LEARNING = "learning"
    CONTENT = "content"
    FASHION = "fashion"
    FINANCE = "finance"
    FITNESS = "fitness"
    GENERAL = "general"


class Complexity(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Intent(BaseModel):
    """Classification result for one inbound message.

    Attributes:
        category: Request category
        confidence: Classifier confidence (0.0-1.0)
        complexity: Estimated complexity
        urgency: Estimated urgency
        requires_tools: Whether external tools are likely needed
        estimated_tokens: Estimated token cost of handling the request
        has_context: Caller supplied a conversation id
        is_follow_up: Caller supplied a previous message
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    category: IntentCategory = IntentCategory.GENERAL
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    complexity: Complexity = Complexity.MODERATE
    urgency: Urgency = Urgency.MEDIUM
    requires_tools: bool = Field(
        default=False,
        validation_alias=AliasChoices("requires_tools", "requiresTools"),
    )
    estimated_tokens: int = Field(
        default=500,
        ge=0,
        validation_alias=AliasChoices("estimated_tokens", "estimatedTokens"),
    )
    has_context: bool = False
    is_follow_up: bool = False


DEFAULT_INTENT = Intent()


class RoutingContext(BaseModel):
    """Caller-supplied context for one routing request."""

    is_voice: bool = False
    is_call: bool = False
    urgency_hint: Urgency | None = None
    preferred_specialist: str | None = None
    conversation_id: str | None = None
    previous_message: str | None = None

    @property
    def is_realtime(self) -> bool:
        return self.is_voice or self.is_call


class MemoryTier(str, Enum):
    SHORT_TERM = "short_term"
    MID_TERM = "mid_term"
    LONG_TERM = "long_term"


class MemoryItem(BaseModel):
    """One remembered item with the time it was stored."""

    model_config = ConfigDict(frozen=True)

    key: str
    content: Any
    tier: MemoryTier
    timestamp: float = Field(description="Clock reading when stored")
    access_count: int = 0
    score: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class MemoryContext(BaseModel):
    """Snapshot of memory attached to a routing decision."""

    model_config = ConfigDict(frozen=True)

    short_term: list[MemoryItem] = Field(default_factory=list)
    mid_term: list[MemoryItem] = Field(default_factory=list)
    long_term: list[MemoryItem] = Field(default_factory=list)
    pins: list[MemoryItem] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.short_term or self.mid_term or self.long_term or self.pins)


class CouncilVerdict(BaseModel):
    """Advisory verdict from the council review."""

    model_config = ConfigDict(frozen=True)

    flags: frozenset[str] = Field(default_factory=frozenset)
    recommendation: Literal["proceed", "caution", "block"] = "proceed"
    reason: str = ""
    elapsed_ms: float = 0.0
    within_budget: bool = True


class DecisionTiming(BaseModel):
    """Timing metadata for one routing decision."""

    model_config = ConfigDict(frozen=True)

    started_at: datetime
    total_ms: float
    stages_ms: dict[str, float] = Field(default_factory=dict)


def new_decision_id() -> str:
    return str(uuid.uuid4())


class RoutingDecision(BaseModel):
    """Successful routing result consumed by the chat/voice handler."""

    model_config = ConfigDict(frozen=True)

    id: str
    intent: Intent
    target_specialist: str
    qos_tier: QoSTierConfig
    memory_context: MemoryContext
    council_verdict: CouncilVerdict | None = None
    estimated_cost: float = 0.0
    timing: DecisionTiming
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    error: Literal[False] = False


class RejectedDecision(BaseModel):
    """Routing rejection carrying a human-readable reason."""

    model_config = ConfigDict(frozen=True)

    id: str
    reason: str
    error_kind: Literal["budget_exceeded", "routing_failed"]
    target_specialist: str
    qos_tier: QoSTierConfig
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    error: Literal[True] = True
