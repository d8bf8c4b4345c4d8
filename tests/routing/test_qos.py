"""Tests for QoS tier selection."""

from __future__ import annotations

import pytest

from capability_router.core.config import RouterConfig
from capability_router.routing import (
    Complexity,
    Intent,
    IntentCategory,
    RoutingContext,
    Urgency,
    select_qos_tier,
)
from capability_router.routing.qos import select_tier_name


@pytest.fixture
def tiers():
    return RouterConfig().qos_tiers


class TestSelectTier:
    def test_voice_is_realtime(self):
        assert select_tier_name(Intent(), RoutingContext(is_voice=True)) == "realtime"

    def test_call_is_realtime(self):
        assert select_tier_name(Intent(), RoutingContext(is_call=True)) == "realtime"

    def test_realtime_beats_urgency_and_batch(self):
        intent = Intent(
            category=IntentCategory.RESEARCH,
            complexity=Complexity.COMPLEX,
            urgency=Urgency.HIGH,
        )

        assert select_tier_name(intent, RoutingContext(is_voice=True)) == "realtime"

    def test_high_urgency_beats_complex_research(self):
        intent = Intent(
            category=IntentCategory.RESEARCH,
            complexity=Complexity.COMPLEX,
            urgency=Urgency.HIGH,
        )

        assert select_tier_name(intent) == "interactive"

    def test_complex_research_is_batch(self):
        intent = Intent(category=IntentCategory.RESEARCH, complexity=Complexity.COMPLEX)

        assert select_tier_name(intent, RoutingContext()) == "batch"

    def test_complex_other_category_is_interactive(self):
        intent = Intent(category=IntentCategory.FINANCE, complexity=Complexity.COMPLEX)

        assert select_tier_name(intent) == "interactive"

    def test_default_is_interactive(self):
        assert select_tier_name(Intent()) == "interactive"

    def test_resolves_configured_tier(self, tiers):
        tier = select_qos_tier(Intent(), RoutingContext(is_call=True), tiers)

        assert tier is tiers["realtime"]
        assert tier.max_tokens == 512
