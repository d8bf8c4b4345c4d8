"""External capability providers.

This package holds the provider model, the registry that owns provider
health state, the background health monitor, and concrete handles for:
- Completion (OpenAI-compatible, local fallback)
- Transcription (OpenAI audio)
- Synthesis (ElevenLabs)
- Telephony (Twilio)
- Messaging (Telegram)
- Vector store (Pinecone)
- Structured store (Supabase)
- Web search (Brave, DuckDuckGo)
"""

from .base import (
    KIND_OPERATIONS,
    CapabilityKind,
    CompletionResponse,
    HealthState,
    ProbeResult,
    Provider,
    ProviderHandle,
)
from .handles import HANDLE_TYPES, SearchResult, VectorMatch, build_handle
from .monitor import HealthMonitor
from .registry import ProviderRegistry

__all__ = [
    "CapabilityKind",
    "KIND_OPERATIONS",
    "CompletionResponse",
    "HealthState",
    "ProbeResult",
    "Provider",
    "ProviderHandle",
    "ProviderRegistry",
    "HealthMonitor",
    "HANDLE_TYPES",
    "SearchResult",
    "VectorMatch",
    "build_handle",
]
