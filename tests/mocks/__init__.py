"""Mock objects for testing."""

from .fake_handles import (
    FakeCompletionHandle,
    FakeHandle,
    FakeSearchHandle,
    FakeVectorHandle,
    completion,
)

__all__ = [
    "FakeHandle",
    "FakeCompletionHandle",
    "FakeSearchHandle",
    "FakeVectorHandle",
    "completion",
]
