"""Test configuration hooks."""

import pytest

from capability_router.broker import CapabilityBroker
from capability_router.providers import Provider, ProviderRegistry
from tests.mocks import FakeCompletionHandle


# Configure anyio to only use asyncio backend (skip trio tests)
@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio to use only asyncio backend."""
    return "asyncio"


@pytest.fixture
def registry():
    """Empty provider registry with the default failure ceiling."""
    return ProviderRegistry(health_failure_ceiling=3)


@pytest.fixture
def completion_handle():
    return FakeCompletionHandle()


@pytest.fixture
def broker(registry, completion_handle):
    """Broker with one fake completion provider and no backoff delay."""
    registry.register(Provider("openai", completion_handle))
    return CapabilityBroker(
        registry,
        {"completion": ["openai"]},
        max_retries=3,
        backoff_base_seconds=0.0,
    )
