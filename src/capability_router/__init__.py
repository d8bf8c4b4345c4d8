"""Capability Router.

Health-gated dispatch to external capability providers and per-message
routing to specialists:
- Provider registry with a background health monitor and circuit gate
- Capability broker with retry, exponential backoff and fallback chains
- Intent classification, QoS tiers, tiered memory and a daily cost gate
- Bounded council review for high-risk requests

Example:
    ```python
    from capability_router import RouterConfig, RoutingOrchestrator

    orchestrator = RoutingOrchestrator.from_config(RouterConfig.load("router.yaml"))
    orchestrator.start()
    decision = await orchestrator.route("What's the weather effect on my portfolio?")
    ```
"""

from importlib.metadata import PackageNotFoundError, version

from .broker import CapabilityBroker, FallbackChain, InvokeOptions
from .core import RouterConfig, get_logger, setup_logging
from .providers import HealthMonitor, Provider, ProviderRegistry
from .routing import RejectedDecision, RoutingContext, RoutingDecision, RoutingOrchestrator
from .scheduler import MaintenanceScheduler

__all__ = [
    "__version__",
    "RouterConfig",
    "CapabilityBroker",
    "FallbackChain",
    "InvokeOptions",
    "Provider",
    "ProviderRegistry",
    "HealthMonitor",
    "RoutingOrchestrator",
    "RoutingContext",
    "RoutingDecision",
    "RejectedDecision",
    "MaintenanceScheduler",
    "get_logger",
    "setup_logging",
]

try:  # pragma: no cover - best-effort during development
    __version__ = version("capability-router")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"
