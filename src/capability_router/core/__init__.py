"""Core configuration, logging and error types."""

from .config import (
    CouncilConfig,
    LoggingConfig,
    MemoryConfig,
    ProviderSettings,
    QoSTierConfig,
    RouterConfig,
    SchedulerConfig,
)
from .exceptions import (
    AllProvidersFailed,
    BudgetExceeded,
    ClassificationFailed,
    ConfigurationError,
    CouncilTimeout,
    CouncilUnavailable,
    DuplicateProvider,
    MaxRetriesExceeded,
    ProviderError,
    ProviderNotFound,
    ProviderUnhealthy,
    RouterError,
    UnsupportedOperation,
)
from .logger import get_logger, setup_logging

__all__ = [
    "RouterConfig",
    "LoggingConfig",
    "ProviderSettings",
    "QoSTierConfig",
    "MemoryConfig",
    "CouncilConfig",
    "SchedulerConfig",
    "RouterError",
    "ConfigurationError",
    "ProviderError",
    "DuplicateProvider",
    "ProviderNotFound",
    "UnsupportedOperation",
    "ProviderUnhealthy",
    "MaxRetriesExceeded",
    "AllProvidersFailed",
    "ClassificationFailed",
    "CouncilUnavailable",
    "CouncilTimeout",
    "BudgetExceeded",
    "get_logger",
    "setup_logging",
]
