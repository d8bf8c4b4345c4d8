"""Custom exceptions for the capability router."""

from __future__ import annotations


class RouterError(Exception):
    """Base exception for capability router errors."""

    pass


class ConfigurationError(RouterError):
    """Raised when router configuration is invalid."""

    def __init__(self, message: str, config_key: str | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Error message
            config_key: Configuration key that is invalid
        """
        self.config_key = config_key
        super().__init__(message)


class ProviderError(RouterError):
    """Base exception for faults attributed to one provider."""

    def __init__(self, message: str, provider_id: str | None = None) -> None:
        self.provider_id = provider_id
        super().__init__(message)


class DuplicateProvider(ProviderError):
    """Raised when a provider id is re-registered with a different capability kind."""

    def __init__(self, provider_id: str, existing_kind: str, new_kind: str) -> None:
        self.existing_kind = existing_kind
        self.new_kind = new_kind
        super().__init__(
            f"Provider '{provider_id}' already registered as {existing_kind}, not {new_kind}",
            provider_id=provider_id,
        )


class ProviderNotFound(ProviderError):
    """Raised when a provider id is not registered."""

    def __init__(self, provider_id: str) -> None:
        super().__init__(f"Provider '{provider_id}' is not registered", provider_id=provider_id)


class UnsupportedOperation(ProviderError):
    """Raised when an operation is not part of a provider's capability kind."""

    def __init__(self, provider_id: str | None, kind: str, operation: str) -> None:
        self.kind = kind
        self.operation = operation
        super().__init__(
            f"Operation '{operation}' is not supported by {kind} provider '{provider_id}'",
            provider_id=provider_id,
        )


class ProviderUnhealthy(ProviderError):
    """Raised when the provider circuit is open. No call was attempted."""

    def __init__(self, provider_id: str, consecutive_failures: int) -> None:
        self.consecutive_failures = consecutive_failures
        super().__init__(
            f"Provider '{provider_id}' is unhealthy ({consecutive_failures} consecutive failures)",
            provider_id=provider_id,
        )


class MaxRetriesExceeded(ProviderError):
    """Raised when the retry budget for a provider/operation pair is exhausted."""

    def __init__(
        self,
        provider_id: str,
        operation: str,
        attempts: int,
        last_error: Exception | None = None,
    ) -> None:
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error else ""
        super().__init__(
            f"Max retries exceeded for {provider_id}.{operation} ({attempts} attempts){detail}",
            provider_id=provider_id,
        )


class AllProvidersFailed(RouterError):
    """Raised when every provider in a fallback chain failed."""

    def __init__(self, service: str, errors: dict[str, Exception]) -> None:
        self.service = service
        self.errors = errors
        summary = "; ".join(f"{pid}: {exc}" for pid, exc in errors.items())
        super().__init__(f"All providers failed for service '{service}': {summary}")


class ClassificationFailed(RouterError):
    """Raised internally when intent classification cannot produce an Intent."""

    pass


class CouncilUnavailable(RouterError):
    """Raised internally when the council review cannot produce a verdict."""

    pass


class CouncilTimeout(CouncilUnavailable):
    """Raised internally when the council call timed out."""

    pass


class BudgetExceeded(RouterError):
    """Raised when a request would push daily spend past the budget."""

    def __init__(self, current_spend: float, estimated_cost: float, daily_budget: float) -> None:
        self.current_spend = current_spend
        self.estimated_cost = estimated_cost
        self.daily_budget = daily_budget
        super().__init__(
            f"Daily budget exceeded: ${current_spend:.2f} + ${estimated_cost:.4f} "
            f"> ${daily_budget:.2f}"
        )
