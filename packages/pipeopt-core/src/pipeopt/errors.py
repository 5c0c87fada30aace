"""Error taxonomy for backends, middleware, evaluation and optimization."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pipeopt.middleware.circuit_breaker import BreakerState


class PipeoptError(Exception):
    """Base class for all pipeopt errors."""


class BackendError(PipeoptError):
    """A provider call failed.

    ``status`` is the HTTP-like status code when the provider reported one and
    ``error_type`` the provider's own error category (e.g. ``rate_limit_exceeded``).
    The retry middleware inspects both to decide whether a failure is transient.
    """

    def __init__(
        self,
        message: str,
        status: int | None = None,
        error_type: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.error_type = error_type
        self.details = details or {}


class CircuitOpenError(PipeoptError):
    """Raised without calling the inner backend while the breaker is open."""

    def __init__(self, state: BreakerState) -> None:
        super().__init__(
            f"Circuit breaker is open ({state.failures} failures, "
            f"status={state.status.value})"
        )
        self.state = state


class OperationCancelledError(PipeoptError, TimeoutError):
    """An operation lost a ``cancel_after`` race."""

    def __init__(self, timeout_ms: float) -> None:
        super().__init__(f"Operation timed out and was cancelled after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class MetricRangeError(PipeoptError, ValueError):
    """A metric returned a non-number or a value outside [0.0, 1.0]."""

    def __init__(self, metric: str, score: object) -> None:
        super().__init__(
            f"Metric {metric!r} must return a number between 0.0 and 1.0, got {score!r}"
        )
        self.metric = metric
        self.score = score


class ConfigurationError(PipeoptError, ValueError):
    """Malformed configuration detected before any work starts."""


class UnknownProviderError(ConfigurationError):
    def __init__(self, provider: str | None, supported: list[str]) -> None:
        super().__init__(f"Unknown backend provider {provider!r}. Supported: {supported}")
        self.provider = provider
        self.supported = supported


class UnknownMetricError(ConfigurationError):
    def __init__(self, metric: object, available: list[str]) -> None:
        super().__init__(f"Unknown metric {metric!r}. Available: {available}")
        self.metric = metric
        self.available = available


class UnknownStrategyError(ConfigurationError):
    def __init__(self, strategy: str, available: list[str]) -> None:
        super().__init__(f"Unknown optimization strategy {strategy!r}. Available: {available}")
        self.strategy = strategy
        self.available = available


class InvalidDatasetError(ConfigurationError):
    """Dataset shape is not supported."""
