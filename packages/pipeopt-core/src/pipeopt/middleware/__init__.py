"""Composable resilience middleware for backends.

Each wrapper takes a Backend and is itself a Backend, so stacks nest in any
order. ``with_middlewares`` applies them in a fixed order (throttle, retry,
circuit breaker, timeout, logging), each wrapping the previous one.
"""

from __future__ import annotations

from typing import Any, Mapping

from pipeopt.backend.base import Backend, is_backend
from pipeopt.config import MiddlewareConfig
from pipeopt.middleware.base import Middleware
from pipeopt.middleware.circuit_breaker import (
    BreakerState,
    CircuitBreakerBackend,
    CircuitStatus,
)
from pipeopt.middleware.logged import LoggingBackend
from pipeopt.middleware.retry import RetryingBackend, default_retryable
from pipeopt.middleware.throttle import ThrottledBackend
from pipeopt.middleware.timeout import TimeoutBackend

__all__ = [
    "BreakerState",
    "CircuitBreakerBackend",
    "CircuitStatus",
    "LoggingBackend",
    "Middleware",
    "RetryingBackend",
    "ThrottledBackend",
    "TimeoutBackend",
    "backend_info",
    "default_retryable",
    "unwrap_backend",
    "with_middlewares",
]


def with_middlewares(backend: Backend, config: MiddlewareConfig | Mapping[str, Any]) -> Backend:
    """Wrap ``backend`` with every middleware section present in ``config``."""
    if not isinstance(config, MiddlewareConfig):
        config = MiddlewareConfig.model_validate(dict(config))

    wrapped: Backend = backend
    if config.throttle is not None:
        wrapped = ThrottledBackend(wrapped, config.throttle)
    if config.retry is not None:
        wrapped = RetryingBackend(wrapped, config.retry)
    if config.circuit_breaker is not None:
        wrapped = CircuitBreakerBackend(wrapped, config.circuit_breaker)
    if config.timeout is not None:
        wrapped = TimeoutBackend(wrapped, config.timeout)
    if config.logging is not None:
        wrapped = LoggingBackend(wrapped, config.logging)
    return wrapped


def unwrap_backend(backend: Backend) -> Backend:
    """Return the innermost backend under any middleware."""
    while isinstance(backend, Middleware):
        backend = backend.inner
    return backend


def backend_info(backend: Backend) -> dict[str, Any]:
    """Describe a (possibly wrapped) backend; layers are listed outermost first."""
    layers: list[str] = []
    current = backend
    while isinstance(current, Middleware):
        layers.append(current.layer)
        current = current.inner
    return {
        "type": type(current).__name__,
        "is_backend": is_backend(backend),
        "middleware_layers": layers,
    }
