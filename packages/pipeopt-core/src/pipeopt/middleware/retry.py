"""Retry with exponential backoff and jitter."""

from __future__ import annotations

import asyncio
import random
import re
from typing import Any, Awaitable, Callable

import structlog

from pipeopt.backend.base import Backend
from pipeopt.concurrency import backoff_delay
from pipeopt.config import RetryConfig
from pipeopt.middleware.base import Middleware

logger = structlog.get_logger()

_TRANSIENT_MESSAGE = re.compile(r"timeout|connection|network", re.IGNORECASE)
_TRANSIENT_STATUSES = {429, 503}
_TRANSIENT_ERROR_TYPES = {"server_error", "rate_limit_exceeded", "service_unavailable"}


def default_retryable(error: object) -> bool:
    """True for failures worth retrying.

    Retries network/timeout errors, HTTP 5xx, 429 and 503, and provider error
    types that mark transient failures. Auth errors, bad requests and other
    4xx are not retried.
    """
    if not isinstance(error, BaseException):
        return False
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True
    if _TRANSIENT_MESSAGE.search(str(error)):
        return True

    status = getattr(error, "status", None)
    if status is None:
        status = getattr(error, "status_code", None)
    if isinstance(status, int) and (status >= 500 or status in _TRANSIENT_STATUSES):
        return True

    return getattr(error, "error_type", None) in _TRANSIENT_ERROR_TYPES


class RetryingBackend(Middleware):
    """Retries failed inner calls; at most ``max_retries + 1`` invocations per call."""

    layer = "retry"

    def __init__(
        self,
        inner: Backend,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__(inner)
        self.config = config or RetryConfig()
        self._retryable = self.config.retryable or default_retryable
        self._sleep = sleep
        self._rng = rng

    def delay_for(self, attempt: int) -> float:
        cfg = self.config
        return backoff_delay(
            attempt,
            cfg.initial_delay_ms,
            cfg.backoff_factor,
            cfg.max_delay_ms,
            jitter=cfg.jitter,
            rng=self._rng,
        )

    async def _around(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Any:
        attempt = 0
        while True:
            try:
                return await call()
            except Exception as exc:
                if attempt >= self.config.max_retries or not self._retryable(exc):
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "retrying_backend_call",
                    operation=operation,
                    attempt=attempt + 1,
                    max_retries=self.config.max_retries,
                    delay_s=round(delay, 3),
                    error=str(exc),
                )
                await self._sleep(delay)
                attempt += 1
