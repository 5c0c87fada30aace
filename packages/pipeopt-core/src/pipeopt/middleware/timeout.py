"""Timeout enforcement that reports, rather than raises, on expiry."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

import structlog

from pipeopt.backend.base import Backend, TimedOut
from pipeopt.concurrency import with_timeout
from pipeopt.config import TimeoutConfig
from pipeopt.middleware.base import Middleware

logger = structlog.get_logger()


class TimeoutBackend(Middleware):
    """Returns ``TimedOut`` when the inner call misses ``timeout_ms``.

    Callers must check ``result.status``. The inner call is not cancelled and
    may still complete in the background.
    """

    layer = "timeout"

    def __init__(self, inner: Backend, config: TimeoutConfig | None = None) -> None:
        super().__init__(inner)
        self.config = config or TimeoutConfig()

    async def _around(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Any:
        outcome = await with_timeout(call(), self.config.timeout_ms)
        if outcome.timed_out:
            logger.warning("backend_timeout", operation=operation, timeout_ms=self.config.timeout_ms)
            return TimedOut(operation=operation, timeout_ms=self.config.timeout_ms)
        return outcome.value
