"""Token-bucket throttle."""

from __future__ import annotations

import asyncio
import threading
import time
from typing import Any, Awaitable, Callable

import structlog

from pipeopt.backend.base import Backend
from pipeopt.config import ThrottleConfig
from pipeopt.middleware.base import Middleware

logger = structlog.get_logger()


class ThrottledBackend(Middleware):
    """Spaces calls at least ``1 / rps`` seconds apart across all callers.

    A single "next free slot" timestamp is advanced under a lock; each caller
    reserves the slot one interval after ``max(next_slot, now)`` and sleeps
    until it. There is no queue: concurrent callers simply get successive
    slots.

    ``burst`` is kept on the config but the slot algorithm only enforces the
    steady-state rate.
    """

    layer = "throttle"

    def __init__(
        self,
        inner: Backend,
        config: ThrottleConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        super().__init__(inner)
        self.config = config or ThrottleConfig()
        self.interval = 1.0 / self.config.rps
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot = clock()

    @property
    def burst(self) -> int:
        return self.config.effective_burst

    def reserve_slot(self) -> float:
        """Reserve the next slot and return the delay in seconds before it."""
        with self._lock:
            now = self._clock()
            my_slot = max(self._next_slot, now) + self.interval
            self._next_slot = my_slot
        return max(0.0, my_slot - now)

    async def _around(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Any:
        delay = self.reserve_slot()
        if delay > 0:
            logger.debug("throttle_wait", operation=operation, delay_s=round(delay, 4))
            await self._sleep(delay)
        return await call()
