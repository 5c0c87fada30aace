"""Circuit breaker: closed / open / half-open."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable

import structlog

from pipeopt.backend.base import Backend
from pipeopt.config import CircuitBreakerConfig
from pipeopt.errors import CircuitOpenError
from pipeopt.middleware.base import Middleware

logger = structlog.get_logger()


class CircuitStatus(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerState:
    status: CircuitStatus = CircuitStatus.CLOSED
    failures: int = 0
    successes: int = 0
    last_failure_time: float | None = None


_CLOSED = BreakerState()


class CircuitBreakerBackend(Middleware):
    """Stops calling a failing backend until it looks healthy again.

    - Closed: calls pass; consecutive failures are counted and reaching
      ``failure_threshold`` opens the circuit.
    - Open: calls fail fast with ``CircuitOpenError`` until ``timeout_ms`` has
      passed since the last failure; the next call moves to half-open.
    - Half-open: calls pass; ``success_threshold`` successes close the circuit
      and reset every counter, a single failure reopens it.

    Admission and outcome recording are each one locked read-modify-write of
    an immutable ``BreakerState``.
    """

    layer = "circuit_breaker"

    def __init__(
        self,
        inner: Backend,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(inner)
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._state = _CLOSED

    @property
    def state(self) -> BreakerState:
        with self._lock:
            return self._state

    def _admit(self) -> BreakerState | None:
        """Return None if the call may proceed, else the open state to report."""
        with self._lock:
            state = self._state
            if state.status is not CircuitStatus.OPEN:
                return None
            elapsed_ms = (self._clock() - (state.last_failure_time or 0.0)) * 1000
            if elapsed_ms < self.config.timeout_ms:
                return state
            self._state = replace(state, status=CircuitStatus.HALF_OPEN, successes=0)
        logger.info("circuit_half_open", failures=state.failures)
        return None

    def _record_success(self) -> None:
        with self._lock:
            state = self._state
            if state.status is CircuitStatus.HALF_OPEN:
                successes = state.successes + 1
                if successes >= self.config.success_threshold:
                    self._state = _CLOSED
                    closed = True
                else:
                    self._state = replace(state, successes=successes)
                    closed = False
            else:
                # Stragglers admitted before the circuit opened do not close it
                if state.status is CircuitStatus.CLOSED and state.failures:
                    self._state = _CLOSED
                closed = False
        if closed:
            logger.info("circuit_closed")

    def _record_failure(self) -> None:
        with self._lock:
            state = self._state
            failures = state.failures + 1
            now = self._clock()
            if state.status is CircuitStatus.HALF_OPEN or failures >= self.config.failure_threshold:
                self._state = BreakerState(
                    status=CircuitStatus.OPEN,
                    failures=failures,
                    successes=0,
                    last_failure_time=now,
                )
                opened = state.status is not CircuitStatus.OPEN
            else:
                self._state = replace(state, failures=failures, last_failure_time=now)
                opened = False
        if opened:
            logger.warning("circuit_opened", failures=failures)

    async def _around(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Any:
        rejected = self._admit()
        if rejected is not None:
            raise CircuitOpenError(rejected)

        try:
            result = await call()
        except Exception:
            self._record_failure()
            raise
        self._record_success()
        return result
