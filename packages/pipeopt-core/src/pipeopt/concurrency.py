"""asyncio helpers for bounded parallelism, timeouts, retries and cleanup.

Timeouts here are races, not cancellations: an operation that loses a
``with_timeout`` race keeps running in the background until it finishes.
Callers must read a ``timeout`` status as "no result by the deadline", not as
"the operation stopped".
"""

from __future__ import annotations

import asyncio
import inspect
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Sequence, TypeVar

import structlog

from pipeopt.errors import OperationCancelledError
from pipeopt.settings import get_settings

logger = structlog.get_logger()

T = TypeVar("T")
R = TypeVar("R")

# Strong references to race losers so they are not garbage collected mid-flight
_background_tasks: set[asyncio.Task[Any]] = set()


class Status(str, Enum):
    """Outcome discriminator shared by timeout wrappers and backend results."""

    OK = "ok"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class Timed:
    """Outcome of a timeout race: ``value`` is only meaningful when ``status`` is OK."""

    status: Status
    value: Any = None

    @property
    def timed_out(self) -> bool:
        return self.status is Status.TIMEOUT


def _default_parallelism() -> int:
    return get_settings().parallelism


def _detach(task: asyncio.Task[Any]) -> None:
    """Let a race loser finish on its own, retrieving its outcome when it does."""

    def _finished(t: asyncio.Task[Any]) -> None:
        _background_tasks.discard(t)
        if not t.cancelled() and t.exception() is not None:
            logger.debug("background_task_failed", error=str(t.exception()))

    _background_tasks.add(task)
    task.add_done_callback(_finished)


async def _call(fn: Callable[..., Any], *args: Any) -> Any:
    result = fn(*args)
    if inspect.isawaitable(result):
        return await result
    return result


# ---------------------------------------------------------------------------
# Parallel mapping
# ---------------------------------------------------------------------------


async def parallel_map(
    fn: Callable[[T], Awaitable[R]],
    items: Iterable[T],
    n: int | None = None,
) -> list[R]:
    """Map ``fn`` over ``items`` with at most ``n`` operations in flight.

    Items are processed in chunks of ``n``; each chunk runs concurrently and
    must finish before the next starts. Output order matches input order. The
    first failure fails the whole call and no partial results are returned.
    """
    n = n if n is not None else _default_parallelism()
    if n < 1:
        raise ValueError(f"concurrency must be >= 1, got {n}")

    pending = list(items)
    results: list[R] = []
    for start in range(0, len(pending), n):
        chunk = pending[start:start + n]
        results.extend(await asyncio.gather(*(fn(item) for item in chunk)))
    return results


async def bounded_parallel(
    fn: Callable[[T], Awaitable[R]],
    items: Iterable[T],
    max_concurrent: int,
) -> list[R]:
    """Run everything at once behind a semaphore; results keep submission order.

    Unlike ``parallel_map`` a slow item does not hold back the next chunk, but
    no more than ``max_concurrent`` (capped at the process parallelism) run at
    the same time.
    """
    limit = max(1, min(max_concurrent, _default_parallelism()))
    semaphore = asyncio.Semaphore(limit)

    async def _guarded(item: T) -> R:
        async with semaphore:
            return await fn(item)

    return list(await asyncio.gather(*(_guarded(item) for item in items)))


async def parallel_map_unordered(
    fn: Callable[[T], Awaitable[R]],
    items: Iterable[T],
    n: int | None = None,
) -> list[R]:
    """Like ``bounded_parallel`` but results arrive in completion order."""
    limit = n if n is not None else _default_parallelism()
    if limit < 1:
        raise ValueError(f"concurrency must be >= 1, got {limit}")
    semaphore = asyncio.Semaphore(limit)

    async def _guarded(item: T) -> R:
        async with semaphore:
            return await fn(item)

    tasks = [asyncio.ensure_future(_guarded(item)) for item in items]
    results: list[R] = []
    try:
        for next_done in asyncio.as_completed(tasks):
            results.append(await next_done)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise
    return results


async def process_batches(
    batch_size: int,
    concurrency: int,
    batch_fn: Callable[[list[T]], Awaitable[R]],
    items: Sequence[T],
) -> list[R]:
    """Split ``items`` into batches and run ``batch_fn`` over them with bounded concurrency."""
    batches = [list(items[i:i + batch_size]) for i in range(0, len(items), batch_size)]
    return await parallel_map(batch_fn, batches, concurrency)


async def rate_limited_parallel_map(
    concurrency: int,
    rate_limit: float,
    fn: Callable[[T], Awaitable[R]],
    items: Iterable[T],
) -> list[R]:
    """``parallel_map`` that also spaces call starts ``1 / rate_limit`` seconds apart."""
    interval = 1.0 / rate_limit
    next_start = time.monotonic()

    async def _spaced(item: T) -> R:
        nonlocal next_start
        now = time.monotonic()
        my_start = max(next_start, now)
        next_start = my_start + interval
        if my_start > now:
            await asyncio.sleep(my_start - now)
        return await fn(item)

    return await parallel_map(_spaced, items, concurrency)


# ---------------------------------------------------------------------------
# Timeouts
# ---------------------------------------------------------------------------


async def with_timeout(operation: Awaitable[T], timeout_ms: float) -> Timed:
    """Race ``operation`` against a timer without cancelling it.

    Returns ``Timed(OK, value)`` or ``Timed(TIMEOUT)``. Errors raised by the
    operation before the deadline propagate.
    """
    task = asyncio.ensure_future(operation)
    done, _ = await asyncio.wait({task}, timeout=max(0.0, timeout_ms / 1000))
    if task in done:
        return Timed(Status.OK, task.result())
    _detach(task)
    return Timed(Status.TIMEOUT)


async def with_deadline(operation: Awaitable[T], deadline: float) -> Timed:
    """``with_timeout`` against an absolute ``time.time()`` deadline."""
    remaining_ms = (deadline - time.time()) * 1000
    if remaining_ms <= 0:
        if inspect.iscoroutine(operation):
            operation.close()
        return Timed(Status.TIMEOUT)
    return await with_timeout(operation, remaining_ms)


async def cancel_after(
    operation: Awaitable[T],
    timeout_ms: float,
    on_cancel: Callable[[], Any] | None = None,
) -> T:
    """Await ``operation`` or raise ``OperationCancelledError`` after ``timeout_ms``.

    ``on_cancel`` runs when the timer wins, e.g. to close a connection. The
    operation itself is not interrupted.
    """
    outcome = await with_timeout(operation, timeout_ms)
    if outcome.timed_out:
        if on_cancel is not None:
            await _call(on_cancel)
        raise OperationCancelledError(timeout_ms)
    return outcome.value


async def timed(operation: Awaitable[T]) -> tuple[T, float]:
    """Await ``operation`` and return ``(result, elapsed_ms)``."""
    start = time.monotonic()
    result = await operation
    return result, (time.monotonic() - start) * 1000


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


def backoff_delay(
    attempt: int,
    initial_delay_ms: float,
    backoff_factor: float,
    max_delay_ms: float,
    jitter: bool = False,
    rng: random.Random | None = None,
) -> float:
    """Seconds to wait before retry ``attempt`` (0-based).

    ``min(max_delay, initial * factor ** attempt)``, scaled by a uniform factor
    in [0.5, 1.0] when ``jitter`` is set.
    """
    delay_ms = min(max_delay_ms, initial_delay_ms * (backoff_factor ** attempt))
    if jitter:
        delay_ms *= (rng or random).uniform(0.5, 1.0)
    return delay_ms / 1000


def _always(_error: BaseException) -> bool:
    return True


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_retries: int,
    initial_delay_ms: float,
    backoff_factor: float = 2.0,
    max_delay_ms: float = 30000,
    retryable: Callable[[BaseException], bool] = _always,
    jitter: bool = False,
) -> T:
    """Call ``operation`` until it succeeds, retrying retryable errors.

    ``operation`` runs at most ``max_retries + 1`` times; the last error is
    re-raised once retries are exhausted. Non-retryable errors propagate
    immediately.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            if attempt >= max_retries or not retryable(exc):
                raise
            delay = backoff_delay(attempt, initial_delay_ms, backoff_factor, max_delay_ms, jitter)
            logger.debug("retrying_operation", attempt=attempt + 1, delay_s=delay, error=str(exc))
            await asyncio.sleep(delay)
            attempt += 1


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


async def with_resource(
    resource: T,
    operation: Callable[[T], Any],
    cleanup: Callable[[T], Any],
) -> Any:
    """Run ``operation(resource)`` and always run ``cleanup(resource)`` exactly once.

    Both callables may be sync or async. Errors raised by cleanup are logged and
    never mask the operation's own result or error.
    """
    try:
        return await _call(operation, resource)
    finally:
        try:
            await _call(cleanup, resource)
        except Exception as exc:
            logger.warning("resource_cleanup_failed", error=str(exc))
