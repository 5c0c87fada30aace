"""Tests for the asyncio concurrency helpers."""

import asyncio
import random
import time

import pytest

from pipeopt.concurrency import (
    Status,
    backoff_delay,
    bounded_parallel,
    cancel_after,
    parallel_map,
    parallel_map_unordered,
    process_batches,
    rate_limited_parallel_map,
    retry_with_backoff,
    timed,
    with_deadline,
    with_resource,
    with_timeout,
)
from pipeopt.errors import OperationCancelledError


async def _identity(x):
    return x


class _InFlight:
    """Tracks the peak number of concurrently running calls."""

    def __init__(self) -> None:
        self.current = 0
        self.peak = 0

    async def __call__(self, x, delay: float = 0.01):
        self.current += 1
        self.peak = max(self.peak, self.current)
        await asyncio.sleep(delay)
        self.current -= 1
        return x


class TestParallelMap:
    @pytest.mark.asyncio
    async def test_preserves_order(self) -> None:
        assert await parallel_map(_identity, range(1, 10), 3) == list(range(1, 10))

    @pytest.mark.asyncio
    async def test_limits_in_flight(self) -> None:
        tracker = _InFlight()
        await parallel_map(tracker, range(10), 3)
        assert tracker.peak <= 3

    @pytest.mark.asyncio
    async def test_order_kept_when_later_items_finish_first(self) -> None:
        async def slow_first(x):
            await asyncio.sleep(0.03 if x == 0 else 0.0)
            return x

        assert await parallel_map(slow_first, [0, 1, 2], 3) == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_empty_input(self) -> None:
        assert await parallel_map(_identity, [], 4) == []

    @pytest.mark.asyncio
    async def test_rejects_non_positive_concurrency(self) -> None:
        with pytest.raises(ValueError):
            await parallel_map(_identity, [1], 0)

    @pytest.mark.asyncio
    async def test_first_failure_fails_whole_call(self) -> None:
        async def boom(x):
            if x == 2:
                raise RuntimeError("bad item")
            return x

        with pytest.raises(RuntimeError, match="bad item"):
            await parallel_map(boom, [1, 2, 3], 2)


@pytest.mark.asyncio
async def test_bounded_parallel_keeps_submission_order() -> None:
    tracker = _InFlight()
    results = await bounded_parallel(tracker, range(8), 2)
    assert results == list(range(8))
    assert tracker.peak <= 2


@pytest.mark.asyncio
async def test_unordered_map_returns_completion_order() -> None:
    async def delayed(x):
        await asyncio.sleep(x / 100)
        return x

    results = await parallel_map_unordered(delayed, [3, 1, 2], 3)
    assert results == [1, 2, 3]


@pytest.mark.asyncio
async def test_process_batches() -> None:
    async def total(batch):
        return sum(batch)

    assert await process_batches(2, 2, total, [1, 2, 3, 4, 5]) == [3, 7, 5]


@pytest.mark.asyncio
async def test_rate_limited_parallel_map_spaces_starts() -> None:
    starts = []

    async def record(x):
        starts.append(time.monotonic())
        return x

    results = await rate_limited_parallel_map(3, 50.0, record, [1, 2, 3])
    assert results == [1, 2, 3]
    assert starts[-1] - starts[0] >= 0.04 - 0.005


class TestTimeouts:
    @pytest.mark.asyncio
    async def test_with_timeout_ok(self) -> None:
        outcome = await with_timeout(_identity(5), 1000)
        assert outcome.status is Status.OK
        assert outcome.value == 5

    @pytest.mark.asyncio
    async def test_with_timeout_does_not_cancel_loser(self) -> None:
        finished = asyncio.Event()

        async def slow():
            await asyncio.sleep(0.05)
            finished.set()
            return "late"

        outcome = await with_timeout(slow(), 5)
        assert outcome.timed_out
        await asyncio.wait_for(finished.wait(), timeout=1)

    @pytest.mark.asyncio
    async def test_with_timeout_propagates_errors(self) -> None:
        async def boom():
            raise KeyError("x")

        with pytest.raises(KeyError):
            await with_timeout(boom(), 1000)

    @pytest.mark.asyncio
    async def test_past_deadline_times_out_immediately(self) -> None:
        outcome = await with_deadline(_identity(1), time.time() - 1)
        assert outcome.status is Status.TIMEOUT

    @pytest.mark.asyncio
    async def test_future_deadline(self) -> None:
        outcome = await with_deadline(_identity(1), time.time() + 5)
        assert outcome.value == 1

    @pytest.mark.asyncio
    async def test_cancel_after_raises_and_calls_hook(self) -> None:
        called = []
        with pytest.raises(OperationCancelledError):
            await cancel_after(asyncio.sleep(0.5), 5, on_cancel=lambda: called.append(True))
        assert called == [True]

    @pytest.mark.asyncio
    async def test_cancelled_error_is_a_timeout_error(self) -> None:
        with pytest.raises(TimeoutError):
            await cancel_after(asyncio.sleep(0.5), 5)

    @pytest.mark.asyncio
    async def test_timed_reports_elapsed(self) -> None:
        result, elapsed_ms = await timed(asyncio.sleep(0.01, result="done"))
        assert result == "done"
        assert elapsed_ms >= 5


class TestRetry:
    def test_backoff_delay_grows_and_caps(self) -> None:
        assert backoff_delay(0, 100, 2.0, 1000) == pytest.approx(0.1)
        assert backoff_delay(2, 100, 2.0, 1000) == pytest.approx(0.4)
        assert backoff_delay(8, 100, 2.0, 1000) == pytest.approx(1.0)

    def test_backoff_delay_jitter_range(self) -> None:
        rng = random.Random(3)
        for _ in range(20):
            assert 0.05 <= backoff_delay(0, 100, 2.0, 1000, jitter=True, rng=rng) <= 0.1

    @pytest.mark.asyncio
    async def test_retry_with_backoff_bounds_attempts(self) -> None:
        attempts = []

        async def always_fails():
            attempts.append(1)
            raise ConnectionError("down")

        with pytest.raises(ConnectionError):
            await retry_with_backoff(always_fails, max_retries=2, initial_delay_ms=1)
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_retry_with_backoff_respects_predicate(self) -> None:
        attempts = []

        async def fails():
            attempts.append(1)
            raise ValueError("permanent")

        with pytest.raises(ValueError):
            await retry_with_backoff(fails, 5, 1, retryable=lambda e: not isinstance(e, ValueError))
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_retry_with_backoff_returns_first_success(self) -> None:
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 2:
                raise TimeoutError()
            return "ok"

        assert await retry_with_backoff(flaky, 3, 1) == "ok"


class TestWithResource:
    @pytest.mark.asyncio
    async def test_cleanup_runs_on_success(self) -> None:
        cleaned = []
        result = await with_resource("conn", lambda r: f"used {r}", cleaned.append)
        assert result == "used conn"
        assert cleaned == ["conn"]

    @pytest.mark.asyncio
    async def test_cleanup_runs_once_on_failure(self) -> None:
        cleaned = []

        async def fail(_r):
            raise RuntimeError("op failed")

        async def cleanup(r):
            cleaned.append(r)

        with pytest.raises(RuntimeError, match="op failed"):
            await with_resource("conn", fail, cleanup)
        assert cleaned == ["conn"]

    @pytest.mark.asyncio
    async def test_cleanup_errors_do_not_mask_result(self) -> None:
        def bad_cleanup(_r):
            raise OSError("close failed")

        assert await with_resource(1, lambda r: r + 1, bad_cleanup) == 2
