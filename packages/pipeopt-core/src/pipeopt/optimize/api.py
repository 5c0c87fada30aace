"""Public optimization entry points and strategy dispatch."""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from typing import Any, Awaitable, Callable, Protocol

import structlog

from pipeopt.config import OptimizationConfig
from pipeopt.errors import InvalidDatasetError, UnknownStrategyError
from pipeopt.evaluate.metrics import get_metric
from pipeopt.optimize.beam import beam_search
from pipeopt.optimize.candidate import Candidate
from pipeopt.optimize.checkpoint import load_checkpoint
from pipeopt.optimize.mutation import MutationStrategy
from pipeopt.optimize.results import HistoryEntry, OptimizationResult
from pipeopt.storage import Storage

logger = structlog.get_logger()


class Strategy(Protocol):
    def __call__(
        self,
        pipeline: Any,
        trainset: Sequence[dict[str, Any]],
        metric: Callable[[Any, Any], float],
        options: OptimizationConfig,
        *,
        storage: Storage | None = None,
        mutator: MutationStrategy | None = None,
    ) -> Awaitable[OptimizationResult]: ...


async def identity_strategy(
    pipeline: Any,
    trainset: Sequence[dict[str, Any]],
    metric: Callable[[Any, Any], float],
    options: OptimizationConfig,
    *,
    storage: Storage | None = None,
    mutator: MutationStrategy | None = None,
) -> OptimizationResult:
    """Returns the pipeline unchanged without evaluating it."""
    start = time.monotonic()
    candidate = pipeline if isinstance(pipeline, Candidate) else Candidate(pipeline=pipeline, score=0.0)
    return OptimizationResult(
        best_pipeline=candidate,
        best_score=0.0,
        history=(HistoryEntry(iteration=0, score=0.0, pipeline=candidate),),
        total_iterations=0,
        total_time_ms=(time.monotonic() - start) * 1000,
        converged=True,
        run_id=options.run_id,
    )


STRATEGIES: dict[str, Strategy] = {
    "beam": beam_search,
    "identity": identity_strategy,
}


def get_strategy(name: str) -> Strategy:
    try:
        return STRATEGIES[name]
    except KeyError:
        raise UnknownStrategyError(name, sorted(STRATEGIES)) from None


def validate_trainset(trainset: Any) -> None:
    if (
        not isinstance(trainset, Sequence)
        or isinstance(trainset, (str, bytes))
        or not trainset
        or not all(isinstance(example, Mapping) for example in trainset)
    ):
        raise InvalidDatasetError("Training set must be a non-empty sequence of mappings")


async def optimize(
    pipeline: Any,
    trainset: Sequence[dict[str, Any]],
    metric: Callable[[Any, Any], float] | str,
    options: OptimizationConfig | Mapping[str, Any] | None = None,
    *,
    storage: Storage | None = None,
    mutator: MutationStrategy | None = None,
) -> OptimizationResult:
    """Optimize ``pipeline`` against ``trainset`` with the configured strategy.

    Raises ``InvalidDatasetError`` for an empty or malformed trainset,
    ``UnknownMetricError`` for an unknown metric name and
    ``UnknownStrategyError`` for an unknown strategy.
    """
    if options is None:
        options = OptimizationConfig()
    elif not isinstance(options, OptimizationConfig):
        options = OptimizationConfig.model_validate(dict(options))

    validate_trainset(trainset)
    metric_fn = get_metric(metric)
    strategy = get_strategy(options.strategy)

    result = await strategy(pipeline, trainset, metric_fn, options, storage=storage, mutator=mutator)
    logger.info(
        "optimization_complete",
        strategy=options.strategy,
        iterations=result.total_iterations,
        best_score=result.best_score,
        converged=result.converged,
        run_id=result.run_id,
    )
    return result


async def resume_optimization(
    run_id: str,
    pipeline: Any,
    trainset: Sequence[dict[str, Any]],
    metric: Callable[[Any, Any], float] | str,
    options: OptimizationConfig | Mapping[str, Any] | None,
    storage: Storage,
    *,
    mutator: MutationStrategy | None = None,
) -> OptimizationResult:
    """Continue ``run_id`` from its latest checkpoint, or start fresh under the same id."""
    if options is None:
        options = OptimizationConfig()
    elif not isinstance(options, OptimizationConfig):
        options = OptimizationConfig.model_validate(dict(options))
    options = options.model_copy(update={"run_id": run_id})
    checkpoint = await load_checkpoint(storage, run_id)
    if checkpoint is not None and checkpoint.get("best_pipeline") is not None:
        logger.info(
            "resuming_optimization",
            run_id=run_id,
            iteration=checkpoint.get("iteration"),
            score=checkpoint.get("best_score"),
        )
        best = checkpoint["best_pipeline"]
        seed = best.pipeline if isinstance(best, Candidate) else best
        return await optimize(seed, trainset, metric, options, storage=storage, mutator=mutator)

    logger.info("no_checkpoint_found", run_id=run_id)
    return await optimize(pipeline, trainset, metric, options, storage=storage, mutator=mutator)
