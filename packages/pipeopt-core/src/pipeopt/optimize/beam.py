"""Beam search over pipeline candidates.

Each iteration mutates the current beam, scores every variant against the
trainset, and keeps the best ``beam_width`` for the next generation:

1. Seed with the evaluated initial pipeline
2. Generate ``2 + iteration`` variants per beam member (capped)
3. Score candidates ``concurrency`` at a time
4. Keep the top ``beam_width`` by score
5. Checkpoint every ``checkpoint_interval`` iterations in the background
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from typing import Any, Callable, Sequence

import numpy as np
import structlog

from pipeopt.concurrency import _detach, parallel_map
from pipeopt.config import OptimizationConfig
from pipeopt.evaluate.core import evaluate
from pipeopt.evaluate.metrics import get_metric
from pipeopt.optimize.candidate import Candidate
from pipeopt.optimize.checkpoint import create_run, save_checkpoint
from pipeopt.optimize.mutation import MutationStrategy, PromptHintMutator, generate_candidates
from pipeopt.optimize.results import ConvergenceReport, HistoryEntry, OptimizationResult
from pipeopt.storage import Storage

logger = structlog.get_logger()

CONVERGENCE_WINDOW = 3
CHECKPOINT_DRAIN_TIMEOUT_MS = 1000


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


async def score_candidate(
    candidate: Candidate,
    trainset: Sequence[dict[str, Any]],
    metric: Callable[[Any, Any], float],
    options: OptimizationConfig,
) -> Candidate:
    report = await evaluate(candidate.pipeline, trainset, metric, options.evaluation)
    return replace(candidate, score=report.score)


async def score_candidates(
    candidates: Sequence[Candidate],
    trainset: Sequence[dict[str, Any]],
    metric: Callable[[Any, Any], float],
    options: OptimizationConfig,
) -> list[Candidate]:
    """Score candidates ``options.concurrency`` at a time, preserving order."""
    logger.debug("scoring_candidates", count=len(candidates), concurrency=options.concurrency)

    async def _score(candidate: Candidate) -> Candidate:
        return await score_candidate(candidate, trainset, metric, options)

    return await parallel_map(_score, candidates, options.concurrency)


def select_top_candidates(scored: Sequence[Candidate], beam_width: int) -> list[Candidate]:
    """Best ``beam_width`` candidates, highest score first; ties keep input order."""
    ranked = sorted(scored, key=lambda c: c.score if c.score is not None else 0.0, reverse=True)
    return ranked[:beam_width]


class BeamSearchOptimizer:
    """Runs one beam search. Holds the checkpoint tasks it has scheduled."""

    def __init__(
        self,
        config: OptimizationConfig,
        storage: Storage | None = None,
        mutator: MutationStrategy | None = None,
        drain_timeout_ms: float = CHECKPOINT_DRAIN_TIMEOUT_MS,
    ) -> None:
        self._config = config
        self._drain_timeout_ms = drain_timeout_ms
        self._storage = storage
        self._mutator = mutator or PromptHintMutator()
        self._checkpoints: set[asyncio.Task[Any]] = set()

    def _schedule_checkpoint(self, run_id: str, iteration: int, result: OptimizationResult) -> None:
        if self._storage is None:
            return
        task = asyncio.create_task(save_checkpoint(self._storage, run_id, iteration, result))
        self._checkpoints.add(task)
        task.add_done_callback(self._checkpoints.discard)

    async def _drain_checkpoints(self) -> None:
        """Give outstanding checkpoints a bounded grace period; stragglers keep running detached."""
        if not self._checkpoints:
            return
        _, pending = await asyncio.wait(set(self._checkpoints), timeout=self._drain_timeout_ms / 1000)
        if pending:
            logger.warning("checkpoint_drain_timeout", pending=len(pending), timeout_ms=self._drain_timeout_ms)
            for task in pending:
                self._checkpoints.discard(task)
                _detach(task)

    async def run(
        self,
        initial_pipeline: Any,
        trainset: Sequence[dict[str, Any]],
        metric: Callable[[Any, Any], float] | str,
    ) -> OptimizationResult:
        config = self._config
        metric_fn = get_metric(metric)
        start = time.monotonic()
        run_id = config.run_id or await create_run(self._storage, initial_pipeline)

        logger.info(
            "beam_search_start",
            run_id=run_id,
            beam_width=config.beam_width,
            max_iterations=config.max_iterations,
            concurrency=config.concurrency,
            training_examples=len(trainset),
        )

        seed = initial_pipeline if isinstance(initial_pipeline, Candidate) else Candidate(pipeline=initial_pipeline)
        seed = await score_candidate(replace(seed, iteration=0), trainset, metric_fn, config)
        beam = [seed]
        history = [
            HistoryEntry(
                iteration=0,
                score=seed.score,
                pipeline=seed,
                iteration_time_ms=_elapsed_ms(start),
                candidates_evaluated=1,
            )
        ]
        logger.debug("initial_pipeline_scored", score=seed.score)

        iteration = 0
        while iteration < config.max_iterations:
            if _elapsed_ms(start) >= config.timeout_ms:
                logger.warning("beam_search_deadline_reached", run_id=run_id, iteration=iteration)
                break
            iteration += 1
            iter_start = time.monotonic()

            candidates = await generate_candidates(beam, iteration, config.beam_width, self._mutator)
            scored = await score_candidates(candidates, trainset, metric_fn, config)
            beam = select_top_candidates(scored, config.beam_width) or beam

            best = beam[0]
            entry = HistoryEntry(
                iteration=iteration,
                score=best.score,
                pipeline=best,
                iteration_time_ms=_elapsed_ms(iter_start),
                candidates_evaluated=len(scored),
            )
            history.append(entry)
            logger.info(
                "beam_iteration_complete",
                iteration=iteration,
                best_score=round(best.score, 4),
                candidates=len(scored),
                iteration_time_ms=round(entry.iteration_time_ms, 1),
            )

            if iteration % config.checkpoint_interval == 0:
                self._schedule_checkpoint(
                    run_id,
                    iteration,
                    OptimizationResult(
                        best_pipeline=best,
                        best_score=best.score,
                        history=tuple(history),
                        total_iterations=iteration,
                        total_time_ms=_elapsed_ms(start),
                        converged=False,
                        run_id=run_id,
                    ),
                )

        await self._drain_checkpoints()

        best = beam[0]
        best_score = best.score or 0.0
        result = OptimizationResult(
            best_pipeline=best,
            best_score=best_score,
            history=tuple(history),
            total_iterations=iteration,
            total_time_ms=_elapsed_ms(start),
            converged=abs(best_score - 1.0) < 0.01,
            run_id=run_id,
        )
        logger.info(
            "beam_search_complete",
            run_id=run_id,
            iterations=iteration,
            best_score=best_score,
            total_time_ms=round(result.total_time_ms, 1),
        )
        return result


async def beam_search(
    initial_pipeline: Any,
    trainset: Sequence[dict[str, Any]],
    metric: Callable[[Any, Any], float] | str,
    options: OptimizationConfig | None = None,
    *,
    storage: Storage | None = None,
    mutator: MutationStrategy | None = None,
) -> OptimizationResult:
    """Optimize ``initial_pipeline`` by beam search."""
    optimizer = BeamSearchOptimizer(options or OptimizationConfig(), storage=storage, mutator=mutator)
    return await optimizer.run(initial_pipeline, trainset, metric)


def analyze_convergence(history: Sequence[HistoryEntry | float], threshold: float) -> ConvergenceReport:
    """Converged when the population variance of the last three scores is below ``threshold``."""
    if len(history) < CONVERGENCE_WINDOW:
        return ConvergenceReport(converged=False, reason="insufficient iterations", threshold=threshold)

    recent = [h.score if isinstance(h, HistoryEntry) else float(h) for h in history[-CONVERGENCE_WINDOW:]]
    variance = float(np.var(recent))
    return ConvergenceReport(
        converged=variance < threshold,
        variance=variance,
        threshold=threshold,
        recent_scores=tuple(recent),
    )


def suggest_beam_width(trainset_size: int, concurrency: int) -> int:
    """Beam width scaled to the trainset, bounded by half the concurrency (minimum 2)."""
    if trainset_size < 10:
        base = 2
    elif trainset_size < 50:
        base = 4
    elif trainset_size < 200:
        base = 6
    else:
        base = 8
    width = int(max(2, min(base, concurrency / 2)))
    logger.debug("beam_width_suggested", trainset_size=trainset_size, concurrency=concurrency, width=width)
    return width
