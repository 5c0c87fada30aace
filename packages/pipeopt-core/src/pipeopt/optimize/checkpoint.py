"""Checkpoint persistence for optimization runs.

Storage failures never abort a run: they are logged and the caller carries on.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import structlog

from pipeopt.optimize.results import OptimizationResult
from pipeopt.storage import Storage

logger = structlog.get_logger()


async def create_run(storage: Storage | None, pipeline: Any) -> str:
    """Register a new run, falling back to a generated id when storage is unavailable."""
    if storage is None:
        return str(uuid.uuid4())
    try:
        run_id = await storage.create_run(pipeline)
    except Exception as exc:
        logger.warning("create_run_failed", error=str(exc))
        return str(uuid.uuid4())
    logger.info("optimization_run_created", run_id=run_id)
    return run_id


async def save_checkpoint(
    storage: Storage,
    run_id: str,
    iteration: int,
    result: OptimizationResult,
) -> OptimizationResult:
    """Append the current best candidate to the run's history."""
    payload = {
        "iteration": iteration,
        "best_pipeline": result.best_pipeline,
        "best_score": result.best_score,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "result": result,
    }
    try:
        await storage.append_metric(run_id, iteration, result.best_score, payload)
    except Exception as exc:
        logger.warning("checkpoint_failed", run_id=run_id, iteration=iteration, error=str(exc))
        return result
    logger.debug("checkpoint_saved", run_id=run_id, iteration=iteration, score=result.best_score)
    return result


async def load_checkpoint(storage: Storage, run_id: str) -> dict[str, Any] | None:
    """Latest checkpoint payload for ``run_id``, or None."""
    try:
        history = await storage.load_history(run_id)
    except Exception as exc:
        logger.warning("checkpoint_load_failed", run_id=run_id, error=str(exc))
        return None
    if not history:
        return None
    latest = history[-1]
    logger.debug("checkpoint_loaded", run_id=run_id, iteration=latest.iteration, score=latest.score)
    return dict(latest.payload)
