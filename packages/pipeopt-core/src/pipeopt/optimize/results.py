"""Result records produced by optimization runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from pipeopt.optimize.candidate import Candidate


@dataclass(frozen=True)
class HistoryEntry:
    iteration: int
    score: float
    pipeline: Candidate
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    iteration_time_ms: float = 0.0
    candidates_evaluated: int = 0


@dataclass(frozen=True)
class OptimizationResult:
    """Outcome of an optimization run. ``history`` has one entry per iteration plus the seed."""

    best_pipeline: Candidate
    best_score: float
    history: tuple[HistoryEntry, ...]
    total_iterations: int
    total_time_ms: float
    converged: bool
    run_id: str | None = None


@dataclass(frozen=True)
class ConvergenceReport:
    converged: bool
    reason: str | None = None
    variance: float | None = None
    threshold: float | None = None
    recent_scores: tuple[float, ...] = ()
