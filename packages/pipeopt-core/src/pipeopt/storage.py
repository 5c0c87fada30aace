"""Storage interface for optimization runs, plus an in-memory implementation."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Protocol


@dataclass(frozen=True)
class MetricRecord:
    """One checkpointed score for a run."""

    iteration: int
    score: float
    payload: Mapping[str, Any] = field(default_factory=dict)
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Storage(Protocol):
    """Backend interface for persisting runs and their checkpoints."""

    async def create_run(self, pipeline: Any) -> str: ...
    async def append_metric(
        self, run_id: str, iteration: int, score: float, payload: Mapping[str, Any]
    ) -> None: ...
    async def load_run(self, run_id: str) -> Any | None: ...
    async def load_history(self, run_id: str) -> list[MetricRecord]: ...


class InMemoryStorage:
    """Simple in-memory storage for testing and development."""

    def __init__(self) -> None:
        self._runs: dict[str, Any] = {}
        self._metrics: dict[str, list[MetricRecord]] = {}

    async def create_run(self, pipeline: Any) -> str:
        run_id = str(uuid.uuid4())
        self._runs[run_id] = pipeline
        self._metrics[run_id] = []
        return run_id

    async def append_metric(
        self, run_id: str, iteration: int, score: float, payload: Mapping[str, Any]
    ) -> None:
        record = MetricRecord(iteration=iteration, score=score, payload=payload)
        self._metrics.setdefault(run_id, []).append(record)

    async def load_run(self, run_id: str) -> Any | None:
        return self._runs.get(run_id)

    async def load_history(self, run_id: str) -> list[MetricRecord]:
        return sorted(self._metrics.get(run_id, []), key=lambda r: r.iteration)
