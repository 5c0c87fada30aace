"""Candidate pipelines tracked by the optimizer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class Candidate:
    """A pipeline under consideration. ``score`` is None until evaluated."""

    pipeline: Any
    score: float | None = None
    iteration: int = 0
    mutation_description: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)
