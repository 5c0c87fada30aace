"""Mutation strategies that turn a beam candidate into new variants."""

from __future__ import annotations

import json
import math
from dataclasses import replace
from typing import Protocol, Sequence

import structlog

from pipeopt.backend.base import Backend, GenerationResult
from pipeopt.optimize.candidate import Candidate

logger = structlog.get_logger()

HINTS = (
    "Improve this by being more specific.",
    "Enhance the response quality.",
    "Think step by step.",
    "Consider the context more carefully.",
    "Be more precise in your answer.",
    "Focus on the key aspects.",
)

HINT_PROMPT = """You are a prompt optimizer for LLM pipelines.

Suggest {count} short instructions that could improve the answers of a
pipeline.

## Current Candidate
- Iteration: {iteration}
- Score: {score}
- Current hint: {hint}

Respond with a JSON list of strings, e.g. ["hint one", "hint two"]."""


class MutationStrategy(Protocol):
    """Produces variants of a candidate for the next generation."""

    async def mutate(self, candidate: Candidate, iteration: int) -> list[Candidate]: ...


def variants_per_candidate(iteration: int) -> int:
    return 2 + iteration


def candidate_cap(beam_width: int) -> int:
    """Upper bound on candidates generated per iteration."""
    return math.ceil(beam_width * max(2, beam_width / 2))


def _tag(candidate: Candidate, hints: Sequence[str], iteration: int) -> list[Candidate]:
    return [
        replace(
            candidate,
            score=None,
            iteration=iteration,
            mutation_description=hint,
            metadata={**candidate.metadata, "parent_score": candidate.score},
        )
        for hint in hints
    ]


class PromptHintMutator:
    """Tags variants with hints from a fixed catalogue; the pipeline is left untouched."""

    def __init__(self, hints: Sequence[str] = HINTS) -> None:
        self._hints = tuple(hints)

    def hints_for(self, iteration: int) -> list[str]:
        count = variants_per_candidate(iteration)
        return [self._hints[i % len(self._hints)] for i in range(count)]

    async def mutate(self, candidate: Candidate, iteration: int) -> list[Candidate]:
        return _tag(candidate, self.hints_for(iteration), iteration)


class BackendHintMutator:
    """Asks a backend for improvement hints, falling back to the catalogue."""

    def __init__(self, backend: Backend, fallback: PromptHintMutator | None = None) -> None:
        self._backend = backend
        self._fallback = fallback or PromptHintMutator()

    async def mutate(self, candidate: Candidate, iteration: int) -> list[Candidate]:
        count = variants_per_candidate(iteration)
        prompt = HINT_PROMPT.format(
            count=count,
            iteration=candidate.iteration,
            score=candidate.score,
            hint=candidate.mutation_description or "none",
        )
        result = await self._backend.generate(prompt)
        hints = self._parse(result, count)
        if hints is None:
            logger.warning("hint_generation_unparsable", iteration=iteration)
            hints = self._fallback.hints_for(iteration)
        return _tag(candidate, hints, iteration)

    @staticmethod
    def _parse(result: object, count: int) -> list[str] | None:
        if not isinstance(result, GenerationResult):
            return None
        try:
            data = json.loads(result.text)
        except (json.JSONDecodeError, TypeError):
            return None
        if not isinstance(data, list):
            return None
        hints = [h for h in data if isinstance(h, str) and h.strip()]
        return hints[:count] or None


async def generate_candidates(
    beam: Sequence[Candidate],
    iteration: int,
    beam_width: int,
    mutator: MutationStrategy,
) -> list[Candidate]:
    """Variants of every beam candidate, truncated to ``candidate_cap(beam_width)``."""
    cap = candidate_cap(beam_width)
    candidates: list[Candidate] = []
    for parent in beam:
        if len(candidates) >= cap:
            break
        candidates.extend(await mutator.mutate(parent, iteration))
    return candidates[:cap]
