"""Shared test helpers - importable from test modules."""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator, Callable

from pipeopt.backend.base import EmbeddingResult, GenerationResult, Usage


class FakeBackend:
    """Backend that answers from a callable and records every call."""

    def __init__(
        self,
        respond: Callable[[str], str] | None = None,
        delay: float = 0.0,
    ) -> None:
        self._respond = respond or (lambda prompt: f"echo: {prompt}")
        self._delay = delay
        self.calls: list[tuple[str, str]] = []

    async def generate(self, prompt: str, options: Any = None) -> GenerationResult:
        self.calls.append(("generate", prompt))
        if self._delay:
            await asyncio.sleep(self._delay)
        return GenerationResult(text=self._respond(prompt), usage=Usage(1, 1, 2), model="fake")

    async def embed(self, text: str, options: Any = None) -> EmbeddingResult:
        self.calls.append(("embed", text))
        if self._delay:
            await asyncio.sleep(self._delay)
        return EmbeddingResult(vector=(0.1, 0.2, 0.3), model="fake-embed")

    async def stream(self, prompt: str, options: Any = None) -> AsyncIterator[str]:
        self.calls.append(("stream", prompt))

        async def _chunks() -> AsyncIterator[str]:
            for word in self._respond(prompt).split():
                yield word

        return _chunks()


class FlakyBackend(FakeBackend):
    """Raises the queued errors in order, then behaves like FakeBackend."""

    def __init__(self, errors: list[BaseException], **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._errors = list(errors)

    async def generate(self, prompt: str, options: Any = None) -> GenerationResult:
        if self._errors:
            self.calls.append(("generate", prompt))
            raise self._errors.pop(0)
        return await super().generate(prompt, options)


class FailingBackend(FakeBackend):
    """Always raises ``error`` from generate, after ``delay`` seconds."""

    def __init__(self, error: BaseException, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._error = error

    async def generate(self, prompt: str, options: Any = None) -> GenerationResult:
        self.calls.append(("generate", prompt))
        if self._delay:
            await asyncio.sleep(self._delay)
        raise self._error


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested delays without waiting."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.delays: list[float] = []
        self._clock = clock

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self._clock is not None:
            self._clock.advance(seconds)


def constant_metric(score: float) -> Callable[[Any, Any], float]:
    def metric(prediction: Any, ground_truth: Any) -> float:
        return score

    metric.__name__ = f"constant_{score}"
    return metric


def answer_pipeline(answer: str) -> Callable[[dict[str, Any]], dict[str, Any]]:
    def pipeline(inputs: dict[str, Any]) -> dict[str, Any]:
        return {"answer": answer}

    return pipeline
