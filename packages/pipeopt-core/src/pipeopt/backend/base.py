"""Backend capability contract and result records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Mapping, Protocol, Union, runtime_checkable

from pipeopt.concurrency import Status


@dataclass(frozen=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class GenerationResult:
    text: str
    usage: Usage = field(default_factory=Usage)
    model: str = ""
    finish_reason: str | None = None

    @property
    def status(self) -> Status:
        return Status.OK


@dataclass(frozen=True)
class EmbeddingResult:
    vector: tuple[float, ...]
    model: str = ""
    usage: Usage = field(default_factory=Usage)

    @property
    def status(self) -> Status:
        return Status.OK


@dataclass(frozen=True)
class TimedOut:
    """Returned instead of a result when a timeout wrapper's timer wins."""

    operation: str
    timeout_ms: float

    @property
    def status(self) -> Status:
        return Status.TIMEOUT


GenerateOutcome = Union[GenerationResult, TimedOut]
EmbedOutcome = Union[EmbeddingResult, TimedOut]
StreamOutcome = Union[AsyncIterator[str], TimedOut, None]

Options = Mapping[str, Any]


@runtime_checkable
class Backend(Protocol):
    """What every LLM provider, and every middleware wrapping one, implements.

    Options are free-form per call (``model``, ``temperature``, ``max_tokens``
    ...); implementations ignore keys they do not understand. ``stream``
    returns ``None`` when the backend cannot stream.
    """

    async def generate(self, prompt: str, options: Options | None = None) -> GenerateOutcome: ...

    async def embed(self, text: str, options: Options | None = None) -> EmbedOutcome: ...

    async def stream(self, prompt: str, options: Options | None = None) -> StreamOutcome: ...


def is_backend(obj: object) -> bool:
    """Check whether ``obj`` satisfies the Backend contract."""
    return isinstance(obj, Backend)
