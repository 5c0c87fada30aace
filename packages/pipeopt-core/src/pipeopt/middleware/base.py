"""Shared plumbing for backend middleware."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from pipeopt.backend.base import Backend, EmbedOutcome, GenerateOutcome, Options, StreamOutcome


class Middleware(ABC):
    """A Backend that wraps another Backend.

    Subclasses implement ``_around``, which receives the operation name and a
    zero-argument callable that performs the inner call. Every call to the
    callable re-invokes the inner backend, so retrying middleware can call it
    more than once.
    """

    layer: str = "middleware"

    def __init__(self, inner: Backend) -> None:
        self.inner = inner

    @abstractmethod
    async def _around(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Any:
        """Run ``call`` with this layer's behaviour applied."""
        ...

    async def generate(self, prompt: str, options: Options | None = None) -> GenerateOutcome:
        return await self._around("generate", lambda: self.inner.generate(prompt, options))

    async def embed(self, text: str, options: Options | None = None) -> EmbedOutcome:
        return await self._around("embed", lambda: self.inner.embed(text, options))

    async def stream(self, prompt: str, options: Options | None = None) -> StreamOutcome:
        return await self._around("stream", lambda: self.inner.stream(prompt, options))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.inner!r})"
