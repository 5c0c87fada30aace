"""A prompt-template pipeline over a backend."""

from __future__ import annotations

from typing import Any, Mapping

import structlog

from pipeopt.backend.base import Backend, Options
from pipeopt.concurrency import Status

logger = structlog.get_logger()

DEFAULT_TEMPLATE = "Answer the question concisely.\n\nQuestion: {question}\nAnswer:"


class PromptPipeline:
    """Formats a prompt from the example's fields and returns ``{"answer": text}``.

    A ``TimedOut`` outcome from a timeout-wrapped backend is raised as
    ``TimeoutError`` so evaluation records the example as failed.
    """

    def __init__(
        self,
        backend: Backend,
        template: str = DEFAULT_TEMPLATE,
        options: Options | None = None,
    ) -> None:
        self.backend = backend
        self.template = template
        self.options = dict(options or {})

    def render(self, inputs: Mapping[str, Any]) -> str:
        try:
            return self.template.format(**inputs)
        except KeyError as exc:
            raise ValueError(f"Prompt template needs field {exc.args[0]!r}") from exc

    async def __call__(self, inputs: Mapping[str, Any]) -> dict[str, Any]:
        result = await self.backend.generate(self.render(inputs), self.options)
        if result.status is Status.TIMEOUT:
            raise TimeoutError(f"Backend {result.operation} timed out after {result.timeout_ms}ms")
        return {"answer": result.text.strip()}

    def __repr__(self) -> str:
        return f"PromptPipeline(template={self.template!r})"
