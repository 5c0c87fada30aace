"""LiteLLM-backed provider.

LiteLLM speaks the wire protocol of 100+ providers, so one backend class
covers OpenAI, Anthropic and Ollama. The model string picks the provider:

- "gpt-4o-mini" -> OpenAI API
- "claude-sonnet-4-20250514" -> Anthropic API
- "ollama/llama3" -> Ollama (local)
"""

from __future__ import annotations

import os
from typing import Any, AsyncIterator

import structlog

from pipeopt.backend.base import EmbeddingResult, GenerationResult, Options, Usage
from pipeopt.config import BackendConfig
from pipeopt.errors import BackendError

logger = structlog.get_logger()

LITELLM_PROVIDERS = ("openai", "anthropic", "ollama", "litellm")

_API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


def _error_type(exc: Exception) -> str | None:
    import litellm

    if isinstance(exc, litellm.RateLimitError):
        return "rate_limit_exceeded"
    if isinstance(exc, litellm.ServiceUnavailableError):
        return "service_unavailable"
    if isinstance(exc, litellm.InternalServerError):
        return "server_error"
    return None


def _to_backend_error(exc: Exception, operation: str, model: str) -> BackendError:
    status = getattr(exc, "status_code", None)
    return BackendError(
        f"{operation} failed for {model}: {exc}",
        status=status if isinstance(status, int) else None,
        error_type=_error_type(exc),
        details={"model": model, "operation": operation},
    )


def _usage(raw: Any) -> Usage:
    if raw is None:
        return Usage()
    prompt = getattr(raw, "prompt_tokens", 0) or 0
    completion = getattr(raw, "completion_tokens", 0) or 0
    total = getattr(raw, "total_tokens", 0) or prompt + completion
    return Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


class LiteLLMBackend:
    """Backend calling ``litellm.acompletion`` / ``litellm.aembedding``."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        embedding_model: str = "text-embedding-3-small",
        api_key: str | None = None,
        base_url: str | None = None,
        organization: str | None = None,
        timeout_ms: int = 30000,
    ) -> None:
        self.model = model
        self.embedding_model = embedding_model
        self._api_key = api_key
        self._base_url = base_url
        self._organization = organization
        self._timeout_s = timeout_ms / 1000

    @classmethod
    def from_config(cls, config: BackendConfig) -> LiteLLMBackend:
        api_key = config.api_key
        if api_key is None and config.provider in _API_KEY_ENV:
            api_key = os.environ.get(_API_KEY_ENV[config.provider])
        model = config.model
        if config.provider == "ollama" and not model.startswith("ollama/"):
            model = f"ollama/{model}"
        return cls(
            model=model,
            embedding_model=config.embedding_model,
            api_key=api_key,
            base_url=config.base_url,
            organization=config.organization,
            timeout_ms=config.timeout_ms,
        )

    def _common_kwargs(self, options: Options) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"timeout": options.get("timeout_ms", self._timeout_s * 1000) / 1000}
        api_key = options.get("api_key", self._api_key)
        if api_key:
            kwargs["api_key"] = api_key
        if self._base_url:
            kwargs["api_base"] = self._base_url
        if self._organization:
            kwargs["organization"] = self._organization
        return kwargs

    def _completion_kwargs(self, prompt: str, options: Options) -> dict[str, Any]:
        kwargs = self._common_kwargs(options)
        kwargs.update(
            model=options.get("model", self.model),
            messages=[{"role": "user", "content": prompt}],
            temperature=options.get("temperature", 0.7),
            max_tokens=options.get("max_tokens", 512),
        )
        return kwargs

    async def generate(self, prompt: str, options: Options | None = None) -> GenerationResult:
        import litellm

        options = options or {}
        kwargs = self._completion_kwargs(prompt, options)
        try:
            response = await litellm.acompletion(**kwargs)
        except Exception as exc:
            raise _to_backend_error(exc, "generate", kwargs["model"]) from exc

        choice = response.choices[0]
        text = choice.message.content or ""
        logger.debug("llm_response", model=kwargs["model"], length=len(text))
        return GenerationResult(
            text=text,
            usage=_usage(getattr(response, "usage", None)),
            model=kwargs["model"],
            finish_reason=getattr(choice, "finish_reason", None),
        )

    async def embed(self, text: str, options: Options | None = None) -> EmbeddingResult:
        import litellm

        options = options or {}
        model = options.get("model", self.embedding_model)
        kwargs = self._common_kwargs(options)
        try:
            response = await litellm.aembedding(model=model, input=[text], **kwargs)
        except Exception as exc:
            raise _to_backend_error(exc, "embed", model) from exc

        item = response.data[0]
        vector = item["embedding"] if isinstance(item, dict) else item.embedding
        usage = _usage(getattr(response, "usage", None))
        return EmbeddingResult(
            vector=tuple(float(v) for v in vector),
            model=model,
            usage=Usage(prompt_tokens=usage.prompt_tokens, total_tokens=usage.total_tokens),
        )

    async def stream(self, prompt: str, options: Options | None = None) -> AsyncIterator[str]:
        import litellm

        options = options or {}
        kwargs = self._completion_kwargs(prompt, options)
        try:
            response = await litellm.acompletion(stream=True, **kwargs)
        except Exception as exc:
            raise _to_backend_error(exc, "stream", kwargs["model"]) from exc

        async def _deltas() -> AsyncIterator[str]:
            async for chunk in response:
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta

        return _deltas()
