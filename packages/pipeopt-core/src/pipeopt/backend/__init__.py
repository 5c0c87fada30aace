"""Backend capability: the async generate/embed/stream contract and its providers."""

from pipeopt.backend.base import (
    Backend,
    EmbeddingResult,
    GenerationResult,
    TimedOut,
    Usage,
    is_backend,
)
from pipeopt.backend.litellm_backend import LITELLM_PROVIDERS, LiteLLMBackend
from pipeopt.backend.registry import BackendRegistry, create_backend, default_registry

__all__ = [
    "Backend",
    "BackendRegistry",
    "EmbeddingResult",
    "LITELLM_PROVIDERS",
    "LiteLLMBackend",
    "GenerationResult",
    "TimedOut",
    "Usage",
    "create_backend",
    "default_registry",
    "is_backend",
]
