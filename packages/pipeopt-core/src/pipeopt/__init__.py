"""pipeopt - resilient LLM backends, pipeline evaluation and beam-search optimization."""

__all__ = ["BackendConfig", "OptimizationConfig", "PromptPipeline", "create_backend", "with_middlewares"]
__version__ = "0.1.0"


def __getattr__(name: str):
    """Lazy imports so importing the package does not pull in litellm or numpy."""
    if name in ("BackendConfig", "OptimizationConfig"):
        from pipeopt import config

        return getattr(config, name)
    if name == "PromptPipeline":
        from pipeopt.pipeline import PromptPipeline

        return PromptPipeline
    if name == "create_backend":
        from pipeopt.backend.registry import create_backend

        return create_backend
    if name == "with_middlewares":
        from pipeopt.middleware import with_middlewares

        return with_middlewares
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
