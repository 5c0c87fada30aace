"""Provider registry: maps a provider id to a backend factory."""

from __future__ import annotations

import threading
from typing import Any, Callable, Mapping

import structlog

from pipeopt.backend.base import Backend
from pipeopt.config import BackendConfig
from pipeopt.errors import UnknownProviderError
from pipeopt.settings import get_settings

logger = structlog.get_logger()

BackendFactory = Callable[[BackendConfig], Backend]


class BackendRegistry:
    """Injectable provider registry.

    Tests and applications can build their own; ``default_registry()`` returns
    the process-wide one with the bundled providers registered.
    """

    def __init__(self, factories: Mapping[str, BackendFactory] | None = None) -> None:
        self._factories: dict[str, BackendFactory] = dict(factories or {})

    def register(self, provider: str, factory: BackendFactory) -> None:
        self._factories[provider] = factory

    def providers(self) -> list[str]:
        return sorted(self._factories)

    def __contains__(self, provider: object) -> bool:
        return provider in self._factories

    def create(self, config: BackendConfig | Mapping[str, Any]) -> Backend:
        """Build a backend for ``config.provider`` (``PIPEOPT_PROVIDER`` when unset)."""
        if not isinstance(config, BackendConfig):
            config = BackendConfig.model_validate(dict(config))
        if config.provider is None:
            settings = get_settings()
            config = config.model_copy(
                update={"provider": settings.provider, "api_key": config.api_key or settings.api_key}
            )

        factory = self._factories.get(config.provider or "")
        if factory is None:
            raise UnknownProviderError(config.provider, self.providers())

        logger.debug("backend_created", provider=config.provider, model=config.model)
        return factory(config)


_default: BackendRegistry | None = None
_default_lock = threading.Lock()


def default_registry() -> BackendRegistry:
    """Process-wide registry, initialised once with the LiteLLM providers."""
    global _default
    with _default_lock:
        if _default is None:
            from pipeopt.backend.litellm_backend import LITELLM_PROVIDERS, LiteLLMBackend

            registry = BackendRegistry()
            for provider in LITELLM_PROVIDERS:
                registry.register(provider, LiteLLMBackend.from_config)
            _default = registry
        return _default


def create_backend(
    config: BackendConfig | Mapping[str, Any],
    registry: BackendRegistry | None = None,
) -> Backend:
    """Create a backend from configuration, using the default registry unless given one."""
    return (registry or default_registry()).create(config)
