"""Request/response/error logging around a backend."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

import structlog

from pipeopt.backend.base import Backend
from pipeopt.config import LoggingConfig
from pipeopt.middleware.base import Middleware

logger = structlog.get_logger()


class LoggingBackend(Middleware):
    """Pure side-effect wrapper: results and errors pass through untouched."""

    layer = "logging"

    def __init__(self, inner: Backend, config: LoggingConfig | None = None) -> None:
        super().__init__(inner)
        self.config = config or LoggingConfig()
        self._emit: Callable[..., None] = self.config.logger or logger.info

    async def _around(self, operation: str, call: Callable[[], Awaitable[Any]]) -> Any:
        if self.config.log_requests:
            self._emit("backend_request", method=operation)
        try:
            result = await call()
        except Exception as exc:
            if self.config.log_errors:
                logger.error("backend_error", method=operation, error=str(exc))
            raise
        if self.config.log_responses:
            self._emit("backend_response", method=operation, result=result)
        return result
