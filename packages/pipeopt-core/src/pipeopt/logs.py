"""structlog setup."""

from __future__ import annotations

import logging

import structlog

from pipeopt.settings import get_settings


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure structlog for console (default) or JSON output.

    Falls back to ``PIPEOPT_LOG_LEVEL`` / ``PIPEOPT_LOG_FORMAT`` when arguments
    are omitted.
    """
    settings = get_settings()
    level_name = (level or settings.log_level).upper()
    renderer: structlog.types.Processor
    if (fmt or settings.log_format).lower() == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level_name, logging.INFO)
        ),
    )
