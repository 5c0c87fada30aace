"""Process settings via environment variables."""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings

_MAX_PARALLELISM = 16


class PipeoptSettings(BaseSettings):
    # Concurrency
    parallelism: int = 8

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"

    # Default backend
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    api_key: str | None = None

    model_config = {
        "env_prefix": "PIPEOPT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @field_validator("parallelism")
    @classmethod
    def _cap_parallelism(cls, value: int) -> int:
        return max(1, min(_MAX_PARALLELISM, value))


@lru_cache(maxsize=1)
def get_settings() -> PipeoptSettings:
    return PipeoptSettings()
