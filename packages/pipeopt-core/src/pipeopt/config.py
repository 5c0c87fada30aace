"""Option records for backends, middleware, evaluation and optimization runs."""

from __future__ import annotations

from typing import Callable

from pydantic import BaseModel, Field


class BackendConfig(BaseModel):
    """Provider-agnostic backend configuration.

    ``provider`` selects the factory in the backend registry. The legacy
    ``type`` key is accepted as an alias.
    """

    provider: str | None = Field(default=None, alias="type")
    model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    api_key: str | None = None
    base_url: str | None = None
    organization: str | None = None
    timeout_ms: int = Field(default=30000, ge=1000)

    model_config = {"populate_by_name": True, "frozen": True}


class ThrottleConfig(BaseModel):
    """Token-bucket rate limit shared by every operation of a backend."""

    rps: float = Field(default=3.0, gt=0)
    burst: int | None = Field(default=None, ge=1)

    model_config = {"frozen": True}

    @property
    def effective_burst(self) -> int:
        return self.burst if self.burst is not None else max(1, int(self.rps * 2))


class RetryConfig(BaseModel):
    """Exponential backoff retry policy."""

    max_retries: int = Field(default=3, ge=0)
    initial_delay_ms: float = Field(default=1000, ge=0)
    max_delay_ms: float = Field(default=30000, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1.0)
    jitter: bool = True
    # Falls back to pipeopt.middleware.retry.default_retryable when unset
    retryable: Callable[[BaseException], bool] | None = None

    model_config = {"frozen": True}


class CircuitBreakerConfig(BaseModel):
    failure_threshold: int = Field(default=5, ge=1)
    timeout_ms: float = Field(default=60000, ge=0)
    success_threshold: int = Field(default=3, ge=1)

    model_config = {"frozen": True}


class TimeoutConfig(BaseModel):
    timeout_ms: float = Field(default=30000, gt=0)

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    log_requests: bool = True
    log_responses: bool = False
    log_errors: bool = True
    logger: Callable[..., None] | None = None

    model_config = {"frozen": True}


class MiddlewareConfig(BaseModel):
    """Which middleware to apply; absent sections are skipped."""

    throttle: ThrottleConfig | None = None
    retry: RetryConfig | None = None
    circuit_breaker: CircuitBreakerConfig | None = None
    timeout: TimeoutConfig | None = None
    logging: LoggingConfig | None = None

    model_config = {"frozen": True}


class EvaluationConfig(BaseModel):
    parallel: bool = False
    max_concurrency: int = Field(default=4, ge=1)
    timeout_ms: float = Field(default=30000, gt=0)

    model_config = {"frozen": True}


class OptimizationConfig(BaseModel):
    """Top-level configuration for an optimization run."""

    strategy: str = "beam"
    beam_width: int = Field(default=4, ge=1, le=20, description="Candidates kept per generation")
    max_iterations: int = Field(default=10, ge=1, le=100, description="Generations to run")
    concurrency: int = Field(default=8, ge=1, le=50, description="Candidates scored at once")
    run_id: str | None = None
    checkpoint_interval: int = Field(default=5, ge=1)
    timeout_ms: int = Field(default=300000, ge=1000)
    evaluation: EvaluationConfig = Field(default_factory=EvaluationConfig)

    model_config = {"frozen": True}
