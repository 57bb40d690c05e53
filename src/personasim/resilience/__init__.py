"""Resilience patterns for upstream generation failures."""

from personasim.resilience.circuit_breaker import CircuitBreaker, CircuitState
from personasim.resilience.errors import (
    CircuitOpenError,
    ErrorKind,
    FatalUpstreamError,
    GenerationUnavailableError,
    PersonaMemoryUnavailableError,
    TransientUpstreamError,
    UpstreamError,
    classify_error,
    is_fatal,
    is_retryable,
)
from personasim.resilience.fallbacks import FallbackCatalog
from personasim.resilience.layer import ResilienceLayer
from personasim.resilience.retry import RetryConfig, retry_with_backoff

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "CircuitOpenError",
    "ErrorKind",
    "FallbackCatalog",
    "FatalUpstreamError",
    "GenerationUnavailableError",
    "PersonaMemoryUnavailableError",
    "ResilienceLayer",
    "RetryConfig",
    "TransientUpstreamError",
    "UpstreamError",
    "classify_error",
    "is_fatal",
    "is_retryable",
    "retry_with_backoff",
]
