"""Resilience layer: circuit breaker, backoff retry, fallback replies, health."""

from __future__ import annotations

import asyncio
from collections import Counter
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from personasim.config import settings
from personasim.models import FallbackReply, HealthState, HealthStatus, PersonaTraits
from personasim.observability.logging import get_logger
from personasim.resilience.circuit_breaker import CircuitBreaker
from personasim.resilience.errors import classify_error
from personasim.resilience.fallbacks import FallbackCatalog
from personasim.resilience.retry import RetryConfig, retry_with_backoff

logger = get_logger(__name__)

T = TypeVar("T")

# Failures above this count (with the circuit still closed) report "degraded".
DEGRADED_FAILURE_COUNT = 2


class ResilienceLayer:
    """Keeps upstream failures from reaching the trainee as exceptions."""

    def __init__(
        self,
        *,
        breaker: CircuitBreaker | None = None,
        catalog: FallbackCatalog | None = None,
        retry_config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.breaker = breaker or CircuitBreaker()
        self.catalog = catalog or FallbackCatalog()
        self.retry_config = retry_config or RetryConfig(
            max_attempts=settings.retry_max_attempts,
            delays=settings.retry_delays_seconds,
        )
        self._sleep = sleep
        self._errors_by_kind: Counter[str] = Counter()
        self._fallback_usage: Counter[str] = Counter()

    async def execute(self, operation: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``operation`` behind the circuit breaker."""
        return await self.breaker.call(operation, *args, **kwargs)

    async def retry_with_backoff(
        self,
        operation: Callable[[], Awaitable[T]],
        max_attempts: int | None = None,
        *,
        operation_name: str | None = None,
    ) -> T:
        config = self.retry_config
        if max_attempts is not None:
            config = RetryConfig(
                max_attempts=max_attempts, delays=config.delays, retryable=config.retryable
            )
        return await retry_with_backoff(
            operation, config, operation_name=operation_name, sleep=self._sleep
        )

    async def handle_failure(
        self,
        error: BaseException,
        conversation_id: str,
        persona: PersonaTraits | None = None,
        message: str | None = None,
    ) -> FallbackReply:
        """Classify ``error`` and pick a persona-appropriate fallback reply."""
        error_kind = classify_error(error).value
        logger.error(
            "Generation error occurred",
            error=str(error),
            error_kind=error_kind,
            conversation_id=conversation_id,
            persona=persona.name if persona else None,
            user_message=(message or "")[:100] or None,
        )

        reply = self.catalog.select(persona, error_kind)
        self._errors_by_kind[error_kind] += 1
        self._fallback_usage[self.catalog.pool_key_for(persona)] += 1

        logger.info(
            "Using fallback response",
            conversation_id=conversation_id,
            error_kind=error_kind,
            fallback_source=reply.source,
            reliability=reply.reliability,
        )
        return reply

    def add_fallback_responses(self, category: str, replies: Iterable[FallbackReply]) -> None:
        self.catalog.add(category, replies)

    def health_check(self) -> HealthStatus:
        breaker_open = self.breaker.is_open
        failures = self.breaker.failure_count

        if breaker_open:
            status = HealthState.UNHEALTHY
        elif failures > DEGRADED_FAILURE_COUNT:
            status = HealthState.DEGRADED
        else:
            status = HealthState.HEALTHY

        return HealthStatus(
            status=status,
            circuit_breaker_open=breaker_open,
            recent_failures=failures,
            last_failure_time=self.breaker.last_failure_time,
            details={"retry_in_seconds": round(self.breaker.seconds_until_retry(), 1)},
        )

    def error_metrics(self) -> dict[str, Any]:
        return {
            "total_errors": sum(self._errors_by_kind.values()),
            "errors_by_type": dict(self._errors_by_kind),
            "fallback_usage": dict(self._fallback_usage),
            "circuit_breaker_trips": self.breaker.trips,
        }


__all__ = ["ResilienceLayer", "DEGRADED_FAILURE_COUNT"]
