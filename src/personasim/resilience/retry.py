"""Backoff retry for retryable upstream errors.

This is independent of the circuit breaker and of the gateway's one-shot
fallback-model retry. Callers opt in by wrapping an operation explicitly.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

from personasim.observability.logging import get_logger
from personasim.resilience.errors import classify_error, is_retryable

logger = get_logger(__name__)

T = TypeVar("T")

__all__ = [
    "RetryConfig",
    "DEFAULT_DELAYS",
    "retry_with_backoff",
]

DEFAULT_DELAYS: tuple[float, ...] = (1.0, 2.0, 5.0)


class RetryConfig:
    """Configuration for backoff retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        delays: Sequence[float] = DEFAULT_DELAYS,
        retryable: Callable[[BaseException], bool] = is_retryable,
    ):
        """Initialize retry configuration.

        Args:
            max_attempts: Maximum number of attempts (including first try)
            delays: Delay table in seconds, indexed by attempt; the last entry
                repeats when attempts outnumber the table
            retryable: Predicate deciding whether an error is worth retrying
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.delays = tuple(delays) or (0.0,)
        self.retryable = retryable

    def delay_for(self, attempt: int) -> float:
        """Delay after the zero-based ``attempt`` failed."""
        return self.delays[min(attempt, len(self.delays) - 1)]


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    *,
    operation_name: str | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` retrying retryable failures on the delay table.

    Non-retryable errors are raised immediately. After the final attempt the
    last error is raised unchanged.
    """
    config = config or RetryConfig()
    name = operation_name or getattr(operation, "__name__", "operation")

    for attempt in range(config.max_attempts):
        try:
            return await operation()
        except Exception as exc:
            if attempt + 1 >= config.max_attempts:
                logger.error("%s failed after %d attempts: %s", name, config.max_attempts, exc)
                raise
            if not config.retryable(exc):
                logger.warning(
                    "%s failed with non-retryable error (%s): %s",
                    name,
                    classify_error(exc).value,
                    exc,
                )
                raise

            delay = config.delay_for(attempt)
            logger.info(
                "%s attempt %d/%d failed: %s. Retrying in %.1fs...",
                name,
                attempt + 1,
                config.max_attempts,
                exc,
                delay,
            )
            await sleep(delay)

    # max_attempts >= 1 guarantees a return or raise above
    raise RuntimeError(f"{name} failed with no attempts")
