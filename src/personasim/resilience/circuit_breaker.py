"""Circuit breaker for upstream completion calls.

Prevents hammering the completion service once it is failing persistently.
"""

from __future__ import annotations

import time
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from personasim.config import settings
from personasim.models import utcnow
from personasim.observability.logging import get_logger
from personasim.resilience.errors import CircuitOpenError

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing fast


class CircuitBreaker:
    """Circuit breaker implementation.

    States:
    - CLOSED: Normal operation, calls pass through
    - OPEN: Failing fast, all calls rejected immediately

    Transitions:
    - CLOSED -> OPEN: After failure_threshold consecutive failures
    - OPEN -> CLOSED: After timeout seconds; the failure counter clears and the
      next call is simply attempted again
    - Any success resets the failure counter
    """

    def __init__(
        self,
        failure_threshold: int | None = None,
        timeout: float | None = None,
        name: str = "completion",
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize circuit breaker.

        Args:
            failure_threshold: Consecutive failures before opening the circuit
            timeout: Seconds the circuit stays open
            name: Name for logging
            clock: Monotonic time source (seconds)
        """
        self.failure_threshold = failure_threshold or settings.circuit_breaker_failure_threshold
        self.timeout = timeout if timeout is not None else settings.circuit_breaker_timeout_seconds
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.name = name
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_at: float | None = None
        self._last_failure_wall: datetime | None = None
        self._trips = 0

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_at is not None:
            elapsed = self._clock() - self._last_failure_at
            if elapsed >= self.timeout:
                logger.info(
                    "Circuit breaker %s transitioning OPEN -> CLOSED (timeout elapsed)",
                    self.name,
                )
                self._state = CircuitState.CLOSED
                self._failure_count = 0
        return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def last_failure_time(self) -> datetime | None:
        return self._last_failure_wall

    @property
    def trips(self) -> int:
        """Number of times the circuit has opened."""
        return self._trips

    async def call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Await ``func(*args, **kwargs)`` with circuit breaker protection.

        Raises:
            CircuitOpenError: If the circuit is open
        """
        if self.state == CircuitState.OPEN:
            logger.warning("Circuit breaker %s is OPEN, rejecting call", self.name)
            raise CircuitOpenError(
                f"Circuit breaker is open for {self.name} - service temporarily unavailable"
            )

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def _on_success(self) -> None:
        self._failure_count = 0

    def _on_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_at = self._clock()
        self._last_failure_wall = utcnow()

        if self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker %s CLOSED -> OPEN (failure threshold: %d)",
                self.name,
                self.failure_threshold,
            )
            self._state = CircuitState.OPEN
            self._trips += 1

    def seconds_until_retry(self) -> float:
        if self._state != CircuitState.OPEN or self._last_failure_at is None:
            return 0.0
        remaining = self.timeout - (self._clock() - self._last_failure_at)
        return max(0.0, remaining)

    def reset(self) -> None:
        """Manually reset circuit breaker to closed state."""
        logger.info("Circuit breaker %s manually reset to CLOSED", self.name)
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_at = None
        self._last_failure_wall = None


__all__ = ["CircuitBreaker", "CircuitState"]
