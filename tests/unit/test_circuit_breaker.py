"""Unit tests for circuit breaker."""

import pytest

from personasim.resilience.circuit_breaker import CircuitBreaker, CircuitState
from personasim.resilience.errors import CircuitOpenError


async def _ok() -> str:
    return "success"


async def _boom() -> None:
    raise RuntimeError("upstream down")


async def _trip(cb: CircuitBreaker, times: int) -> None:
    for _ in range(times):
        with pytest.raises(RuntimeError):
            await cb.call(_boom)


@pytest.mark.asyncio
async def test_circuit_breaker_closed_state(clock):
    cb = CircuitBreaker(failure_threshold=3, timeout=60, clock=clock)

    assert cb.state == CircuitState.CLOSED
    assert await cb.call(_ok) == "success"
    assert cb.state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_circuit_breaker_opens_after_threshold(clock):
    cb = CircuitBreaker(failure_threshold=3, timeout=60, clock=clock)

    await _trip(cb, 2)
    assert cb.state == CircuitState.CLOSED
    await _trip(cb, 1)

    assert cb.state == CircuitState.OPEN
    assert cb.is_open
    assert cb.trips == 1
    assert cb.last_failure_time is not None


@pytest.mark.asyncio
async def test_circuit_breaker_rejects_without_calling_upstream(clock):
    cb = CircuitBreaker(failure_threshold=1, timeout=60, clock=clock)
    await _trip(cb, 1)

    calls = []

    async def _tracked() -> str:
        calls.append(1)
        return "should not execute"

    clock.advance(59)
    with pytest.raises(CircuitOpenError):
        await cb.call(_tracked)
    assert calls == []


@pytest.mark.asyncio
async def test_circuit_breaker_attempts_again_after_timeout(clock):
    cb = CircuitBreaker(failure_threshold=2, timeout=60, clock=clock)
    await _trip(cb, 2)
    assert cb.is_open

    clock.advance(60)

    assert cb.state == CircuitState.CLOSED
    assert cb.failure_count == 0
    assert await cb.call(_ok) == "success"


@pytest.mark.asyncio
async def test_success_resets_failure_counter(clock):
    cb = CircuitBreaker(failure_threshold=3, timeout=60, clock=clock)
    await _trip(cb, 2)
    assert cb.failure_count == 2

    await cb.call(_ok)

    assert cb.failure_count == 0
    await _trip(cb, 2)
    assert cb.state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_seconds_until_retry_counts_down(clock):
    cb = CircuitBreaker(failure_threshold=1, timeout=60, clock=clock)
    assert cb.seconds_until_retry() == 0.0

    await _trip(cb, 1)
    clock.advance(15)

    assert cb.seconds_until_retry() == pytest.approx(45)


@pytest.mark.asyncio
async def test_manual_reset(clock):
    cb = CircuitBreaker(failure_threshold=1, timeout=60, clock=clock)
    await _trip(cb, 1)

    cb.reset()

    assert cb.state == CircuitState.CLOSED
    assert cb.last_failure_time is None


def test_threshold_defaults_from_settings(monkeypatch):
    monkeypatch.setenv("CIRCUIT_BREAKER_FAILURE_THRESHOLD", "7")
    monkeypatch.setenv("CIRCUIT_BREAKER_TIMEOUT_SECONDS", "12")
    from personasim.config import reset_settings_cache

    reset_settings_cache()
    cb = CircuitBreaker()

    assert cb.failure_threshold == 7
    assert cb.timeout == 12
