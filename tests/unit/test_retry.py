"""Unit tests for backoff retry."""

import pytest

from personasim.resilience.errors import ErrorKind, FatalUpstreamError, TransientUpstreamError
from personasim.resilience.retry import RetryConfig, retry_with_backoff


class _Sleeper:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _flaky(failures: list[Exception], result: str = "ok"):
    calls = {"count": 0}

    async def _op() -> str:
        calls["count"] += 1
        if failures:
            raise failures.pop(0)
        return result

    return _op, calls


@pytest.mark.asyncio
async def test_retries_transient_errors_with_delay_table():
    sleeper = _Sleeper()
    op, calls = _flaky(
        [
            TransientUpstreamError("rate limited", kind=ErrorKind.RATE_LIMIT),
            TransientUpstreamError("timed out", kind=ErrorKind.TIMEOUT),
        ]
    )

    result = await retry_with_backoff(op, RetryConfig(max_attempts=3), sleep=sleeper)

    assert result == "ok"
    assert calls["count"] == 3
    assert sleeper.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_non_retryable_error_raises_immediately():
    sleeper = _Sleeper()
    op, calls = _flaky([FatalUpstreamError("bad key", kind=ErrorKind.AUTH)])

    with pytest.raises(FatalUpstreamError):
        await retry_with_backoff(op, RetryConfig(max_attempts=3), sleep=sleeper)

    assert calls["count"] == 1
    assert sleeper.delays == []


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    sleeper = _Sleeper()
    errors = [TransientUpstreamError(f"network {i}") for i in range(5)]
    op, calls = _flaky(errors)

    with pytest.raises(TransientUpstreamError, match="network 2"):
        await retry_with_backoff(op, RetryConfig(max_attempts=3), sleep=sleeper)

    assert calls["count"] == 3
    assert len(sleeper.delays) == 2


def test_delay_for_clamps_to_last_entry():
    config = RetryConfig(max_attempts=6, delays=(1.0, 2.0, 5.0))

    assert [config.delay_for(n) for n in range(5)] == [1.0, 2.0, 5.0, 5.0, 5.0]
