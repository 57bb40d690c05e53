"""Unit tests for upstream error classification."""

import pytest

from personasim.resilience.errors import (
    CircuitOpenError,
    ErrorKind,
    FatalUpstreamError,
    TransientUpstreamError,
    UpstreamError,
    classify_error,
    is_fatal,
    is_retryable,
)


class _CodedError(Exception):
    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.code = code


@pytest.mark.parametrize(
    ("error", "kind"),
    [
        (TransientUpstreamError("x", kind=ErrorKind.OVERLOAD), ErrorKind.OVERLOAD),
        (FatalUpstreamError("x", kind=ErrorKind.QUOTA_EXCEEDED), ErrorKind.QUOTA_EXCEEDED),
        (CircuitOpenError("x"), ErrorKind.CIRCUIT_OPEN),
        (_CodedError("boom", "insufficient_quota"), ErrorKind.QUOTA_EXCEEDED),
        (_CodedError("boom", "rate_limit_exceeded"), ErrorKind.RATE_LIMIT),
        (TimeoutError(), ErrorKind.TIMEOUT),
        (ConnectionResetError("reset by peer"), ErrorKind.NETWORK),
        (RuntimeError("Rate limit reached for gpt-4"), ErrorKind.RATE_LIMIT),
        (RuntimeError("The model is overloaded"), ErrorKind.OVERLOAD),
        (RuntimeError("Incorrect API key provided"), ErrorKind.AUTH),
        (ValueError("something odd"), ErrorKind.UNKNOWN),
    ],
)
def test_classify_error(error, kind):
    assert classify_error(error) is kind


def test_transient_errors_are_retryable():
    assert is_retryable(TransientUpstreamError("x", kind=ErrorKind.TIMEOUT))
    assert is_retryable(RuntimeError("connection refused"))
    assert not is_retryable(ValueError("something odd"))


def test_fatal_errors_are_not_retryable():
    error = FatalUpstreamError("bad key")

    assert error.kind is ErrorKind.AUTH
    assert not error.retryable
    assert not is_retryable(error)
    assert is_fatal(error)


def test_upstream_error_carries_context():
    cause = RuntimeError("inner")
    error = UpstreamError("outer", kind=ErrorKind.NETWORK, model="gpt-4", code="x", cause=cause)

    assert error.model == "gpt-4"
    assert error.cause is cause
    assert error.retryable
