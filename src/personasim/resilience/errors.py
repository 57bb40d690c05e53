"""Error taxonomy for upstream generation failures.

Transient failures (timeout, rate limit, overload, network) are eligible for the
gateway's fallback-model retry and for backoff retry. Fatal failures (auth,
quota) are never retried. ``CircuitOpenError`` is raised before any upstream
attempt once the breaker has opened.
"""

from __future__ import annotations

from enum import Enum

__all__ = [
    "ErrorKind",
    "UpstreamError",
    "TransientUpstreamError",
    "FatalUpstreamError",
    "GenerationUnavailableError",
    "CircuitOpenError",
    "PersonaMemoryUnavailableError",
    "TRANSIENT_KINDS",
    "FATAL_KINDS",
    "classify_error",
    "is_retryable",
    "is_fatal",
]


class ErrorKind(str, Enum):
    RATE_LIMIT = "rate_limit"
    QUOTA_EXCEEDED = "quota_exceeded"
    TIMEOUT = "timeout"
    NETWORK = "network"
    OVERLOAD = "overload"
    AUTH = "auth"
    CIRCUIT_OPEN = "circuit_open"
    UNKNOWN = "unknown"


TRANSIENT_KINDS = frozenset(
    {ErrorKind.RATE_LIMIT, ErrorKind.TIMEOUT, ErrorKind.NETWORK, ErrorKind.OVERLOAD}
)
FATAL_KINDS = frozenset({ErrorKind.QUOTA_EXCEEDED, ErrorKind.AUTH})

# Provider error codes, checked before message signatures.
_CODE_KINDS: dict[str, ErrorKind] = {
    "rate_limit_exceeded": ErrorKind.RATE_LIMIT,
    "insufficient_quota": ErrorKind.QUOTA_EXCEEDED,
    "model_overloaded": ErrorKind.OVERLOAD,
    "service_unavailable": ErrorKind.OVERLOAD,
    "timeout": ErrorKind.TIMEOUT,
    "invalid_api_key": ErrorKind.AUTH,
}

_MESSAGE_SIGNATURES: tuple[tuple[str, ErrorKind], ...] = (
    ("circuit breaker is open", ErrorKind.CIRCUIT_OPEN),
    ("rate limit", ErrorKind.RATE_LIMIT),
    ("quota", ErrorKind.QUOTA_EXCEEDED),
    ("timeout", ErrorKind.TIMEOUT),
    ("timed out", ErrorKind.TIMEOUT),
    ("overloaded", ErrorKind.OVERLOAD),
    ("network", ErrorKind.NETWORK),
    ("connection", ErrorKind.NETWORK),
    ("unauthorized", ErrorKind.AUTH),
    ("api key", ErrorKind.AUTH),
)


class UpstreamError(Exception):
    """Base class for classified upstream failures."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind | None = None,
        model: str | None = None,
        code: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind
        self.model = model
        self.code = code
        self.cause = cause

    @property
    def retryable(self) -> bool:
        return self.kind in TRANSIENT_KINDS


class TransientUpstreamError(UpstreamError):
    """Timeout, rate limit, overload or network failure."""

    kind = ErrorKind.NETWORK


class FatalUpstreamError(UpstreamError):
    """Authentication or quota failure; never retried."""

    kind = ErrorKind.AUTH


class GenerationUnavailableError(UpstreamError):
    """Raised by the gateway once the primary and fallback models have both failed."""


class CircuitOpenError(UpstreamError):
    """Raised when a call is attempted while the circuit is open."""

    kind = ErrorKind.CIRCUIT_OPEN


class PersonaMemoryUnavailableError(RuntimeError):
    """Persona memory store read or write failed."""


def classify_error(error: BaseException) -> ErrorKind:
    """Map any exception to an :class:`ErrorKind`.

    Classified errors carry their own kind; otherwise the ``code`` attribute and
    then the message are matched against known signatures.
    """
    if isinstance(error, UpstreamError) and error.kind is not ErrorKind.UNKNOWN:
        return error.kind

    code = getattr(error, "code", None)
    if isinstance(code, str) and code in _CODE_KINDS:
        return _CODE_KINDS[code]

    if isinstance(error, TimeoutError):
        return ErrorKind.TIMEOUT
    if isinstance(error, ConnectionError):
        return ErrorKind.NETWORK

    message = str(error).lower()
    for signature, kind in _MESSAGE_SIGNATURES:
        if signature in message:
            return kind
    return ErrorKind.UNKNOWN


def is_retryable(error: BaseException) -> bool:
    """True for errors worth retrying with backoff."""
    if getattr(error, "retryable", None) is True:
        return True
    return classify_error(error) in TRANSIENT_KINDS


def is_fatal(error: BaseException) -> bool:
    return classify_error(error) in FATAL_KINDS
