"""Upstream completion clients.

This module is the single surface for obtaining a chat-completion client. The
gateway only depends on the :class:`CompletionClient` protocol; use
:func:`get_completion_client` to build the configured implementation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

import openai
from openai import AsyncOpenAI

from personasim.config import Settings, settings as default_settings
from personasim.observability.logging import get_logger
from personasim.resilience.errors import (
    ErrorKind,
    FatalUpstreamError,
    TransientUpstreamError,
    UpstreamError,
)

logger = get_logger(__name__)

__all__ = [
    "UpstreamCompletion",
    "CompletionClient",
    "OpenAICompletionClient",
    "FakeCompletionClient",
    "CompletionClientDisabledError",
    "get_completion_client",
    "map_openai_error",
]


@dataclass(frozen=True)
class UpstreamCompletion:
    text: str
    tokens_used: int
    model: str


class CompletionClient(Protocol):
    async def complete(
        self,
        *,
        model: str,
        messages: Sequence[dict[str, str]],
        max_tokens: int,
        temperature: float,
    ) -> UpstreamCompletion: ...


class CompletionClientDisabledError(RuntimeError):
    """Raised when completions are requested with ``LLM_PROVIDER=off``."""


def map_openai_error(exc: Exception, model: str) -> UpstreamError:
    """Translate an ``openai`` SDK exception into the upstream error taxonomy."""
    code = getattr(exc, "code", None)
    code = code if isinstance(code, str) else None
    message = str(exc) or exc.__class__.__name__

    if isinstance(exc, openai.APITimeoutError):
        return TransientUpstreamError(message, kind=ErrorKind.TIMEOUT, model=model, code=code, cause=exc)
    if isinstance(exc, openai.APIConnectionError):
        return TransientUpstreamError(message, kind=ErrorKind.NETWORK, model=model, code=code, cause=exc)
    if isinstance(exc, openai.RateLimitError):
        if code == "insufficient_quota":
            return FatalUpstreamError(
                message, kind=ErrorKind.QUOTA_EXCEEDED, model=model, code=code, cause=exc
            )
        return TransientUpstreamError(message, kind=ErrorKind.RATE_LIMIT, model=model, code=code, cause=exc)
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return FatalUpstreamError(message, kind=ErrorKind.AUTH, model=model, code=code, cause=exc)
    if isinstance(exc, openai.InternalServerError):
        return TransientUpstreamError(message, kind=ErrorKind.OVERLOAD, model=model, code=code, cause=exc)
    return UpstreamError(message, model=model, code=code, cause=exc)


class OpenAICompletionClient:
    """Chat completions via ``AsyncOpenAI`` (non-streaming, no SDK retries)."""

    def __init__(self, client: AsyncOpenAI | None = None, *, settings: Settings | None = None) -> None:
        if client is None:
            cfg = settings or default_settings
            kwargs: dict[str, Any] = {
                "api_key": cfg.openai_api_key or None,
                "timeout": cfg.upstream_timeout_seconds,
                "max_retries": 0,
            }
            if cfg.openai_organization:
                kwargs["organization"] = cfg.openai_organization
            if cfg.openai_base_url:
                kwargs["base_url"] = cfg.openai_base_url
            client = AsyncOpenAI(**kwargs)
        self._client = client

    async def complete(
        self,
        *,
        model: str,
        messages: Sequence[dict[str, str]],
        max_tokens: int,
        temperature: float,
    ) -> UpstreamCompletion:
        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=list(messages),
                max_tokens=max_tokens,
                temperature=temperature,
                stream=False,
            )
        except openai.OpenAIError as exc:
            mapped = map_openai_error(exc, model)
            logger.warning(
                "Upstream completion failed for %s: %s", model, mapped, error_kind=mapped.kind.value
            )
            raise mapped from exc

        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""
        tokens = response.usage.total_tokens if response.usage else 0
        return UpstreamCompletion(text=text, tokens_used=max(0, tokens or 0), model=response.model or model)

    async def ping(self) -> bool:
        await self._client.models.list()
        return True


_DEFAULT_FAKE_REPLY = (
    "Hi, I'm still having trouble with this. I tried restarting it like you said "
    "but it's doing the same thing. What should I try next?"
)


@dataclass
class FakeCompletionClient:
    """Deterministic completion client for tests, demos and ``LLM_PROVIDER=fake``.

    ``script`` is consumed in order; each entry is either reply text or an
    exception instance to raise. Once exhausted, ``default_reply`` is returned.
    """

    script: list[str | BaseException] = field(default_factory=list)
    default_reply: str = _DEFAULT_FAKE_REPLY
    calls: list[dict[str, Any]] = field(default_factory=list)

    async def complete(
        self,
        *,
        model: str,
        messages: Sequence[dict[str, str]],
        max_tokens: int,
        temperature: float,
    ) -> UpstreamCompletion:
        self.calls.append(
            {
                "model": model,
                "messages": [dict(m) for m in messages],
                "max_tokens": max_tokens,
                "temperature": temperature,
            }
        )
        step = self.script.pop(0) if self.script else self.default_reply
        if isinstance(step, BaseException):
            raise step
        prompt_chars = sum(len(m.get("content", "")) for m in messages)
        return UpstreamCompletion(
            text=step,
            tokens_used=(prompt_chars + len(step)) // 4,
            model=model,
        )

    async def ping(self) -> bool:
        return True

    @property
    def call_count(self) -> int:
        return len(self.calls)


def get_completion_client(settings: Settings | None = None) -> CompletionClient:
    """Return the completion client selected by ``LLM_PROVIDER``."""
    cfg = settings or default_settings
    provider = cfg.llm_provider
    if provider == "fake":
        logger.info("Using fake completion client")
        return FakeCompletionClient()
    if provider == "off":
        raise CompletionClientDisabledError("Completions are disabled (LLM_PROVIDER=off)")
    logger.info("Creating OpenAI completion client", default_model=cfg.default_model)
    return OpenAICompletionClient(settings=cfg if settings is not None else None)
