"""Language-model gateway.

Single façade over the upstream completion client. Builds the prompt, collapses
concurrent identical requests onto one upstream call, caches completed replies
for a bounded time, and retries once against the fallback model when the
primary model fails.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import time
from dataclasses import dataclass
from typing import Any, Callable

from personasim.config import settings
from personasim.llm_clients import CompletionClient, UpstreamCompletion
from personasim.models import Completion, ConversationContext, GenerationOptions
from personasim.observability.logging import get_logger
from personasim.prompts import PromptBuilder
from personasim.resilience.errors import (
    ErrorKind,
    GenerationUnavailableError,
    classify_error,
    is_fatal,
)
from personasim.storage.kv import InMemoryKeyValueStore, KeyValueStore

logger = get_logger(__name__)

__all__ = ["LanguageModelGateway", "ResolvedOptions", "fingerprint_request"]

_CACHE_PREFIX = "completion:"


@dataclass(frozen=True)
class ResolvedOptions:
    temperature: float
    max_tokens: int
    model: str
    use_cache: bool


def fingerprint_request(
    context: ConversationContext,
    message: str,
    options: ResolvedOptions,
    history_turns: int = 5,
) -> str:
    """Deterministic key over everything that influences the completion."""
    recent = context.message_history[-history_turns:] if history_turns > 0 else []
    payload = {
        "conversation_id": context.conversation_id,
        "scenario_id": context.scenario_id,
        "persona_id": context.persona_id,
        "context_data": context.context_data.model_dump(mode="json"),
        "history": [turn.content for turn in recent],
        "message": message,
        "temperature": options.temperature,
        "max_tokens": options.max_tokens,
        "model": options.model,
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class LanguageModelGateway:
    """Turn (context, message, options) into a :class:`Completion`."""

    def __init__(
        self,
        client: CompletionClient,
        *,
        cache: KeyValueStore | None = None,
        prompt_builder: type[PromptBuilder] = PromptBuilder,
        default_model: str | None = None,
        fallback_model: str | None = None,
        cache_ttl_seconds: int | None = None,
        history_window: int | None = None,
        fingerprint_turns: int | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._client = client
        self._cache = cache if cache is not None else InMemoryKeyValueStore()
        self._prompts = prompt_builder
        self.default_model = default_model or settings.default_model
        self.fallback_model = fallback_model or settings.fallback_model
        self._cache_ttl = (
            cache_ttl_seconds if cache_ttl_seconds is not None else settings.response_cache_ttl_seconds
        )
        self._history_window = history_window if history_window is not None else settings.history_window
        self._fingerprint_turns = (
            fingerprint_turns if fingerprint_turns is not None else settings.fingerprint_turns
        )
        self._clock = clock
        self._inflight: dict[str, asyncio.Task[Completion]] = {}
        self._cache_hits = 0
        self._cache_misses = 0

    # ------------------------------------------------------------------
    # Public API

    async def generate(
        self,
        context: ConversationContext,
        message: str,
        options: GenerationOptions | None = None,
    ) -> Completion:
        started = self._clock()
        resolved = self.resolve_options(options)
        fingerprint = fingerprint_request(context, message, resolved, self._fingerprint_turns)

        if resolved.use_cache:
            cached = await self._cache_lookup(fingerprint)
            if cached is not None:
                self._cache_hits += 1
                logger.debug(
                    "Completion cache hit",
                    conversation_id=context.conversation_id,
                    fingerprint=fingerprint[:12],
                )
                return cached.model_copy(
                    update={"cached": True, "response_time": self._elapsed(started)}
                )
            self._cache_misses += 1

        pending = self._inflight.get(fingerprint)
        if pending is not None:
            logger.debug(
                "Joining in-flight completion",
                conversation_id=context.conversation_id,
                fingerprint=fingerprint[:12],
            )
            return await asyncio.shield(pending)

        task = asyncio.create_task(self._execute(context, message, resolved, fingerprint, started))
        self._inflight[fingerprint] = task
        task.add_done_callback(lambda _t: self._inflight.pop(fingerprint, None))
        return await asyncio.shield(task)

    def resolve_options(self, options: GenerationOptions | None) -> ResolvedOptions:
        options = options or GenerationOptions()
        return ResolvedOptions(
            temperature=(
                options.temperature if options.temperature is not None else settings.default_temperature
            ),
            max_tokens=options.max_tokens if options.max_tokens is not None else settings.default_max_tokens,
            model=options.model or self.default_model,
            use_cache=options.use_cache,
        )

    def build_messages(self, context: ConversationContext, message: str) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": self._prompts.build_for_context(context.context_data)}]
        window = context.message_history[-self._history_window :] if self._history_window > 0 else []
        messages.extend({"role": turn.role, "content": turn.content} for turn in window)
        messages.append({"role": "user", "content": message})
        return messages

    async def stats(self) -> dict[str, Any]:
        lookups = self._cache_hits + self._cache_misses
        try:
            size: int | None = len(await self._cache.keys(f"{_CACHE_PREFIX}*"))
        except Exception as exc:
            logger.warning("Completion cache size unavailable: %s", exc)
            size = None
        return {
            "cache_size": size,
            "in_flight": len(self._inflight),
            "cache_hits": self._cache_hits,
            "cache_misses": self._cache_misses,
            "cache_hit_rate": round(self._cache_hits / lookups, 3) if lookups else 0.0,
        }

    async def clear_cache(self) -> int:
        keys = await self._cache.keys(f"{_CACHE_PREFIX}*")
        for key in keys:
            await self._cache.delete(key)
        logger.info("Completion cache cleared", entries=len(keys))
        return len(keys)

    async def ping(self) -> bool:
        """Lightweight upstream check; never raises."""
        probe = getattr(self._client, "ping", None)
        if probe is None:
            return True
        try:
            return bool(await probe())
        except Exception as exc:
            logger.error("Upstream health check failed: %s", exc)
            return False

    # ------------------------------------------------------------------
    # Internals

    async def _execute(
        self,
        context: ConversationContext,
        message: str,
        options: ResolvedOptions,
        fingerprint: str,
        started: float,
    ) -> Completion:
        messages = self.build_messages(context, message)
        upstream = await self._complete_with_fallback(context.conversation_id, messages, options)

        completion = Completion(
            content=upstream.text,
            tokens_used=max(0, upstream.tokens_used),
            model=upstream.model,
            response_time=self._elapsed(started),
            conversation_id=context.conversation_id,
        )
        if options.use_cache:
            try:
                await self._cache.set(
                    _CACHE_PREFIX + fingerprint, completion.model_dump_json(), self._cache_ttl
                )
            except Exception as exc:
                logger.warning(
                    "Failed to cache completion: %s", exc, conversation_id=context.conversation_id
                )

        logger.info(
            "Completion generated",
            conversation_id=context.conversation_id,
            model=completion.model,
            tokens_used=completion.tokens_used,
            response_time=round(completion.response_time, 3),
        )
        return completion

    async def _complete_with_fallback(
        self,
        conversation_id: str,
        messages: list[dict[str, str]],
        options: ResolvedOptions,
    ) -> UpstreamCompletion:
        try:
            return await self._call(options.model, messages, options)
        except Exception as exc:
            kind = classify_error(exc)
            if is_fatal(exc) or options.model == self.fallback_model:
                logger.error(
                    "Completion failed without fallback",
                    conversation_id=conversation_id,
                    model=options.model,
                    error_kind=kind.value,
                    error=str(exc),
                )
                raise GenerationUnavailableError(
                    f"Generation unavailable: {exc}", kind=kind, model=options.model, cause=exc
                ) from exc

            logger.warning(
                "Primary model failed, retrying with fallback model",
                conversation_id=conversation_id,
                model=options.model,
                fallback_model=self.fallback_model,
                error_kind=kind.value,
            )

        try:
            return await self._call(self.fallback_model, messages, options)
        except Exception as exc:
            kind = classify_error(exc)
            logger.error(
                "Fallback model failed",
                conversation_id=conversation_id,
                model=self.fallback_model,
                error_kind=kind.value,
                error=str(exc),
            )
            raise GenerationUnavailableError(
                f"Generation unavailable after fallback: {exc}",
                kind=kind if kind is not ErrorKind.UNKNOWN else None,
                model=self.fallback_model,
                cause=exc,
            ) from exc

    async def _call(
        self, model: str, messages: list[dict[str, str]], options: ResolvedOptions
    ) -> UpstreamCompletion:
        return await self._client.complete(
            model=model,
            messages=messages,
            max_tokens=options.max_tokens,
            temperature=options.temperature,
        )

    async def _cache_lookup(self, fingerprint: str) -> Completion | None:
        try:
            raw = await self._cache.get(_CACHE_PREFIX + fingerprint)
        except Exception as exc:
            logger.warning("Completion cache read failed; treating as miss: %s", exc)
            return None
        if raw is None:
            return None
        return Completion.model_validate_json(raw)

    def _elapsed(self, started: float) -> float:
        return max(0.0, self._clock() - started)
