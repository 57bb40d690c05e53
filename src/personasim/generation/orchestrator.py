"""Generation orchestrator: the bounded generate-score-retry loop.

Each request is attempted at most ``max_attempts`` times. Every attempt nudges
temperature and output size upward, scores the candidate, and returns the first
candidate that meets the quality threshold. Otherwise the best-scoring candidate
seen is returned unmodified.
"""

from __future__ import annotations

from collections import Counter, deque
from typing import Any, Optional

from pydantic import BaseModel, Field

from personasim.config import settings
from personasim.gateway import LanguageModelGateway
from personasim.generation.quality import QualityScorer, score_response
from personasim.models import (
    Completion,
    ContextData,
    ConversationContext,
    GenerationOptions,
    PersonaTraits,
    ResponseQuality,
    ScenarioContext,
    TicketContext,
)
from personasim.observability.logging import get_logger
from personasim.persona.tracker import PersonaStateTracker
from personasim.resilience.circuit_breaker import CircuitBreaker
from personasim.resilience.errors import CircuitOpenError, is_fatal
from personasim.storage.conversations import ConversationStore

logger = get_logger(__name__)

__all__ = ["GenerationRequest", "ScoredCompletion", "GenerationOrchestrator"]

_VARIATION_BASE_TEMPERATURE = 0.8
_VARIATION_TEMPERATURE_STEP = 0.1
_MAX_TEMPERATURE = 2.0


class GenerationRequest(BaseModel):
    conversation_id: str
    user_message: str
    persona: PersonaTraits
    ticket: Optional[TicketContext] = None
    scenario: Optional[ScenarioContext] = None
    options: GenerationOptions = Field(default_factory=GenerationOptions)


class ScoredCompletion(BaseModel):
    completion: Completion
    quality: ResponseQuality
    attempts: int


class GenerationOrchestrator:
    """Produce the best available customer reply under a bounded attempt budget."""

    def __init__(
        self,
        gateway: LanguageModelGateway,
        conversations: ConversationStore,
        tracker: PersonaStateTracker | None = None,
        *,
        breaker: CircuitBreaker | None = None,
        quality_scorer: QualityScorer = score_response,
        min_quality_score: int | None = None,
        max_attempts: int | None = None,
        temperature_step: float | None = None,
        max_tokens_step: int | None = None,
    ) -> None:
        self._gateway = gateway
        self._conversations = conversations
        self._tracker = tracker
        self._breaker = breaker
        self._score = quality_scorer
        self.min_quality_score = (
            min_quality_score if min_quality_score is not None else settings.min_quality_score
        )
        self.max_attempts = max_attempts if max_attempts is not None else settings.max_generation_attempts
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._temperature_step = (
            temperature_step if temperature_step is not None else settings.temperature_step
        )
        self._max_tokens_step = max_tokens_step if max_tokens_step is not None else settings.max_tokens_step

        self._quality_scores: deque[int] = deque(maxlen=100)
        self._issue_counts: Counter[str] = Counter()
        self._requests = 0
        self._regenerations = 0

    async def generate_customer_response(self, request: GenerationRequest) -> Completion:
        scored = await self.generate_scored(request)
        return scored.completion

    async def generate_scored(self, request: GenerationRequest) -> ScoredCompletion:
        logger.info("Generating customer response for conversation %s", request.conversation_id)
        context = await self.build_context(
            request.conversation_id, request.persona, request.ticket, request.scenario
        )
        self._requests += 1

        best: ScoredCompletion | None = None
        last_error: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            options = self.options_for_attempt(request.options, attempt)
            try:
                completion = await self._call_gateway(context, request.user_message, options)
            except CircuitOpenError:
                raise
            except Exception as exc:
                if is_fatal(exc):
                    logger.error(
                        "Fatal upstream error on attempt %d; not retrying: %s",
                        attempt,
                        exc,
                        conversation_id=request.conversation_id,
                    )
                    raise
                last_error = exc
                logger.error(
                    "Response generation attempt %d failed: %s",
                    attempt,
                    exc,
                    conversation_id=request.conversation_id,
                )
                continue

            quality = self._score(completion.content, request.persona, request.user_message)
            self._record_quality(quality)
            logger.info(
                "Response attempt %d quality score: %d",
                attempt,
                quality.score,
                conversation_id=request.conversation_id,
                issues=quality.issues,
            )

            if quality.score >= self.min_quality_score:
                if attempt > 1:
                    self._regenerations += 1
                return ScoredCompletion(completion=completion, quality=quality, attempts=attempt)

            if best is None or quality.score > best.quality.score:
                best = ScoredCompletion(completion=completion, quality=quality, attempts=attempt)

        if best is None:
            raise last_error  # type: ignore[misc]

        self._regenerations += 1
        logger.warning(
            "All attempts failed to meet quality threshold for conversation %s. "
            "Using best response with score %d",
            request.conversation_id,
            best.quality.score,
        )
        return best.model_copy(update={"attempts": self.max_attempts})

    async def generate_variations(
        self,
        conversation_id: str,
        message: str,
        persona: PersonaTraits,
        n: int = 3,
        options: GenerationOptions | None = None,
    ) -> list[Completion]:
        """Single unscored attempt per index with a nudged persona and hotter sampling."""
        base = options or GenerationOptions()
        results: list[Completion] = []
        for index in range(n):
            varied = self.vary_persona(persona, index)
            try:
                context = await self.build_context(conversation_id, varied, persist=False)
                variation_options = base.model_copy(
                    update={
                        "temperature": min(
                            _MAX_TEMPERATURE,
                            _VARIATION_BASE_TEMPERATURE + index * _VARIATION_TEMPERATURE_STEP,
                        ),
                        "max_tokens": base.max_tokens or settings.default_max_tokens,
                    }
                )
                results.append(await self._call_gateway(context, message, variation_options))
            except Exception as exc:
                logger.error("Variation %d generation failed: %s", index, exc, conversation_id=conversation_id)
        return results

    # ------------------------------------------------------------------
    # Helpers

    async def build_context(
        self,
        conversation_id: str,
        persona: PersonaTraits,
        ticket: TicketContext | None = None,
        scenario: ScenarioContext | None = None,
        *,
        persist: bool = True,
    ) -> ConversationContext:
        """Fetch or create the conversation context and fold persona/ticket/scenario into it."""
        context = await self._conversations.get(conversation_id)
        if context is None:
            seed = ContextData(persona=persona, ticket=ticket, scenario=scenario)
            if persist:
                context = await self._conversations.initialize(
                    conversation_id,
                    scenario_id=scenario.id if scenario else None,
                    persona_id=persona.name,
                    context_data=seed,
                )
            else:
                context = ConversationContext(
                    conversation_id=conversation_id,
                    scenario_id=scenario.id if scenario else None,
                    persona_id=persona.name,
                    context_data=seed,
                )

        updates: dict[str, Any] = {"persona": persona}
        if ticket is not None:
            updates["ticket"] = ticket
        if scenario is not None:
            updates["scenario"] = scenario
        enriched = context.context_data.model_copy(update=updates)
        if enriched != context.context_data:
            context.context_data = enriched
            if persist:
                await self._conversations.save(context)

        if persist and self._tracker is not None:
            await self._tracker.ensure_initialized(conversation_id, persona)
        return context

    def options_for_attempt(self, base: GenerationOptions, attempt: int) -> GenerationOptions:
        base_temperature = base.temperature if base.temperature is not None else settings.default_temperature
        base_max_tokens = base.max_tokens if base.max_tokens is not None else settings.default_max_tokens
        step = attempt - 1
        return base.model_copy(
            update={
                "temperature": min(1.0, base_temperature + step * self._temperature_step),
                "max_tokens": base_max_tokens + step * self._max_tokens_step,
            }
        )

    @staticmethod
    def vary_persona(persona: PersonaTraits, index: int) -> PersonaTraits:
        if index == 1 and persona.emotional_state == "calm":
            return persona.model_copy(update={"emotional_state": "confused"})
        if index == 2 and persona.patience == "medium":
            return persona.model_copy(update={"patience": "low"})
        return persona

    def generation_metrics(self) -> dict[str, Any]:
        scores = list(self._quality_scores)
        return {
            "requests": self._requests,
            "average_quality_score": round(sum(scores) / len(scores), 1) if scores else None,
            "regeneration_rate": round(self._regenerations / self._requests, 3) if self._requests else 0.0,
            "common_issues": [issue for issue, _ in self._issue_counts.most_common(5)],
        }

    async def _call_gateway(
        self, context: ConversationContext, message: str, options: GenerationOptions
    ) -> Completion:
        if self._breaker is not None:
            return await self._breaker.call(self._gateway.generate, context, message, options)
        return await self._gateway.generate(context, message, options)

    def _record_quality(self, quality: ResponseQuality) -> None:
        self._quality_scores.append(quality.score)
        for issue in quality.issues:
            self._issue_counts[issue.split(":")[0]] += 1
