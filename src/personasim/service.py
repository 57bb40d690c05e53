"""Customer simulator façade.

Composes the orchestrator, gateway, persona tracker and resilience layer into
the operations an outward request handler needs. Callers always receive a
reply: upstream failures are turned into persona-appropriate fallback replies.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Literal, Optional, Sequence

from pydantic import BaseModel, Field

from personasim.gateway import LanguageModelGateway
from personasim.generation.orchestrator import GenerationOrchestrator, GenerationRequest
from personasim.metrics import ConversationMetricsTracker, MetricsSink
from personasim.models import (
    Completion,
    ConsistencyResult,
    ExchangeMetrics,
    FallbackReply,
    GenerationOptions,
    HealthStatus,
    PersonaAnalytics,
    PersonaTraits,
    ScenarioContext,
    TicketContext,
)
from personasim.observability.logging import bind_conversation, get_logger
from personasim.persona.tracker import PersonaStateTracker
from personasim.resilience.layer import ResilienceLayer
from personasim.storage.conversations import ConversationStore

logger = get_logger(__name__)

__all__ = ["CustomerRequest", "CustomerReply", "CustomerSimulator"]

FALLBACK_MODEL_LABEL = "fallback"


class CustomerRequest(BaseModel):
    conversation_id: str = Field(min_length=1)
    user_message: str = Field(min_length=1)
    persona: Optional[PersonaTraits] = None
    ticket: Optional[TicketContext] = None
    scenario: Optional[ScenarioContext] = None
    options: GenerationOptions = Field(default_factory=GenerationOptions)


class CustomerReply(BaseModel):
    content: str
    conversation_id: str
    tokens_used: int = Field(default=0, ge=0)
    model: str
    response_time: float = Field(default=0.0, ge=0.0)
    source: Literal["ai", "fallback"] = "ai"
    cached: bool = False
    quality_score: Optional[int] = None
    consistency: Optional[ConsistencyResult] = None
    error_kind: Optional[str] = None


class CustomerSimulator:
    def __init__(
        self,
        *,
        gateway: LanguageModelGateway,
        orchestrator: GenerationOrchestrator,
        tracker: PersonaStateTracker,
        resilience: ResilienceLayer,
        conversations: ConversationStore,
        metrics_sinks: Sequence[MetricsSink] = (),
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.gateway = gateway
        self.orchestrator = orchestrator
        self.tracker = tracker
        self.resilience = resilience
        self.conversations = conversations
        self._sinks = list(metrics_sinks)
        self._clock = clock

    async def generate_customer_response(self, request: CustomerRequest) -> CustomerReply:
        started = self._clock()
        with bind_conversation(request.conversation_id):
            logger.info(
                "Generating customer response",
                message_length=len(request.user_message),
                has_persona=request.persona is not None,
                has_ticket=request.ticket is not None,
                has_scenario=request.scenario is not None,
            )
            try:
                reply = await self._generate(request)
            except Exception as exc:
                fallback = await self.handle_failure(
                    exc, request.conversation_id, request.persona, request.user_message
                )
                reply = CustomerReply(
                    content=fallback.content,
                    conversation_id=request.conversation_id,
                    model=FALLBACK_MODEL_LABEL,
                    response_time=max(0.0, self._clock() - started),
                    source="fallback",
                    error_kind=fallback.error_kind,
                )
            await self._report(reply)
            return reply

    async def generate_variations(
        self,
        conversation_id: str,
        message: str,
        persona: PersonaTraits,
        n: int = 3,
        options: GenerationOptions | None = None,
    ) -> list[Completion]:
        return await self.orchestrator.generate_variations(conversation_id, message, persona, n, options)

    async def validate_response_consistency(
        self, conversation_id: str, reply: str, triggering_message: str = ""
    ) -> ConsistencyResult:
        return await self.tracker.validate(conversation_id, reply, triggering_message)

    async def get_persona_analytics(self, conversation_id: str) -> PersonaAnalytics:
        return await self.tracker.get_analytics(conversation_id)

    async def handle_failure(
        self,
        error: BaseException,
        conversation_id: str,
        persona: PersonaTraits | None = None,
        message: str | None = None,
    ) -> FallbackReply:
        return await self.resilience.handle_failure(error, conversation_id, persona, message)

    async def health_check(self, *, probe_upstream: bool = False) -> HealthStatus:
        status = self.resilience.health_check()
        details: dict[str, Any] = {
            **status.details,
            "gateway": await self.gateway.stats(),
            "errors": self.resilience.error_metrics(),
            "generation": self.orchestrator.generation_metrics(),
        }
        if probe_upstream:
            details["upstream_reachable"] = await self.gateway.ping()
        return status.model_copy(update={"details": details})

    @property
    def metrics_tracker(self) -> ConversationMetricsTracker | None:
        return next((s for s in self._sinks if isinstance(s, ConversationMetricsTracker)), None)

    # ------------------------------------------------------------------

    async def _generate(self, request: CustomerRequest) -> CustomerReply:
        if request.persona is not None:
            scored = await self.orchestrator.generate_scored(
                GenerationRequest(
                    conversation_id=request.conversation_id,
                    user_message=request.user_message,
                    persona=request.persona,
                    ticket=request.ticket,
                    scenario=request.scenario,
                    options=request.options,
                )
            )
            completion = scored.completion
            consistency = await self.tracker.validate(
                request.conversation_id, completion.content, request.user_message
            )
            quality_score: int | None = scored.quality.score
        else:
            context = await self.conversations.get(
                request.conversation_id
            ) or await self.conversations.initialize(request.conversation_id)
            completion = await self.resilience.execute(
                self.gateway.generate, context, request.user_message, request.options
            )
            consistency = None
            quality_score = None

        await self.conversations.append_exchange(
            request.conversation_id, request.user_message, completion.content
        )
        return CustomerReply(
            content=completion.content,
            conversation_id=completion.conversation_id,
            tokens_used=completion.tokens_used,
            model=completion.model,
            response_time=completion.response_time,
            source="ai",
            cached=completion.cached,
            quality_score=quality_score,
            consistency=consistency,
        )

    async def _report(self, reply: CustomerReply) -> None:
        metrics = ExchangeMetrics(
            conversation_id=reply.conversation_id,
            tokens_used=reply.tokens_used,
            latency=reply.response_time,
            model=reply.model,
            consistency_score=reply.consistency.updated_score if reply.consistency else None,
            quality_score=reply.quality_score,
            was_fallback=reply.source == "fallback",
            cached=reply.cached,
        )
        for sink in self._sinks:
            try:
                await sink.record_exchange(metrics)
            except Exception as exc:
                logger.error("Metrics sink %s failed: %s", type(sink).__name__, exc)
