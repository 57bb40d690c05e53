"""Persona state tracker.

Owns per-conversation persona memory (declared traits, behavior history and a
consistency score) and validates generated replies against the declared
persona. Memory lives in a :class:`KeyValueStore` under
``persona:{conversation_id}:memory``.

Store failures never block generation: a failed read is treated as "no memory"
and validation passes vacuously; a failed write is logged and the computed
result is still returned.
"""

from __future__ import annotations

from collections import Counter

from personasim.config import settings
from personasim.models import (
    BehaviorEvent,
    ConsistencyResult,
    ConsistencyViolation,
    PersonaAnalytics,
    PersonaMemory,
    PersonaTraits,
    ViolationType,
    utcnow,
)
from personasim.observability.logging import get_logger
from personasim.persona import lexicon
from personasim.resilience.errors import PersonaMemoryUnavailableError
from personasim.storage.kv import KeyValueStore

logger = get_logger(__name__)

__all__ = ["PersonaStateTracker", "SEVERITY_PENALTIES"]

SEVERITY_PENALTIES = {"high": 15, "medium": 8, "low": 3}

# Behavioral drift is only judged once this many events exist.
_MIN_EVENTS_FOR_PATTERN_CHECK = 4
_RECENT_PATTERN_WINDOW = 3


class PersonaStateTracker:
    """Maintain character continuity across a conversation and quantify drift."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        ttl_seconds: int | None = None,
        min_consistency_score: int | None = None,
    ) -> None:
        self._store = store
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.persona_memory_ttl_seconds
        self.min_consistency_score = (
            min_consistency_score
            if min_consistency_score is not None
            else settings.min_consistency_score
        )

    @staticmethod
    def memory_key(conversation_id: str) -> str:
        return f"persona:{conversation_id}:memory"

    # ------------------------------------------------------------------
    # Memory lifecycle

    async def initialize(self, conversation_id: str, traits: PersonaTraits) -> PersonaMemory:
        memory = PersonaMemory(
            conversation_id=conversation_id,
            persona_id=traits.name,
            traits=traits,
            behavior_history=[
                BehaviorEvent(
                    action="persona_initialized",
                    context="conversation_start",
                    emotional_state=traits.emotional_state,
                    response_pattern=traits.communication_style,
                )
            ],
        )
        await self._save(memory)
        logger.info("Initialized persona %s for conversation %s", traits.name, conversation_id)
        return memory

    async def ensure_initialized(self, conversation_id: str, traits: PersonaTraits) -> PersonaMemory:
        """Return existing memory, creating it on the first persona-bearing request."""
        memory = await self.get_memory(conversation_id)
        if memory is not None:
            return memory
        return await self.initialize(conversation_id, traits)

    async def get_memory(self, conversation_id: str) -> PersonaMemory | None:
        try:
            return await self._load(conversation_id)
        except PersonaMemoryUnavailableError as exc:
            logger.error("Persona memory unavailable for conversation %s: %s", conversation_id, exc)
            return None

    # ------------------------------------------------------------------
    # Validation

    async def validate(
        self, conversation_id: str, reply: str, triggering_message: str = ""
    ) -> ConsistencyResult:
        memory = await self.get_memory(conversation_id)
        if memory is None:
            logger.warning("No persona memory found for conversation %s", conversation_id)
            return ConsistencyResult(is_consistent=True, violations=[], updated_score=100)

        violations = self.detect_violations(reply, memory)
        impact = sum(SEVERITY_PENALTIES[v.severity] for v in violations)
        updated_score = max(0, memory.consistency_score - impact)

        memory.behavior_history.append(
            BehaviorEvent(
                action="response_generated",
                context=triggering_message[:200] or "reply",
                emotional_state=lexicon.detect_emotional_state(reply),
                response_pattern=lexicon.detect_response_pattern(reply),
            )
        )
        memory.consistency_score = updated_score
        memory.last_updated = utcnow()
        await self._save(memory)

        is_consistent = (
            all(v.severity != "high" for v in violations)
            and updated_score >= self.min_consistency_score
        )
        logger.info(
            "Consistency validation for conversation %s",
            conversation_id,
            is_consistent=is_consistent,
            violation_count=len(violations),
            updated_score=updated_score,
        )
        return ConsistencyResult(
            is_consistent=is_consistent, violations=violations, updated_score=updated_score
        )

    def detect_violations(self, reply: str, memory: PersonaMemory) -> list[ConsistencyViolation]:
        traits = memory.traits
        violations: list[ConsistencyViolation] = []
        violations.extend(self._check_technical_level(reply, traits))
        violations.extend(self._check_communication_style(reply, traits))
        violations.extend(self._check_emotional_state(reply, traits))
        violations.extend(self._check_behavioral_pattern(reply, memory))
        return violations

    @staticmethod
    def _check_technical_level(reply: str, traits: PersonaTraits) -> list[ConsistencyViolation]:
        technical = lexicon.count_terms(reply, lexicon.TECHNICAL_TERMS)
        basic = lexicon.count_terms(reply, lexicon.BASIC_TERMS)

        if traits.tech_level == "beginner" and technical > 2:
            return [
                ConsistencyViolation(
                    type=ViolationType.TRAIT_MISMATCH,
                    severity="high",
                    description=f"Beginner persona using too many technical terms ({technical})",
                    suggested_correction="Use simpler language appropriate for beginner technical level",
                )
            ]
        if traits.tech_level == "intermediate" and technical > 5:
            return [
                ConsistencyViolation(
                    type=ViolationType.TRAIT_MISMATCH,
                    severity="medium",
                    description="Intermediate persona using too many advanced technical terms",
                    suggested_correction="Balance technical and basic terminology for intermediate level",
                )
            ]
        if traits.tech_level == "advanced" and basic > technical and len(reply) > 100:
            return [
                ConsistencyViolation(
                    type=ViolationType.TRAIT_MISMATCH,
                    severity="medium",
                    description="Advanced persona not demonstrating sufficient technical knowledge",
                    suggested_correction="Include more technical terminology and concepts",
                )
            ]
        return []

    @staticmethod
    def _check_communication_style(reply: str, traits: PersonaTraits) -> list[ConsistencyViolation]:
        formal = lexicon.count_terms(reply, lexicon.FORMAL_MARKERS)
        casual = lexicon.count_terms(reply, lexicon.CASUAL_MARKERS)
        technical = lexicon.count_terms(reply, lexicon.TECHNICAL_MARKERS)
        style = traits.communication_style

        if style == "formal" and casual > formal:
            description = "Formal persona using too much casual language"
            correction = "Use more formal language patterns and polite expressions"
        elif style == "casual" and formal > 2 and casual == 0:
            description = "Casual persona using overly formal language"
            correction = "Include more casual expressions and relaxed tone"
        elif style == "technical" and technical == 0 and len(reply) > 50:
            description = "Technical persona not using precise technical language"
            correction = "Include more specific technical terminology"
        else:
            return []

        return [
            ConsistencyViolation(
                type=ViolationType.COMMUNICATION_STYLE,
                severity="medium",
                description=description,
                suggested_correction=correction,
            )
        ]

    @staticmethod
    def _check_emotional_state(reply: str, traits: PersonaTraits) -> list[ConsistencyViolation]:
        detected = lexicon.detect_emotional_state(reply)
        if detected == "neutral":
            return []
        allowed = lexicon.ALLOWED_TRANSITIONS.get(traits.emotional_state, frozenset())
        if detected in allowed:
            return []
        return [
            ConsistencyViolation(
                type=ViolationType.EMOTIONAL_SHIFT,
                severity="high",
                description=(
                    f"Unexpected emotional transition from {traits.emotional_state} to {detected}"
                ),
                suggested_correction=(
                    f"Maintain emotional consistency with {traits.emotional_state} state"
                ),
            )
        ]

    @staticmethod
    def _check_behavioral_pattern(reply: str, memory: PersonaMemory) -> list[ConsistencyViolation]:
        history = memory.behavior_history
        if len(history) < _MIN_EVENTS_FOR_PATTERN_CHECK:
            return []
        recent = {event.response_pattern for event in history[-_RECENT_PATTERN_WINDOW:]}
        if lexicon.detect_response_pattern(reply) in recent:
            return []
        return [
            ConsistencyViolation(
                type=ViolationType.BEHAVIOR_INCONSISTENCY,
                severity="low",
                description="Response pattern differs significantly from recent behavior",
                suggested_correction="Maintain consistent behavioral patterns throughout conversation",
            )
        ]

    # ------------------------------------------------------------------
    # Analytics

    async def get_analytics(self, conversation_id: str) -> PersonaAnalytics:
        memory = await self.get_memory(conversation_id)
        if memory is None:
            return PersonaAnalytics(conversation_id=conversation_id)

        frequency = Counter(event.response_pattern for event in memory.behavior_history)
        return PersonaAnalytics(
            conversation_id=conversation_id,
            consistency_score=memory.consistency_score,
            event_count=len(memory.behavior_history),
            pattern_frequency=dict(frequency),
            behavior_trends=[pattern for pattern, _ in frequency.most_common()],
            recommendations=self._recommendations(memory),
        )

    @staticmethod
    def _recommendations(memory: PersonaMemory) -> list[str]:
        recommendations = []
        history = memory.behavior_history

        if memory.consistency_score < 80:
            recommendations.append("Focus on maintaining character traits throughout conversation")

        if len(history) > 5 and len({event.emotional_state for event in history}) > 3:
            recommendations.append("Reduce emotional state variations for better consistency")

        recent = [event.response_pattern for event in history[-_RECENT_PATTERN_WINDOW:]]
        if len(recent) == _RECENT_PATTERN_WINDOW and len(set(recent)) == len(recent):
            recommendations.append("Maintain more consistent response patterns")

        return recommendations

    # ------------------------------------------------------------------
    # Persistence

    async def _load(self, conversation_id: str) -> PersonaMemory | None:
        try:
            raw = await self._store.get(self.memory_key(conversation_id))
        except Exception as exc:
            raise PersonaMemoryUnavailableError(str(exc)) from exc
        if raw is None:
            return None
        try:
            return PersonaMemory.model_validate_json(raw)
        except ValueError as exc:
            raise PersonaMemoryUnavailableError(f"Corrupt persona memory: {exc}") from exc

    async def _save(self, memory: PersonaMemory) -> None:
        try:
            await self._store.set(
                self.memory_key(memory.conversation_id), memory.model_dump_json(), self._ttl
            )
        except Exception as exc:
            logger.error(
                "Failed to save persona memory for conversation %s: %s",
                memory.conversation_id,
                exc,
            )
