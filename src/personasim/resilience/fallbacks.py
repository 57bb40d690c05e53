"""Canned in-character replies used when generation is unavailable."""

from __future__ import annotations

import random
from typing import Iterable

from personasim.models import FallbackReply, PersonaTraits
from personasim.observability.logging import get_logger

logger = get_logger(__name__)

__all__ = ["GENERIC_POOL", "DEFAULT_POOLS", "ULTIMATE_FALLBACK", "FallbackCatalog"]

GENERIC_POOL = "generic"


def _templates(reliability: str, *contents: str) -> list[FallbackReply]:
    return [FallbackReply(content=c, source="template", reliability=reliability) for c in contents]


DEFAULT_POOLS: dict[str, list[FallbackReply]] = {
    # Technical level
    "beginner": _templates(
        "medium",
        "I'm sorry, I'm having trouble explaining my issue right now. Could you give me a moment?",
        "Something seems to be not working on my end. Can you help me figure out what's going on?",
        "I'm not sure what just happened. Could you repeat that last part?",
    ),
    "intermediate": _templates(
        "medium",
        "I seem to be experiencing some connectivity issues. Let me try to reconnect and get back to you.",
        "There appears to be a temporary issue on my side. Could you please wait a moment while I resolve this?",
        "I'm having some technical difficulties right now. Can we continue in a few minutes?",
    ),
    "advanced": _templates(
        "medium",
        "I'm experiencing some service disruption that's affecting my ability to communicate properly. Please bear with me.",
        "There seems to be a system issue causing communication delays. I'll try to reconnect and continue troubleshooting.",
        "I'm encountering some unexpected latency issues. Let me reset my connection and we can proceed.",
    ),
    # Emotional state
    "frustrated": _templates(
        "high",
        "This is exactly what I was worried about! Now even our conversation isn't working properly.",
        "Great, now I'm having issues talking to you too. This day just keeps getting worse.",
    ),
    "angry": _templates(
        "high",
        "Seriously? Now even the support system isn't working? This is unbelievable!",
        "I can't believe this - even trying to get help is broken. What kind of system is this?",
    ),
    GENERIC_POOL: _templates(
        "medium",
        "Sorry, I lost track for a second there. Could you say that again?",
        "Hold on, something glitched on my end. Can you give me a minute?",
        "I think my connection dropped for a moment. Where were we?",
    ),
}

ULTIMATE_FALLBACK = FallbackReply(
    content=(
        "I'm sorry, I'm having some technical difficulties right now. "
        "Could you please try again in a moment?"
    ),
    source="fallback",
    reliability="low",
)


class FallbackCatalog:
    """Template pools keyed by emotional state, technical level, or ``generic``."""

    def __init__(
        self,
        pools: dict[str, list[FallbackReply]] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        source = DEFAULT_POOLS if pools is None else pools
        self._pools = {key: list(replies) for key, replies in source.items()}
        # Non-crypto randomness; only used to avoid visibly repeating a template.
        self._rng = rng or random.Random()  # nosec B311

    def add(self, category: str, replies: Iterable[FallbackReply]) -> None:
        self._pools[category] = list(replies)
        logger.info(
            "Added %d fallback responses for category: %s", len(self._pools[category]), category
        )

    def pool(self, category: str) -> list[FallbackReply]:
        return list(self._pools.get(category, []))

    def pool_key_for(self, persona: PersonaTraits | None) -> str:
        """Emotion pool first, then technical level, then generic."""
        if persona is not None:
            if self._pools.get(persona.emotional_state):
                return persona.emotional_state
            if self._pools.get(persona.tech_level):
                return persona.tech_level
        return GENERIC_POOL

    def select(self, persona: PersonaTraits | None, error_kind: str = "unknown") -> FallbackReply:
        key = self.pool_key_for(persona)
        candidates = self._pools.get(key) or []
        if not candidates:
            return ULTIMATE_FALLBACK.model_copy(update={"error_kind": error_kind})
        choice = self._rng.choice(candidates)
        return choice.model_copy(update={"error_kind": error_kind})
