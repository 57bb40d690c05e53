"""Lexical/structural quality heuristics for a generated customer reply."""

from __future__ import annotations

import math
from typing import Callable

from personasim.models import PersonaTraits, ResponseQuality
from personasim.persona.lexicon import contains_any, count_terms

__all__ = ["QualityScorer", "score_response"]

QualityScorer = Callable[[str, PersonaTraits, str], ResponseQuality]

META_PHRASES = (
    "as an ai",
    "i am an ai",
    "artificial intelligence",
    "language model",
    "i cannot",
    "i'm not able to",
    "as a system",
    "i don't have access",
)
BEGINNER_COMPLEX_TERMS = ("api", "debugging", "tcp/ip", "dns", "ssl", "encryption")
FORMAL_CASUAL_PHRASES = ("yeah", "ok", "gonna", "wanna", "kinda")
SUPPORT_AGENT_PHRASES = (
    "i can help you with that",
    "how can i assist",
    "thank you for contacting",
    "is there anything else",
)
NATURAL_FLOW_MARKERS = ("um", "well", "actually", "i think", "maybe", "probably")
TECHNICAL_DEPTH_MARKERS = ("log", "error", "configuration", "settings", "driver", "update")
IMPOSSIBLE_CLAIMS = ("deleted the internet", "broke the server", "hacked the system")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _character_consistency(content: str, persona: PersonaTraits, issues: list[str]) -> int:
    score = 100
    for phrase in META_PHRASES:
        if contains_any(content, (phrase,)):
            score -= 30
            issues.append(f'Breaking character: contains AI reference "{phrase}"')

    if persona.tech_level == "beginner":
        for term in BEGINNER_COMPLEX_TERMS:
            if contains_any(content, (term,)):
                score -= 10
                issues.append(f'Technical level mismatch: beginner using term "{term}"')

    if persona.communication_style == "formal":
        for phrase in FORMAL_CASUAL_PHRASES:
            if contains_any(content, (phrase,)):
                score -= 5
                issues.append(f'Communication style mismatch: formal persona using "{phrase}"')

    return max(0, score)


def _appropriateness(content: str, issues: list[str]) -> int:
    score = 100
    if len(content.strip()) < 10:
        score -= 40
        issues.append("Response too short")

    for phrase in SUPPORT_AGENT_PHRASES:
        if contains_any(content, (phrase,)):
            score -= 20
            issues.append(f'Customer using support agent language: "{phrase}"')

    return max(0, score)


def _naturalness(content: str, issues: list[str]) -> int:
    score = 100
    if len(content.split(".")) > 5 and len(content) < 200:
        score -= 15
        issues.append("Response structure too rigid")

    if len(content) > 50 and not contains_any(content, NATURAL_FLOW_MARKERS):
        score -= 10
        issues.append("Response lacks natural conversational elements")

    words = content.lower().split()
    if words and len(set(words)) / len(words) < 0.7:
        score -= 15
        issues.append("Response contains too much repetition")

    return max(0, score)


def _technical_plausibility(content: str, persona: PersonaTraits, issues: list[str]) -> int:
    score = 100
    if (
        persona.tech_level == "advanced"
        and len(content) > 100
        and count_terms(content, TECHNICAL_DEPTH_MARKERS) == 0
    ):
        score -= 10
        issues.append("Advanced user response lacks technical depth")

    for claim in IMPOSSIBLE_CLAIMS:
        if contains_any(content, (claim,)):
            score -= 25
            issues.append(f'Technically impossible claim: "{claim}"')

    return max(0, score)


def score_response(content: str, persona: PersonaTraits, user_message: str = "") -> ResponseQuality:
    """Score ``content`` on four independent dimensions; overall is their mean."""
    issues: list[str] = []
    character = _character_consistency(content, persona, issues)
    appropriateness = _appropriateness(content, issues)
    naturalness = _naturalness(content, issues)
    technical = _technical_plausibility(content, persona, issues)

    return ResponseQuality(
        score=_round_half_up((character + appropriateness + naturalness + technical) / 4),
        character_consistency=character,
        appropriateness=appropriateness,
        naturalness=naturalness,
        technical_accuracy=technical,
        issues=issues,
    )
