"""Fixed vocabularies and lexical classifiers used by the persona tracker.

Terms are matched as whole words (or whole phrases), case-insensitively, so
"ok" does not match inside "book" and "api" does not match inside "capital".
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable

__all__ = [
    "TECHNICAL_TERMS",
    "BASIC_TERMS",
    "FORMAL_MARKERS",
    "CASUAL_MARKERS",
    "TECHNICAL_MARKERS",
    "EMOTION_RULES",
    "PATTERN_RULES",
    "ALLOWED_TRANSITIONS",
    "count_terms",
    "contains_any",
    "detect_emotional_state",
    "detect_response_pattern",
]

TECHNICAL_TERMS = (
    "api",
    "ssl",
    "tcp/ip",
    "dns",
    "firewall",
    "encryption",
    "bandwidth",
    "latency",
    "protocol",
    "subnet",
    "debugging",
    "compiler",
    "kernel",
)

BASIC_TERMS = (
    "login",
    "password",
    "click",
    "button",
    "screen",
    "window",
    "file",
    "folder",
    "icon",
    "menu",
    "browser",
    "email",
    "internet",
)

FORMAL_MARKERS = (
    "please",
    "thank you",
    "i would appreciate",
    "could you please",
    "i understand",
    "i apologize",
    "i would like to",
)

CASUAL_MARKERS = ("yeah", "ok", "gonna", "wanna", "kinda", "sorta", "hey", "thanks")

TECHNICAL_MARKERS = (
    "specifically",
    "precisely",
    "configuration",
    "implementation",
    "parameters",
    "specifications",
    "documentation",
)

# Checked in order; the first matching state wins, otherwise "neutral".
EMOTION_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("frustrated", ("frustrated", "annoying", "not working", "broken")),
    ("angry", ("angry", "terrible", "ridiculous", "unacceptable")),
    ("confused", ("confused", "don't understand", "not sure", "unclear")),
    ("calm", ("thank", "thanks", "great", "perfect", "excellent")),
)

# "questioning" is decided by a question mark before these rules run.
PATTERN_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("reporting_attempts", ("i tried", "i already")),
    ("cooperative", ("let me", "i'll try")),
    ("resistant", ("but", "however")),
)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "calm": frozenset({"calm", "confused", "frustrated"}),
    "confused": frozenset({"confused", "calm", "frustrated"}),
    "frustrated": frozenset({"frustrated", "angry", "calm"}),
    "angry": frozenset({"angry", "frustrated", "calm"}),
}


@lru_cache(maxsize=512)
def _term_pattern(term: str) -> re.Pattern[str]:
    return re.compile(r"(?<!\w)" + re.escape(term) + r"(?!\w)", re.IGNORECASE)


def _normalize(text: str) -> str:
    return text.replace("’", "'")


def count_terms(text: str, terms: Iterable[str]) -> int:
    """Number of distinct ``terms`` present in ``text``."""
    text = _normalize(text)
    return sum(1 for term in terms if _term_pattern(term).search(text))


def contains_any(text: str, terms: Iterable[str]) -> bool:
    text = _normalize(text)
    return any(_term_pattern(term).search(text) for term in terms)


def detect_emotional_state(text: str) -> str:
    for state, markers in EMOTION_RULES:
        if contains_any(text, markers):
            return state
    return "neutral"


def detect_response_pattern(text: str) -> str:
    if "?" in text:
        return "questioning"
    for pattern, markers in PATTERN_RULES:
        if contains_any(text, markers):
            return pattern
    return "informative"
