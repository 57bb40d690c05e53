"""Persona memory and consistency validation."""

from personasim.persona.lexicon import detect_emotional_state, detect_response_pattern
from personasim.persona.tracker import SEVERITY_PENALTIES, PersonaStateTracker

__all__ = [
    "PersonaStateTracker",
    "SEVERITY_PENALTIES",
    "detect_emotional_state",
    "detect_response_pattern",
]
