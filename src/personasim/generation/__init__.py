"""Generate-score-retry orchestration and reply quality scoring."""

from personasim.generation.orchestrator import (
    GenerationOrchestrator,
    GenerationRequest,
    ScoredCompletion,
)
from personasim.generation.quality import QualityScorer, score_response

__all__ = [
    "GenerationOrchestrator",
    "GenerationRequest",
    "QualityScorer",
    "ScoredCompletion",
    "score_response",
]
