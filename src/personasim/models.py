"""Pydantic records shared across the generation pipeline."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "Role",
    "TechLevel",
    "CommunicationStyle",
    "Patience",
    "EmotionalState",
    "ConversationTurn",
    "PersonaTraits",
    "TicketContext",
    "ScenarioContext",
    "ContextData",
    "ConversationContext",
    "GenerationOptions",
    "Completion",
    "BehaviorEvent",
    "PersonaMemory",
    "ViolationType",
    "Severity",
    "ConsistencyViolation",
    "ConsistencyResult",
    "ResponseQuality",
    "PersonaAnalytics",
    "FallbackReply",
    "HealthState",
    "HealthStatus",
    "ExchangeMetrics",
    "utcnow",
]

Role = Literal["user", "assistant", "system"]
TechLevel = Literal["beginner", "intermediate", "advanced"]
CommunicationStyle = Literal["casual", "formal", "technical"]
Patience = Literal["low", "medium", "high"]
EmotionalState = Literal["calm", "frustrated", "angry", "confused"]
Severity = Literal["low", "medium", "high"]


def utcnow() -> datetime:
    return datetime.now(UTC)


class ConversationTurn(BaseModel):
    role: Role
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class PersonaTraits(BaseModel):
    """Declared customer character. Fixed for the lifetime of a conversation."""

    model_config = ConfigDict(frozen=True)

    name: str
    tech_level: TechLevel = "intermediate"
    communication_style: CommunicationStyle = "casual"
    patience: Patience = "medium"
    emotional_state: EmotionalState = "calm"
    background: Optional[str] = None
    preferred_language: Optional[str] = None
    accessibility_needs: list[str] = Field(default_factory=list)


class TicketContext(BaseModel):
    id: str
    title: str = ""
    description: str = ""
    priority: Literal["low", "medium", "high", "urgent"] = "medium"
    category: str = "general"
    urgency: str = "normal"
    affected_systems: list[str] = Field(default_factory=list)
    business_impact: Optional[str] = None
    previous_attempts: list[str] = Field(default_factory=list)


class ScenarioContext(BaseModel):
    id: str
    type: Literal["hardware", "software", "network", "security", "account"] = "software"
    complexity: Literal["simple", "moderate", "complex"] = "moderate"
    expected_resolution_time: int = 900
    learning_objectives: list[str] = Field(default_factory=list)


class ContextData(BaseModel):
    """Known context shapes plus an opaque ``metadata`` bag for anything else."""

    persona: Optional[PersonaTraits] = None
    ticket: Optional[TicketContext] = None
    scenario: Optional[ScenarioContext] = None
    customer_profile: Optional[dict[str, Any]] = None
    previous_interactions: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ConversationContext(BaseModel):
    conversation_id: str
    scenario_id: Optional[str] = None
    persona_id: Optional[str] = None
    message_history: list[ConversationTurn] = Field(default_factory=list)
    context_data: ContextData = Field(default_factory=ContextData)


class GenerationOptions(BaseModel):
    """Sampling options for a single generation. ``None`` resolves from settings."""

    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    model: Optional[str] = None
    use_cache: bool = True
    priority: Literal["low", "normal", "high"] = "normal"


class Completion(BaseModel):
    content: str
    tokens_used: int = Field(default=0, ge=0)
    model: str
    response_time: float = Field(default=0.0, ge=0.0, description="Seconds")
    conversation_id: str
    cached: bool = False


class BehaviorEvent(BaseModel):
    timestamp: datetime = Field(default_factory=utcnow)
    action: str
    context: str
    emotional_state: str
    response_pattern: str


class PersonaMemory(BaseModel):
    conversation_id: str
    persona_id: str
    traits: PersonaTraits
    behavior_history: list[BehaviorEvent] = Field(default_factory=list)
    consistency_score: int = Field(default=100, ge=0, le=100)
    last_updated: datetime = Field(default_factory=utcnow)


class ViolationType(str, Enum):
    TRAIT_MISMATCH = "trait_mismatch"
    BEHAVIOR_INCONSISTENCY = "behavior_inconsistency"
    EMOTIONAL_SHIFT = "emotional_shift"
    COMMUNICATION_STYLE = "communication_style"


class ConsistencyViolation(BaseModel):
    type: ViolationType
    severity: Severity
    description: str
    suggested_correction: str


class ConsistencyResult(BaseModel):
    is_consistent: bool
    violations: list[ConsistencyViolation] = Field(default_factory=list)
    updated_score: int = Field(ge=0, le=100)


class ResponseQuality(BaseModel):
    score: int = Field(ge=0, le=100)
    character_consistency: int = Field(ge=0, le=100)
    appropriateness: int = Field(ge=0, le=100)
    naturalness: int = Field(ge=0, le=100)
    technical_accuracy: int = Field(ge=0, le=100)
    issues: list[str] = Field(default_factory=list)


class PersonaAnalytics(BaseModel):
    conversation_id: str
    consistency_score: int = 0
    event_count: int = 0
    pattern_frequency: dict[str, int] = Field(default_factory=dict)
    behavior_trends: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class FallbackReply(BaseModel):
    content: str
    source: Literal["fallback", "template", "cached"] = "template"
    reliability: Literal["low", "medium", "high"] = "medium"
    error_kind: str = "unknown"


class HealthState(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthStatus(BaseModel):
    status: HealthState
    circuit_breaker_open: bool
    recent_failures: int
    last_failure_time: Optional[datetime] = None
    details: dict[str, Any] = Field(default_factory=dict)


class ExchangeMetrics(BaseModel):
    conversation_id: str
    tokens_used: int = Field(default=0, ge=0)
    latency: float = Field(default=0.0, ge=0.0)
    model: str
    consistency_score: Optional[int] = None
    quality_score: Optional[int] = None
    was_fallback: bool = False
    cached: bool = False
