"""Exchange metrics: Prometheus counters plus per-conversation cost tracking."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from prometheus_client import Counter, Histogram
from pydantic import BaseModel, Field

from personasim.config import settings
from personasim.models import ExchangeMetrics, utcnow
from personasim.observability.logging import get_logger
from personasim.storage.kv import KeyValueStore

logger = get_logger(__name__)

__all__ = [
    "MetricsSink",
    "PrometheusMetricsSink",
    "ConversationMetrics",
    "ConversationMetricsTracker",
    "CostCheck",
    "COST_PER_TOKEN",
    "calculate_cost",
]

EXCHANGES_TOTAL = Counter(
    "personasim_exchanges_total",
    "Completed customer-reply exchanges by model and reply source",
    ["model", "source"],
)
TOKENS_TOTAL = Counter(
    "personasim_tokens_total",
    "Upstream tokens consumed by model",
    ["model"],
)
EXCHANGE_LATENCY = Histogram(
    "personasim_exchange_duration_seconds",
    "Customer-reply generation latency in seconds",
    buckets=(0.1, 0.25, 0.5, 1, 2, 5, 10, 30),
    labelnames=["model"],
)
CONSISTENCY_SCORE = Histogram(
    "personasim_consistency_score",
    "Persona consistency score after validation",
    buckets=(25, 50, 60, 70, 75, 80, 90, 100),
)

# USD per token.
COST_PER_TOKEN: dict[str, dict[str, float]] = {
    "gpt-4": {"input": 0.03 / 1000, "output": 0.06 / 1000},
    "gpt-3.5-turbo": {"input": 0.0015 / 1000, "output": 0.002 / 1000},
}
_DEFAULT_PRICING_MODEL = "gpt-3.5-turbo"


def calculate_cost(input_tokens: int, output_tokens: int, model: str) -> float:
    pricing = COST_PER_TOKEN.get(model) or COST_PER_TOKEN[_DEFAULT_PRICING_MODEL]
    return input_tokens * pricing["input"] + output_tokens * pricing["output"]


class MetricsSink(Protocol):
    async def record_exchange(self, metrics: ExchangeMetrics) -> None: ...


class PrometheusMetricsSink:
    """Write-only sink backed by module-level ``prometheus_client`` collectors."""

    async def record_exchange(self, metrics: ExchangeMetrics) -> None:
        source = "fallback" if metrics.was_fallback else ("cache" if metrics.cached else "ai")
        EXCHANGES_TOTAL.labels(model=metrics.model, source=source).inc()
        if metrics.tokens_used:
            TOKENS_TOTAL.labels(model=metrics.model).inc(metrics.tokens_used)
        EXCHANGE_LATENCY.labels(model=metrics.model).observe(metrics.latency)
        if metrics.consistency_score is not None:
            CONSISTENCY_SCORE.observe(metrics.consistency_score)


class ConversationMetrics(BaseModel):
    conversation_id: str
    request_count: int = 0
    total_tokens_used: int = 0
    total_cost: float = 0.0
    average_response_time: float = 0.0
    model_usage: dict[str, int] = Field(default_factory=dict)
    error_count: int = 0
    cache_hits: int = 0
    quality_scores: list[int] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=utcnow)

    @property
    def cache_hit_rate(self) -> float:
        return self.cache_hits / self.request_count if self.request_count else 0.0


class CostCheck(BaseModel):
    exceeded: bool
    current_cost: float
    threshold: float
    recommendation: str


class ConversationMetricsTracker:
    """Per-conversation aggregates kept in a key-value store."""

    max_quality_scores = 20

    def __init__(
        self,
        store: KeyValueStore,
        *,
        ttl_seconds: int | None = None,
        cost_threshold: float | None = None,
    ) -> None:
        self._store = store
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.metrics_ttl_seconds
        self.cost_threshold = cost_threshold if cost_threshold is not None else settings.cost_threshold_usd

    @staticmethod
    def _key(conversation_id: str) -> str:
        return f"ai_metrics:{conversation_id}"

    async def record_exchange(self, metrics: ExchangeMetrics) -> None:
        current = await self.get(metrics.conversation_id) or ConversationMetrics(
            conversation_id=metrics.conversation_id
        )
        current.request_count += 1
        current.total_tokens_used += metrics.tokens_used
        # Token counts are not split into prompt/completion, so everything is priced as input.
        current.total_cost += calculate_cost(metrics.tokens_used, 0, metrics.model)
        current.average_response_time = (
            current.average_response_time * (current.request_count - 1) + metrics.latency
        ) / current.request_count
        current.model_usage[metrics.model] = current.model_usage.get(metrics.model, 0) + 1
        if metrics.was_fallback:
            current.error_count += 1
        if metrics.cached:
            current.cache_hits += 1
        if metrics.quality_score is not None:
            current.quality_scores = (current.quality_scores + [metrics.quality_score])[
                -self.max_quality_scores :
            ]
        current.last_updated = utcnow()

        await self._store.set(self._key(current.conversation_id), current.model_dump_json(), self._ttl)
        logger.info(
            "Exchange metrics tracked",
            conversation_id=metrics.conversation_id,
            tokens_used=metrics.tokens_used,
            model=metrics.model,
            total_cost=round(current.total_cost, 6),
        )

    async def get(self, conversation_id: str) -> Optional[ConversationMetrics]:
        raw = await self._store.get(self._key(conversation_id))
        if raw is None:
            return None
        return ConversationMetrics.model_validate_json(raw)

    async def check_cost_threshold(self, conversation_id: str) -> CostCheck:
        metrics = await self.get(conversation_id)
        if metrics is None:
            return CostCheck(
                exceeded=False,
                current_cost=0.0,
                threshold=self.cost_threshold,
                recommendation="No cost data available",
            )

        exceeded = metrics.total_cost > self.cost_threshold
        if exceeded:
            recommendation = (
                "Consider using the fallback model for cost efficiency or enabling response caching"
            )
        elif metrics.total_cost > self.cost_threshold * 0.8:
            recommendation = "Approaching cost threshold - monitor usage closely"
        else:
            recommendation = "Cost within normal range"
        return CostCheck(
            exceeded=exceeded,
            current_cost=metrics.total_cost,
            threshold=self.cost_threshold,
            recommendation=recommendation,
        )

    async def optimization_recommendations(self, conversation_id: str) -> list[str]:
        metrics = await self.get(conversation_id)
        if metrics is None or metrics.request_count == 0:
            return []

        recommendations = []
        if metrics.average_response_time > 5.0:
            recommendations.append(
                "Consider reducing max_tokens or using a faster model for better response times"
            )
        if metrics.cache_hit_rate < 0.3 and metrics.request_count > 10:
            recommendations.append(
                "Low cache hit rate - consider implementing more aggressive caching strategies"
            )
        if metrics.error_count / metrics.request_count > 0.1:
            recommendations.append("High error rate detected - review error handling and retry logic")
        if metrics.total_cost / metrics.request_count > 0.05:
            recommendations.append(
                "High cost per request - consider using the fallback model for less complex responses"
            )
        if metrics.quality_scores:
            average_quality = sum(metrics.quality_scores) / len(metrics.quality_scores)
            if average_quality < 75:
                recommendations.append(
                    "Quality scores below target - review prompt engineering and response validation"
                )
        return recommendations
