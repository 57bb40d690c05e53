"""Unit tests for exchange metrics."""

import pytest
from prometheus_client import REGISTRY

from personasim.metrics import (
    ConversationMetricsTracker,
    PrometheusMetricsSink,
    calculate_cost,
)
from personasim.models import ExchangeMetrics


def _sample(name, labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_calculate_cost():
    assert calculate_cost(1000, 0, "gpt-4") == pytest.approx(0.03)
    assert calculate_cost(1000, 1000, "gpt-4") == pytest.approx(0.09)
    assert calculate_cost(1000, 0, "mystery-model") == calculate_cost(1000, 0, "gpt-3.5-turbo")


@pytest.mark.asyncio
async def test_tracker_aggregates_exchanges(kv_store):
    tracker = ConversationMetricsTracker(kv_store, cost_threshold=1.0)

    await tracker.record_exchange(
        ExchangeMetrics(conversation_id="c1", tokens_used=1000, latency=2.0, model="gpt-4", quality_score=80)
    )
    await tracker.record_exchange(
        ExchangeMetrics(conversation_id="c1", tokens_used=0, latency=4.0, model="fallback", was_fallback=True)
    )
    await tracker.record_exchange(
        ExchangeMetrics(conversation_id="c1", tokens_used=500, latency=0.0, model="gpt-4", cached=True)
    )

    metrics = await tracker.get("c1")
    assert metrics.request_count == 3
    assert metrics.total_tokens_used == 1500
    assert metrics.average_response_time == pytest.approx(2.0)
    assert metrics.model_usage == {"gpt-4": 2, "fallback": 1}
    assert metrics.error_count == 1
    assert metrics.cache_hits == 1
    assert metrics.cache_hit_rate == pytest.approx(1 / 3)
    assert metrics.quality_scores == [80]
    assert metrics.total_cost == pytest.approx(0.045)


@pytest.mark.asyncio
async def test_quality_scores_are_bounded(kv_store):
    tracker = ConversationMetricsTracker(kv_store)
    for score in range(25):
        await tracker.record_exchange(
            ExchangeMetrics(conversation_id="c1", model="gpt-4", quality_score=score)
        )

    assert (await tracker.get("c1")).quality_scores == list(range(5, 25))


@pytest.mark.asyncio
async def test_cost_threshold(kv_store):
    tracker = ConversationMetricsTracker(kv_store, cost_threshold=0.01)
    assert (await tracker.check_cost_threshold("c1")).recommendation == "No cost data available"

    await tracker.record_exchange(ExchangeMetrics(conversation_id="c1", tokens_used=1000, model="gpt-4"))

    check = await tracker.check_cost_threshold("c1")
    assert check.exceeded is True
    assert check.current_cost == pytest.approx(0.03)

    tracker.cost_threshold = 0.035
    assert (await tracker.check_cost_threshold("c1")).recommendation.startswith("Approaching")


@pytest.mark.asyncio
async def test_optimization_recommendations(kv_store):
    tracker = ConversationMetricsTracker(kv_store)
    assert await tracker.optimization_recommendations("c1") == []

    await tracker.record_exchange(
        ExchangeMetrics(
            conversation_id="c1",
            tokens_used=2000,
            latency=6.0,
            model="gpt-4",
            was_fallback=True,
            quality_score=50,
        )
    )

    recommendations = await tracker.optimization_recommendations("c1")
    assert len(recommendations) == 4
    assert recommendations[0].startswith("Consider reducing max_tokens")


@pytest.mark.asyncio
async def test_prometheus_sink_counts_by_source():
    sink = PrometheusMetricsSink()
    before_ai = _sample("personasim_exchanges_total", {"model": "test-model", "source": "ai"})
    before_cache = _sample("personasim_exchanges_total", {"model": "test-model", "source": "cache"})
    before_tokens = _sample("personasim_tokens_total", {"model": "test-model"})

    await sink.record_exchange(
        ExchangeMetrics(conversation_id="c1", tokens_used=12, latency=0.3, model="test-model", consistency_score=90)
    )
    await sink.record_exchange(
        ExchangeMetrics(conversation_id="c1", tokens_used=12, latency=0.0, model="test-model", cached=True)
    )

    assert _sample("personasim_exchanges_total", {"model": "test-model", "source": "ai"}) == before_ai + 1
    assert _sample("personasim_exchanges_total", {"model": "test-model", "source": "cache"}) == before_cache + 1
    assert _sample("personasim_tokens_total", {"model": "test-model"}) == before_tokens + 24
