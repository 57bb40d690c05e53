"""Wire a :class:`CustomerSimulator` from configuration."""

from __future__ import annotations

from personasim.config import Settings, get_settings
from personasim.gateway import LanguageModelGateway
from personasim.generation.orchestrator import GenerationOrchestrator
from personasim.llm_clients import CompletionClient, get_completion_client
from personasim.metrics import ConversationMetricsTracker, MetricsSink, PrometheusMetricsSink
from personasim.observability.logging import get_logger
from personasim.persona.tracker import PersonaStateTracker
from personasim.resilience.circuit_breaker import CircuitBreaker
from personasim.resilience.layer import ResilienceLayer
from personasim.resilience.retry import RetryConfig
from personasim.service import CustomerSimulator
from personasim.storage.conversations import ConversationStore
from personasim.storage.kv import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore

logger = get_logger(__name__)

__all__ = ["build_store", "build_simulator"]


def build_store(settings: Settings) -> KeyValueStore:
    if settings.redis_url:
        logger.info("Using Redis key-value store")
        return RedisKeyValueStore(settings.redis_url)
    logger.info("REDIS_URL not set; using in-memory key-value store")
    return InMemoryKeyValueStore()


def build_simulator(
    settings: Settings | None = None,
    *,
    client: CompletionClient | None = None,
    store: KeyValueStore | None = None,
) -> CustomerSimulator:
    """Build the full pipeline. ``client`` and ``store`` override configuration."""
    cfg = settings or get_settings()
    store = store if store is not None else build_store(cfg)
    client = client if client is not None else get_completion_client(cfg)

    breaker = CircuitBreaker(
        failure_threshold=cfg.circuit_breaker_failure_threshold,
        timeout=cfg.circuit_breaker_timeout_seconds,
    )
    resilience = ResilienceLayer(
        breaker=breaker,
        retry_config=RetryConfig(max_attempts=cfg.retry_max_attempts, delays=cfg.retry_delays_seconds),
    )
    conversations = ConversationStore(store, ttl_seconds=cfg.conversation_context_ttl_seconds)
    tracker = PersonaStateTracker(
        store,
        ttl_seconds=cfg.persona_memory_ttl_seconds,
        min_consistency_score=cfg.min_consistency_score,
    )
    gateway = LanguageModelGateway(
        client,
        cache=store,
        default_model=cfg.default_model,
        fallback_model=cfg.fallback_model,
        cache_ttl_seconds=cfg.response_cache_ttl_seconds,
        history_window=cfg.history_window,
        fingerprint_turns=cfg.fingerprint_turns,
    )
    orchestrator = GenerationOrchestrator(
        gateway,
        conversations,
        tracker,
        breaker=breaker,
        min_quality_score=cfg.min_quality_score,
        max_attempts=cfg.max_generation_attempts,
        temperature_step=cfg.temperature_step,
        max_tokens_step=cfg.max_tokens_step,
    )

    sinks: list[MetricsSink] = [
        ConversationMetricsTracker(
            store, ttl_seconds=cfg.metrics_ttl_seconds, cost_threshold=cfg.cost_threshold_usd
        )
    ]
    if cfg.enable_metrics:
        sinks.append(PrometheusMetricsSink())

    return CustomerSimulator(
        gateway=gateway,
        orchestrator=orchestrator,
        tracker=tracker,
        resilience=resilience,
        conversations=conversations,
        metrics_sinks=sinks,
    )
