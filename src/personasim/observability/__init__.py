"""personasim observability module - structured logging.

Logs are structured JSON via structlog; Prometheus counters for generation
exchanges live in :mod:`personasim.metrics`.

Usage:
    from personasim.observability import get_logger

    logger = get_logger(__name__)
    logger.info("Generating reply", conversation_id=conversation_id)
"""

from __future__ import annotations

from personasim.observability.logging import bind_conversation, configure_logging, get_logger

__all__ = [
    "bind_conversation",
    "configure_logging",
    "get_logger",
    "init_observability",
]

_OBSERVABILITY_INITIALIZED = False


def init_observability(level: str | None = None) -> None:
    """Initialize logging for the process (idempotent).

    This is intentionally *not* executed on import so `personasim` can be used as a
    library without mutating global logging configuration.
    """
    global _OBSERVABILITY_INITIALIZED
    if _OBSERVABILITY_INITIALIZED:
        return
    if level is None:
        from personasim.config import settings

        level = settings.log_level
    configure_logging(level)
    _OBSERVABILITY_INITIALIZED = True
