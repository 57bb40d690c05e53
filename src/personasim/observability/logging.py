from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, MutableMapping

import structlog

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
conversation_id_var: ContextVar[str] = ContextVar("conversation_id", default="")


def _add_request_context(
    _logger: logging.Logger,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    request_id = request_id_var.get("")
    if request_id:
        event_dict["request_id"] = request_id
    conversation_id = conversation_id_var.get("")
    if conversation_id and "conversation_id" not in event_dict:
        event_dict["conversation_id"] = conversation_id
    return event_dict


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog with JSON output and contextvar support."""

    timestamper = structlog.processors.TimeStamper(fmt="iso")

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            timestamper,
            _add_request_context,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a configured structlog logger."""

    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(name)


def get_request_id() -> str:
    """Return the current request ID from contextvars."""

    return request_id_var.get("")


@contextmanager
def bind_conversation(conversation_id: str) -> Iterator[None]:
    """Tag every log event emitted inside the block with ``conversation_id``."""

    token = conversation_id_var.set(conversation_id)
    try:
        yield
    finally:
        conversation_id_var.reset(token)


logger = get_logger("personasim")
