from __future__ import annotations

import json
import logging

from personasim.observability.logging import (
    _add_request_context,
    bind_conversation,
    conversation_id_var,
    get_request_id,
    request_id_var,
)


def test_request_id_context_propagation() -> None:
    """request_id_var should propagate via contextvars helper."""

    token = request_id_var.set("test-request-id")
    try:
        assert get_request_id() == "test-request-id"
    finally:
        request_id_var.reset(token)


def test_context_processor_adds_ids() -> None:
    request_token = request_id_var.set("req-1")
    conversation_token = conversation_id_var.set("conv-1")
    try:
        event = _add_request_context(logging.getLogger("test"), "info", {"event": "hello"})
    finally:
        conversation_id_var.reset(conversation_token)
        request_id_var.reset(request_token)

    assert event == {"event": "hello", "request_id": "req-1", "conversation_id": "conv-1"}


def test_context_processor_keeps_explicit_conversation_id() -> None:
    token = conversation_id_var.set("ambient")
    try:
        event = _add_request_context(
            logging.getLogger("test"), "info", {"event": "hello", "conversation_id": "explicit"}
        )
    finally:
        conversation_id_var.reset(token)

    assert event["conversation_id"] == "explicit"
    assert "request_id" not in event


def test_context_processor_output_is_json_serializable() -> None:
    event = _add_request_context(logging.getLogger("test"), "info", {"event": "x", "count": 1})

    assert json.loads(json.dumps(event)) == {"event": "x", "count": 1}


def test_bind_conversation_restores_previous_value() -> None:
    with bind_conversation("outer"):
        with bind_conversation("inner"):
            assert conversation_id_var.get() == "inner"
        assert conversation_id_var.get() == "outer"

    assert conversation_id_var.get() == ""
