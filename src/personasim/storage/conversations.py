"""Conversation-context store.

Holds the write-of-record copy of each :class:`ConversationContext`. The
gateway only reads contexts; the orchestrator and the simulator façade write
them through this store.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from personasim.config import settings
from personasim.models import ContextData, ConversationContext, ConversationTurn, utcnow
from personasim.observability.logging import get_logger
from personasim.storage.kv import KeyValueStore

logger = get_logger(__name__)

__all__ = ["ContextWindow", "ConversationSummary", "ConversationStore"]

_CHARS_PER_TOKEN = 4


class ContextWindow(BaseModel):
    max_messages: int = 20
    max_tokens: int = 3000
    compression_threshold: int = 15


class ConversationSummary(BaseModel):
    key_points: list[str] = Field(default_factory=list)
    sentiment: Literal["positive", "neutral", "negative"] = "neutral"
    issue_status: Literal["open", "in_progress", "resolved"] = "open"
    last_activity: datetime


def estimate_tokens(text: str) -> int:
    """Rough token count at four characters per token."""
    return math.ceil(len(text) / _CHARS_PER_TOKEN)


class ConversationStore:
    """Get/initialize/save/delete conversation contexts in a key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        ttl_seconds: int | None = None,
        window: ContextWindow | None = None,
    ) -> None:
        self._store = store
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.conversation_context_ttl_seconds
        self._window = window or ContextWindow()

    @staticmethod
    def _key(conversation_id: str) -> str:
        return f"conversation:{conversation_id}:context"

    async def get(self, conversation_id: str) -> ConversationContext | None:
        raw = await self._store.get(self._key(conversation_id))
        if raw is None:
            logger.debug("No context found for conversation %s", conversation_id)
            return None
        context = ConversationContext.model_validate_json(raw)
        logger.debug(
            "Retrieved context for conversation %s with %d messages",
            conversation_id,
            len(context.message_history),
        )
        return context

    async def initialize(
        self,
        conversation_id: str,
        scenario_id: str | None = None,
        persona_id: str | None = None,
        context_data: ContextData | None = None,
    ) -> ConversationContext:
        context = ConversationContext(
            conversation_id=conversation_id,
            scenario_id=scenario_id,
            persona_id=persona_id,
            context_data=context_data or ContextData(),
        )
        if scenario_id or persona_id:
            context.message_history.append(
                ConversationTurn(
                    role="system",
                    content=self._initial_system_message(scenario_id, persona_id, context.context_data),
                )
            )
        await self.save(context)
        logger.info("Initialized new context for conversation %s", conversation_id)
        return context

    async def save(self, context: ConversationContext) -> None:
        optimized = self.optimize(context)
        await self._store.set(
            self._key(context.conversation_id), optimized.model_dump_json(), self._ttl
        )

    async def delete(self, conversation_id: str) -> bool:
        deleted = await self._store.delete(self._key(conversation_id))
        logger.info("Deleted context for conversation %s", conversation_id, deleted=deleted)
        return deleted

    async def append_exchange(
        self, conversation_id: str, user_message: str, reply: str
    ) -> ConversationContext:
        """Record a trainee message and the customer reply that answered it."""
        context = await self.get(conversation_id) or ConversationContext(
            conversation_id=conversation_id
        )
        timestamp = utcnow()
        context.message_history.append(
            ConversationTurn(role="user", content=user_message, timestamp=timestamp)
        )
        context.message_history.append(
            ConversationTurn(role="assistant", content=reply, timestamp=timestamp)
        )
        await self.save(context)
        return context

    async def active_conversations(self) -> list[str]:
        keys = await self._store.keys("conversation:*:context")
        return [key.split(":")[1] for key in keys]

    async def summarize(self, conversation_id: str) -> ConversationSummary | None:
        context = await self.get(conversation_id)
        if context is None or not context.message_history:
            return None
        history = context.message_history
        return ConversationSummary(
            key_points=self._key_points(history),
            sentiment=self._sentiment(history),
            issue_status=self._issue_status(history),
            last_activity=history[-1].timestamp,
        )

    # ------------------------------------------------------------------
    # History optimization

    def optimize(self, context: ConversationContext) -> ConversationContext:
        optimized = context.model_copy(deep=True)
        if len(optimized.message_history) > self._window.compression_threshold:
            optimized = self._compress(optimized)
        return self._truncate(optimized)

    def _compress(self, context: ConversationContext) -> ConversationContext:
        messages = context.message_history
        keep = self._window.max_messages
        if len(messages) <= keep:
            return context

        system_messages = [m for m in messages if m.role == "system"]
        recent = [m for m in messages[-keep:] if m.role != "system"]
        older = [m for m in messages[:-keep] if m.role != "system"]
        if not older:
            context.message_history = system_messages + recent
            return context

        summary = ConversationTurn(
            role="system",
            content=f"Previous conversation summary: {self._summary_text(older)}",
            timestamp=older[0].timestamp,
        )
        context.message_history = system_messages + [summary] + recent
        return context

    def _truncate(self, context: ConversationContext) -> ConversationContext:
        total = 0
        kept: list[ConversationTurn] = []
        for message in reversed(context.message_history):
            tokens = estimate_tokens(message.content)
            if kept and total + tokens > self._window.max_tokens:
                break
            total += tokens
            kept.append(message)
        context.message_history = list(reversed(kept))
        return context

    @staticmethod
    def _summary_text(messages: list[ConversationTurn]) -> str:
        users = sum(1 for m in messages if m.role == "user")
        assistants = sum(1 for m in messages if m.role == "assistant")
        return (
            f"{users} user messages and {assistants} assistant responses "
            "discussing technical support issues"
        )

    @staticmethod
    def _initial_system_message(
        scenario_id: str | None, persona_id: str | None, context_data: ContextData
    ) -> str:
        message = "Starting new customer support conversation. "
        if scenario_id:
            message += f"Scenario: {scenario_id}. "
        if persona_id:
            message += f"Customer persona: {persona_id}. "
        if context_data.ticket and context_data.ticket.description:
            message += f"Initial issue: {context_data.ticket.description}"
        return message.strip()

    @staticmethod
    def _key_points(history: list[ConversationTurn]) -> list[str]:
        points = []
        for message in history:
            if message.role != "user" or len(message.content) <= 10:
                continue
            text = message.content
            points.append(text[:100] + ("..." if len(text) > 100 else ""))
            if len(points) == 5:
                break
        return points

    @staticmethod
    def _sentiment(history: list[ConversationTurn]) -> Literal["positive", "neutral", "negative"]:
        last_user = next((m.content.lower() for m in reversed(history) if m.role == "user"), "")
        if any(marker in last_user for marker in ("frustrated", "angry", "not working")):
            return "negative"
        if any(marker in last_user for marker in ("thank", "great", "works")):
            return "positive"
        return "neutral"

    @staticmethod
    def _issue_status(
        history: list[ConversationTurn],
    ) -> Literal["open", "in_progress", "resolved"]:
        last_reply = next(
            (m.content.lower() for m in reversed(history) if m.role == "assistant"), ""
        )
        if "resolved" in last_reply or "fixed" in last_reply:
            return "resolved"
        if len(history) > 2:
            return "in_progress"
        return "open"
