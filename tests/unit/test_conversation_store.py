"""Unit tests for the conversation-context store."""

import pytest

from personasim.models import ContextData, ConversationContext, ConversationTurn, TicketContext
from personasim.storage.conversations import ContextWindow, ConversationStore


@pytest.mark.asyncio
async def test_initialize_adds_system_turn(conversation_store):
    context = await conversation_store.initialize(
        "c1",
        scenario_id="password-reset",
        persona_id="Sarah",
        context_data=ContextData(ticket=TicketContext(id="t1", description="Cannot log in")),
    )

    assert len(context.message_history) == 1
    assert context.message_history[0].role == "system"
    assert "password-reset" in context.message_history[0].content
    assert "Cannot log in" in context.message_history[0].content

    stored = await conversation_store.get("c1")
    assert stored == context


@pytest.mark.asyncio
async def test_initialize_without_ids_has_empty_history(conversation_store):
    context = await conversation_store.initialize("c2")

    assert context.message_history == []


@pytest.mark.asyncio
async def test_append_exchange_and_delete(conversation_store):
    await conversation_store.initialize("c3")
    await conversation_store.append_exchange("c3", "Have you tried restarting?", "Yes, twice.")

    context = await conversation_store.get("c3")
    assert [turn.role for turn in context.message_history] == ["user", "assistant"]
    assert await conversation_store.active_conversations() == ["c3"]

    assert await conversation_store.delete("c3") is True
    assert await conversation_store.get("c3") is None


@pytest.mark.asyncio
async def test_long_history_is_compressed(kv_store):
    store = ConversationStore(kv_store, window=ContextWindow(max_messages=20, compression_threshold=15))
    turns = [
        ConversationTurn(role="user" if i % 2 == 0 else "assistant", content=f"message {i}")
        for i in range(30)
    ]
    await store.save(ConversationContext(conversation_id="c4", message_history=turns))

    context = await store.get("c4")

    assert len(context.message_history) == 21
    assert context.message_history[0].role == "system"
    assert context.message_history[0].content.startswith("Previous conversation summary:")
    assert context.message_history[-1].content == "message 29"


@pytest.mark.asyncio
async def test_history_truncated_to_token_budget(kv_store):
    store = ConversationStore(kv_store, window=ContextWindow(max_tokens=100))
    turns = [ConversationTurn(role="user", content="x" * 200) for _ in range(5)]
    turns.append(ConversationTurn(role="user", content="newest"))

    optimized = store.optimize(ConversationContext(conversation_id="c5", message_history=turns))

    # 200 chars = 50 tokens; "newest" = 2 tokens, so only one long turn fits.
    assert [t.content for t in optimized.message_history] == ["x" * 200, "newest"]


@pytest.mark.asyncio
async def test_newest_turn_always_kept(kv_store):
    store = ConversationStore(kv_store, window=ContextWindow(max_tokens=10))
    context = ConversationContext(
        conversation_id="c6", message_history=[ConversationTurn(role="user", content="y" * 400)]
    )

    assert len(store.optimize(context).message_history) == 1


@pytest.mark.asyncio
async def test_summarize(conversation_store):
    await conversation_store.initialize("c7")
    await conversation_store.append_exchange("c7", "My printer is not working at all today", "Ugh.")
    await conversation_store.append_exchange("c7", "Thanks, that works now", "Great, it's fixed!")

    summary = await conversation_store.summarize("c7")

    assert summary.sentiment == "positive"
    assert summary.issue_status == "resolved"
    assert summary.key_points[0] == "My printer is not working at all today"
    assert await conversation_store.summarize("missing") is None
