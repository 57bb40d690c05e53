"""Storage collaborators: key-value stores and the conversation-context store."""

from personasim.storage.conversations import ContextWindow, ConversationStore, ConversationSummary
from personasim.storage.kv import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore

__all__ = [
    "ContextWindow",
    "ConversationStore",
    "ConversationSummary",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "RedisKeyValueStore",
]
