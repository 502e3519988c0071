"""Persistence for users, conversations, messages and memories."""

from .models import User, Conversation, ConversationMessage, Memory
from .sqlite_store import SQLiteMemoryStore, UNSET
from .consolidator import MemoryConsolidator, should_consolidate

__all__ = [
    "User",
    "Conversation",
    "ConversationMessage",
    "Memory",
    "SQLiteMemoryStore",
    "UNSET",
    "MemoryConsolidator",
    "should_consolidate",
]
