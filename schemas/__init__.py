"""Pydantic schemas for the tutor API."""

from .chat import IncomingMessage, ChatRequest, ChatResponse, ErrorResponse
from .records import ConversationCreate, MessageCreate, MemoryCreate, MemoryUpdate

__all__ = [
    "IncomingMessage",
    "ChatRequest",
    "ChatResponse",
    "ErrorResponse",
    "ConversationCreate",
    "MessageCreate",
    "MemoryCreate",
    "MemoryUpdate",
]
