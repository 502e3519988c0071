"""Persistence data models."""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field


class User(BaseModel):
    """An account; owns conversations and memories."""
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class ConversationMessage(BaseModel):
    """A persisted message of a conversation."""
    id: str
    conversation_id: str
    role: str  # "user", "assistant" or "system"
    content: str
    speech_content: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class Conversation(BaseModel):
    """A conversation owned by a user."""
    id: str
    user_id: str
    title: str
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    messages: List[ConversationMessage] = Field(default_factory=list)


class Memory(BaseModel):
    """A durable fact or preference stored about a user."""
    id: str
    user_id: str
    title: Optional[str] = None
    content: str
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
