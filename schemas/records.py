"""Request bodies of the CRUD endpoints."""

from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


class ConversationCreate(BaseModel):
    """New conversation; blank titles get a generated one."""
    title: Optional[str] = None


class MessageCreate(BaseModel):
    """Message appended by the UI (usually the user's own turn)."""
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(alias="conversationId", min_length=1)
    role: Literal["user", "assistant", "system"]
    content: str
    speech_content: Optional[str] = Field(default=None, alias="speechContent")


class MemoryCreate(BaseModel):
    """Memory added manually by the user."""
    title: Optional[str] = None
    content: str


class MemoryUpdate(BaseModel):
    """Partial memory update; an explicit null title clears it."""
    title: Optional[str] = None
    content: Optional[str] = None
