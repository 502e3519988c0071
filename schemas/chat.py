"""Caller-facing chat schemas."""

from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field


class IncomingMessage(BaseModel):
    """A conversation turn sent by the UI or CLI."""
    role: Literal["user", "assistant", "system"]
    content: str


class ChatRequest(BaseModel):
    """Request body of the chat endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    model_id: str = Field(alias="modelId", min_length=1)
    image_model_id: Optional[str] = Field(default=None, alias="imageModelId")
    messages: List[IncomingMessage]
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")


class ChatResponse(BaseModel):
    """Final answer: whiteboard content plus the text to speak."""
    model_config = ConfigDict(populate_by_name=True)

    content: str
    speech_content: str = Field(alias="speechContent")


class ErrorResponse(BaseModel):
    """Body of every failed request."""
    error: str
