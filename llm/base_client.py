"""Base LLM client interface."""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


# Opaque fields some providers attach to assistant messages and require back
# verbatim when validating the following tool-result turns.
PROVIDER_REASONING_FIELDS = ("reasoning", "reasoning_details")


class ToolCall(BaseModel):
    """Tool invocation requested by the LLM."""
    id: str
    name: str
    raw_arguments: str = "{}"  # JSON string, parsed by the dispatcher
    raw: Optional[Dict[str, Any]] = None  # provider dict, replayed verbatim

    def to_api_dict(self) -> Dict[str, Any]:
        """OpenAI-style tool_call entry."""
        if self.raw is not None:
            return self.raw
        return {
            "id": self.id,
            "type": "function",
            "function": {
                "name": self.name,
                "arguments": self.raw_arguments
            }
        }


class Message(BaseModel):
    """One conversation turn exchanged with the completion API."""
    role: str  # "system", "user", "assistant", "tool"
    content: Optional[Any] = None  # text, list of parts, or omitted
    tool_call_id: Optional[str] = None  # For tool responses
    name: Optional[str] = None  # Tool name for tool responses
    tool_calls: Optional[List[ToolCall]] = None  # For assistant messages with tool calls
    provider_fields: Dict[str, Any] = Field(default_factory=dict)

    def to_api_dict(self) -> Dict[str, Any]:
        """Serialize to the chat/completions message format."""
        data: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        if self.name:
            data["name"] = self.name
        if self.tool_calls:
            data["tool_calls"] = [tc.to_api_dict() for tc in self.tool_calls]
        data.update(self.provider_fields)
        return data


class LLMResponse(BaseModel):
    """Response from LLM."""
    content: str  # normalized plain text
    tool_calls: Optional[List[ToolCall]] = None
    message: Dict[str, Any] = Field(default_factory=dict)  # raw choices[0].message
    usage: Optional[Dict[str, int]] = None
    finish_reason: Optional[str] = None

    @property
    def provider_fields(self) -> Dict[str, Any]:
        """Reasoning fields to carry over into the replayed assistant turn."""
        return {
            key: self.message[key]
            for key in PROVIDER_REASONING_FIELDS
            if self.message.get(key) is not None
        }


class BaseLLMClient(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    def chat(
        self,
        messages: List[Message],
        model: str,
        tools: Optional[List[Dict]] = None,
        temperature: float = 0.2
    ) -> LLMResponse:
        """
        Send chat completion request.

        Args:
            messages: List of messages in conversation
            model: Provider model slug
            tools: Optional list of tool definitions for function calling
            temperature: Sampling temperature (0-1)

        Returns:
            LLMResponse with content and optional tool calls

        Raises:
            CompletionAPIError: If the API answers with a non-success status
        """
        pass

    @abstractmethod
    def get_provider_name(self) -> str:
        """Get the name of the LLM provider."""
        pass
