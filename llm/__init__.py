"""LLM client abstraction layer."""

from .base_client import BaseLLMClient, Message, LLMResponse, ToolCall
from .errors import CompletionAPIError, ConfigurationError, InvalidRequestError, TutorError
from .factory import create_llm_client, LLMProvider
from .normalizer import normalize_content

__all__ = [
    "BaseLLMClient",
    "Message",
    "LLMResponse",
    "ToolCall",
    "CompletionAPIError",
    "ConfigurationError",
    "InvalidRequestError",
    "TutorError",
    "create_llm_client",
    "LLMProvider",
    "normalize_content",
]
