"""OpenAI LLM client implementation."""

import logging
from typing import Optional, List, Dict, Any

from .base_client import BaseLLMClient, Message, LLMResponse
from .errors import CompletionAPIError, ConfigurationError
from .openrouter_client import OpenRouterClient

logger = logging.getLogger(__name__)


class OpenAIClient(BaseLLMClient):
    """OpenAI GPT client implementation using the official SDK."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        """
        Initialize OpenAI client.

        Args:
            api_key: OpenAI API key
            base_url: Optional API root override
            timeout: Request timeout in seconds
        """
        if not api_key:
            raise ConfigurationError("Server missing OPENAI_API_KEY")

        from openai import OpenAI

        kwargs: Dict[str, Any] = {"api_key": api_key}
        if base_url:
            kwargs["base_url"] = base_url
        if timeout is not None:
            kwargs["timeout"] = timeout
        self.client = OpenAI(**kwargs)
        logger.info("OpenAI client initialized")

    def chat(
        self,
        messages: List[Message],
        model: str,
        tools: Optional[List[Dict]] = None,
        temperature: float = 0.2
    ) -> LLMResponse:
        """Send chat completion request to OpenAI."""
        import openai

        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": [msg.to_api_dict() for msg in messages],
            "temperature": temperature,
        }

        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        try:
            response = self.client.chat.completions.create(**kwargs)
        except openai.APIStatusError as e:
            logger.error(f"OpenAI API error: {e}")
            raise CompletionAPIError(e.status_code, e.response.text)

        # Same shape as the HTTP body; extra provider fields survive model_dump
        return OpenRouterClient.parse_completion(response.model_dump(exclude_none=True))

    def get_provider_name(self) -> str:
        """Get the provider name."""
        return "openai"
