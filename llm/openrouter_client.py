"""OpenRouter chat/completions client over plain HTTP."""

import logging
from typing import Optional, List, Dict, Any

import requests

from .base_client import BaseLLMClient, Message, LLMResponse
from .errors import CompletionAPIError, ConfigurationError
from .normalizer import extract_message, extract_tool_calls, normalize_content

logger = logging.getLogger(__name__)


class OpenRouterClient(BaseLLMClient):
    """OpenAI-compatible completion client for OpenRouter."""

    DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: Optional[str] = None,
        app_url: str = "http://localhost:8000",
        app_title: str = "MentorAI",
        timeout: Optional[float] = None
    ):
        """
        Initialize OpenRouter client.

        Args:
            api_key: OpenRouter API key
            base_url: API root (default: https://openrouter.ai/api/v1)
            app_url: Sent as HTTP-Referer for OpenRouter attribution
            app_title: Sent as X-Title
            timeout: Request timeout in seconds (None waits indefinitely)
        """
        if not api_key:
            raise ConfigurationError("Server missing OPENROUTER_API_KEY")

        self.api_key = api_key
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip('/')
        self.app_url = app_url
        self.app_title = app_title
        self.timeout = timeout

    def _get_headers(self) -> dict:
        """Build request headers."""
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            "HTTP-Referer": self.app_url,
            "X-Title": self.app_title,
        }

    def post_json(
        self,
        path: str,
        payload: Dict[str, Any],
        timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        POST a JSON payload and decode the JSON reply.

        Raises:
            CompletionAPIError: On a non-2xx status, carrying the upstream body
        """
        response = requests.post(
            f"{self.base_url}{path}",
            json=payload,
            headers=self._get_headers(),
            timeout=timeout if timeout is not None else self.timeout
        )

        if not response.ok:
            logger.error(f"OpenRouter returned status {response.status_code} for {path}")
            raise CompletionAPIError(response.status_code, response.text)

        try:
            data = response.json()
        except ValueError:
            raise CompletionAPIError(response.status_code, "Invalid JSON from upstream")
        return data if isinstance(data, dict) else {}

    def chat(
        self,
        messages: List[Message],
        model: str,
        tools: Optional[List[Dict]] = None,
        temperature: float = 0.2
    ) -> LLMResponse:
        """Send chat completion request to OpenRouter."""
        payload: Dict[str, Any] = {
            "model": model,
            "messages": [msg.to_api_dict() for msg in messages],
            "temperature": temperature,
        }

        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        data = self.post_json("/chat/completions", payload)
        return self.parse_completion(data)

    @staticmethod
    def parse_completion(data: Dict[str, Any]) -> LLMResponse:
        """Turn a raw chat/completions body into an LLMResponse."""
        message = extract_message(data)
        tool_calls = extract_tool_calls(message)

        usage = data.get("usage") if isinstance(data.get("usage"), dict) else None
        if usage:
            usage = {k: v for k, v in usage.items() if isinstance(v, int)}

        finish_reason = None
        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            finish_reason = choices[0].get("finish_reason")

        return LLMResponse(
            content=normalize_content(message.get("content")),
            tool_calls=tool_calls or None,
            message=message,
            usage=usage,
            finish_reason=finish_reason
        )

    def get_provider_name(self) -> str:
        """Get the provider name."""
        return "openrouter"
