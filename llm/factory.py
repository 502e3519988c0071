"""LLM client factory."""

from enum import Enum

from config.settings import Settings

from .base_client import BaseLLMClient
from .openai_client import OpenAIClient
from .openrouter_client import OpenRouterClient


class LLMProvider(str, Enum):
    """Supported LLM providers."""
    OPENROUTER = "openrouter"
    OPENAI = "openai"


def create_llm_client(settings: Settings) -> BaseLLMClient:
    """
    Create an LLM client for the configured provider.

    Args:
        settings: Application settings

    Returns:
        Configured LLM client

    Raises:
        ConfigurationError: If the provider's API key is missing
        ValueError: If provider is not supported
    """
    provider = LLMProvider(settings.llm_provider)

    if provider == LLMProvider.OPENROUTER:
        return OpenRouterClient(
            api_key=settings.openrouter_api_key,
            base_url=settings.get_api_base_url(),
            app_url=settings.app_url,
            app_title=settings.app_title,
            timeout=settings.completion_timeout
        )
    elif provider == LLMProvider.OPENAI:
        return OpenAIClient(
            api_key=settings.openai_api_key,
            base_url=settings.api_base_url,
            timeout=settings.completion_timeout
        )
    else:
        raise ValueError(f"Unsupported LLM provider: {provider}")
