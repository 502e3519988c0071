"""Application settings."""

import os
from typing import Dict, Optional
from pydantic import BaseModel, Field


DEFAULT_MODEL_SLUGS: Dict[str, str] = {
    "minimax/minimax-m2:free": "minimax/minimax-m2:free",
    "x-ai/grok-4-fast": "x-ai/grok-4-fast",
    "x-ai/grok-code-fast-1": "x-ai/grok-code-fast-1",
    "gemini-2.5-flash-lite": "google/gemini-2.5-flash-lite",
    "gemini-2.5-pro": "google/gemini-2.5-pro",
    "anthropic/claude-haiku-4.5": "anthropic/claude-haiku-4.5",
    "qwen/qwen3-235b-a22b-2507": "qwen/qwen3-235b-a22b-2507",
    "openai/gpt-oss-120b": "openai/gpt-oss-120b",
    "deepseek/deepseek-v3.1-terminus": "deepseek/deepseek-v3.1-terminus",
    "z-ai/glm-4.6": "z-ai/glm-4.6",
}


PROVIDER_BASE_URLS: Dict[str, str] = {
    "openrouter": "https://openrouter.ai/api/v1",
    "openai": "https://api.openai.com/v1",
}


class Settings(BaseModel):
    """Application configuration settings."""

    # LLM Provider settings
    llm_provider: str = "openrouter"  # "openrouter" or "openai"
    api_base_url: Optional[str] = None  # provider default when unset

    # API Keys
    openrouter_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None

    # Sent as HTTP-Referer / X-Title to OpenRouter
    app_url: str = "http://localhost:8000"
    app_title: str = "MentorAI"

    # UI model id -> provider slug
    model_slugs: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_MODEL_SLUGS))

    # Image generation
    default_image_model: str = "google/gemini-2.5-flash-image-preview"
    image_mode: str = "chat"  # "chat" (modalities hint) or "images" (images/generations)
    image_timeout: Optional[float] = 120.0

    # Tool loop settings
    temperature: float = 0.2
    max_tool_iterations: int = 3
    completion_timeout: Optional[float] = None  # rely on the outer request timeout

    # Memory consolidation
    consolidation_enabled: bool = True
    consolidation_model: Optional[str] = None  # defaults to the chat model

    # Persistence
    db_path: str = "data/tutor.db"

    # Logging
    verbose: bool = False

    def __init__(self, **data):
        # Auto-load secrets and deployment values from environment if not provided
        if data.get("openrouter_api_key") is None:
            data["openrouter_api_key"] = os.environ.get("OPENROUTER_API_KEY")

        if data.get("openai_api_key") is None:
            data["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

        if "app_url" not in data and os.environ.get("APP_URL"):
            data["app_url"] = os.environ["APP_URL"]

        if "db_path" not in data and os.environ.get("TUTOR_DB_PATH"):
            data["db_path"] = os.environ["TUTOR_DB_PATH"]

        super().__init__(**data)

    def get_llm_api_key(self) -> Optional[str]:
        """Get the API key for the configured LLM provider."""
        if self.llm_provider == "openrouter":
            return self.openrouter_api_key
        elif self.llm_provider == "openai":
            return self.openai_api_key
        return None

    def resolve_model(self, model_id: str) -> str:
        """Map a UI model id to the provider slug; unknown ids pass through."""
        return self.model_slugs.get(model_id, model_id)

    def get_api_base_url(self) -> str:
        """Completion API root for the configured provider."""
        if self.api_base_url:
            return self.api_base_url
        return PROVIDER_BASE_URLS.get(self.llm_provider, PROVIDER_BASE_URLS["openrouter"])
