"""Tools the tutor model can call."""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict

from memory.sqlite_store import SQLiteMemoryStore
from .images import ImageGenerationClient, ImageGenerationError, ImagePlaceholderRegistry

logger = logging.getLogger(__name__)


class ToolResult(BaseModel):
    """Result of one tool invocation, fed back to the model as a tool turn."""
    model_config = ConfigDict(extra="allow")

    ok: bool
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "ToolResult":
        return cls(ok=False, error=error)

    def to_content(self) -> str:
        """JSON body of the tool turn."""
        return json.dumps(self.model_dump(exclude_none=True))


class ToolContext(BaseModel):
    """Per-request state the tools act on."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    user_id: str
    conversation_id: Optional[str] = None
    image_model: Optional[str] = None
    images: ImagePlaceholderRegistry


class Tool(ABC):
    """Abstract base class for tools."""
    name: str
    description: str
    parameters: Dict[str, Any]

    @abstractmethod
    def execute(self, args: Dict[str, Any], context: ToolContext) -> ToolResult:
        """Execute the tool with parsed arguments."""
        pass

    def get_definition(self) -> Dict:
        """Get OpenAI-compatible tool definition."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters
            }
        }


def _text_arg(args: Dict[str, Any], key: str) -> str:
    value = args.get(key)
    return value.strip() if isinstance(value, str) else ""


class SaveMemoryTool(Tool):
    """Stores a durable memory about the user."""

    name = "save_memory"
    description = "Store a durable user memory (preference, profile fact, recurring constraint). Keep it concise."

    parameters = {
        "type": "object",
        "properties": {
            "title": {"type": "string", "description": "Optional short title"},
            "content": {"type": "string", "description": "The memory content"}
        },
        "required": ["content"]
    }

    def __init__(self, store: SQLiteMemoryStore):
        self.store = store

    def execute(self, args: Dict[str, Any], context: ToolContext) -> ToolResult:
        content = _text_arg(args, "content")
        if not content:
            return ToolResult.failure("content required")

        self.store.create_memory(
            user_id=context.user_id,
            content=content,
            title=_text_arg(args, "title") or None
        )
        return ToolResult(ok=True)


class RenameConversationTool(Tool):
    """Renames the conversation the request belongs to."""

    name = "rename_conversation"
    description = "Rename the current conversation to a short, descriptive title (<= 60 chars)."

    parameters = {
        "type": "object",
        "properties": {
            "title": {"type": "string", "description": "Short new title"}
        },
        "required": ["title"]
    }

    def __init__(self, store: SQLiteMemoryStore):
        self.store = store

    def execute(self, args: Dict[str, Any], context: ToolContext) -> ToolResult:
        title = _text_arg(args, "title")
        if not title:
            return ToolResult.failure("title required")
        if not context.conversation_id:
            return ToolResult.failure("conversationId missing")

        if not self.store.rename_conversation(context.conversation_id, context.user_id, title):
            return ToolResult.failure("conversation not found")

        logger.info(f"Renamed conversation {context.conversation_id} to {title!r}")
        return ToolResult(ok=True)


class GenerateImageTool(Tool):
    """
    Generates an illustration.

    The model only ever sees a placeholder token; the image URL or data URI
    is substituted into the final answer after the tool loop.
    """

    name = "generate_image"
    description = """Generate an image (diagram, illustration, visual example) from a text prompt.
Returns a placeholder that must be referenced in the display section as a markdown image."""

    parameters = {
        "type": "object",
        "properties": {
            "prompt": {"type": "string", "description": "Detailed description of the image"}
        },
        "required": ["prompt"]
    }

    def __init__(self, client: ImageGenerationClient, default_model: str):
        self.client = client
        self.default_model = default_model

    def execute(self, args: Dict[str, Any], context: ToolContext) -> ToolResult:
        prompt = _text_arg(args, "prompt")
        if not prompt:
            return ToolResult.failure("prompt required")

        try:
            image = self.client.generate(prompt, context.image_model or self.default_model)
        except ImageGenerationError as e:
            logger.warning(f"Image generation failed: {e}")
            return ToolResult.failure(str(e))

        placeholder = context.images.register(image.url)
        return ToolResult(
            ok=True,
            placeholder=placeholder,
            instruction=f"Show the image in <display> using markdown: ![{prompt[:60]}]({placeholder})"
        )
