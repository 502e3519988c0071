"""Tool-calling chat loop and its helpers."""

from .dispatcher import ToolDispatcher, parse_arguments
from .images import ImageGenerationClient, ImagePlaceholderRegistry, extract_image_url
from .loop import ToolCallingLoop, LoopResult, LoopState
from .splitter import SplitResponse, split_speech_display
from .tools import Tool, ToolContext, ToolResult, SaveMemoryTool, RenameConversationTool, GenerateImageTool

__all__ = [
    "ToolDispatcher",
    "parse_arguments",
    "ImageGenerationClient",
    "ImagePlaceholderRegistry",
    "extract_image_url",
    "ToolCallingLoop",
    "LoopResult",
    "LoopState",
    "SplitResponse",
    "split_speech_display",
    "Tool",
    "ToolContext",
    "ToolResult",
    "SaveMemoryTool",
    "RenameConversationTool",
    "GenerateImageTool",
]
