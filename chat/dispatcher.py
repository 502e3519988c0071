"""Dispatch of model tool invocations to tool handlers."""

import json
import logging
from typing import Any, Dict, List

from llm.base_client import ToolCall
from .tools import Tool, ToolContext, ToolResult

logger = logging.getLogger(__name__)


def parse_arguments(raw_arguments: Any) -> Dict[str, Any]:
    """Decode a JSON argument string; anything malformed becomes ``{}``."""
    if isinstance(raw_arguments, dict):
        return raw_arguments
    if not isinstance(raw_arguments, str) or not raw_arguments.strip():
        return {}
    try:
        parsed = json.loads(raw_arguments)
    except (json.JSONDecodeError, RecursionError):
        logger.warning("Malformed tool arguments, substituting {}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


class ToolDispatcher:
    """Routes tool calls by name and turns every failure into a ToolResult."""

    def __init__(self, tools: List[Tool]):
        self.tools = {tool.name: tool for tool in tools}
        self.tool_definitions = [tool.get_definition() for tool in tools]

    def dispatch(self, call: ToolCall, context: ToolContext) -> ToolResult:
        """Execute one invocation. Never raises."""
        tool = self.tools.get(call.name)
        if tool is None:
            logger.warning(f"Model requested unknown tool '{call.name}'")
            return ToolResult.failure("Unknown tool")

        args = parse_arguments(call.raw_arguments)
        logger.info(f"Executing tool {call.name} (call {call.id})")

        try:
            return tool.execute(args, context)
        except Exception as e:
            logger.error(f"Tool {call.name} failed: {e}")
            return ToolResult.failure(str(e) or "tool error")
