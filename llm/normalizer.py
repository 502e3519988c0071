"""Normalization of completion API payloads.

Providers disagree on how a message looks: ``content`` may be a plain string,
a list of typed parts (``{"type": "text", "text": ...}``, image parts, ...)
or a nested object. Tool calls may arrive as ``tool_calls`` or as the legacy
single ``function_call``. Everything here degrades to empty values instead of
raising.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from .base_client import ToolCall

logger = logging.getLogger(__name__)

TEXT_KEYS = ("text", "content")


def normalize_content(value: Any) -> str:
    """Concatenate every textual fragment found in a content payload."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "".join(normalize_content(part) for part in value)
    if isinstance(value, dict):
        for key in TEXT_KEYS:
            if key in value:
                return normalize_content(value[key])
        return ""
    return ""


def extract_message(data: Any) -> Dict[str, Any]:
    """Return ``choices[0].message`` or an empty dict."""
    if not isinstance(data, dict):
        return {}
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return {}
    first = choices[0]
    if not isinstance(first, dict):
        return {}
    message = first.get("message")
    return message if isinstance(message, dict) else {}


def _tool_calls_from_array(message: Dict[str, Any]) -> Optional[List[ToolCall]]:
    entries = message.get("tool_calls")
    if not isinstance(entries, list) or not entries:
        return None

    calls = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            continue
        function = entry.get("function") if isinstance(entry.get("function"), dict) else {}
        call_id = entry.get("id") or f"call_{index}"
        arguments = _arguments_string(function.get("arguments"))
        raw = dict(entry)
        raw["id"] = call_id
        # Replayed turns must carry arguments as a JSON string
        raw["function"] = {**function, "arguments": arguments}
        calls.append(ToolCall(
            id=call_id,
            name=function.get("name") or "unknown",
            raw_arguments=arguments,
            raw=raw
        ))
    return calls or None


def _tool_calls_from_function_call(message: Dict[str, Any]) -> Optional[List[ToolCall]]:
    function = message.get("function_call")
    if not isinstance(function, dict):
        return None
    # Legacy single call: replayed as a tool_calls entry so the tool turn has an id to match
    return [ToolCall(
        id="call_0",
        name=function.get("name") or "unknown",
        raw_arguments=_arguments_string(function.get("arguments"))
    )]


TOOL_CALL_MATCHERS = (_tool_calls_from_array, _tool_calls_from_function_call)


def extract_tool_calls(message: Dict[str, Any]) -> List[ToolCall]:
    """Probe the known tool-call shapes in order; first match wins."""
    for matcher in TOOL_CALL_MATCHERS:
        calls = matcher(message)
        if calls:
            return calls
    return []


def _arguments_string(arguments: Any) -> str:
    if arguments is None:
        return "{}"
    if isinstance(arguments, str):
        return arguments
    # Some providers send parsed objects instead of a JSON string
    try:
        return json.dumps(arguments)
    except (TypeError, ValueError):
        logger.warning("Unserializable tool arguments, substituting {}")
        return "{}"
