"""Shared fixtures: a temporary store and a scripted completion client."""

import json
from typing import Any, Dict, List, Optional

import pytest

from llm.base_client import BaseLLMClient, LLMResponse, Message
from llm.openrouter_client import OpenRouterClient
from memory.sqlite_store import SQLiteMemoryStore


def completion(
    content: Any = None,
    tool_calls: Optional[List[Dict[str, Any]]] = None,
    **message_fields
) -> Dict[str, Any]:
    """Build a chat/completions response body."""
    message: Dict[str, Any] = {"role": "assistant", "content": content}
    if tool_calls is not None:
        message["tool_calls"] = tool_calls
    message.update(message_fields)
    return {"choices": [{"message": message, "finish_reason": "stop"}]}


def tool_call(call_id: str, name: str, arguments: Any) -> Dict[str, Any]:
    """Build an OpenAI-style tool_call entry."""
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": arguments}}


class ScriptedLLMClient(BaseLLMClient):
    """
    Replays canned response bodies and records every request.

    Each entry is a response body, an exception to raise, or a callable that
    builds the body from the serialized request messages. The last entry
    repeats once the script runs out.
    """

    def __init__(self, bodies: List[Any]):
        self.bodies = list(bodies)
        self.calls: List[Dict[str, Any]] = []

    def chat(self, messages: List[Message], model: str, tools=None, temperature: float = 0.2) -> LLMResponse:
        api_messages = [m.to_api_dict() for m in messages]
        self.calls.append({
            "messages": api_messages,
            "model": model,
            "tools": tools,
            "temperature": temperature,
        })
        body = self.bodies.pop(0) if len(self.bodies) > 1 else self.bodies[0]
        if isinstance(body, Exception):
            raise body
        if callable(body):
            body = body(api_messages)
        return OpenRouterClient.parse_completion(body)

    def get_provider_name(self) -> str:
        return "scripted"


@pytest.fixture
def store(tmp_path) -> SQLiteMemoryStore:
    return SQLiteMemoryStore(db_path=str(tmp_path / "tutor.db"))


@pytest.fixture
def scripted_client():
    """Factory fixture: ``scripted_client([body, body, ...])``."""
    return ScriptedLLMClient


@pytest.fixture
def make_completion():
    return completion


@pytest.fixture
def make_tool_call():
    return tool_call
