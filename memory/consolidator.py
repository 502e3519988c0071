"""Background deduplication and merging of stored user memories."""

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from llm.base_client import BaseLLMClient, Message
from .models import Memory
from .sqlite_store import SQLiteMemoryStore, UNSET

logger = logging.getLogger(__name__)


FIRST_THRESHOLD = 5
THRESHOLD_STEP = 10


def should_consolidate(message_count: int, previous_count: Optional[int] = None) -> bool:
    """
    True when the message count reaches a threshold (5, 15, 25, ...).

    Args:
        message_count: Persisted messages now
        previous_count: Persisted messages when the check last ran; a
            threshold t counts when ``previous_count < t <= message_count``
            (default: ``message_count - 1``, i.e. only an exact hit)
    """
    if previous_count is None:
        previous_count = message_count - 1

    if previous_count < FIRST_THRESHOLD:
        next_threshold = FIRST_THRESHOLD
    else:
        steps = (previous_count - FIRST_THRESHOLD) // THRESHOLD_STEP + 1
        next_threshold = FIRST_THRESHOLD + steps * THRESHOLD_STEP
    return next_threshold <= message_count


def extract_json_array(content: str) -> Optional[List[Any]]:
    """Pull a JSON array out of a reply that may be wrapped in markdown."""
    content = content.strip()

    # Handle potential markdown code blocks
    if content.startswith("```"):
        content = content.split("```")[1]
        if content.startswith("json"):
            content = content[4:]
        content = content.strip()

    start = content.find("[")
    end = content.rfind("]")
    if start == -1 or end <= start:
        return None

    try:
        parsed = json.loads(content[start:end + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, list) else None


class MemoryConsolidator:
    """
    Asks the model to classify each memory as keep, delete, merge or update
    and applies the answer.

    Runs detached from the chat request: ``schedule`` returns a future the
    caller is free to drop, and every failure (network, non-2xx, unparsable
    reply) is logged and swallowed.
    """

    SYSTEM_PROMPT = """You maintain a list of durable memories about a student.
Remove duplicates and outdated entries, merge memories that describe the same fact, and tighten wording.

For EVERY memory return exactly one action. Respond with a JSON array only:
[
  {"action": "keep", "id": "<id>"},
  {"action": "delete", "id": "<id>"},
  {"action": "update", "id": "<id>", "content": "<new content>", "title": "<optional title>"},
  {"action": "merge", "ids": ["<id>", "<id>"], "content": "<merged content>", "title": "<optional title>"}
]"""

    MIN_MEMORIES = 2

    def __init__(
        self,
        store: SQLiteMemoryStore,
        llm_client: BaseLLMClient,
        executor: Optional[ThreadPoolExecutor] = None
    ):
        """
        Initialize consolidator.

        Args:
            store: Persistence store
            llm_client: Completion client for the one-shot classification call
            executor: Background executor (a single worker by default; an
                injected executor is left for its owner to shut down)
        """
        self.store = store
        self.llm_client = llm_client
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="memory-consolidation"
        )

    def maybe_schedule(
        self,
        user_id: str,
        message_count: int,
        model: str,
        previous_count: Optional[int] = None
    ) -> Optional[Future]:
        """Schedule a run when the count crossed a threshold since ``previous_count``."""
        if not should_consolidate(message_count, previous_count):
            return None
        return self.schedule(user_id, model)

    def schedule(self, user_id: str, model: str) -> Future:
        """Run ``consolidate`` in the background; the outcome is only logged."""
        future = self.executor.submit(self.consolidate, user_id, model)
        future.add_done_callback(self._log_outcome)
        return future

    def close(self, wait: bool = True):
        """Shut down the executor this consolidator created."""
        if self._owns_executor:
            self.executor.shutdown(wait=wait)

    @staticmethod
    def _log_outcome(future: Future):
        if future.cancelled():
            logger.info("Memory consolidation cancelled before it ran")
            return
        error = future.exception()
        if error is not None:
            logger.warning(f"Memory consolidation crashed: {error}")

    def consolidate(self, user_id: str, model: str) -> int:
        """
        Consolidate a user's memories.

        Returns:
            Number of actions applied (0 on any failure)
        """
        try:
            memories = self.store.list_memories(user_id)
            if len(memories) < self.MIN_MEMORIES:
                return 0

            response = self.llm_client.chat(
                messages=[
                    Message(role="system", content=self.SYSTEM_PROMPT),
                    Message(role="user", content=self._format_memories(memories))
                ],
                model=model,
                temperature=0.1
            )

            actions = extract_json_array(response.content)
            if actions is None:
                logger.warning("Memory consolidation reply had no JSON array")
                return 0

            applied = self._apply(user_id, memories, actions)
            logger.info(f"Memory consolidation for {user_id}: {applied} actions applied")
            return applied

        except Exception as e:
            logger.warning(f"Memory consolidation failed: {e}")
            return 0

    def _format_memories(self, memories: List[Memory]) -> str:
        payload = [
            {"id": m.id, "title": m.title, "content": m.content}
            for m in memories
        ]
        return f"Memories:\n{json.dumps(payload, indent=2)}"

    def _apply(self, user_id: str, memories: List[Memory], actions: List[Any]) -> int:
        known = {m.id for m in memories}
        consumed = set()  # ids already deleted or merged away
        applied = 0

        for action in actions:
            if not isinstance(action, dict):
                continue
            kind = action.get("action")

            if kind == "delete":
                memory_id = action.get("id")
                if memory_id in known and memory_id not in consumed:
                    self.store.delete_memory(memory_id, user_id)
                    consumed.add(memory_id)
                    applied += 1

            elif kind == "update":
                memory_id = action.get("id")
                content = self._text(action, "content")
                if memory_id in known and memory_id not in consumed and content:
                    self.store.update_memory(
                        memory_id,
                        user_id,
                        content=content,
                        title=self._text(action, "title") or UNSET
                    )
                    applied += 1

            elif kind == "merge":
                ids = action.get("ids")
                ids = [i for i in ids if i in known and i not in consumed] if isinstance(ids, list) else []
                content = self._text(action, "content")
                if len(ids) >= 2 and content:
                    self.store.delete_memories(user_id, ids)
                    consumed.update(ids)
                    self.store.create_memory(
                        user_id=user_id,
                        content=content,
                        title=self._text(action, "title") or None
                    )
                    applied += 1

        return applied

    @staticmethod
    def _text(action: Dict[str, Any], key: str) -> str:
        value = action.get(key)
        return value.strip() if isinstance(value, str) else ""
