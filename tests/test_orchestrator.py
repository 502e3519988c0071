"""End-to-end tests of one chat request through the orchestrator."""

import json
from unittest.mock import MagicMock

import pytest

from chat.images import ExtractedImage, ImagePlaceholderRegistry
from config.settings import Settings
from llm.errors import CompletionAPIError, ConfigurationError, InvalidRequestError
from memory.consolidator import MemoryConsolidator
from orchestrator import TutorOrchestrator


class TestTutorOrchestrator:
    """Test handle_chat with a scripted model and a temporary database."""

    @pytest.fixture(autouse=True)
    def _setup(self, tmp_path, store, scripted_client, make_completion, make_tool_call):
        self.settings = Settings(openrouter_api_key="test-key", db_path=str(tmp_path / "tutor.db"))
        self.store = store
        self.scripted_client = scripted_client
        self.completion = make_completion
        self.tool_call = make_tool_call
        self.image_client = MagicMock()
        self.consolidator = MagicMock()
        self.conversation = store.create_conversation("u1")

    def _orchestrator(self, client):
        return TutorOrchestrator(
            settings=self.settings,
            store=self.store,
            llm_client=client,
            image_client=self.image_client,
            consolidator=self.consolidator
        )

    def _request(self, **overrides):
        payload = {
            "modelId": "gemini-2.5-flash-lite",
            "messages": [{"role": "user", "content": "What is a derivative?"}],
            "conversationId": self.conversation.id,
        }
        payload.update(overrides)
        return payload

    def test_split_and_persist(self):
        """Test the reply is split and stored with its speech content."""
        client = self.scripted_client([self.completion(
            "<speech>A derivative measures change.</speech><display>f'(x) = lim h->0</display>"
        )])
        response = self._orchestrator(client).handle_chat("u1", self._request())

        assert response.content == "f'(x) = lim h->0"
        assert response.speech_content == "A derivative measures change."
        assert response.model_dump(by_alias=True) == {
            "content": "f'(x) = lim h->0",
            "speechContent": "A derivative measures change."
        }

        messages = self.store.list_messages(self.conversation.id)
        assert len(messages) == 1
        assert messages[0].role == "assistant"
        assert messages[0].content == "f'(x) = lim h->0"
        assert messages[0].speech_content == "A derivative measures change."

    def test_untagged_reply(self):
        """Test output without tags is used for both parts."""
        client = self.scripted_client([self.completion("Just text")])
        response = self._orchestrator(client).handle_chat("u1", self._request())

        assert response.content == "Just text"
        assert response.speech_content == "Just text"

    def test_model_slug_resolved(self):
        """Test UI model ids map to provider slugs; unknown ids pass through."""
        client = self.scripted_client([self.completion("ok")])
        orchestrator = self._orchestrator(client)

        orchestrator.handle_chat("u1", self._request())
        orchestrator.handle_chat("u1", self._request(modelId="vendor/new-model"))

        assert client.calls[0]["model"] == "google/gemini-2.5-flash-lite"
        assert client.calls[1]["model"] == "vendor/new-model"

    def test_memories_in_system_prompt(self):
        """Test stored memories are appended to the system prompt."""
        self.store.create_memory("u1", "Prefers metric units", title="Units")
        self.store.create_memory("u2", "Secret of another user")
        client = self.scripted_client([self.completion("ok")])

        self._orchestrator(client).handle_chat("u1", self._request())

        system_prompt = client.calls[0]["messages"][0]["content"]
        assert "**Units**: Prefers metric units" in system_prompt
        assert "Secret of another user" not in system_prompt

    def test_no_conversation_not_persisted(self):
        client = self.scripted_client([self.completion("<speech>Hi</speech>")])
        response = self._orchestrator(client).handle_chat(
            "u1", self._request(conversationId=None)
        )

        assert response.content == "Hi"
        assert self.store.count_messages(self.conversation.id) == 0
        self.consolidator.maybe_schedule.assert_not_called()

    def test_foreign_conversation_not_persisted(self):
        """Test replies are never written into another user's conversation."""
        client = self.scripted_client([self.completion("ok")])

        self._orchestrator(client).handle_chat("intruder", self._request())

        assert self.store.count_messages(self.conversation.id) == 0

    def test_save_memory_tool_round(self):
        """Test a save_memory call is executed before the final answer."""
        client = self.scripted_client([
            self.completion(None, tool_calls=[
                self.tool_call("call_1", "save_memory", {"content": "Is a visual learner"})
            ]),
            self.completion("<speech>Noted!</speech>"),
        ])
        response = self._orchestrator(client).handle_chat("u1", self._request())

        assert response.speech_content == "Noted!"
        assert [m.content for m in self.store.list_memories("u1")] == ["Is a visual learner"]

    def test_generated_image_substituted_after_loop(self):
        """Test the model sees a placeholder and the caller gets the image."""
        data_uri = "data:image/png;base64," + "B" * 4000
        self.image_client.generate.return_value = ExtractedImage(shape="message_images", url=data_uri)

        def answer_with_placeholder(messages):
            placeholder = json.loads(messages[-1]["content"])["placeholder"]
            return self.completion(
                f"<speech>Here is a diagram.</speech><display>![triangle]({placeholder})</display>"
            )

        client = self.scripted_client([
            self.completion(None, tool_calls=[
                self.tool_call("call_1", "generate_image", {"prompt": "right triangle"})
            ]),
            answer_with_placeholder,
        ])
        response = self._orchestrator(client).handle_chat(
            "u1", self._request(imageModelId="gemini-2.5-pro")
        )

        assert response.content == f"![triangle]({data_uri})"
        assert ImagePlaceholderRegistry.TOKEN_PREFIX not in response.content
        assert all(data_uri not in json.dumps(m) for m in client.calls[1]["messages"])
        self.image_client.generate.assert_called_once_with("right triangle", "google/gemini-2.5-pro")
        assert self.store.list_messages(self.conversation.id)[0].content == f"![triangle]({data_uri})"

    def test_missing_api_key(self, tmp_path):
        """Test a missing key fails before any model call."""
        settings = Settings(openrouter_api_key="", db_path=str(tmp_path / "other.db"))
        orchestrator = TutorOrchestrator(settings=settings, store=self.store)

        with pytest.raises(ConfigurationError, match="OPENROUTER_API_KEY"):
            orchestrator.handle_chat("u1", self._request())

    @pytest.mark.parametrize("payload", [
        {"messages": []},
        {"modelId": "", "messages": []},
        {"modelId": "m", "messages": "hello"},
        {"modelId": "m", "messages": [{"role": "robot", "content": "x"}]},
    ])
    def test_invalid_payload(self, payload):
        client = self.scripted_client([self.completion("ok")])

        with pytest.raises(InvalidRequestError):
            self._orchestrator(client).handle_chat("u1", payload)
        assert client.calls == []

    def test_upstream_failure_propagates(self):
        """Test completion errors surface and nothing is persisted."""
        client = self.scripted_client([CompletionAPIError(429, "rate limited")])

        with pytest.raises(CompletionAPIError):
            self._orchestrator(client).handle_chat("u1", self._request())
        assert self.store.count_messages(self.conversation.id) == 0

    def test_consolidation_scheduled(self):
        """Test the message count and model are handed to the consolidator."""
        for i in range(4):
            self.store.add_message(self.conversation.id, "user", f"m{i}")
        self.store.create_memory("u1", "a")
        self.store.create_memory("u1", "b")
        client = self.scripted_client([self.completion("ok")])

        self._orchestrator(client).handle_chat("u1", self._request())

        self.consolidator.maybe_schedule.assert_called_once_with(
            "u1", 5, "google/gemini-2.5-flash-lite", previous_count=0
        )

    def test_consolidation_needs_two_memories(self):
        self.store.create_memory("u1", "only one")
        client = self.scripted_client([self.completion("ok")])

        self._orchestrator(client).handle_chat("u1", self._request())

        self.consolidator.maybe_schedule.assert_not_called()

    def test_consolidation_failure_does_not_break_reply(self):
        """Test scheduling errors are contained."""
        self.store.create_memory("u1", "a")
        self.store.create_memory("u1", "b")
        self.consolidator.maybe_schedule.side_effect = RuntimeError("executor shut down")
        client = self.scripted_client([self.completion("<speech>fine</speech>")])

        response = self._orchestrator(client).handle_chat("u1", self._request())

        assert response.speech_content == "fine"
        assert self.store.count_messages(self.conversation.id) == 1

    def test_alternating_turns_reach_thresholds(self):
        """Test user/assistant alternation schedules at 5, 15 and 25 messages."""
        self.store.create_memory("u1", "likes math")
        self.store.create_memory("u1", "likes maths")
        client = self.scripted_client([self.completion("<speech>ok</speech>")])
        consolidator = MemoryConsolidator(self.store, client, executor=MagicMock())
        consolidator.schedule = MagicMock()
        orchestrator = TutorOrchestrator(
            settings=self.settings,
            store=self.store,
            llm_client=client,
            image_client=self.image_client,
            consolidator=consolidator
        )

        counts = []
        for turn in range(15):
            self.store.add_message(self.conversation.id, "user", f"question {turn}")
            orchestrator.handle_chat("u1", self._request(
                messages=[{"role": "user", "content": f"question {turn}"}]
            ))
            counts.append(self.store.count_messages(self.conversation.id))

        assert counts == list(range(2, 31, 2))
        assert consolidator.schedule.call_count == 3
        consolidator.schedule.assert_called_with("u1", "google/gemini-2.5-flash-lite")

    def test_close_shuts_down_consolidator(self):
        client = self.scripted_client([self.completion("ok")])
        orchestrator = self._orchestrator(client)

        orchestrator.close()

        self.consolidator.close.assert_called_once_with()
