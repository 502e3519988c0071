"""Main orchestrator for the tutor chat endpoint."""

import logging
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from config.settings import Settings
from schemas.chat import ChatRequest, ChatResponse

# LLM components
from llm.base_client import BaseLLMClient, Message
from llm.errors import ConfigurationError, InvalidRequestError
from llm.factory import create_llm_client

# Memory components
from memory.sqlite_store import SQLiteMemoryStore
from memory.consolidator import MemoryConsolidator

# Tool loop components
from chat.dispatcher import ToolDispatcher
from chat.images import ImageGenerationClient, ImagePlaceholderRegistry
from chat.loop import ToolCallingLoop
from chat.prompts import build_system_prompt
from chat.splitter import split_speech_display
from chat.tools import GenerateImageTool, RenameConversationTool, SaveMemoryTool, ToolContext

logger = logging.getLogger(__name__)


class TutorOrchestrator:
    """Runs one chat request: tool loop, response split, persistence, consolidation."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[SQLiteMemoryStore] = None,
        llm_client: Optional[BaseLLMClient] = None,
        image_client: Optional[ImageGenerationClient] = None,
        consolidator: Optional[MemoryConsolidator] = None
    ):
        """
        Initialize orchestrator.

        Args:
            settings: Application settings
            store: Persistence store (SQLite at settings.db_path by default)
            llm_client: Completion client (built from settings on first use)
            image_client: Image generation client (built from settings by default)
            consolidator: Memory consolidator (built on first use)
        """
        self.settings = settings or Settings()
        self.store = store or SQLiteMemoryStore(db_path=self.settings.db_path)
        self._llm_client = llm_client
        self._consolidator = consolidator

        self.image_client = image_client or ImageGenerationClient(
            api_key=self.settings.get_llm_api_key(),
            base_url=self.settings.get_api_base_url(),
            mode=self.settings.image_mode,
            app_url=self.settings.app_url,
            app_title=self.settings.app_title,
            timeout=self.settings.image_timeout
        )

        self.dispatcher = ToolDispatcher([
            SaveMemoryTool(self.store),
            RenameConversationTool(self.store),
            GenerateImageTool(self.image_client, self.settings.default_image_model),
        ])
        logger.info(f"Tool dispatcher initialized with {len(self.dispatcher.tools)} tools")

    @property
    def llm_client(self) -> BaseLLMClient:
        """Completion client; raises ConfigurationError without credentials."""
        if self._llm_client is None:
            self._llm_client = create_llm_client(self.settings)
            logger.info(f"LLM client initialized: {self._llm_client.get_provider_name()}")
        return self._llm_client

    @property
    def consolidator(self) -> MemoryConsolidator:
        if self._consolidator is None:
            self._consolidator = MemoryConsolidator(self.store, self.llm_client)
        return self._consolidator

    def handle_chat(
        self,
        user_id: str,
        request: Union[ChatRequest, Dict[str, Any]]
    ) -> ChatResponse:
        """
        Process one chat request end-to-end.

        Args:
            user_id: Authenticated user
            request: ChatRequest or its JSON body

        Returns:
            ChatResponse with display content and speech content

        Raises:
            ConfigurationError: Missing API credentials
            InvalidRequestError: Malformed payload
            CompletionAPIError: The completion API failed
        """
        if not self.settings.get_llm_api_key() and self._llm_client is None:
            raise ConfigurationError(
                f"Server missing {self.settings.llm_provider.upper()}_API_KEY"
            )

        if not isinstance(request, ChatRequest):
            try:
                request = ChatRequest.model_validate(request)
            except ValidationError as e:
                logger.warning(f"Rejected chat payload: {e.error_count()} validation errors")
                raise InvalidRequestError("Invalid payload")

        model = self.settings.resolve_model(request.model_id)
        image_model = (
            self.settings.resolve_model(request.image_model_id)
            if request.image_model_id else None
        )

        memories = self.store.list_memories(user_id)
        images = ImagePlaceholderRegistry()
        context = ToolContext(
            user_id=user_id,
            conversation_id=request.conversation_id,
            image_model=image_model,
            images=images
        )

        loop = ToolCallingLoop(
            llm_client=self.llm_client,
            dispatcher=self.dispatcher,
            max_iterations=self.settings.max_tool_iterations,
            temperature=self.settings.temperature
        )
        result = loop.run(
            system_prompt=build_system_prompt(memories),
            turns=[Message(role=m.role, content=m.content) for m in request.messages],
            model=model,
            context=context
        )

        # Images go in only now so their payloads never reach the model
        final_content = images.substitute(result.content)
        split = split_speech_display(final_content)

        if request.conversation_id and (split.display or final_content):
            self._persist_reply(
                user_id=user_id,
                conversation_id=request.conversation_id,
                content=split.display or final_content,
                speech_content=split.speech,
                model=model
            )

        return ChatResponse(
            content=split.display or final_content,
            speech_content=split.speech or split.display or final_content
        )

    def _persist_reply(
        self,
        user_id: str,
        conversation_id: str,
        content: str,
        speech_content: str,
        model: str
    ):
        """Store the assistant message and maybe kick off consolidation."""
        conversation = self.store.get_conversation(conversation_id, user_id)
        if not conversation:
            logger.warning(f"Not persisting reply: conversation {conversation_id} not found")
            return

        # Messages saved since the previous reply (user turns included) form this reply's window
        previous_count = self.store.count_messages_through_last_reply(conversation_id)

        self.store.add_message(
            conversation_id,
            role="assistant",
            content=content,
            speech_content=speech_content or None
        )

        if self.settings.consolidation_enabled:
            self._trigger_consolidation(user_id, conversation_id, previous_count, model)

    def _trigger_consolidation(
        self,
        user_id: str,
        conversation_id: str,
        previous_count: int,
        model: str
    ):
        """Fire-and-forget: the returned future is dropped on purpose."""
        try:
            message_count = self.store.count_messages(conversation_id)
            if len(self.store.list_memories(user_id)) < MemoryConsolidator.MIN_MEMORIES:
                return
            self.consolidator.maybe_schedule(
                user_id,
                message_count,
                self.settings.consolidation_model or model,
                previous_count=previous_count
            )
        except Exception as e:
            logger.warning(f"Could not schedule memory consolidation: {e}")

    def close(self):
        """Wait for pending consolidation and release its worker."""
        if self._consolidator is not None:
            self._consolidator.close()
