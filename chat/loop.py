"""Bounded tool-calling loop against the completion API."""

import logging
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel

from llm.base_client import BaseLLMClient, LLMResponse, Message
from .dispatcher import ToolDispatcher
from .tools import ToolContext

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    """States of the tool loop."""
    AWAITING_COMPLETION = "awaiting_completion"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"


class LoopResult(BaseModel):
    """Outcome of one loop run."""
    content: str  # last normalized model content, possibly empty
    messages: List[Message]  # full turn sequence, system turn first
    iterations_used: int
    tools_called: List[str]
    hit_iteration_cap: bool = False


class ToolCallingLoop:
    """
    Drives the model until it answers without requesting tools.

    AWAITING_COMPLETION calls the model. A reply with tool calls moves to
    EXECUTING_TOOLS, which appends the assistant turn and one tool turn per
    invocation (in invocation order) and goes back to AWAITING_COMPLETION.
    A reply without tool calls, or reaching ``max_iterations`` completion
    calls, ends in DONE.

    CompletionAPIError from the client is not caught here: it aborts the
    request. Tool failures come back from the dispatcher as results.
    """

    MAX_ITERATIONS = 3

    def __init__(
        self,
        llm_client: BaseLLMClient,
        dispatcher: ToolDispatcher,
        max_iterations: int = MAX_ITERATIONS,
        temperature: float = 0.2
    ):
        """
        Initialize tool loop.

        Args:
            llm_client: Completion client
            dispatcher: Tool dispatcher
            max_iterations: Hard cap on completion calls per request (default: 3)
            temperature: Sampling temperature
        """
        self.llm_client = llm_client
        self.dispatcher = dispatcher
        self.max_iterations = max_iterations
        self.temperature = temperature

    def run(
        self,
        system_prompt: str,
        turns: List[Message],
        model: str,
        context: ToolContext
    ) -> LoopResult:
        """
        Run the loop for one request.

        Args:
            system_prompt: Replaces any caller-supplied system turn
            turns: Caller conversation turns, in order
            model: Provider model slug
            context: Per-request tool context

        Returns:
            LoopResult with the last content and the turn sequence
        """
        messages = self.build_initial_messages(system_prompt, turns)
        tools_called: List[str] = []
        iteration = 0
        content = ""
        response: Optional[LLMResponse] = None
        state = LoopState.AWAITING_COMPLETION

        while state != LoopState.DONE:
            if state == LoopState.AWAITING_COMPLETION:
                if iteration >= self.max_iterations:
                    logger.warning(
                        f"Tool loop hit the cap of {self.max_iterations} completion calls"
                    )
                    break

                iteration += 1
                logger.info(f"Tool loop iteration {iteration}/{self.max_iterations}")

                response = self.llm_client.chat(
                    messages=messages,
                    model=model,
                    tools=self.dispatcher.tool_definitions,
                    temperature=self.temperature
                )
                content = response.content
                state = LoopState.EXECUTING_TOOLS if response.tool_calls else LoopState.DONE

            elif state == LoopState.EXECUTING_TOOLS:
                self._execute_tools(response, messages, context, tools_called)
                state = LoopState.AWAITING_COMPLETION

        if state == LoopState.DONE:
            logger.info(f"Tool loop completed in {iteration} iterations")

        return LoopResult(
            content=content,
            messages=messages,
            iterations_used=iteration,
            tools_called=tools_called,
            hit_iteration_cap=state != LoopState.DONE
        )

    def build_initial_messages(self, system_prompt: str, turns: List[Message]) -> List[Message]:
        """System turn first, then the caller turns without their system turns."""
        messages = [Message(role="system", content=system_prompt)]
        for msg in turns:
            if msg.role != "system":
                messages.append(msg)
        return messages

    def _execute_tools(
        self,
        response: LLMResponse,
        messages: List[Message],
        context: ToolContext,
        tools_called: List[str]
    ):
        """Append the assistant turn, then one tool turn per call."""
        messages.append(Message(
            role="assistant",
            content=response.message.get("content"),
            tool_calls=response.tool_calls,
            provider_fields=response.provider_fields
        ))

        for call in response.tool_calls:
            result = self.dispatcher.dispatch(call, context)
            tools_called.append(call.name)
            messages.append(Message(
                role="tool",
                content=result.to_content(),
                tool_call_id=call.id,
                name=call.name
            ))
