"""Streaming tool-calling conversation loop."""

import json
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any

from loguru import logger

from muse.agent.events import (
    ErrorEvent,
    MessageCompleteEvent,
    StreamEvent,
    TextDeltaEvent,
    ToolCallEvent,
)
from muse.agent.tools import CHAT_TOOLS, execute_tool
from muse.errors import ErrorCategory, ToolInputError, log_error
from muse.providers.base import LLMProvider, ToolCallAccumulator, ToolCallRequest
from muse.utils.timeouts import bounded_wait


class ConversationLoop:
    """
    Drives one customer turn against a streaming model.

    Each step streams one model reply. The control tool is offered on the
    first step only, so a turn is at most a reply plus one follow-up, and
    ``max_steps`` caps it regardless of what the model asks for.
    """

    def __init__(
        self,
        provider: LLMProvider,
        model: str | None = None,
        max_steps: int = 5,
        max_tokens: int = 350,
        temperature: float = 0.7,
        first_token_timeout: float | None = 60.0,
        idle_timeout: float | None = 30.0,
        tools: list[dict[str, Any]] | None = None,
    ):
        self.provider = provider
        self.model = model or provider.get_default_model()
        self.max_steps = max_steps
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.first_token_timeout = first_token_timeout
        self.idle_timeout = idle_timeout
        self.tools = tools if tools is not None else CHAT_TOOLS

    async def run(
        self,
        system_prompt: str,
        history: list[dict[str, Any]],
    ) -> AsyncIterator[StreamEvent]:
        """
        Run the loop, yielding text deltas, completed messages and tool calls.

        On a provider or transport failure a single ErrorEvent is yielded and
        the loop stops without retrying. The caller emits the ``done`` event.

        Args:
            system_prompt: Assembled system prompt.
            history: Trimmed conversation history ending with the user message.
        """
        messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        messages.extend({"role": m["role"], "content": m["content"]} for m in history)

        for step in range(self.max_steps):
            text = ""
            calls = ToolCallAccumulator()
            tools = self.tools if step == 0 else None

            try:
                async with aclosing(
                    self.provider.stream(
                        messages=messages,
                        tools=tools,
                        model=self.model,
                        max_tokens=self.max_tokens,
                        temperature=self.temperature,
                    )
                ) as stream:
                    chunks = stream.__aiter__()
                    timeout, operation = self.first_token_timeout, "model first token"
                    while True:
                        try:
                            chunk = await bounded_wait(chunks.__anext__(), timeout, operation)
                        except StopAsyncIteration:
                            break
                        timeout, operation = self.idle_timeout, "model stream"

                        if chunk.content:
                            text += chunk.content
                            yield TextDeltaEvent(text=chunk.content)
                        for delta in chunk.tool_call_deltas:
                            if calls.add(delta):
                                logger.debug(f"Tool call started at index {delta.index}")
            except Exception as e:
                log_error(ErrorCategory.LLM_API_ERROR, f"Model stream failed: {e}")
                yield ErrorEvent(message=str(e))
                return

            reply = text.strip()
            if reply:
                yield MessageCompleteEvent(text=reply)

            try:
                requests = calls.finalize()
            except ToolInputError as e:
                log_error(ErrorCategory.TOOL_VALIDATION, f"Ignoring tool call: {e}", "warning")
                requests = []

            if not requests:
                logger.debug(f"Turn finished after {step + 1} step(s): no tool call")
                return

            messages.append(self._assistant_message(text, requests))

            should_continue = True
            for request in requests:
                yield ToolCallEvent(name=request.name)
                result = execute_tool(request.name, request.arguments)
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": request.id,
                        "name": request.name,
                        "content": result.result,
                    }
                )
                if not result.should_continue:
                    should_continue = False
                    break

            if not should_continue:
                logger.debug(f"Turn finished after {step + 1} step(s): model is done")
                return

        logger.info(f"Turn stopped at the {self.max_steps}-step limit")

    @staticmethod
    def _assistant_message(text: str, requests: list[ToolCallRequest]) -> dict[str, Any]:
        return {
            "role": "assistant",
            "content": text,
            "tool_calls": [
                {
                    "id": r.id,
                    "type": "function",
                    "function": {
                        "name": r.name,
                        "arguments": json.dumps(r.arguments, ensure_ascii=False),
                    },
                }
                for r in requests
            ],
        }
