"""Base LLM provider interface."""

import json
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from muse.errors import ToolInputError


@dataclass
class ToolCallRequest:
    """A tool call request from the LLM."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class LLMResponse:
    """Response from an LLM provider."""

    content: str | None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)


@dataclass
class ToolCallDelta:
    """A fragment of a tool call as it arrives on the stream.

    ``id`` and ``name`` usually arrive once, on the first fragment for an
    index; ``arguments`` is a slice of the JSON argument string.
    """

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str = ""


@dataclass
class StreamChunk:
    """A single chunk from a streaming LLM response."""

    content: str = ""
    tool_call_deltas: list[ToolCallDelta] = field(default_factory=list)
    finish_reason: str | None = None
    usage: dict[str, int] = field(default_factory=dict)


@dataclass
class _PendingToolCall:
    id: str = ""
    name: str = ""
    arguments: str = ""


class ToolCallAccumulator:
    """Collects streamed tool-call fragments per index until the turn ends."""

    def __init__(self) -> None:
        self._calls: dict[int, _PendingToolCall] = {}

    def add(self, delta: ToolCallDelta) -> bool:
        """Merge a fragment. Returns True when it starts a new tool call."""
        started = delta.index not in self._calls
        pending = self._calls.setdefault(delta.index, _PendingToolCall())
        if delta.id:
            pending.id = delta.id
        if delta.name:
            pending.name = delta.name
        pending.arguments += delta.arguments
        return started

    def finalize(self) -> list[ToolCallRequest]:
        """Parse every accumulated call, in index order.

        Raises:
            ToolInputError: If a call has no name or its arguments are not a JSON object.
        """
        requests = []
        for index in sorted(self._calls):
            pending = self._calls[index]
            if not pending.name:
                raise ToolInputError(f"Tool call at index {index} has no name")
            try:
                arguments = json.loads(pending.arguments) if pending.arguments.strip() else {}
            except json.JSONDecodeError as e:
                raise ToolInputError(f"Malformed arguments for {pending.name}: {e}") from e
            if not isinstance(arguments, dict):
                raise ToolInputError(f"Arguments for {pending.name} are not an object")
            requests.append(
                ToolCallRequest(
                    id=pending.id or f"call_{index}",
                    name=pending.name,
                    arguments=arguments,
                )
            )
        return requests


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Implementations should handle the specifics of each provider's API
    while maintaining a consistent interface.
    """

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """
        Send a chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            tools: Optional list of tool definitions.
            model: Model identifier (provider-specific).
            max_tokens: Maximum tokens in response.
            temperature: Sampling temperature.

        Returns:
            LLMResponse with content and/or tool calls.
        """
        pass

    async def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a chat completion response.

        Default implementation falls back to chat() and yields a single chunk.
        Override in subclasses for true streaming support.
        """
        response = await self.chat(
            messages=messages,
            tools=tools,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        yield StreamChunk(
            content=response.content or "",
            tool_call_deltas=[
                ToolCallDelta(
                    index=i,
                    id=tc.id,
                    name=tc.name,
                    arguments=json.dumps(tc.arguments, ensure_ascii=False),
                )
                for i, tc in enumerate(response.tool_calls)
            ],
            finish_reason=response.finish_reason,
            usage=response.usage,
        )

    @abstractmethod
    def get_default_model(self) -> str:
        """Get the default model for this provider."""
        pass
