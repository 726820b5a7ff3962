"""LiteLLM provider implementation for multi-provider support."""

import json
import os
from collections.abc import AsyncIterator
from typing import Any

import litellm
from litellm import acompletion
from loguru import logger

from muse.errors import ErrorCategory, UpstreamError
from muse.providers.base import (
    LLMProvider,
    LLMResponse,
    StreamChunk,
    ToolCallDelta,
    ToolCallRequest,
)

# Data-driven prefix rules for model routing.
# Each entry: (model_keywords, litellm_prefix, skip_if_already_prefixed)
_prefix_rules: list[tuple[tuple[str, ...], str, tuple[str, ...]]] = [
    (("claude",), "anthropic", ("anthropic/", "openrouter/", "bedrock/")),
    (("grok",), "xai", ("xai/", "openrouter/")),
    (("gpt",), "openai", ("openai/", "openrouter/", "azure/")),
]


class LiteLLMProvider(LLMProvider):
    """
    LLM provider using LiteLLM for multi-provider support.

    Covers the Claude, Grok and OpenAI model families, directly or through
    OpenRouter.
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = "anthropic/claude-opus-4-5",
        extra_headers: dict[str, str] | None = None,
    ):
        super().__init__(api_key, api_base)
        self.default_model = default_model
        self.extra_headers = extra_headers

        self.is_openrouter = (api_key and api_key.startswith("sk-or-")) or (
            api_base and "openrouter" in api_base
        )

        model_lower = default_model.lower()
        if api_key:
            if self.is_openrouter:
                os.environ["OPENROUTER_API_KEY"] = api_key
            elif "anthropic" in model_lower or "claude" in model_lower:
                os.environ.setdefault("ANTHROPIC_API_KEY", api_key)
            elif "xai" in model_lower or "grok" in model_lower:
                os.environ.setdefault("XAI_API_KEY", api_key)
            elif "openai" in model_lower or "gpt" in model_lower:
                os.environ.setdefault("OPENAI_API_KEY", api_key)

        # Disable LiteLLM logging noise
        litellm.suppress_debug_info = True
        # Follow-up steps resend tool history without offering tools
        litellm.modify_params = True

    def _apply_model_prefix(self, model: str) -> str:
        """Apply the correct LiteLLM prefix to a model name."""
        if self.is_openrouter and not model.startswith("openrouter/"):
            return f"openrouter/{model}"

        model_lower = model.lower()
        for keywords, prefix, skip_prefixes in _prefix_rules:
            if any(kw in model_lower for kw in keywords):
                if not model.startswith(skip_prefixes):
                    return f"{prefix}/{model}"

        return model

    def _build_kwargs(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
        model: str | None,
        max_tokens: int,
        temperature: float,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._apply_model_prefix(model or self.default_model),
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        # Pass credentials directly so LiteLLM can authenticate per-call
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.extra_headers:
            kwargs["extra_headers"] = self.extra_headers

        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"

        return kwargs

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """
        Send a chat completion request via LiteLLM.

        Raises:
            UpstreamError: If the provider call fails.
        """
        kwargs = self._build_kwargs(messages, tools, model, max_tokens, temperature)
        try:
            response = await acompletion(**kwargs)
        except Exception as e:
            raise UpstreamError(f"Error calling LLM: {e}", ErrorCategory.LLM_API_ERROR) from e
        return self._parse_response(response)

    async def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream a chat completion via LiteLLM.

        Yields text and tool-call fragments as they arrive. Tool-call
        arguments are not parsed here; callers accumulate them per index.

        Raises:
            UpstreamError: If the provider call or the stream fails.
        """
        kwargs = self._build_kwargs(messages, tools, model, max_tokens, temperature)
        kwargs["stream"] = True
        try:
            response = await acompletion(**kwargs)
            async for raw in response:
                chunk = self._parse_chunk(raw)
                if chunk is not None:
                    yield chunk
        except UpstreamError:
            raise
        except Exception as e:
            raise UpstreamError(f"Error streaming from LLM: {e}", ErrorCategory.LLM_API_ERROR) from e

    def _parse_chunk(self, raw: Any) -> StreamChunk | None:
        """Convert one LiteLLM stream chunk into a StreamChunk."""
        if not getattr(raw, "choices", None):
            return None
        choice = raw.choices[0]
        delta = getattr(choice, "delta", None)

        content = (getattr(delta, "content", None) or "") if delta else ""
        deltas = []
        for tc in (getattr(delta, "tool_calls", None) or []) if delta else []:
            function = getattr(tc, "function", None)
            deltas.append(
                ToolCallDelta(
                    index=getattr(tc, "index", None) or 0,
                    id=getattr(tc, "id", None),
                    name=getattr(function, "name", None) if function else None,
                    arguments=(getattr(function, "arguments", None) or "") if function else "",
                )
            )

        usage = {}
        raw_usage = getattr(raw, "usage", None)
        if raw_usage:
            usage = {
                "prompt_tokens": raw_usage.prompt_tokens,
                "completion_tokens": raw_usage.completion_tokens,
                "total_tokens": raw_usage.total_tokens,
            }

        return StreamChunk(
            content=content,
            tool_call_deltas=deltas,
            finish_reason=getattr(choice, "finish_reason", None),
            usage=usage,
        )

    def _parse_response(self, response: Any) -> LLMResponse:
        """Parse LiteLLM response into our standard format."""
        choice = response.choices[0]
        message = choice.message

        tool_calls = []
        if hasattr(message, "tool_calls") and message.tool_calls:
            for tc in message.tool_calls:
                args = tc.function.arguments
                if isinstance(args, str):
                    try:
                        args = json.loads(args)
                    except json.JSONDecodeError:
                        logger.warning(
                            f"Malformed tool call arguments for {tc.function.name}: skipping"
                        )
                        continue

                tool_calls.append(
                    ToolCallRequest(
                        id=tc.id,
                        name=tc.function.name,
                        arguments=args,
                    )
                )

        usage = {}
        if hasattr(response, "usage") and response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return LLMResponse(
            content=message.content,
            tool_calls=tool_calls,
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
        )

    def get_default_model(self) -> str:
        """Get the default model."""
        return self.default_model
