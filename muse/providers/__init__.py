"""LLM provider abstraction module."""

from muse.providers.base import LLMProvider, LLMResponse, StreamChunk
from muse.providers.litellm_provider import LiteLLMProvider

__all__ = ["LLMProvider", "LLMResponse", "LiteLLMProvider", "StreamChunk"]
