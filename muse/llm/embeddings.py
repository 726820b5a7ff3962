"""Embedding service using LiteLLM, with a content-addressed cache in front."""

import os
from typing import Any

import litellm
from loguru import logger

from muse.cache.embedding import EmbeddingCache
from muse.errors import ErrorCategory, UpstreamError
from muse.providers.retry import with_retry
from muse.utils.timeouts import bounded_wait


class EmbeddingService:
    """
    Generates embeddings using LiteLLM.

    Supports embedding models through OpenAI, OpenRouter, etc.
    """

    def __init__(
        self,
        model: str = "openai/text-embedding-3-small",
        api_key: str | None = None,
        api_base: str | None = None,
        timeout: float | None = 15.0,
        max_retries: int = 3,
    ):
        self.model = model
        self.api_key = api_key
        self.api_base = api_base
        self.timeout = timeout
        self.max_retries = max_retries

        self.is_openrouter = (api_key and api_key.startswith("sk-or-")) or (
            api_base and "openrouter" in (api_base or "")
        )

        if api_key:
            if self.is_openrouter:
                os.environ["OPENROUTER_API_KEY"] = api_key
            elif "openai" in model.lower():
                os.environ.setdefault("OPENAI_API_KEY", api_key)

    async def _embed_once(self, texts: list[str]) -> list[list[float]]:
        model = self.model
        if self.is_openrouter and not model.startswith("openrouter/"):
            model = f"openrouter/{model}"

        kwargs: dict[str, Any] = {"model": model, "input": texts}
        if self.api_base:
            kwargs["api_base"] = self.api_base

        response = await bounded_wait(litellm.aembedding(**kwargs), self.timeout, "embedding")
        return [item["embedding"] for item in response.data]

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """
        Generate embeddings for a list of texts.

        Raises:
            UpstreamError: If the embedding model fails after retries.
        """
        if not texts:
            return []

        try:
            return await with_retry(self._embed_once, texts, max_retries=self.max_retries)
        except UpstreamError:
            raise
        except Exception as e:
            logger.error(f"Embedding failed: {e}")
            raise UpstreamError(f"Embedding failed: {e}", ErrorCategory.EMBEDDING_ERROR) from e

    async def embed_single(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        embeddings = await self.embed([text])
        return embeddings[0] if embeddings else []


class CachedEmbedder:
    """Embeds text, consulting the embedding cache before the model."""

    def __init__(self, service: EmbeddingService, cache: EmbeddingCache):
        self.service = service
        self.cache = cache

    async def embed(self, text: str) -> list[float]:
        cached = await self.cache.get(text)
        if cached is not None:
            return cached

        embedding = await self.service.embed_single(text)
        if embedding:
            await self.cache.set(text, embedding)
        return embedding
