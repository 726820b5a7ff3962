"""Content-addressed embedding cache.

Embeddings are a pure function of text and model, so an exact hash of the
text is a safe key and the TTL can be long.
"""

import hashlib
import time

from loguru import logger

from muse.cache.keys import EMBEDDING_TTL, embedding_key
from muse.cache.store import KeyValueStore
from muse.errors import ErrorCategory, log_error


def hash_text(text: str) -> str:
    """Compute the content hash used as the cache key."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:32]


class EmbeddingCache:
    """Maps a text's content hash to its embedding vector."""

    def __init__(self, store: KeyValueStore, ttl: int = EMBEDDING_TTL):
        self.store = store
        self.ttl = ttl

    async def get(self, text: str) -> list[float] | None:
        try:
            cached = await self.store.get(embedding_key(hash_text(text)))
            if not cached:
                return None
            logger.debug("Embedding cache HIT")
            return cached["embedding"]
        except Exception as e:
            log_error(ErrorCategory.CACHE_READ, f"Embedding cache get failed: {e}", "warning")
            return None

    async def set(self, text: str, embedding: list[float]) -> None:
        try:
            data = {"embedding": embedding, "cached_at": time.time()}
            await self.store.set(embedding_key(hash_text(text)), data, self.ttl)
            logger.debug("Embedding cache SET")
        except Exception as e:
            log_error(ErrorCategory.CACHE_WRITE, f"Embedding cache set failed: {e}", "warning")

    async def clear(self) -> int:
        try:
            count = await self.store.delete_pattern(embedding_key("*"))
            logger.info("Embedding cache cleared")
            return count
        except Exception as e:
            log_error(ErrorCategory.CACHE_WRITE, f"Embedding cache clear failed: {e}", "warning")
            return 0
