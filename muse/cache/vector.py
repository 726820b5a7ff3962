"""Approximate similarity-result cache.

Keys come from a coarse signature of the query embedding rather than an
exact hash, so near-identical queries can share an entry. The TTL is short
because results drift as the bucket's corpus changes.
"""

import hashlib
import time

from loguru import logger

from muse.cache.keys import VECTOR_TTL, vector_key, vector_pattern
from muse.cache.store import KeyValueStore
from muse.errors import ErrorCategory, log_error
from muse.knowledge.models import SearchResult

SIGNATURE_DIMENSIONS = 10
SIGNATURE_PRECISION = 1000


def signature(embedding: list[float], top_k: int | None = None) -> str:
    """Lossy fingerprint: leading components rounded to three decimals.

    ``top_k`` is part of the fingerprint so a short result list never
    answers a longer query.
    """
    head = embedding[:SIGNATURE_DIMENSIONS]
    text = ",".join(str(round(v * SIGNATURE_PRECISION)) for v in head)
    if top_k is not None:
        text += f"|k={top_k}"
    return hashlib.md5(text.encode("utf-8")).hexdigest()[:16]


class VectorCache:
    """Per-bucket cache of top-K similarity results."""

    def __init__(self, store: KeyValueStore, ttl: int = VECTOR_TTL):
        self.store = store
        self.ttl = ttl

    async def get(
        self,
        bucket: str,
        embedding: list[float],
        top_k: int | None = None,
    ) -> list[SearchResult] | None:
        try:
            cached = await self.store.get(vector_key(bucket, signature(embedding, top_k)))
            if not cached:
                return None
            logger.debug(f"Vector cache HIT: {bucket}")
            return [SearchResult.model_validate(r) for r in cached["results"]]
        except Exception as e:
            log_error(ErrorCategory.CACHE_READ, f"Vector cache get failed: {e}", "warning")
            return None

    async def set(
        self,
        bucket: str,
        embedding: list[float],
        results: list[SearchResult],
        top_k: int | None = None,
    ) -> None:
        try:
            data = {
                "results": [r.model_dump(mode="json") for r in results],
                "cached_at": time.time(),
            }
            await self.store.set(vector_key(bucket, signature(embedding, top_k)), data, self.ttl)
        except Exception as e:
            log_error(ErrorCategory.CACHE_WRITE, f"Vector cache set failed: {e}", "warning")

    async def invalidate(self, bucket: str) -> None:
        """Drop every cached result set for a bucket."""
        try:
            await self.store.delete_pattern(vector_pattern(bucket))
            logger.info(f"Vector cache invalidated for bucket: {bucket}")
        except Exception as e:
            log_error(ErrorCategory.CACHE_WRITE, f"Vector cache invalidate failed: {e}", "warning")

    async def clear(self) -> int:
        try:
            count = await self.store.delete_pattern(vector_pattern())
            logger.info("Vector cache cleared")
            return count
        except Exception as e:
            log_error(ErrorCategory.CACHE_WRITE, f"Vector cache clear failed: {e}", "warning")
            return 0
