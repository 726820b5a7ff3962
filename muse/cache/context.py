"""Cache-augmented generation (CAG) context cache.

Holds each bucket's persona, knowledge summary and writing-style profile.
Persona edits evict the whole entry: a stale persona served next to a fresh
summary (or the reverse) yields an inconsistent prompt. New or updated
knowledge artifacts only clear the summary.
"""

import time
from collections.abc import Callable
from enum import Enum

from loguru import logger

from muse.cache.keys import CONTEXT_TTL, context_key
from muse.cache.store import KeyValueStore
from muse.errors import ErrorCategory, log_error
from muse.knowledge.models import CachedContext


class InvalidationSignal(Enum):
    """What changed upstream of a cached context."""

    FULL = "full"
    PERSONA_ONLY = "persona_only"
    KNOWLEDGE_SUMMARY_ONLY = "knowledge_summary_only"


class ContextCache:
    """Per-bucket CAG cache on top of a shared key-value store."""

    def __init__(
        self,
        store: KeyValueStore,
        ttl: int = CONTEXT_TTL,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.ttl = ttl
        self._clock = clock

    async def get(self, bucket: str) -> CachedContext | None:
        """Return the cached context, or None if missing, expired or unreadable."""
        key = context_key(bucket)
        try:
            data = await self.store.get(key)
            if data is None:
                logger.debug(f"CAG cache MISS: {bucket}")
                return None

            context = CachedContext.model_validate(data)
            if self._clock() - context.cached_at > self.ttl:
                logger.debug(f"CAG cache EXPIRED: {bucket}")
                await self.store.delete(key)
                return None

            logger.debug(f"CAG cache HIT: {bucket}")
            return context
        except Exception as e:
            log_error(ErrorCategory.CACHE_READ, f"CAG cache get failed for {bucket}: {e}", "warning")
            return None

    async def set(self, bucket: str, context: CachedContext) -> None:
        """Store a context, stamping ``cached_at`` if unset."""
        if not context.cached_at:
            context = context.model_copy(update={"cached_at": self._clock()})
        try:
            await self.store.set(context_key(bucket), context.model_dump(mode="json"), self.ttl)
            logger.debug(f"CAG cache SET: {bucket}")
        except Exception as e:
            log_error(ErrorCategory.CACHE_WRITE, f"CAG cache set failed for {bucket}: {e}", "warning")

    async def invalidate(
        self,
        bucket: str,
        signal: InvalidationSignal = InvalidationSignal.FULL,
    ) -> None:
        """Apply an invalidation signal to a bucket's entry."""
        key = context_key(bucket)
        try:
            if signal is InvalidationSignal.KNOWLEDGE_SUMMARY_ONLY:
                data = await self.store.get(key)
                if data is None:
                    return
                context = CachedContext.model_validate(data)
                context.knowledge_summary = ""
                remaining = max(1, int(self.ttl - (self._clock() - context.cached_at)))
                await self.store.set(key, context.model_dump(mode="json"), remaining)
                logger.info(f"CAG knowledge summary invalidated: {bucket}")
                return

            if await self.store.delete(key):
                logger.info(f"CAG cache invalidated ({signal.value}): {bucket}")
        except Exception as e:
            log_error(
                ErrorCategory.CACHE_WRITE,
                f"CAG cache invalidate failed for {bucket}: {e}",
                "warning",
            )

    async def clear(self) -> int:
        """Drop every cached context."""
        try:
            count = await self.store.delete_pattern(context_key("*"))
            logger.info(f"CAG cache cleared ({count} entries)")
            return count
        except Exception as e:
            log_error(ErrorCategory.CACHE_WRITE, f"CAG cache clear failed: {e}", "warning")
            return 0

    async def stats(self) -> dict[str, object]:
        """List cached buckets."""
        try:
            keys = await self.store.keys(context_key("*"))
        except Exception as e:
            log_error(ErrorCategory.CACHE_READ, f"CAG cache stats failed: {e}", "warning")
            keys = []
        prefix = context_key("")
        buckets = sorted(k[len(prefix):] for k in keys)
        return {"buckets": buckets, "count": len(buckets)}
