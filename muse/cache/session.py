"""Rolling per-conversation history cache.

A derived view of the durable message log, kept short-lived. If an entry
expires between turns, appended messages are dropped from the cache and the
next turn reseeds it from the document store.
"""

import time
from typing import Any

from loguru import logger

from muse.cache.keys import SESSION_TTL, session_key
from muse.cache.store import KeyValueStore
from muse.errors import ErrorCategory, log_error


class SessionCache:
    """Session history keyed by conversation id."""

    def __init__(self, store: KeyValueStore, ttl: int = SESSION_TTL):
        self.store = store
        self.ttl = ttl

    async def get_history(self, session_id: str) -> list[dict[str, str]] | None:
        try:
            cached = await self.store.get(session_key(session_id))
            if not cached:
                return None
            return cached["messages"]
        except Exception as e:
            log_error(ErrorCategory.CACHE_READ, f"Session cache get failed: {e}", "warning")
            return None

    async def set_history(self, session_id: str, messages: list[dict[str, Any]]) -> None:
        try:
            data = {
                "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
                "cached_at": time.time(),
            }
            await self.store.set(session_key(session_id), data, self.ttl)
        except Exception as e:
            log_error(ErrorCategory.CACHE_WRITE, f"Session cache set failed: {e}", "warning")

    async def append(self, session_id: str, message: dict[str, Any]) -> bool:
        """Append to a live entry. Returns False if there was nothing to append to."""
        key = session_key(session_id)
        try:
            cached = await self.store.get(key)
            if not cached:
                logger.debug(f"Session cache append skipped (no entry): {session_id}")
                return False
            cached["messages"].append({"role": message["role"], "content": message["content"]})
            cached["cached_at"] = time.time()
            await self.store.set(key, cached, self.ttl)
            return True
        except Exception as e:
            log_error(ErrorCategory.CACHE_WRITE, f"Session cache append failed: {e}", "warning")
            return False

    async def invalidate(self, session_id: str) -> None:
        try:
            await self.store.delete(session_key(session_id))
        except Exception as e:
            log_error(ErrorCategory.CACHE_WRITE, f"Session cache invalidate failed: {e}", "warning")

    async def clear(self) -> int:
        try:
            count = await self.store.delete_pattern(session_key("*"))
            logger.info("Session cache cleared")
            return count
        except Exception as e:
            log_error(ErrorCategory.CACHE_WRITE, f"Session cache clear failed: {e}", "warning")
            return 0
