"""Cache tiers: CAG context, session history, vector results, embeddings."""

from muse.cache.context import ContextCache, InvalidationSignal
from muse.cache.embedding import EmbeddingCache
from muse.cache.session import SessionCache
from muse.cache.store import KeyValueStore, MemoryStore, RedisStore, create_store
from muse.cache.vector import VectorCache

__all__ = [
    "ContextCache",
    "EmbeddingCache",
    "InvalidationSignal",
    "KeyValueStore",
    "MemoryStore",
    "RedisStore",
    "SessionCache",
    "VectorCache",
    "create_store",
]
