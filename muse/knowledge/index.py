"""Similarity index interface, with an in-process numpy backend."""

from abc import ABC, abstractmethod
from typing import Any

import numpy as np

from muse.knowledge.models import SearchResult


class SimilarityIndex(ABC):
    """Vector index partitioned into one namespace per bucket."""

    @abstractmethod
    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int = 5,
        filter: dict[str, Any] | None = None,
    ) -> list[SearchResult]:
        """Return the ``top_k`` nearest entries, best first."""

    @abstractmethod
    async def upsert(
        self,
        namespace: str,
        vectors: list[tuple[str, list[float], dict[str, Any]]],
    ) -> int:
        """Insert or replace ``(id, values, metadata)`` entries."""

    @abstractmethod
    async def delete_source(self, namespace: str, source: str) -> int:
        """Delete every entry whose metadata ``source`` matches."""


def _matches(metadata: dict[str, Any], filter: dict[str, Any] | None) -> bool:
    """Equality filter; a list value matches any of its members."""
    if not filter:
        return True
    for field, expected in filter.items():
        value = metadata.get(field)
        if isinstance(expected, (list, tuple, set)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


class MemoryIndex(SimilarityIndex):
    """Brute-force cosine similarity over in-memory vectors."""

    def __init__(self) -> None:
        self._namespaces: dict[str, dict[str, tuple[np.ndarray, dict[str, Any]]]] = {}

    async def upsert(
        self,
        namespace: str,
        vectors: list[tuple[str, list[float], dict[str, Any]]],
    ) -> int:
        entries = self._namespaces.setdefault(namespace, {})
        for vector_id, values, metadata in vectors:
            entries[vector_id] = (np.asarray(values, dtype=np.float32), dict(metadata))
        return len(vectors)

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int = 5,
        filter: dict[str, Any] | None = None,
    ) -> list[SearchResult]:
        entries = self._namespaces.get(namespace, {})
        query = np.asarray(vector, dtype=np.float32)
        query_norm = float(np.linalg.norm(query))
        if query_norm == 0 or not entries:
            return []

        scored = []
        for vector_id, (values, metadata) in entries.items():
            if not _matches(metadata, filter):
                continue
            norm = float(np.linalg.norm(values))
            if norm == 0 or values.shape != query.shape:
                continue
            score = float(np.dot(query, values) / (query_norm * norm))
            scored.append(SearchResult(id=vector_id, score=score, metadata=metadata))

        scored.sort(key=lambda r: r.score, reverse=True)
        return scored[:top_k]

    async def delete_source(self, namespace: str, source: str) -> int:
        entries = self._namespaces.get(namespace, {})
        doomed = [vid for vid, (_, meta) in entries.items() if meta.get("source") == source]
        for vid in doomed:
            del entries[vid]
        return len(doomed)
