"""Real-time retrieval: cached embedding, cached similarity search, formatting."""

import re
import unicodedata

from loguru import logger

from muse.cache.vector import VectorCache
from muse.errors import ErrorCategory, UpstreamError
from muse.knowledge.index import SimilarityIndex
from muse.knowledge.models import SearchResult
from muse.llm.embeddings import CachedEmbedder
from muse.utils.timeouts import bounded_wait

RELATED_CONTENT_HEADER = "## Related content"
SNIPPET_CHARS = 200

_GREETING_RE = re.compile(
    r"(?:hi|hello|hey|yo|thanks|thank you|good (?:morning|afternoon|evening)"
    r"|こんにちは|こんにちわ|こんばんは|こんばんわ|おはよう(?:ございます)?|はじめまして"
    r"|よろしく(?:お願いします|おねがいします)?|ありがとう(?:ございます)?|どうも)"
    r"(?:\s*(?:です|ございます|!|！|\.|。|~|〜|ー)*)"
)
_EDGE_PUNCTUATION = " \t\r\n!！?？。、.,~〜ー♪☺"


def display_width(text: str) -> int:
    """Width in terminal columns: wide and full-width characters count double."""
    return sum(2 if unicodedata.east_asian_width(ch) in ("W", "F") else 1 for ch in text)


def is_greeting(message: str) -> bool:
    """True for messages that are nothing but a greeting or thanks."""
    normalized = message.strip(_EDGE_PUNCTUATION).lower()
    return bool(normalized) and _GREETING_RE.fullmatch(normalized) is not None


def should_skip_retrieval(message: str, min_length: int = 10) -> bool:
    """Cost-control heuristic: short or greeting-only input gains nothing from search.

    Length is measured in display columns, so a nine-character Japanese
    request still clears a threshold of ten.
    """
    text = message.strip()
    if display_width(text) < min_length:
        return True
    return is_greeting(text)


def format_results(results: list[SearchResult]) -> str:
    """Render retrieval hits as a prompt section, or "" when there are none."""
    if not results:
        return ""

    parts = []
    for i, result in enumerate(results, start=1):
        meta = result.metadata
        title = meta.get("title") or result.id
        source_type = meta.get("sourcetype") or meta.get("type") or "unknown"
        text = str(meta.get("text") or "")
        snippet = text[:SNIPPET_CHARS] + ("..." if len(text) > SNIPPET_CHARS else "")

        visual = " | ".join(
            part
            for part in (
                f"Colors: {', '.join(meta['colors'])}" if meta.get("colors") else "",
                f"Style: {meta['style']}" if meta.get("style") else "",
                f"Mood: {meta['mood']}" if meta.get("mood") else "",
            )
            if part
        )
        lines = [f"[{i}] {title} ({source_type})", snippet]
        if visual:
            lines.append(visual)
        parts.append("\n".join(line for line in lines if line))

    return f"{RELATED_CONTENT_HEADER}\n\n" + "\n\n".join(parts)


class Retriever:
    """Similarity search over a bucket's corpus, with both cache tiers in front."""

    def __init__(
        self,
        embedder: CachedEmbedder,
        index: SimilarityIndex,
        vector_cache: VectorCache,
        timeout: float | None = 10.0,
    ):
        self.embedder = embedder
        self.index = index
        self.vector_cache = vector_cache
        self.timeout = timeout

    async def similarity_search(
        self,
        bucket: str,
        vector: list[float],
        k: int = 5,
        filter: dict | None = None,
    ) -> list[SearchResult]:
        """
        Nearest neighbours of ``vector`` in ``bucket``'s namespace.

        Unfiltered queries go through the approximate vector cache.

        Raises:
            UpstreamError: If the index query fails or times out.
        """
        if filter is None:
            cached = await self.vector_cache.get(bucket, vector, k)
            if cached is not None:
                return cached

        try:
            results = await bounded_wait(
                self.index.query(bucket, vector, top_k=k, filter=filter),
                self.timeout,
                "similarity search",
            )
        except UpstreamError:
            raise
        except Exception as e:
            raise UpstreamError(
                f"Similarity search failed: {e}", ErrorCategory.SIMILARITY_ERROR
            ) from e

        if filter is None:
            await self.vector_cache.set(bucket, vector, results, k)
        return results

    async def search(
        self,
        bucket: str,
        query: str,
        top_k: int = 5,
        min_score: float = 0.0,
        filter: dict | None = None,
    ) -> list[SearchResult]:
        """Embed ``query`` and return hits scoring at least ``min_score``."""
        vector = await self.embedder.embed(query)
        if not vector:
            return []
        results = await self.similarity_search(bucket, vector, top_k, filter)
        kept = [r for r in results if r.score >= min_score]
        logger.debug(f"Retrieval for {bucket}: {len(kept)}/{len(results)} hits kept")
        return kept
