"""Tests for real-time retrieval."""

from unittest.mock import AsyncMock

import pytest

from muse.cache.embedding import EmbeddingCache
from muse.cache.vector import VectorCache
from muse.errors import UpstreamError
from muse.knowledge.models import SearchResult
from muse.knowledge.search import (
    RELATED_CONTENT_HEADER,
    Retriever,
    display_width,
    format_results,
    is_greeting,
    should_skip_retrieval,
)
from muse.llm.embeddings import CachedEmbedder


class TestSkipHeuristic:
    def test_display_width(self):
        assert display_width("abc") == 3
        assert display_width("作品") == 4

    @pytest.mark.parametrize(
        "message",
        ["こんにちは", "hi", "ok", "  thanks!  ", "ありがとうございます！", "Good morning."],
    )
    def test_skipped(self, message):
        assert should_skip_retrieval(message)

    @pytest.mark.parametrize(
        "message",
        ["最近の作品を探して", "Do you take commissions?", "海の絵はありますか"],
    )
    def test_searched(self, message):
        assert not should_skip_retrieval(message)

    def test_greeting_needs_whole_message(self):
        assert is_greeting("Hello!")
        assert not is_greeting("Hello, do you sell prints of the wave series?")


class TestFormatResults:
    def test_empty(self):
        assert format_results([]) == ""

    def test_layout(self):
        results = [
            SearchResult(
                id="work_1",
                score=0.9,
                metadata={
                    "title": "Wave",
                    "sourcetype": "work",
                    "text": "x" * 250,
                    "colors": ["blue", "white"],
                    "mood": "calm",
                },
            ),
            SearchResult(id="url_2_chunk_0", score=0.5, metadata={"title": "Interview", "sourcetype": "url", "text": "short"}),
        ]
        text = format_results(results)

        assert text.startswith(RELATED_CONTENT_HEADER)
        assert "[1] Wave (work)\n" + "x" * 200 + "...\nColors: blue, white | Mood: calm" in text
        assert "[2] Interview (url)\nshort" in text
        assert text.index("[1]") < text.index("[2]")


@pytest.fixture
def retriever(kv_store, embeddings, index):
    return Retriever(CachedEmbedder(embeddings, EmbeddingCache(kv_store)), index, VectorCache(kv_store))


@pytest.mark.asyncio
async def test_search_ranks_and_filters_by_score(retriever, index):
    await index.upsert(
        "b1",
        [
            ("a", [1.0, 0.0], {"title": "A"}),
            ("b", [0.7, 0.7], {"title": "B"}),
            ("c", [-1.0, 0.0], {"title": "C"}),
        ],
    )
    results = await retriever.similarity_search("b1", [1.0, 0.1], k=3)
    assert [r.id for r in results] == ["a", "b", "c"]

    retriever.embedder.embed = AsyncMock(return_value=[1.0, 0.1])
    kept = await retriever.search("b1", "anything", top_k=3, min_score=0.5)
    assert [r.id for r in kept] == ["a", "b"]


@pytest.mark.asyncio
async def test_similarity_search_uses_vector_cache(retriever, index):
    await index.upsert("b1", [("a", [1.0, 0.0], {})])
    index.query = AsyncMock(wraps=index.query)

    await retriever.similarity_search("b1", [1.0, 0.0])
    await retriever.similarity_search("b1", [1.0, 0.0])
    assert index.query.await_count == 1

    await retriever.similarity_search("b1", [1.0, 0.0], filter={"sourcetype": "work"})
    assert index.query.await_count == 2


@pytest.mark.asyncio
async def test_similarity_failure_surfaces(retriever, index):
    index.query = AsyncMock(side_effect=RuntimeError("index unavailable"))
    with pytest.raises(UpstreamError):
        await retriever.similarity_search("b1", [1.0, 0.0])


@pytest.mark.asyncio
async def test_index_filter(index):
    await index.upsert(
        "b1",
        [("w", [1.0, 0.0], {"sourcetype": "work"}), ("f", [1.0, 0.0], {"sourcetype": "file"})],
    )
    hits = await index.query("b1", [1.0, 0.0], filter={"sourcetype": "work"})
    assert [h.id for h in hits] == ["w"]
    assert await index.query("other", [1.0, 0.0]) == []


@pytest.mark.asyncio
async def test_cached_short_result_does_not_answer_larger_k(retriever, index):
    await index.upsert("b1", [("a", [1.0, 0.0], {}), ("b", [0.8, 0.2], {}), ("c", [0.5, 0.5], {})])

    assert [r.id for r in await retriever.similarity_search("b1", [1.0, 0.0], k=1)] == ["a"]
    wider = await retriever.similarity_search("b1", [1.0, 0.0], k=3)

    assert [r.id for r in wider] == ["a", "b", "c"]
