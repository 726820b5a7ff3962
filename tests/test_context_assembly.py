"""Tests for system prompt assembly and the context rebuild path."""

import asyncio

import pytest

from muse.agent.context import KNOWLEDGE_SUMMARY_HEADER, ContextBuilder, build_system_prompt
from muse.agent.tracing import Tracer
from muse.cache.context import ContextCache, InvalidationSignal
from muse.cache.embedding import EmbeddingCache
from muse.cache.vector import VectorCache
from muse.knowledge.models import CachedContext, Persona, SampleExchange, WritingStyle
from muse.knowledge.search import RELATED_CONTENT_HEADER, Retriever
from muse.knowledge.store import PERSONA_DOC, MemoryDocumentStore, works_path
from muse.llm.embeddings import CachedEmbedder


class CountingDocuments(MemoryDocumentStore):
    def __init__(self) -> None:
        super().__init__()
        self.reads = 0

    async def get(self, collection, doc_id):
        self.reads += 1
        return await super().get(collection, doc_id)

    async def query(self, collection, order_by=None, descending=False, limit=None):
        self.reads += 1
        return await super().query(collection, order_by, descending, limit)


@pytest.fixture
def docs() -> CountingDocuments:
    return CountingDocuments()


@pytest.fixture
def context_cache(kv_store, clock) -> ContextCache:
    return ContextCache(kv_store, clock=clock)


@pytest.fixture
def retriever(kv_store, embeddings, index) -> Retriever:
    return Retriever(CachedEmbedder(embeddings, EmbeddingCache(kv_store)), index, VectorCache(kv_store))


class TestBuildSystemPrompt:
    def test_section_order(self):
        prompt = build_system_prompt(
            persona=Persona(
                character="Mio",
                motif="tides",
                avoidances=["politics"],
                samples=[SampleExchange(situation="price", message="How much?", response="Let me check!")],
            ),
            knowledge_summary="### Works\n- Wave",
            realtime_context=f"{RELATED_CONTENT_HEADER}\n\n[1] Wave (work)",
            writing_style=WritingStyle(sentence_endings=["だよ"], formality_level=0.2),
            style_samples=["one", "two", "three", "four"],
        )

        headers = [
            "## Character",
            "## Topics to avoid",
            "## Example replies",
            "## Writing style guide",
            "## How the artist actually writes",
            KNOWLEDGE_SUMMARY_HEADER,
            RELATED_CONTENT_HEADER,
            "## Response rules",
        ]
        positions = [prompt.index(h) for h in headers]
        assert positions == sorted(positions)
        assert "Your name is Mio." in prompt
        assert "- Formality: casual" in prompt
        assert '"three"' in prompt
        assert '"four"' not in prompt

    def test_empty_parts_are_left_out(self):
        prompt = build_system_prompt(persona=None)
        assert "## Character" not in prompt
        assert KNOWLEDGE_SUMMARY_HEADER not in prompt
        assert RELATED_CONTENT_HEADER not in prompt
        assert prompt.rstrip().endswith("When unsure, say you will check")


class TestContextBuilder:
    @pytest.mark.asyncio
    async def test_miss_rebuilds_once_then_hits(self, docs, context_cache):
        await docs.set("b1", PERSONA_DOC, {"motif": "tides", "style_samples": ["hello"]})
        await docs.add(works_path("b1"), {"title": "Wave", "created": 1.0})
        builder = ContextBuilder(context_cache, docs)

        first = await builder.load("b1")
        reads = docs.reads
        second = await builder.load("b1")

        assert first.persona.motif == "tides"
        assert "- Wave" in first.knowledge_summary
        assert first.style_samples == ["hello"]
        assert docs.reads == reads
        assert second.knowledge_summary == first.knowledge_summary

    @pytest.mark.asyncio
    async def test_summary_only_invalidation_keeps_persona(self, docs, context_cache):
        await context_cache.set(
            "b1", CachedContext(persona=Persona(motif="cached"), knowledge_summary="old")
        )
        await context_cache.invalidate("b1", InvalidationSignal.KNOWLEDGE_SUMMARY_ONLY)
        await docs.set("b1", PERSONA_DOC, {"motif": "stored"})
        await docs.add(works_path("b1"), {"title": "Fresh", "created": 2.0})

        context = await ContextBuilder(context_cache, docs).load("b1")

        assert context.persona.motif == "cached"
        assert "- Fresh" in context.knowledge_summary
        assert (await context_cache.get("b1")).knowledge_summary == context.knowledge_summary

    @pytest.mark.asyncio
    async def test_empty_bucket(self, docs, context_cache):
        context = await ContextBuilder(context_cache, docs).load("empty")
        assert context.persona is None
        assert context.knowledge_summary == ""
        assert context.writing_style is None

    @pytest.mark.asyncio
    async def test_realtime_skips_greetings(self, docs, context_cache, retriever, embeddings):
        builder = ContextBuilder(context_cache, docs, retriever=retriever)
        assert await builder.realtime("b1", "こんにちは") == ""
        assert await builder.realtime("b1", "hi") == ""
        assert embeddings.calls == []

    @pytest.mark.asyncio
    async def test_realtime_without_retriever(self, docs, context_cache):
        builder = ContextBuilder(context_cache, docs)
        assert builder.should_search("tell me about the blue series") is False

    @pytest.mark.asyncio
    async def test_assemble_includes_related_content(
        self, docs, context_cache, retriever, index, embeddings
    ):
        await index.upsert(
            "b1",
            [("work_1", [0.5] * 8, {"title": "Wave", "sourcetype": "work", "text": "Blue waves"})],
        )
        await docs.add(works_path("b1"), {"title": "Wave", "created": 1.0})
        builder = ContextBuilder(context_cache, docs, retriever=retriever)

        prompt = await builder.assemble("b1", "最近の作品を探して")

        assert prompt.index(KNOWLEDGE_SUMMARY_HEADER) < prompt.index(RELATED_CONTENT_HEADER)
        assert "[1] Wave (work)" in prompt
        assert embeddings.calls == [["最近の作品を探して"]]


class RendezvousDocuments(MemoryDocumentStore):
    """Summary queries and persona reads each wait until the other has started."""

    def __init__(self) -> None:
        super().__init__()
        self.summary_started = asyncio.Event()
        self.persona_started = asyncio.Event()

    async def query(self, collection, order_by=None, descending=False, limit=None):
        self.summary_started.set()
        await self.persona_started.wait()
        return await super().query(collection, order_by, descending, limit)

    async def get(self, collection, doc_id):
        if doc_id == PERSONA_DOC:
            self.persona_started.set()
            await self.summary_started.wait()
        return await super().get(collection, doc_id)


@pytest.mark.asyncio
async def test_rebuild_loads_summary_and_style_concurrently(context_cache):
    docs = RendezvousDocuments()
    await docs.set("b1", PERSONA_DOC, {"motif": "tides", "writing_style": {"formality_level": 0.9}})
    await docs.add(works_path("b1"), {"title": "Wave", "created": 1.0})

    context = await asyncio.wait_for(ContextBuilder(context_cache, docs).load("b1"), timeout=1.0)

    assert context.persona.motif == "tides"
    assert context.writing_style.formality_level == 0.9
    assert "- Wave" in context.knowledge_summary


@pytest.mark.asyncio
async def test_assemble_records_phase_spans(docs, context_cache, retriever):
    tracer = Tracer()
    await ContextBuilder(context_cache, docs, retriever=retriever).assemble("b1", "hi", tracer)
    assert sorted(s.name for s in tracer.spans) == ["context", "retrieval"]
