"""End-to-end tests for a chat turn through the service graph."""

import asyncio

import pytest

from muse.agent.context import KNOWLEDGE_SUMMARY_HEADER
from muse.agent.events import (
    DoneEvent,
    ErrorEvent,
    MessageCompleteEvent,
    SessionEvent,
    TextDeltaEvent,
    TimingEvent,
)
from muse.config.schema import Config
from muse.knowledge.models import CachedContext, Persona
from muse.knowledge.search import RELATED_CONTENT_HEADER
from muse.knowledge.store import MemoryDocumentStore, messages_path, sessions_path, works_path
from muse.services import build_services


@pytest.fixture
def build(kv_store, documents, blobs, index, embeddings):
    def _build(provider, docs=None):
        return build_services(
            Config(),
            store=kv_store,
            documents=docs or documents,
            blobs=blobs,
            index=index,
            provider=provider,
            embeddings=embeddings,
        )

    return _build


async def run_turn(services, bucket, message, session_id=None) -> list:
    return [event async for event in services.chat.stream(bucket, message, session_id)]


def system_prompt(provider, call: int = 0) -> str:
    return provider.calls[call]["messages"][0]["content"]


@pytest.mark.asyncio
async def test_greeting_skips_retrieval(build, make_provider, embeddings):
    provider = make_provider()
    services = build(provider)

    events = await run_turn(services, "studio-demo", "こんにちは")

    assert len(provider.calls) == 1
    assert embeddings.calls == []
    assert RELATED_CONTENT_HEADER not in system_prompt(provider)
    assert isinstance(events[-1], DoneEvent)


@pytest.mark.asyncio
async def test_event_order(build, make_provider):
    services = build(make_provider())

    events = await run_turn(services, "studio-demo", "こんにちは")

    assert isinstance(events[0], SessionEvent)
    assert sum(e.terminal for e in events) == 1
    assert events[-1].terminal
    assert {e.category for e in events if isinstance(e, TimingEvent)} == {
        "context",
        "retrieval",
        "history",
        "model",
    }
    first_delta = next(i for i, e in enumerate(events) if isinstance(e, TextDeltaEvent))
    complete = next(i for i, e in enumerate(events) if isinstance(e, MessageCompleteEvent))
    assert first_delta < complete
    assert events[-1].id == events[0].id


@pytest.mark.asyncio
async def test_summary_rebuilt_before_related_content(build, make_provider, documents, index, embeddings):
    provider = make_provider()
    services = build(provider)
    await services.context_cache.set(
        "studio-demo", CachedContext(persona=Persona(motif="the sea"), knowledge_summary="")
    )
    await documents.add(works_path("studio-demo"), {"title": "Blue Hour", "created": 1.0})
    await index.upsert(
        "studio-demo",
        [("work_1", [0.3] * 8, {"title": "Blue Hour", "sourcetype": "work", "text": "Dusk over water"})],
    )

    events = await run_turn(services, "studio-demo", "最近の作品を探して")

    prompt = system_prompt(provider)
    assert "Motif: the sea" in prompt
    assert "- Blue Hour" in prompt
    assert prompt.index(KNOWLEDGE_SUMMARY_HEADER) < prompt.index(RELATED_CONTENT_HEADER)
    assert embeddings.calls == [["最近の作品を探して"]]
    assert isinstance(events[-1], DoneEvent)


@pytest.mark.asyncio
async def test_replies_are_persisted(build, make_provider, turns, documents):
    provider = make_provider(
        [turns.control("One.", True, "more"), turns.text("Two.")]
    )
    services = build(provider)

    events = await run_turn(services, "studio-demo", "Tell me about the blue series")
    session_id = events[0].id

    stored = await documents.query(messages_path("studio-demo", session_id), order_by="created")
    assert [(m["role"], m["content"]) for m in stored] == [
        ("user", "Tell me about the blue series"),
        ("assistant", "One."),
        ("assistant", "Two."),
    ]
    session = await documents.get(sessions_path("studio-demo"), session_id)
    assert session["message_count"] == 3
    assert events[-1] == DoneEvent(id=session_id, message_count=2)


@pytest.mark.asyncio
async def test_second_turn_sees_history(build, make_provider):
    provider = make_provider()
    services = build(provider)

    first = await run_turn(services, "studio-demo", "hello")
    session_id = first[0].id
    await run_turn(services, "studio-demo", "what are you painting?", session_id)

    history = provider.calls[1]["messages"][1:]
    assert history == [
        {"role": "user", "content": "hello"},
        {"role": "assistant", "content": "Hello there."},
        {"role": "user", "content": "what are you painting?"},
    ]


@pytest.mark.asyncio
async def test_expired_session_cache_reseeds_from_store(build, make_provider):
    provider = make_provider()
    services = build(provider)

    first = await run_turn(services, "studio-demo", "hello")
    session_id = first[0].id
    await services.session_cache.invalidate(session_id)
    await run_turn(services, "studio-demo", "still there?", session_id)

    history = provider.calls[1]["messages"][1:]
    assert [m["content"] for m in history] == ["hello", "Hello there.", "still there?"]


@pytest.mark.asyncio
async def test_model_failure_ends_with_single_error(build, make_provider, documents):
    services = build(make_provider(error=RuntimeError("model unavailable")))

    events = await run_turn(services, "studio-demo", "こんにちは")

    assert isinstance(events[-1], ErrorEvent)
    assert "model unavailable" in events[-1].message
    assert sum(e.terminal for e in events) == 1
    stored = await documents.query(messages_path("studio-demo", events[0].id))
    assert [m["role"] for m in stored] == ["user"]


@pytest.mark.asyncio
async def test_document_store_failure_is_terminal(build, make_provider):
    class BrokenDocuments(MemoryDocumentStore):
        async def query(self, collection, order_by=None, descending=False, limit=None):
            raise RuntimeError("store offline")

    provider = make_provider()
    services = build(provider, docs=BrokenDocuments())

    events = await run_turn(services, "studio-demo", "こんにちは")

    assert isinstance(events[0], SessionEvent)
    assert isinstance(events[-1], ErrorEvent)
    assert "store offline" in events[-1].message
    assert provider.calls == []


@pytest.mark.asyncio
async def test_reply_persisted_when_consumer_closes_stream(build, make_provider, documents):
    services = build(make_provider())

    stream = services.chat.stream("studio-demo", "hello")
    session_id = None
    async for event in stream:
        if isinstance(event, SessionEvent):
            session_id = event.id
        if isinstance(event, MessageCompleteEvent):
            break
    await stream.aclose()

    stored = await documents.query(messages_path("studio-demo", session_id), order_by="created")
    assert [m["role"] for m in stored] == ["user", "assistant"]
    history = await services.session_cache.get_history(session_id)
    assert history[-1] == {"role": "assistant", "content": "Hello there."}


@pytest.mark.asyncio
async def test_reply_persisted_when_consumer_is_cancelled(build, make_provider):
    class SlowDocuments(MemoryDocumentStore):
        def __init__(self) -> None:
            super().__init__()
            self.saving_reply = asyncio.Event()
            self.release = asyncio.Event()

        async def add(self, collection, data):
            if data.get("role") == "assistant":
                self.saving_reply.set()
                await self.release.wait()
            return await super().add(collection, data)

    docs = SlowDocuments()
    services = build(make_provider(), docs=docs)
    seen = []

    async def consume():
        async for event in services.chat.stream("studio-demo", "hello"):
            seen.append(event)

    task = asyncio.create_task(consume())
    await docs.saving_reply.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    docs.release.set()
    session_id = seen[0].id
    for _ in range(100):
        history = await services.session_cache.get_history(session_id)
        if history and history[-1]["role"] == "assistant":
            break
        await asyncio.sleep(0.01)

    stored = await docs.query(messages_path("studio-demo", session_id), order_by="created")
    assert [m["role"] for m in stored] == ["user", "assistant"]
    assert history[-1] == {"role": "assistant", "content": "Hello there."}
