"""Shared fakes and fixtures."""

import hashlib
import json
from typing import Any

import pytest

from muse.cache.store import MemoryStore
from muse.knowledge.index import MemoryIndex
from muse.knowledge.store import MemoryBlobStore, MemoryDocumentStore
from muse.llm.embeddings import EmbeddingService
from muse.providers.base import LLMProvider, LLMResponse, StreamChunk, ToolCallDelta


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedProvider(LLMProvider):
    """Streams pre-scripted turns; the last turn repeats once the script runs out."""

    def __init__(self, turns: list[list[StreamChunk]] | None = None, error: Exception | None = None):
        super().__init__()
        self.turns = turns or [[StreamChunk(content="Hello there.")]]
        self.error = error
        self.calls: list[dict[str, Any]] = []
        self.chat_replies: list[str] = []

    async def chat(self, messages, tools=None, model=None, max_tokens=4096, temperature=0.7):
        self.calls.append({"messages": list(messages), "tools": tools})
        content = self.chat_replies.pop(0) if self.chat_replies else ""
        return LLMResponse(content=content)

    async def stream(self, messages, tools=None, model=None, max_tokens=4096, temperature=0.7):
        self.calls.append({"messages": [dict(m) for m in messages], "tools": tools})
        if self.error is not None:
            raise self.error
        index = min(len(self.calls) - 1, len(self.turns) - 1)
        for chunk in self.turns[index]:
            yield chunk

    def get_default_model(self) -> str:
        return "fake-model"


def text_turn(*parts: str) -> list[StreamChunk]:
    return [StreamChunk(content=p) for p in parts]


def control_turn(text: str, have_more_to_say: Any, next_topic: str = "none") -> list[StreamChunk]:
    """A reply followed by a should_continue call whose arguments arrive in fragments."""
    args = json.dumps({"have_more_to_say": have_more_to_say, "next_topic": next_topic})
    middle = len(args) // 2
    return [
        StreamChunk(content=text),
        StreamChunk(tool_call_deltas=[ToolCallDelta(index=0, id="call_1", name="should_continue")]),
        StreamChunk(tool_call_deltas=[ToolCallDelta(index=0, arguments=args[:middle])]),
        StreamChunk(tool_call_deltas=[ToolCallDelta(index=0, arguments=args[middle:])], finish_reason="tool_calls"),
    ]


class FakeEmbeddingService(EmbeddingService):
    """Deterministic 8-dimensional embeddings derived from the text hash."""

    def __init__(self) -> None:
        super().__init__(model="fake-embedding")
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        vectors = []
        for text in texts:
            digest = hashlib.sha256(text.encode("utf-8")).digest()
            vectors.append([(b + 1) / 256 for b in digest[:8]])
        return vectors


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv_store(clock) -> MemoryStore:
    return MemoryStore(clock=clock)


@pytest.fixture
def documents() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def blobs() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture
def index() -> MemoryIndex:
    return MemoryIndex()


@pytest.fixture
def embeddings() -> FakeEmbeddingService:
    return FakeEmbeddingService()


@pytest.fixture
def make_provider():
    return ScriptedProvider


@pytest.fixture
def turns():
    """Builders for scripted model turns."""

    class Turns:
        text = staticmethod(text_turn)
        control = staticmethod(control_turn)

    return Turns
