"""Wiring: build every component from a Config."""

from dataclasses import dataclass

from loguru import logger

from muse.agent.chat import ChatService
from muse.agent.context import ContextBuilder
from muse.agent.loop import ConversationLoop
from muse.cache import (
    ContextCache,
    EmbeddingCache,
    KeyValueStore,
    SessionCache,
    VectorCache,
    create_store,
)
from muse.config.schema import Config
from muse.knowledge.index import MemoryIndex, SimilarityIndex
from muse.knowledge.ingest import KnowledgeService
from muse.knowledge.search import Retriever
from muse.knowledge.store import (
    BlobStore,
    DocumentStore,
    MemoryBlobStore,
    MemoryDocumentStore,
)
from muse.knowledge.style import StyleAnalyzer
from muse.llm.embeddings import CachedEmbedder, EmbeddingService
from muse.providers.base import LLMProvider
from muse.providers.litellm_provider import LiteLLMProvider


@dataclass
class Services:
    store: KeyValueStore
    documents: DocumentStore
    blobs: BlobStore
    index: SimilarityIndex
    provider: LLMProvider
    context_cache: ContextCache
    session_cache: SessionCache
    vector_cache: VectorCache
    embedding_cache: EmbeddingCache
    embeddings: EmbeddingService
    context: ContextBuilder
    chat: ChatService
    knowledge: KnowledgeService

    async def clear_caches(self) -> dict[str, int]:
        """Drop every derived cache entry."""
        return {
            "context": await self.context_cache.clear(),
            "session": await self.session_cache.clear(),
            "vector": await self.vector_cache.clear(),
            "embedding": await self.embedding_cache.clear(),
        }

    async def close(self) -> None:
        await self.store.close()


def build_services(
    config: Config,
    *,
    store: KeyValueStore | None = None,
    documents: DocumentStore | None = None,
    blobs: BlobStore | None = None,
    index: SimilarityIndex | None = None,
    provider: LLMProvider | None = None,
    embeddings: EmbeddingService | None = None,
) -> Services:
    """
    Build the service graph from config.

    Any collaborator can be injected; the rest default to the configured
    cache backend, in-process document/blob/index backends, and LiteLLM.
    """
    store = store or create_store(config.cache.backend, config.cache.redis_url)
    documents = documents or MemoryDocumentStore()
    blobs = blobs or MemoryBlobStore()
    index = index or MemoryIndex()

    provider = provider or LiteLLMProvider(
        api_key=config.get_api_key(),
        api_base=config.get_api_base(),
        default_model=config.agent.model,
    )
    embeddings = embeddings or EmbeddingService(
        model=config.embedding.model,
        api_key=config.providers.openai.api_key or config.get_api_key(),
        api_base=config.providers.openai.api_base,
        timeout=config.timeouts.embedding,
        max_retries=config.embedding.max_retries,
    )

    context_cache = ContextCache(store, ttl=config.cache.context_ttl)
    session_cache = SessionCache(store, ttl=config.cache.session_ttl)
    vector_cache = VectorCache(store, ttl=config.cache.vector_ttl)
    embedding_cache = EmbeddingCache(store, ttl=config.cache.embedding_ttl)

    retriever = Retriever(
        CachedEmbedder(embeddings, embedding_cache),
        index,
        vector_cache,
        timeout=config.timeouts.similarity,
    )
    context = ContextBuilder(
        context_cache,
        documents,
        retriever=retriever,
        retrieval=config.retrieval,
        timeout=config.timeouts.document_store,
    )
    loop = ConversationLoop(
        provider,
        model=config.agent.model,
        max_steps=config.agent.max_steps,
        max_tokens=config.agent.max_tokens,
        temperature=config.agent.temperature,
        first_token_timeout=config.timeouts.model_first_token,
        idle_timeout=config.timeouts.model_idle,
    )
    chat = ChatService(
        context,
        session_cache,
        documents,
        loop,
        config=config.agent,
        store_timeout=config.timeouts.document_store,
    )
    knowledge = KnowledgeService(
        documents,
        index,
        embeddings,
        context_cache,
        vector_cache,
        blobs=blobs,
        style_analyzer=StyleAnalyzer(provider, model=config.agent.model),
    )

    logger.debug(f"Services built (cache backend: {config.cache.backend})")
    return Services(
        store=store,
        documents=documents,
        blobs=blobs,
        index=index,
        provider=provider,
        context_cache=context_cache,
        session_cache=session_cache,
        vector_cache=vector_cache,
        embedding_cache=embedding_cache,
        embeddings=embeddings,
        context=context,
        chat=chat,
        knowledge=knowledge,
    )
