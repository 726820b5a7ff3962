"""Writes to a bucket's knowledge: works, files, URLs and the persona.

Every write keeps the derived caches honest: new or changed artifacts clear
the cached knowledge summary and the bucket's vector results; a persona edit
evicts the whole cached context.
"""

import asyncio
import time
from collections.abc import Callable
from typing import Any

from loguru import logger

from muse.cache.context import ContextCache, InvalidationSignal
from muse.cache.vector import VectorCache
from muse.errors import ErrorCategory, MuseError, log_error
from muse.knowledge.chunking import chunk_text
from muse.knowledge.index import SimilarityIndex
from muse.knowledge.models import Persona, WritingStyle
from muse.knowledge.store import (
    PERSONA_DOC,
    BlobStore,
    DocumentStore,
    files_path,
    urls_path,
    works_path,
)
from muse.knowledge.style import (
    StyleAnalyzer,
    load_persona,
    merge_style_samples,
    merge_writing_styles,
)
from muse.llm.embeddings import EmbeddingService

MAX_EMBED_CHARS = 8000
METADATA_TEXT_CHARS = 1000
PREVIEW_CHARS = 1000
URL_CONTENT_CHARS = 50000
STYLE_MIN_CHARS = 500

WORK_STATUSES = ("available", "sold")
WORK_TYPES = ("personal", "client")


class KnowledgeService:
    """Records artifacts, indexes them for retrieval and invalidates caches."""

    def __init__(
        self,
        documents: DocumentStore,
        index: SimilarityIndex,
        embeddings: EmbeddingService,
        context_cache: ContextCache,
        vector_cache: VectorCache,
        blobs: BlobStore | None = None,
        style_analyzer: StyleAnalyzer | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.documents = documents
        self.index = index
        self.embeddings = embeddings
        self.context_cache = context_cache
        self.vector_cache = vector_cache
        self.blobs = blobs
        self.style_analyzer = style_analyzer
        self._clock = clock

    async def _knowledge_changed(self, bucket: str) -> None:
        await asyncio.gather(
            self.context_cache.invalidate(bucket, InvalidationSignal.KNOWLEDGE_SUMMARY_ONLY),
            self.vector_cache.invalidate(bucket),
        )

    async def _index_chunks(
        self,
        bucket: str,
        source: str,
        id_prefix: str,
        text: str,
        metadata: dict[str, Any],
    ) -> int:
        """Embed ``text`` chunk by chunk and upsert the vectors.

        Indexing failures are logged; the artifact itself is already stored.
        """
        chunks = chunk_text(text)
        if not chunks:
            return 0
        try:
            vectors = await self.embeddings.embed([c.text for c in chunks])
            entries = [
                (
                    f"{id_prefix}_chunk_{chunk.index}",
                    vector,
                    {
                        **metadata,
                        "bucket": bucket,
                        "source": source,
                        "text": chunk.text,
                        "chunk_index": chunk.index,
                        "total_chunks": len(chunks),
                    },
                )
                for chunk, vector in zip(chunks, vectors)
            ]
            count = await self.index.upsert(bucket, entries)
            logger.info(f"Indexed {count} chunks for {source} in {bucket}")
            return count
        except MuseError as e:
            log_error(e.category, f"Indexing {source} failed: {e}", "warning")
            return 0

    async def _index_work(self, bucket: str, work: dict[str, Any]) -> None:
        analysis = work.get("analysis") or {}
        parts = [work.get("title") or "", work.get("description") or "", work.get("story") or ""]
        if analysis.get("searchable"):
            parts.append(analysis["searchable"])
        text = "\n".join(p for p in parts if p)[:MAX_EMBED_CHARS]

        try:
            vector = await self.embeddings.embed_single(text)
            if not vector:
                return
            metadata = {
                "bucket": bucket,
                "sourcetype": "work",
                "source": work["id"],
                "title": work.get("title", ""),
                "text": text[:METADATA_TEXT_CHARS],
            }
            for field in ("colors", "style", "mood"):
                if analysis.get(field):
                    metadata[field] = analysis[field]
            await self.index.upsert(bucket, [(f"work_{work['id']}", vector, metadata)])
        except MuseError as e:
            log_error(e.category, f"Indexing work {work['id']} failed: {e}", "warning")

    async def add_work(
        self,
        bucket: str,
        title: str,
        *,
        description: str | None = None,
        story: str | None = None,
        status: str = "available",
        worktype: str = "personal",
        client: str | None = None,
        analysis: dict[str, Any] | None = None,
        media: bytes | None = None,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> dict[str, Any]:
        """
        Register a new work and index it for retrieval.

        Raises:
            ValueError: If title, status or worktype is invalid.
        """
        if not title:
            raise ValueError("title is required")
        if status not in WORK_STATUSES:
            raise ValueError(f"status must be one of {WORK_STATUSES}")
        if worktype not in WORK_TYPES:
            raise ValueError(f"worktype must be one of {WORK_TYPES}")

        now = self._clock()
        url = None
        if media is not None and self.blobs is not None:
            url = await self.blobs.write(
                f"{bucket}/raw/{int(now * 1000)}_{filename or 'unknown'}", media, content_type
            )

        work = {
            "title": title,
            "description": description,
            "story": story,
            "status": status,
            "worktype": worktype,
            "client": client if worktype == "client" else None,
            "analysis": analysis,
            "url": url,
            "created": now,
            "updated": now,
        }
        work_id = await self.documents.add(works_path(bucket), work)
        work["id"] = work_id
        logger.info(f"Work created in {bucket}: {work_id}")

        await self._index_work(bucket, work)
        await self._knowledge_changed(bucket)
        return work

    async def update_work(self, bucket: str, work_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """
        Update an existing work and re-index it.

        Raises:
            KeyError: If the work does not exist.
            ValueError: If a status or worktype value is invalid.
        """
        if "status" in fields and fields["status"] not in WORK_STATUSES:
            raise ValueError(f"status must be one of {WORK_STATUSES}")
        if "worktype" in fields and fields["worktype"] not in WORK_TYPES:
            raise ValueError(f"worktype must be one of {WORK_TYPES}")

        changes = {k: v for k, v in fields.items() if k not in ("id", "created")}
        changes["updated"] = self._clock()
        await self.documents.update(works_path(bucket), work_id, changes)
        work = await self.documents.get(works_path(bucket), work_id) or {}
        work["id"] = work_id
        logger.info(f"Work updated in {bucket}: {work_id}")

        await self._index_work(bucket, work)
        await self._knowledge_changed(bucket)
        return work

    async def add_file(
        self,
        bucket: str,
        filename: str,
        text: str,
        *,
        filetype: str | None = None,
        data: bytes | None = None,
        content_type: str | None = None,
        analyze_style: bool = True,
    ) -> dict[str, Any]:
        """
        Record an uploaded file from its already-extracted text.

        Long texts also feed the bucket's writing-style profile.
        """
        now = self._clock()
        urls: dict[str, str] = {}
        if data is not None and self.blobs is not None:
            urls["raw"] = await self.blobs.write(f"{bucket}/data/raw/{filename}", data, content_type)

        record = {
            "filename": filename,
            "filetype": filetype or filename.rsplit(".", 1)[-1].lower(),
            "urls": urls,
            "preview": text[:PREVIEW_CHARS],
            "created": now,
        }
        file_id = await self.documents.add(files_path(bucket), record)
        record["id"] = file_id
        logger.info(f"File recorded in {bucket}: {filename} ({file_id})")

        await self._index_chunks(
            bucket,
            file_id,
            f"file_{file_id}",
            text,
            {"sourcetype": "file", "title": filename},
        )

        style_learned = False
        if analyze_style and self.style_analyzer is not None and len(text) > STYLE_MIN_CHARS:
            style_learned = await self._learn_style(bucket, text)

        await self._knowledge_changed(bucket)
        if style_learned:
            await self.context_cache.invalidate(bucket, InvalidationSignal.PERSONA_ONLY)
        return record

    async def add_url(self, bucket: str, url: str, title: str, content: str) -> dict[str, Any]:
        """Record a reference page from its already-extracted title and body text."""
        if not url:
            raise ValueError("url is required")

        record = {
            "url": url,
            "title": title or url,
            "content": content[:URL_CONTENT_CHARS],
            "created": self._clock(),
        }
        url_id = await self.documents.add(urls_path(bucket), record)
        record["id"] = url_id
        logger.info(f"URL recorded in {bucket}: {url} ({url_id})")

        await self._index_chunks(
            bucket,
            url_id,
            f"url_{url_id}",
            f"{record['title']}\n\n{content}",
            {"sourcetype": "url", "title": record["title"]},
        )
        await self._knowledge_changed(bucket)
        return record

    async def update_persona(self, bucket: str, persona: Persona) -> Persona:
        """Replace the persona fields, keeping the learned writing style."""
        await self.documents.set(bucket, PERSONA_DOC, persona.model_dump(mode="json"), merge=True)
        await self.context_cache.invalidate(bucket, InvalidationSignal.PERSONA_ONLY)
        logger.info(f"Persona updated: {bucket}")
        return persona

    async def _learn_style(self, bucket: str, text: str) -> bool:
        """Merge a style analysis of ``text`` into the persona document.

        Analysis failures never fail the upload. Returns True when the
        persona document was written.
        """
        try:
            new_style, new_samples = await asyncio.gather(
                self.style_analyzer.analyze(text),
                self.style_analyzer.extract_samples(text),
            )
        except (MuseError, ValueError) as e:
            log_error(ErrorCategory.LLM_API_ERROR, f"Writing style analysis failed: {e}", "warning")
            return False

        doc = await self.documents.get(bucket, PERSONA_DOC) or {}
        existing = WritingStyle.model_validate(doc["writing_style"]) if doc.get("writing_style") else None
        await self.documents.set(
            bucket,
            PERSONA_DOC,
            {
                "writing_style": merge_writing_styles(existing, new_style).model_dump(mode="json"),
                "style_samples": merge_style_samples(doc.get("style_samples"), new_samples),
            },
            merge=True,
        )
        logger.info(f"Writing style merged for {bucket}")
        return True

    async def delete_work(self, bucket: str, work_id: str) -> None:
        """
        Delete a work and its index entries.

        Raises:
            KeyError: If the work does not exist.
        """
        if not await self.documents.delete(works_path(bucket), work_id):
            raise KeyError(work_id)
        removed = await self.index.delete_source(bucket, work_id)
        logger.info(f"Work deleted from {bucket}: {work_id} ({removed} index entries)")
        await self._knowledge_changed(bucket)

    async def get_work(self, bucket: str, work_id: str) -> dict[str, Any] | None:
        return await self.documents.get(works_path(bucket), work_id)

    async def list_works(self, bucket: str) -> list[dict[str, Any]]:
        """Works, newest first."""
        return await self.documents.query(works_path(bucket), order_by="created", descending=True)

    async def list_files(self, bucket: str) -> list[dict[str, Any]]:
        return await self.documents.query(files_path(bucket), order_by="created", descending=True)

    async def list_urls(self, bucket: str) -> list[dict[str, Any]]:
        return await self.documents.query(urls_path(bucket), order_by="created", descending=True)

    async def get_persona(self, bucket: str) -> Persona | None:
        return await load_persona(self.documents, bucket)
