"""Document and blob store interfaces, with in-process backends.

The durable record store is an external collaborator. Collections are
addressed by slash-separated paths, mirroring a document database layout:

    {bucket}                               persona document lives here
    {bucket}/works/items                   works
    {bucket}/files/items                   uploaded files
    {bucket}/urls/items                    reference URLs
    {bucket}/sessions/items                conversation sessions
    {bucket}/sessions/items/{id}/messages  conversation messages
"""

import asyncio
import copy
import uuid
from abc import ABC, abstractmethod
from typing import Any


def works_path(bucket: str) -> str:
    return f"{bucket}/works/items"


def files_path(bucket: str) -> str:
    return f"{bucket}/files/items"


def urls_path(bucket: str) -> str:
    return f"{bucket}/urls/items"


def sessions_path(bucket: str) -> str:
    return f"{bucket}/sessions/items"


def messages_path(bucket: str, session_id: str) -> str:
    return f"{bucket}/sessions/items/{session_id}/messages"


PERSONA_DOC = "persona"


class DocumentStore(ABC):
    """Document collection store."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Fetch one document, or None if it does not exist."""

    @abstractmethod
    async def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        """Create or replace (or, with ``merge``, shallow-merge) a document."""

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Update fields of an existing document.

        Raises:
            KeyError: If the document does not exist.
        """

    @abstractmethod
    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """Insert a document with a generated id and return the id."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """List documents, optionally ordered by a field and limited."""

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns False if it did not exist."""


class MemoryDocumentStore(DocumentStore):
    """In-process document store for tests and local runs."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._order: dict[str, int] = {}
        self._seq = 0
        self._lock = asyncio.Lock()

    def _key(self, collection: str, doc_id: str) -> str:
        return f"{collection}/{doc_id}"

    def _write(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        docs = self._collections.setdefault(collection, {})
        key = self._key(collection, doc_id)
        if key not in self._order:
            self._seq += 1
            self._order[key] = self._seq
        docs[doc_id] = copy.deepcopy(data)

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        async with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        async with self._lock:
            existing = self._collections.get(collection, {}).get(doc_id)
            if merge and existing is not None:
                data = {**existing, **data}
            self._write(collection, doc_id, data)

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        async with self._lock:
            existing = self._collections.get(collection, {}).get(doc_id)
            if existing is None:
                raise KeyError(f"{collection}/{doc_id}")
            self._write(collection, doc_id, {**existing, **fields})

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        async with self._lock:
            self._write(collection, doc_id, {**data, "id": data.get("id", doc_id)})
        return doc_id

    async def query(
        self,
        collection: str,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        async with self._lock:
            docs = self._collections.get(collection, {})
            items = [
                (self._order[self._key(collection, doc_id)], doc) for doc_id, doc in docs.items()
            ]

        if order_by:
            items.sort(key=lambda item: (item[1].get(order_by) or 0, item[0]), reverse=descending)
        else:
            items.sort(key=lambda item: item[0])

        result = [copy.deepcopy(doc) for _, doc in items]
        return result[:limit] if limit is not None else result

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with self._lock:
            docs = self._collections.get(collection, {})
            self._order.pop(self._key(collection, doc_id), None)
            return docs.pop(doc_id, None) is not None


class BlobStore(ABC):
    """Binary object store for uploaded media."""

    @abstractmethod
    async def write(self, path: str, data: bytes, content_type: str | None = None) -> str:
        """Store bytes at a path and return a retrievable URL or path."""

    @abstractmethod
    async def read(self, path: str) -> bytes | None:
        """Read bytes back, or None if missing."""


class MemoryBlobStore(BlobStore):
    """In-process blob store for tests and local runs."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    async def write(self, path: str, data: bytes, content_type: str | None = None) -> str:
        self._blobs[path] = bytes(data)
        return f"memory://{path}"

    async def read(self, path: str) -> bytes | None:
        return self._blobs.get(path)
