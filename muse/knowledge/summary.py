"""Aggregated knowledge summary over a bucket's works, files and URLs."""

from typing import Any

from loguru import logger

from muse.errors import ErrorCategory, UpstreamError
from muse.knowledge.store import DocumentStore, files_path, urls_path, works_path
from muse.utils.timeouts import bounded_wait

WORKS_LIMIT = 50
FILES_LIMIT = 20
URLS_LIMIT = 20
SEARCHABLE_CHARS = 200


def _format_work(work: dict[str, Any]) -> str:
    line = f"- {work.get('title', '(untitled)')}"
    if work.get("description"):
        line += f": {work['description']}"
    if work.get("status") == "sold":
        line += " (sold)"
    searchable = (work.get("analysis") or {}).get("searchable")
    if searchable:
        line += f"\n  {searchable[:SEARCHABLE_CHARS]}"
    return line


async def _recent(
    store: DocumentStore,
    collection: str,
    limit: int,
    timeout: float | None,
) -> list[dict[str, Any]]:
    try:
        return await bounded_wait(
            store.query(collection, order_by="created", descending=True, limit=limit),
            timeout,
            f"query {collection}",
        )
    except UpstreamError:
        raise
    except Exception as e:
        raise UpstreamError(
            f"Failed to load {collection}: {e}", ErrorCategory.DOCUMENT_STORE
        ) from e


async def build_knowledge_summary(
    store: DocumentStore,
    bucket: str,
    timeout: float | None = 10.0,
) -> str:
    """
    Summarize the bucket's most recent works, reference files and links.

    Args:
        store: Document store holding the bucket's collections.
        bucket: Tenant namespace.
        timeout: Bounded wait per collection query.

    Returns:
        Markdown summary, "" when the bucket has no artifacts.

    Raises:
        UpstreamError: If the document store fails or times out.
    """
    parts: list[str] = []

    works = await _recent(store, works_path(bucket), WORKS_LIMIT, timeout)
    if works:
        parts.append("### Works")
        parts.extend(_format_work(w) for w in works)

    files = await _recent(store, files_path(bucket), FILES_LIMIT, timeout)
    if files:
        parts.append("\n### Reference material")
        parts.extend(f"- {f.get('filename', '(unnamed)')}" for f in files)

    urls = await _recent(store, urls_path(bucket), URLS_LIMIT, timeout)
    if urls:
        parts.append("\n### Reference links")
        parts.extend(f"- {u.get('title') or u.get('url', '')}" for u in urls)

    logger.debug(
        f"Built knowledge summary for {bucket}: "
        f"{len(works)} works, {len(files)} files, {len(urls)} urls"
    )
    return "\n".join(parts)
