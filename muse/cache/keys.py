"""Cache key schema and default TTLs.

Data type        | Key pattern                     | TTL
-----------------+---------------------------------+---------
CAG context      | cag:context:{bucket}            | 1 hour
Session history  | session:{session_id}            | 30 min
Vector results   | vector:{bucket}:{signature}     | 5 min
Embedding        | embedding:{text_hash}           | 24 hours
"""

CONTEXT_TTL = 60 * 60
SESSION_TTL = 30 * 60
VECTOR_TTL = 5 * 60
EMBEDDING_TTL = 24 * 60 * 60


def context_key(bucket: str) -> str:
    return f"cag:context:{bucket}"


def session_key(session_id: str) -> str:
    return f"session:{session_id}"


def vector_key(bucket: str, signature: str) -> str:
    return f"vector:{bucket}:{signature}"


def vector_pattern(bucket: str | None = None) -> str:
    """Glob pattern matching every vector key, or only one bucket's."""
    return f"vector:{bucket}:*" if bucket else "vector:*"


def embedding_key(text_hash: str) -> str:
    return f"embedding:{text_hash}"
