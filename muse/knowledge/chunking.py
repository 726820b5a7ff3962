"""Split long texts into overlapping chunks on natural boundaries."""

import re
from dataclasses import dataclass

# Paragraph > sentence end > clause break > whitespace.
_BREAK_PATTERNS = (
    re.compile(r"\n\n"),
    re.compile(r"[。．！？.!?]\s*"),
    re.compile(r"[、，,]\s*"),
    re.compile(r"\s+"),
)
_LOOKBACK = 100
_LOOKAHEAD = 50


@dataclass
class TextChunk:
    text: str
    index: int


def chunk_text(text: str, chunk_size: int = 1000, overlap: int = 200) -> list[TextChunk]:
    """
    Split ``text`` into chunks of roughly ``chunk_size`` characters.

    Each cut is moved to the last natural break near the size limit, and the
    next chunk starts ``overlap`` characters before the cut.
    """
    if not text:
        return []
    if len(text) <= chunk_size:
        return [TextChunk(text=text, index=0)]

    chunks: list[TextChunk] = []
    start = 0
    while start < len(text):
        end = start + chunk_size
        if end >= len(text):
            chunks.append(TextChunk(text=text[start:].strip(), index=len(chunks)))
            break

        window_start = max(end - _LOOKBACK, start)
        window = text[window_start:end + _LOOKAHEAD]

        cut = -1
        for pattern in _BREAK_PATTERNS:
            for match in pattern.finditer(window):
                pos = window_start + match.end()
                if start + chunk_size / 2 < pos <= end + _LOOKAHEAD:
                    cut = pos
            if cut > 0:
                break
        if cut <= 0:
            cut = end

        chunks.append(TextChunk(text=text[start:cut].strip(), index=len(chunks)))
        start = max(cut - overlap, start + 1)

    kept = [c for c in chunks if c.text]
    for i, chunk in enumerate(kept):
        chunk.index = i
    return kept
