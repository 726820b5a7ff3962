"""Persona, writing-style and retrieval result models.

A bucket with no persona configured yet is a normal state: everything here
is optional and callers pass ``None`` rather than an empty persona.
"""

from typing import Any

from pydantic import BaseModel, Field

PERSONA_VERSION = 1
WRITING_STYLE_VERSION = 1


class SampleExchange(BaseModel):
    """An ideal response to a customer message in a given situation."""

    situation: str = ""
    message: str = ""
    response: str = ""


class Persona(BaseModel):
    """The artist's persona as configured by the artist."""

    version: int = PERSONA_VERSION
    character: str | None = None
    motif: str | None = None
    tone: str | None = None
    philosophy: str | None = None
    influences: list[str] = Field(default_factory=list)
    samples: list[SampleExchange] = Field(default_factory=list)
    avoidances: list[str] = Field(default_factory=list)


class Punctuation(BaseModel):
    """Punctuation habits observed in the artist's writing."""

    uses_exclamation: bool = False
    uses_question_marks: bool = False
    uses_emoji: bool = False
    period_style: str = "。"
    comma_style: str = "、"


class WritingStyle(BaseModel):
    """Writing-style profile derived from the artist's uploaded texts."""

    version: int = WRITING_STYLE_VERSION
    sentence_endings: list[str] = Field(default_factory=list)
    punctuation: Punctuation = Field(default_factory=Punctuation)
    formality_level: float = 0.5
    characteristic_phrases: list[str] = Field(default_factory=list)
    avoid_patterns: list[str] = Field(default_factory=list)
    sentence_length: str = "medium"
    description: str = ""


class SearchResult(BaseModel):
    """One ranked hit from the similarity index."""

    id: str
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)


class CachedContext(BaseModel):
    """Per-bucket derived context held by the CAG cache."""

    persona: Persona | None = None
    knowledge_summary: str = ""
    writing_style: WritingStyle | None = None
    style_samples: list[str] = Field(default_factory=list)
    cached_at: float = 0.0
