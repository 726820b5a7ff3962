"""Writing-style profile: loading, LLM analysis and merging across uploads."""

import json
import re
from typing import Any

from loguru import logger
from pydantic import ValidationError

from muse.errors import ErrorCategory, UpstreamError
from muse.knowledge.models import Persona, Punctuation, WritingStyle
from muse.knowledge.store import PERSONA_DOC, DocumentStore
from muse.providers.base import LLMProvider
from muse.providers.retry import with_retry
from muse.utils.timeouts import bounded_wait

MAX_ANALYSIS_CHARS = 10000
MAX_SAMPLES = 10
MAX_PHRASES = 10
MAX_ENDINGS = 5
MAX_AVOID_PATTERNS = 10

_PERSONA_FIELDS = ("character", "motif", "tone", "philosophy", "influences", "samples", "avoidances")

STYLE_ANALYSIS_PROMPT = """Analyze the writing style of the text below and reply with JSON only.

Consider:
1. Sentence-ending patterns
2. Punctuation (exclamation marks, question marks, emoji)
3. Formality from 0.0 (casual) to 1.0 (formal)
4. Characteristic phrases
5. Patterns the author avoids
6. Typical sentence length

Reply in this shape:
{
    "sentence_endings": ["3-5 endings"],
    "punctuation": {
        "uses_exclamation": false,
        "uses_question_marks": false,
        "uses_emoji": false,
        "period_style": "。",
        "comma_style": "、"
    },
    "formality_level": 0.8,
    "characteristic_phrases": ["3-5 phrases"],
    "avoid_patterns": ["3-5 patterns"],
    "sentence_length": "short | medium | long",
    "description": "one or two sentences describing the style"
}"""

SAMPLE_EXTRACTION_PROMPT = """Pick the five sentences from the text below that best show how this author writes.

Prefer sentences that carry the author's voice or way of thinking, contain
characteristic expressions, and stand on their own.

Reply with a JSON array of strings only."""


async def load_persona(
    store: DocumentStore,
    bucket: str,
    timeout: float | None = 10.0,
) -> Persona | None:
    """Load the bucket's persona, or None when none is configured."""
    doc = await _persona_doc(store, bucket, timeout)
    if not doc or not any(doc.get(f) for f in _PERSONA_FIELDS):
        return None
    try:
        return Persona.model_validate({k: v for k, v in doc.items() if k in Persona.model_fields})
    except ValidationError as e:
        logger.warning(f"Ignoring malformed persona for {bucket}: {e}")
        return None


async def load_writing_style(
    store: DocumentStore,
    bucket: str,
    timeout: float | None = 10.0,
) -> tuple[WritingStyle | None, list[str]]:
    """Load the bucket's writing-style profile and style samples."""
    doc = await _persona_doc(store, bucket, timeout) or {}

    style = None
    if doc.get("writing_style"):
        try:
            style = WritingStyle.model_validate(doc["writing_style"])
        except ValidationError as e:
            logger.warning(f"Ignoring malformed writing style for {bucket}: {e}")

    samples = [s for s in doc.get("style_samples") or [] if isinstance(s, str)]
    return style, samples


async def _persona_doc(
    store: DocumentStore,
    bucket: str,
    timeout: float | None,
) -> dict[str, Any] | None:
    try:
        return await bounded_wait(store.get(bucket, PERSONA_DOC), timeout, "load persona")
    except UpstreamError:
        raise
    except Exception as e:
        raise UpstreamError(
            f"Failed to load persona for {bucket}: {e}", ErrorCategory.DOCUMENT_STORE
        ) from e


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def merge_writing_styles(existing: WritingStyle | None, new: WritingStyle) -> WritingStyle:
    """
    Fold a newly analyzed style into the existing profile.

    Lists are unioned (order kept, duplicates dropped) and capped; formality
    is averaged; exclamation and emoji flags require both analyses to agree;
    question-mark use from either counts; everything else takes the newer
    value.
    """
    if existing is None:
        return new

    punctuation = Punctuation(
        uses_exclamation=existing.punctuation.uses_exclamation and new.punctuation.uses_exclamation,
        uses_question_marks=(
            existing.punctuation.uses_question_marks or new.punctuation.uses_question_marks
        ),
        uses_emoji=existing.punctuation.uses_emoji and new.punctuation.uses_emoji,
        period_style=new.punctuation.period_style,
        comma_style=new.punctuation.comma_style,
    )

    return WritingStyle(
        sentence_endings=_dedupe(existing.sentence_endings + new.sentence_endings)[:MAX_ENDINGS],
        punctuation=punctuation,
        formality_level=round((existing.formality_level + new.formality_level) / 2, 2),
        characteristic_phrases=_dedupe(
            existing.characteristic_phrases + new.characteristic_phrases
        )[:MAX_PHRASES],
        avoid_patterns=_dedupe(existing.avoid_patterns + new.avoid_patterns)[:MAX_AVOID_PATTERNS],
        sentence_length=new.sentence_length,
        description=new.description,
    )


def merge_style_samples(existing: list[str] | None, new: list[str]) -> list[str]:
    """Union of sample sentences, oldest first, capped."""
    return _dedupe(list(existing or []) + new)[:MAX_SAMPLES]


class StyleAnalyzer:
    """Derives a writing-style profile and sample sentences from raw text."""

    def __init__(self, provider: LLMProvider, model: str | None = None, max_retries: int = 2):
        self.provider = provider
        self.model = model
        self.max_retries = max_retries

    async def _ask(self, prompt: str, text: str) -> str:
        messages = [{"role": "user", "content": f"{prompt}\n\n---\n\n{text[:MAX_ANALYSIS_CHARS]}"}]
        response = await with_retry(
            self.provider.chat,
            messages=messages,
            model=self.model,
            max_tokens=1024,
            temperature=0.2,
            max_retries=self.max_retries,
        )
        return response.content or ""

    async def analyze(self, text: str) -> WritingStyle:
        """
        Analyze the writing style of ``text``.

        Raises:
            ValueError: If the model reply holds no parsable style object.
        """
        logger.info("Analyzing writing style")
        reply = await self._ask(STYLE_ANALYSIS_PROMPT, text)
        match = re.search(r"\{[\s\S]*\}", reply)
        if not match:
            raise ValueError("Failed to parse writing style analysis result")
        try:
            return WritingStyle.model_validate(json.loads(match.group(0)))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ValueError(f"Failed to parse writing style analysis result: {e}") from e

    async def extract_samples(self, text: str) -> list[str]:
        """
        Pick representative sentences from ``text``.

        Raises:
            ValueError: If the model reply holds no JSON array.
        """
        logger.info("Extracting style samples")
        reply = await self._ask(SAMPLE_EXTRACTION_PROMPT, text)
        match = re.search(r"\[[\s\S]*\]", reply)
        if not match:
            raise ValueError("Failed to parse style samples result")
        try:
            samples = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise ValueError(f"Failed to parse style samples result: {e}") from e
        return [s for s in samples if isinstance(s, str)]
