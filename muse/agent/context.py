"""Context builder for assembling the agent's system prompt."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from loguru import logger

from muse.agent.tracing import Tracer
from muse.cache.context import ContextCache
from muse.config.schema import RetrievalConfig
from muse.knowledge.models import CachedContext, Persona, WritingStyle
from muse.knowledge.search import Retriever, format_results, should_skip_retrieval
from muse.knowledge.store import DocumentStore
from muse.knowledge.style import load_persona, load_writing_style
from muse.knowledge.summary import build_knowledge_summary

T = TypeVar("T")

KNOWLEDGE_SUMMARY_HEADER = "## Knowledge summary"
MAX_PROMPT_SAMPLES = 3

INTRO = (
    "You are an AI agent that talks with customers on behalf of an artist. "
    "Answer as the artist would."
)

RESPONSE_RULES = """## Response rules (strict)
1. Reply to the customer in one or two sentences.
2. When the reply is written, call the should_continue tool. Do not describe it in text.
3. If should_continue returned have_more_to_say: true, write a new short message about
   the next topic once the tool result arrives. Each message is shown as its own bubble.

should_continue parameters:
- have_more_to_say: true to keep talking, false to finish
- next_topic: the next topic, or "none"

## Never
- Explain tools in text or show the word "should_continue" to the customer
- Write long replies (two sentences at most)

## Style
- Speak naturally, following the writing style guide above
- Carry the artist's personality
- When unsure, say you will check"""


def _formality_label(level: float) -> str:
    if level < 0.4:
        return "casual"
    if level < 0.7:
        return "somewhat polite"
    return "formal"


def _persona_section(persona: Persona) -> str:
    lines = ["## Character"]
    if persona.character:
        lines.append(f"Your name is {persona.character}.")
    if persona.motif:
        lines.append(f"Motif: {persona.motif}")
    if persona.tone:
        lines.append(f"Tone: {persona.tone}")
    if persona.philosophy:
        lines.append(f"Creative philosophy: {persona.philosophy}")
    if persona.influences:
        lines.append(f"Influences: {', '.join(persona.influences)}")
    section = "\n".join(lines)

    if persona.avoidances:
        section += (
            "\n\n## Topics to avoid\n"
            f"Steer away from: {', '.join(persona.avoidances)}."
        )
    if persona.samples:
        section += "\n\n## Example replies"
        for sample in persona.samples:
            section += (
                f"\n\nSituation: {sample.situation}"
                f"\nCustomer: {sample.message}"
                f"\nReply: {sample.response}"
            )
    return section


def _style_section(style: WritingStyle) -> str:
    lines = ["## Writing style guide"]
    if style.description:
        lines.append(style.description)
    if style.sentence_endings:
        lines.append(f"- Sentence endings: {', '.join(style.sentence_endings)}")
    lines.append(f"- Formality: {_formality_label(style.formality_level)}")
    if style.characteristic_phrases:
        lines.append(f"- Characteristic phrases: {', '.join(style.characteristic_phrases)}")
    if style.avoid_patterns:
        lines.append(f"- Avoid: {', '.join(style.avoid_patterns)}")
    if style.punctuation.uses_emoji:
        lines.append("- Uses emoji in moderation")
    if style.punctuation.uses_exclamation:
        lines.append("- Uses exclamation marks")
    return "\n".join(lines)


def build_system_prompt(
    persona: Persona | None,
    knowledge_summary: str = "",
    realtime_context: str = "",
    writing_style: WritingStyle | None = None,
    style_samples: list[str] | None = None,
) -> str:
    """
    Assemble the system prompt in a fixed order.

    Order: intro, persona, writing style guide, style samples, knowledge
    summary, real-time retrieval results, response rules. Empty parts are
    left out.

    Args:
        persona: The artist persona, or None when not configured.
        knowledge_summary: Cached summary of the bucket's artifacts.
        realtime_context: Formatted retrieval results for this message.
        writing_style: Learned writing-style profile.
        style_samples: Sentences the artist actually wrote.

    Returns:
        Complete system prompt.
    """
    parts = [INTRO]

    if persona:
        parts.append(_persona_section(persona))

    if writing_style:
        parts.append(_style_section(writing_style))

    if style_samples:
        samples = "\n".join(f'"{s}"' for s in style_samples[:MAX_PROMPT_SAMPLES])
        parts.append(f"## How the artist actually writes\n{samples}")

    if knowledge_summary:
        parts.append(f"{KNOWLEDGE_SUMMARY_HEADER}\n{knowledge_summary}")

    if realtime_context:
        parts.append(realtime_context)

    parts.append(RESPONSE_RULES)
    return "\n\n".join(parts)


class ContextBuilder:
    """
    Loads a bucket's cached context and real-time retrieval results.

    Cached context (persona, knowledge summary, writing style) is served from
    the CAG cache and rebuilt from the document store on a miss.
    """

    def __init__(
        self,
        context_cache: ContextCache,
        documents: DocumentStore,
        retriever: Retriever | None = None,
        retrieval: RetrievalConfig | None = None,
        timeout: float | None = 10.0,
    ):
        self.context_cache = context_cache
        self.documents = documents
        self.retriever = retriever
        self.retrieval = retrieval or RetrievalConfig()
        self.timeout = timeout

    async def load(self, bucket: str) -> CachedContext:
        """
        Get the bucket's context from cache, rebuilding what is missing.

        Raises:
            UpstreamError: If the document store fails during a rebuild.
        """
        cached = await self.context_cache.get(bucket)
        if cached is not None:
            if cached.knowledge_summary:
                return cached
            # Summary-only invalidation: persona and style are still good.
            summary = await build_knowledge_summary(self.documents, bucket, self.timeout)
            patched = cached.model_copy(update={"knowledge_summary": summary})
            await self.context_cache.set(bucket, patched)
            return patched

        logger.info(f"Rebuilding context for {bucket}")
        persona, summary, (style, samples) = await asyncio.gather(
            load_persona(self.documents, bucket, self.timeout),
            build_knowledge_summary(self.documents, bucket, self.timeout),
            load_writing_style(self.documents, bucket, self.timeout),
        )
        context = CachedContext(
            persona=persona,
            knowledge_summary=summary,
            writing_style=style,
            style_samples=samples,
        )
        await self.context_cache.set(bucket, context)
        return context

    def should_search(self, message: str) -> bool:
        return (
            self.retriever is not None
            and self.retrieval.enabled
            and not should_skip_retrieval(message, self.retrieval.min_length)
        )

    async def realtime(self, bucket: str, message: str) -> str:
        """
        Retrieve content related to ``message``, formatted for the prompt.

        Returns "" when retrieval is skipped or finds nothing.

        Raises:
            UpstreamError: If embedding or similarity search fails.
        """
        if not self.should_search(message):
            logger.debug(f"Retrieval skipped for {bucket}")
            return ""
        results = await self.retriever.search(
            bucket,
            message,
            top_k=self.retrieval.top_k,
            min_score=self.retrieval.min_score,
        )
        return format_results(results)

    async def assemble(self, bucket: str, message: str, tracer: Tracer | None = None) -> str:
        """
        Load context and retrieval concurrently and build the system prompt.

        When a tracer is given, the two phases are recorded as ``context``
        and ``retrieval`` spans.
        """
        tracer = tracer or Tracer(enabled=False)

        async def timed(name: str, awaitable: Awaitable[T]) -> T:
            async with tracer.span(name):
                return await awaitable

        context, realtime = await asyncio.gather(
            timed("context", self.load(bucket)),
            timed("retrieval", self.realtime(bucket, message)),
        )
        return build_system_prompt(
            persona=context.persona,
            knowledge_summary=context.knowledge_summary,
            realtime_context=realtime,
            writing_style=context.writing_style,
            style_samples=context.style_samples,
        )
