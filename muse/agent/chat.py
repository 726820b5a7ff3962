"""Chat turn orchestration: context, history, model loop and persistence."""

import asyncio
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from typing import Any, TypeVar

from loguru import logger

from muse.agent.context import ContextBuilder
from muse.agent.events import (
    DoneEvent,
    ErrorEvent,
    MessageCompleteEvent,
    SessionEvent,
    StreamEvent,
    TimingEvent,
)
from muse.agent.loop import ConversationLoop
from muse.agent.tracing import Tracer
from muse.cache.session import SessionCache
from muse.config.schema import AgentConfig
from muse.errors import ErrorCategory, MuseError, UpstreamError, log_error
from muse.knowledge.store import DocumentStore, messages_path, sessions_path
from muse.utils.timeouts import bounded_wait
from muse.utils.tokens import TokenBudget

T = TypeVar("T")


class ChatService:
    """
    Runs one customer turn end to end and streams its events.

    The user message is persisted before the model is called. Each completed
    assistant message is persisted and appended to the session cache in
    emission order, shielded from consumer disconnects.
    """

    def __init__(
        self,
        context: ContextBuilder,
        sessions: SessionCache,
        documents: DocumentStore,
        loop: ConversationLoop,
        config: AgentConfig | None = None,
        store_timeout: float | None = 10.0,
        clock: Callable[[], float] = time.time,
    ):
        self.context = context
        self.sessions = sessions
        self.documents = documents
        self.loop = loop
        self.config = config or AgentConfig()
        self.store_timeout = store_timeout
        self._clock = clock

    async def _store(self, awaitable: Awaitable[T], operation: str) -> T:
        """Document store call with a bounded wait; failures become UpstreamError."""
        try:
            return await bounded_wait(awaitable, self.store_timeout, operation)
        except UpstreamError:
            raise
        except Exception as e:
            raise UpstreamError(f"{operation} failed: {e}", ErrorCategory.DOCUMENT_STORE) from e

    async def _ensure_session(self, bucket: str, session_id: str) -> None:
        existing = await self._store(
            self.documents.get(sessions_path(bucket), session_id), "load session"
        )
        if existing is None:
            now = self._clock()
            await self._store(
                self.documents.set(
                    sessions_path(bucket),
                    session_id,
                    {"id": session_id, "started": now, "updated": now, "message_count": 0},
                ),
                "create session",
            )
            logger.info(f"Session started: {bucket}/{session_id}")

    async def _save_message(self, bucket: str, session_id: str, role: str, content: str) -> None:
        message = {"role": role, "content": content, "created": self._clock()}
        await self._store(
            self.documents.add(messages_path(bucket, session_id), message),
            f"save {role} message",
        )

    async def _load_history(
        self,
        bucket: str,
        session_id: str,
        user_message: dict[str, str],
    ) -> list[dict[str, Any]]:
        """Session history ending with ``user_message``, which is already persisted."""
        cached = await self.sessions.get_history(session_id)
        if cached is not None:
            await self.sessions.append(session_id, user_message)
            return [*cached, user_message]

        recent = await self._store(
            self.documents.query(
                messages_path(bucket, session_id),
                order_by="created",
                descending=True,
                limit=self.config.history_limit,
            ),
            "load history",
        )
        history = [{"role": m["role"], "content": m["content"]} for m in reversed(recent)]
        if not history or history[-1] != user_message:
            history.append(user_message)
        await self.sessions.set_history(session_id, history)
        logger.debug(f"Session cache seeded from store: {session_id} ({len(history)} messages)")
        return history

    async def _record_reply(self, bucket: str, session_id: str, text: str) -> None:
        await self._save_message(bucket, session_id, "assistant", text)
        await self.sessions.append(session_id, {"role": "assistant", "content": text})

    async def stream(
        self,
        bucket: str,
        message: str,
        session_id: str | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Process one customer message.

        Yields a ``session`` event first and exactly one terminal ``done`` or
        ``error`` event last.

        Args:
            bucket: Tenant namespace.
            message: The customer's message.
            session_id: Existing conversation id, or None to start one.
        """
        session_id = session_id or uuid.uuid4().hex[:20]
        yield SessionEvent(id=session_id)

        tracer = Tracer()
        replies = 0

        try:
            system_prompt = await self.context.assemble(bucket, message, tracer)
            for span in tracer.spans:
                yield TimingEvent.from_span(span)

            user_message = {"role": "user", "content": message}
            async with tracer.span("history") as span:
                await self._ensure_session(bucket, session_id)
                await self._save_message(bucket, session_id, "user", message)
                history = await self._load_history(bucket, session_id, user_message)
            yield TimingEvent.from_span(span)

            budget = TokenBudget.for_provider(
                self.config.provider,
                system_prompt,
                reserved=self.config.reserve_tokens,
                max_tokens=self.config.max_tokens,
            )
            trimmed = budget.fit(history)
            if len(trimmed) < len(history):
                logger.info(f"History trimmed to fit budget: {len(history)} -> {len(trimmed)}")

            events = aclosing(self.loop.run(system_prompt, trimmed))
            async with tracer.span("model") as span, events as loop_events:
                async for event in loop_events:
                    if isinstance(event, ErrorEvent):
                        yield event
                        return
                    if isinstance(event, MessageCompleteEvent):
                        await asyncio.shield(self._record_reply(bucket, session_id, event.text))
                        replies += 1
                    yield event
            yield TimingEvent.from_span(span)

            total = await self._message_count(bucket, session_id)
            await self._store(
                self.documents.update(
                    sessions_path(bucket),
                    session_id,
                    {"updated": self._clock(), "message_count": total},
                ),
                "update session",
            )
        except MuseError as e:
            log_error(e.category, f"Chat turn failed for {bucket}/{session_id}: {e}")
            yield ErrorEvent(message=str(e))
            return
        except Exception as e:
            log_error(ErrorCategory.UNKNOWN, f"Chat turn failed for {bucket}/{session_id}: {e}")
            yield ErrorEvent(message=str(e))
            return

        logger.info(f"Chat turn done: {bucket}/{session_id} ({replies} replies)")
        yield DoneEvent(id=session_id, message_count=replies)

    async def _message_count(self, bucket: str, session_id: str) -> int:
        messages = await self._store(
            self.documents.query(messages_path(bucket, session_id)), "count messages"
        )
        return len(messages)
