"""Lightweight timing spans for the phases of a chat turn."""

import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from loguru import logger


@dataclass
class Span:
    """A single traced phase."""

    name: str
    trace_id: str
    span_id: str = ""
    start_time: float = 0.0
    end_time: float = 0.0
    attributes: dict[str, Any] = field(default_factory=dict)
    status: str = "ok"

    def __post_init__(self) -> None:
        if not self.span_id:
            self.span_id = uuid.uuid4().hex[:12]
        if not self.start_time:
            self.start_time = time.perf_counter()

    @property
    def duration_ms(self) -> float:
        """Duration in milliseconds."""
        if self.end_time <= 0:
            return 0.0
        return (self.end_time - self.start_time) * 1000


class Tracer:
    """Records spans for one chat turn; each span becomes a timing event."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self.spans: list[Span] = []
        self.trace_id: str = uuid.uuid4().hex[:16]

    @asynccontextmanager
    async def span(self, name: str, attributes: dict[str, Any] | None = None):
        """Async context manager that times and records a span.

        Usage:
            async with tracer.span("context") as span:
                context = await builder.load(bucket)
            yield TimingEvent.from_span(span)
        """
        s = Span(name=name, trace_id=self.trace_id, attributes=attributes or {})
        try:
            yield s
        except BaseException as e:
            s.status = "error"
            s.attributes["error"] = str(e)
            raise
        finally:
            s.end_time = time.perf_counter()
            if self.enabled:
                self.spans.append(s)
                logger.debug(
                    f"[trace:{s.trace_id[:8]}] {s.name} {s.duration_ms:.1f}ms [{s.status}]"
                )

    def total_ms(self) -> float:
        """Sum of recorded span durations."""
        return sum(s.duration_ms for s in self.spans)

    def clear(self) -> None:
        """Clear all recorded spans."""
        self.spans.clear()
