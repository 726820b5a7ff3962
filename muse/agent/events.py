"""Events streamed to the client during a chat turn.

Each event serializes to one Server-Sent Events frame:

    event: <type>
    data: <json>

A turn always ends with exactly one ``done`` or ``error`` event.
"""

import json
from dataclasses import asdict, dataclass
from typing import Any, ClassVar

from muse.agent.tracing import Span


@dataclass
class StreamEvent:
    type: ClassVar[str] = ""
    terminal: ClassVar[bool] = False

    def payload(self) -> dict[str, Any]:
        return asdict(self)

    def to_sse(self) -> str:
        data = json.dumps(self.payload(), ensure_ascii=False)
        return f"event: {self.type}\ndata: {data}\n\n"


@dataclass
class SessionEvent(StreamEvent):
    type: ClassVar[str] = "session"

    id: str


@dataclass
class TimingEvent(StreamEvent):
    type: ClassVar[str] = "timing"

    category: str
    duration_ms: float

    @classmethod
    def from_span(cls, span: Span) -> "TimingEvent":
        return cls(category=span.name, duration_ms=round(span.duration_ms, 1))

    def payload(self) -> dict[str, Any]:
        return {"category": self.category, "durationMs": self.duration_ms}


@dataclass
class TextDeltaEvent(StreamEvent):
    type: ClassVar[str] = "text_delta"

    text: str


@dataclass
class MessageCompleteEvent(StreamEvent):
    type: ClassVar[str] = "message_complete"

    text: str


@dataclass
class ToolCallEvent(StreamEvent):
    type: ClassVar[str] = "tool_call"

    name: str


@dataclass
class DoneEvent(StreamEvent):
    type: ClassVar[str] = "done"
    terminal: ClassVar[bool] = True

    id: str
    message_count: int

    def payload(self) -> dict[str, Any]:
        return {"id": self.id, "messageCount": self.message_count}


@dataclass
class ErrorEvent(StreamEvent):
    type: ClassVar[str] = "error"
    terminal: ClassVar[bool] = True

    message: str
