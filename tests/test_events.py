"""Tests for SSE event framing."""

import json

from muse.agent.events import (
    DoneEvent,
    ErrorEvent,
    SessionEvent,
    TextDeltaEvent,
    TimingEvent,
    ToolCallEvent,
)
from muse.agent.tracing import Span


def _parse(frame: str) -> tuple[str, dict]:
    assert frame.endswith("\n\n")
    event_line, data_line = frame.strip("\n").split("\n")
    assert event_line.startswith("event: ")
    assert data_line.startswith("data: ")
    return event_line[len("event: "):], json.loads(data_line[len("data: "):])


def test_text_delta_keeps_unicode():
    frame = TextDeltaEvent(text="こんにちは").to_sse()
    assert "こんにちは" in frame
    assert _parse(frame) == ("text_delta", {"text": "こんにちは"})


def test_payload_keys():
    assert _parse(SessionEvent(id="s1").to_sse()) == ("session", {"id": "s1"})
    assert _parse(ToolCallEvent(name="should_continue").to_sse()) == (
        "tool_call",
        {"name": "should_continue"},
    )
    assert _parse(DoneEvent(id="s1", message_count=2).to_sse()) == (
        "done",
        {"id": "s1", "messageCount": 2},
    )
    assert _parse(ErrorEvent(message="boom").to_sse()) == ("error", {"message": "boom"})


def test_timing_from_span():
    span = Span(name="context", trace_id="t", start_time=2.0, end_time=2.01234)
    event = TimingEvent.from_span(span)
    assert _parse(event.to_sse()) == ("timing", {"category": "context", "durationMs": 12.3})


def test_only_done_and_error_are_terminal():
    assert DoneEvent(id="s", message_count=0).terminal
    assert ErrorEvent(message="x").terminal
    assert not SessionEvent(id="s").terminal
    assert not TextDeltaEvent(text="x").terminal
