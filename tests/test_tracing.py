"""Tests for timing spans."""

import pytest

from muse.agent.tracing import Span, Tracer


def test_span_duration():
    span = Span(name="test", trace_id="abc", start_time=1.0, end_time=1.5)
    assert span.duration_ms == 500.0


def test_unfinished_span_has_zero_duration():
    span = Span(name="test", trace_id="abc")
    assert span.duration_ms == 0.0
    assert span.span_id


@pytest.mark.asyncio
async def test_tracer_records_spans():
    tracer = Tracer()
    async with tracer.span("context", {"bucket": "b1"}) as span:
        pass

    assert tracer.spans == [span]
    assert span.trace_id == tracer.trace_id
    assert span.attributes == {"bucket": "b1"}
    assert span.status == "ok"
    assert span.end_time >= span.start_time
    assert tracer.total_ms() == span.duration_ms


@pytest.mark.asyncio
async def test_tracer_marks_errors():
    tracer = Tracer()
    with pytest.raises(ValueError):
        async with tracer.span("model"):
            raise ValueError("boom")

    [span] = tracer.spans
    assert span.status == "error"
    assert span.attributes["error"] == "boom"


@pytest.mark.asyncio
async def test_disabled_tracer_still_times():
    tracer = Tracer(enabled=False)
    async with tracer.span("history") as span:
        pass

    assert tracer.spans == []
    assert span.end_time > 0


@pytest.mark.asyncio
async def test_clear():
    tracer = Tracer()
    async with tracer.span("a"):
        pass
    tracer.clear()
    assert tracer.spans == []
    assert tracer.total_ms() == 0
