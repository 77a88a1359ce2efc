"""Tests for incremental line splitting and SSE payload extraction."""
from __future__ import annotations

import pytest

from cerebro.engine.providers.streaming import LineBuffer, iter_lines, sse_payload


def test_line_buffer_keeps_partial_line():
    buffer = LineBuffer()
    assert buffer.feed(b'{"a": 1}\n{"b"') == ['{"a": 1}']
    assert buffer.feed(b': 2}\n\n') == ['{"b": 2}']
    assert buffer.flush() == ""


def test_line_buffer_handles_split_multibyte_sequence():
    data = "señal\n".encode("utf-8")
    split = data.index(b"\xc3") + 1
    buffer = LineBuffer()
    assert buffer.feed(data[:split]) == []
    assert buffer.feed(data[split:]) == ["señal"]


def test_line_buffer_flush_returns_tail():
    buffer = LineBuffer()
    buffer.feed(b"first\nsecond")
    assert buffer.flush() == "second"


def test_sse_payload():
    assert sse_payload('data: {"x": 1}') == '{"x": 1}'
    assert sse_payload("data:[DONE]") == "[DONE]"
    assert sse_payload(": keep-alive") is None
    assert sse_payload("event: message") is None
    assert sse_payload("data:   ") is None


@pytest.mark.asyncio
async def test_iter_lines_yields_tail():
    async def chunks():
        for chunk in (b"one\ntw", b"o\nthr", b"ee"):
            yield chunk

    assert [line async for line in iter_lines(chunks())] == ["one", "two", "three"]
