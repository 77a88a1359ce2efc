"""Incremental line splitting for streamed response bodies.

Network reads can end anywhere: in the middle of a JSON object or
even inside a multi-byte UTF-8 sequence. LineBuffer decodes bytes
incrementally, emits complete lines, and keeps the trailing partial
line for the next read.
"""
from __future__ import annotations

import codecs
from collections.abc import AsyncIterator

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


class LineBuffer:
    """Splits a byte stream into newline-terminated text lines."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        """Add *chunk* and return every line completed by it (stripped, non-empty)."""
        self._buffer += self._decoder.decode(chunk)
        *complete, self._buffer = self._buffer.split("\n")
        return [line.strip() for line in complete if line.strip()]

    def flush(self) -> str:
        """Return whatever is left once the stream has ended."""
        self._buffer += self._decoder.decode(b"", final=True)
        tail, self._buffer = self._buffer.strip(), ""
        return tail


def sse_payload(line: str) -> str | None:
    """Extract the payload of a ``data:`` line, or None for other lines."""
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    payload = line[len(SSE_DATA_PREFIX):].strip()
    return payload or None


async def iter_lines(chunks: AsyncIterator[bytes]) -> AsyncIterator[str]:
    """Yield complete lines from *chunks*, then the unterminated tail."""
    buffer = LineBuffer()
    async for chunk in chunks:
        for line in buffer.feed(chunk):
            yield line
    tail = buffer.flush()
    if tail:
        yield tail
