"""Newline framing for incrementally delivered response bodies."""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Iterable

NEWLINE = b"\n"


class LineFrameDecoder:
    """Split an arbitrarily chunked byte stream into complete UTF-8 lines.

    Lines are split on the newline byte before decoding, so a multi-byte
    character that straddles two chunks is reassembled intact. The decoder
    does not trim whitespace and knows nothing about JSON.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self.encoding = encoding
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet terminated by a newline."""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[str]:
        """Buffer ``chunk`` and return every line it completed."""
        if not chunk:
            return []
        self._buffer.extend(chunk)
        if NEWLINE not in chunk:
            return []
        *complete, remainder = bytes(self._buffer).split(NEWLINE)
        self._buffer = bytearray(remainder)
        return [self._decode(raw) for raw in complete]

    def flush(self) -> list[str]:
        """Return the trailing unterminated line, if any, and reset."""
        if not self._buffer:
            return []
        tail = self._decode(bytes(self._buffer))
        self._buffer.clear()
        return [tail]

    def reset(self) -> None:
        """Drop any buffered bytes."""
        self._buffer.clear()

    def _decode(self, raw: bytes) -> str:
        return raw.decode(self.encoding, errors="replace")


def split_lines(chunks: Iterable[bytes]) -> list[str]:
    """Frame a finite sequence of chunks eagerly."""
    decoder = LineFrameDecoder()
    lines: list[str] = []
    for chunk in chunks:
        lines.extend(decoder.feed(chunk))
    lines.extend(decoder.flush())
    return lines


async def aiter_lines(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Lazily frame an async byte stream, flushing the tail when it closes."""
    decoder = LineFrameDecoder()
    async for chunk in chunks:
        for line in decoder.feed(chunk):
            yield line
    for line in decoder.flush():
        yield line
