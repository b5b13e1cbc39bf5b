"""Turns one output pipe into line events.

idle-exec runtime module v0.1.0

Each reader owns one byte stream. For every line it:
1. Sends a LineEvent to the supervisor (unbuffered, so it waits for pickup)
2. Resets the shared idle timer

After the last line it sends exactly one StreamClosed, carrying a
StreamError when the stream ended because a read failed.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing

import anyio
from anyio.abc import ByteReceiveStream
from anyio.streams.memory import MemoryObjectSendStream

from ..errors import StreamError
from ..types import LineEvent, StreamClosed, StreamEvent, StreamSource
from .context import IdleTimer
from .line_splitter import DEFAULT_MAX_LINE_BYTES, LineBuffer, LineTooLongError

__all__ = ["StreamReader", "DEFAULT_CHUNK_SIZE"]

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 4096


class StreamReader:
    """Reads lines from one stream and keeps the idle timer alive.

    Example:
        reader = StreamReader(StreamSource.STDOUT, process.stdout, context.timer)
        tg.start_soon(reader.run, send_stream.clone())

    Attributes:
        source: Which stream this reader owns
        encoding: Encoding used to decode lines (undecodable bytes are replaced)
    """

    def __init__(
        self,
        source: StreamSource,
        stream: ByteReceiveStream,
        timer: IdleTimer | None = None,
        *,
        max_line_bytes: int = DEFAULT_MAX_LINE_BYTES,
        encoding: str = "utf-8",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.source = source
        self.encoding = encoding
        self._stream = stream
        self._timer = timer
        self._max_line_bytes = max_line_bytes
        self._chunk_size = chunk_size

    async def lines(self) -> AsyncIterator[str]:
        """Yield decoded lines until the stream ends.

        Raises:
            StreamError: If a read fails or a line exceeds the length limit
        """
        buffer = LineBuffer(self._max_line_bytes)
        while True:
            try:
                chunk = await self._stream.receive(self._chunk_size)
            except anyio.EndOfStream:
                break
            except (anyio.BrokenResourceError, anyio.ClosedResourceError, OSError) as e:
                raise StreamError(self.source, str(e) or type(e).__name__) from e

            try:
                tokens = buffer.feed(chunk)
            except LineTooLongError as e:
                raise StreamError(self.source, str(e)) from e
            for token in tokens:
                yield token.decode(self.encoding, errors="replace")

        try:
            tokens = buffer.finish()
        except LineTooLongError as e:
            raise StreamError(self.source, str(e)) from e
        for token in tokens:
            yield token.decode(self.encoding, errors="replace")

    async def run(self, send_stream: MemoryObjectSendStream[StreamEvent]) -> None:
        """Publish every line on send_stream, then the completion signal.

        The send stream is closed on return. If the receiving side has
        already gone away the reader stops without raising.

        Args:
            send_stream: Stream the supervisor loop receives from
        """
        count = 0
        error: StreamError | None = None
        async with send_stream:
            try:
                try:
                    async with aclosing(self.lines()) as lines:
                        async for line in lines:
                            await send_stream.send(LineEvent(self.source, line))
                            count += 1
                            if self._timer is not None:
                                self._timer.reset()
                except StreamError as e:
                    logger.warning(f"Reading {self.source.value} failed: {e.message}")
                    error = e

                logger.debug(f"{self.source.value} closed after {count} lines")
                await send_stream.send(StreamClosed(self.source, error))
            except anyio.BrokenResourceError:
                logger.debug(f"{self.source.value} reader stopped: receiver closed")
