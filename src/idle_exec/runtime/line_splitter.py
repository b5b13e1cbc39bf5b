"""Line splitting that treats LF, CR and CRLF as the same terminator.

idle-exec runtime module v0.1.0

Progress bars and some Windows tools end lines with a bare CR, so splitting
on LF alone would hold back output (and the idle timer) until the next LF.
"""

from __future__ import annotations

__all__ = [
    "DEFAULT_MAX_LINE_BYTES",
    "LineBuffer",
    "LineTooLongError",
    "split_line",
    "split_lines",
]

DEFAULT_MAX_LINE_BYTES = 64 * 1024

CR = 0x0D
LF = 0x0A


class LineTooLongError(ValueError):
    """Buffered data grew past the line limit without a terminator."""
    pass


def split_line(data: bytes | bytearray, at_eof: bool) -> tuple[int, bytes | None]:
    """Find the first line in data.

    Args:
        data: Bytes buffered so far
        at_eof: True when no more bytes will arrive

    Returns:
        Tuple of (bytes to consume, line without terminator). The line is
        None when more data is needed, or at EOF once data is exhausted.
    """
    if at_eof and not data:
        return 0, None

    lf = data.find(b"\n")
    cr = data.find(b"\r")

    if cr != -1 and (lf == -1 or cr < lf):
        if cr + 1 < len(data) and data[cr + 1] == LF:
            # CRLF
            return cr + 2, bytes(data[:cr])
        # Bare CR, including a CR that is the last buffered byte
        return cr + 1, bytes(data[:cr])

    if lf != -1:
        return lf + 1, bytes(data[:lf])

    if at_eof:
        return len(data), bytes(data)
    return 0, None


def split_lines(data: bytes) -> list[bytes]:
    """Split a complete buffer into lines."""
    lines: list[bytes] = []
    offset = 0
    while True:
        advance, token = split_line(data[offset:], at_eof=True)
        if token is None:
            return lines
        lines.append(token)
        offset += advance


class LineBuffer:
    """Accumulates stream chunks and hands out complete lines.

    Example:
        buffer = LineBuffer()
        buffer.feed(b"one\\ntw")    # [b"one"]
        buffer.feed(b"o\\r")        # [b"two"]
        buffer.finish()            # []
    """

    def __init__(self, max_line_bytes: int = DEFAULT_MAX_LINE_BYTES) -> None:
        self.max_line_bytes = max_line_bytes
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    def feed(self, chunk: bytes) -> list[bytes]:
        """Append a chunk and return the lines it completed.

        Raises:
            LineTooLongError: If a completed line or the unterminated remainder
                exceeds max_line_bytes
        """
        self._buffer += chunk
        lines = self._drain(at_eof=False)
        if len(self._buffer) > self.max_line_bytes:
            raise LineTooLongError(
                f"line exceeds {self.max_line_bytes} bytes without a terminator"
            )
        return lines

    def finish(self) -> list[bytes]:
        """Signal end of input and return the remaining lines.

        Raises:
            LineTooLongError: If the final line exceeds max_line_bytes
        """
        return self._drain(at_eof=True)

    def _drain(self, at_eof: bool) -> list[bytes]:
        lines: list[bytes] = []
        while True:
            advance, token = split_line(self._buffer, at_eof)
            if token is None:
                return lines
            # Same limit whether or not the terminator arrived in the same read
            if len(token) > self.max_line_bytes:
                raise LineTooLongError(f"line exceeds {self.max_line_bytes} bytes")
            del self._buffer[:advance]
            lines.append(token)
