"""Reassembly of chunked process output into complete lines."""

from __future__ import annotations

from collections.abc import Callable


class LineBuffer:
    """Accumulates text chunks and emits complete lines.

    A line is everything up to and including ``\\n``; the newline and one
    trailing ``\\r`` are stripped before the callback sees it. Only the
    unterminated remainder is kept between calls.
    """

    def __init__(self, on_line: Callable[[str], None]):
        self._on_line = on_line
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Unterminated remainder."""
        return self._buffer

    def append(self, chunk: str) -> None:
        """Add a chunk and emit every line it completes."""
        if not chunk:
            return
        self._buffer += chunk

        while True:
            index = self._buffer.find("\n")
            if index < 0:
                break
            line = self._buffer[:index]
            self._buffer = self._buffer[index + 1:]
            if line.endswith("\r"):
                line = line[:-1]
            self._on_line(line)

    def flush(self) -> None:
        """Emit the remainder as a final line, if it has content."""
        rest = self._buffer
        self._buffer = ""
        if rest.strip():
            if rest.endswith("\r"):
                rest = rest[:-1]
            self._on_line(rest)
