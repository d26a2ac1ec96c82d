"""UI surfaces that host terminal sinks.

The session only depends on the narrow ``UISurface`` contract: create a sink
by name, enumerate what is open, close by identity, and report closures.
``BufferedSurface`` is the in-process implementation used by the server and
the CLI: it keeps recent output in memory so MCP clients can read it back,
and can mirror everything to a stream.
"""

from __future__ import annotations

import itertools
import logging
import re
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, TextIO

logger = logging.getLogger(__name__)

# Output kept per surface (prevents unbounded growth on long builds)
MAX_SURFACE_CHARS: int = 2_000_000

ANSI_PATTERN = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")


@dataclass(frozen=True)
class SurfaceInfo:
    """An open surface as reported by the UI."""

    name: str
    identity: str


class TerminalHandle(Protocol):
    """Writable sink owned by a TerminalSession."""

    name: str
    identity: str

    def write(self, text: str) -> None: ...

    def dispose(self) -> None: ...


class UISurface(Protocol):
    """Host UI contract used by TerminalSession."""

    def create_sink(self, name: str) -> TerminalHandle: ...

    def open_surfaces(self) -> list[SurfaceInfo]: ...

    def close_surface(self, identity: str) -> None: ...

    def on_closed(self, listener: Callable[[str, str], None]) -> None: ...


def to_plain_text(text: str) -> str:
    """Strip ANSI sequences and apply carriage returns the way a terminal would."""
    text = ANSI_PATTERN.sub("", text)
    rows = []
    for row in text.replace("\r\n", "\n").split("\n"):
        # A lone \r returns to column 0; the last segment is what stays visible
        rows.append(row.rsplit("\r", 1)[-1])
    return "\n".join(rows)


class BufferedTerminal:
    """Sink created by BufferedSurface."""

    def __init__(self, surface: BufferedSurface, name: str, identity: str):
        self.name = name
        self.identity = identity
        self._surface = surface
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def write(self, text: str) -> None:
        if self._disposed:
            raise RuntimeError(f"Terminal {self.identity} has been disposed")
        self._surface._append(self.identity, text)

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._surface.close_surface(self.identity)


class BufferedSurface:
    """In-memory UI surface with optional mirroring."""

    def __init__(self, mirror: TextIO | None = None, max_chars: int = MAX_SURFACE_CHARS):
        self._mirror = mirror
        self._max_chars = max_chars
        self._ids = itertools.count(1)
        self._lock = threading.RLock()
        self._terminals: dict[str, BufferedTerminal] = {}
        self._buffers: dict[str, str] = {}
        self._names: dict[str, str] = {}  # identity -> name, kept after close
        self._closed_listeners: list[Callable[[str, str], None]] = []

    def create_sink(self, name: str) -> BufferedTerminal:
        with self._lock:
            identity = f"terminal-{next(self._ids)}"
            terminal = BufferedTerminal(self, name, identity)
            self._terminals[identity] = terminal
            self._buffers[identity] = ""
            self._names[identity] = name
            self._prune(name)
        logger.debug(f"Created terminal {identity} ({name})")
        return terminal

    def open_surfaces(self) -> list[SurfaceInfo]:
        with self._lock:
            return [SurfaceInfo(t.name, t.identity) for t in self._terminals.values()]

    def close_surface(self, identity: str) -> None:
        with self._lock:
            terminal = self._terminals.pop(identity, None)
            if terminal is not None:
                self._prune(terminal.name)
        if terminal is None:
            return
        terminal._disposed = True
        logger.debug(f"Closed terminal {identity} ({terminal.name})")
        for listener in list(self._closed_listeners):
            try:
                listener(terminal.name, identity)
            except Exception:
                logger.exception("Terminal close listener error")

    def close(self, name: str) -> int:
        """Close every open surface with this name, as a user would.

        Returns:
            Number of surfaces closed
        """
        identities = [s.identity for s in self.open_surfaces() if s.name == name]
        for identity in identities:
            self.close_surface(identity)
        return len(identities)

    def on_closed(self, listener: Callable[[str, str], None]) -> None:
        self._closed_listeners.append(listener)

    def _append(self, identity: str, text: str) -> None:
        with self._lock:
            data = self._buffers.get(identity, "") + text
            if len(data) > self._max_chars:
                data = data[-self._max_chars:]
            self._buffers[identity] = data
            if self._mirror is not None:
                self._write_mirror(text)

    def _write_mirror(self, text: str) -> None:
        try:
            self._mirror.write(text)
        except UnicodeEncodeError:
            # Console encodings such as cp1252 cannot show every build message
            encoding = getattr(self._mirror, "encoding", None) or "ascii"
            self._mirror.write(text.encode(encoding, "replace").decode(encoding))
        self._mirror.flush()

    def _prune(self, name: str) -> None:
        """Forget closed surfaces of this name except the most recent one."""
        identities = [i for i, n in self._names.items() if n == name]
        for identity in identities[:-1]:
            if identity not in self._terminals:
                del self._names[identity]
                self._buffers.pop(identity, None)

    def read(self, name: str, tail_lines: int | None = None, plain: bool = True) -> str:
        """Read output of the most recent surface with this name.

        Args:
            name: Surface name
            tail_lines: Only return the last N lines
            plain: Strip ANSI sequences and resolve carriage returns

        Returns:
            Captured output, empty if nothing was written
        """
        with self._lock:
            identities = [i for i, n in self._names.items() if n == name]
            text = self._buffers.get(identities[-1], "") if identities else ""

        if plain:
            text = to_plain_text(text)
        if tail_lines is not None and tail_lines >= 0:
            lines = text.splitlines()
            text = "\n".join(lines[-tail_lines:] if tail_lines else [])
        return text
