"""Terminal session - owner of the single reusable output sink.

Lifecycle:
no handle → acquire() creates one → reused while the UI still lists it
    ↑___ closed notification or vanished surface ___|

A surface with our name that we hold no handle for (for example after a
restart lost in-memory state) is an orphan: its input side is gone, so it is
closed and replaced rather than written to.
"""

from __future__ import annotations

import logging
import threading

from ..output.render import normalize_line_endings
from .surface import TerminalHandle, UISurface

logger = logging.getLogger(__name__)

DEFAULT_TERMINAL_NAME = "CBP Build Manager"


class TerminalSession:
    """Lazily created, reusable terminal sink.

    Writes are serialized with a lock; stdout and stderr of a build are read
    concurrently but land in the same sink.
    """

    def __init__(self, surface: UISurface, name: str = DEFAULT_TERMINAL_NAME):
        self._surface = surface
        self._name = name
        self._handle: TerminalHandle | None = None
        self._line_open = False
        self._lock = threading.RLock()
        surface.on_closed(self._on_surface_closed)

    @property
    def name(self) -> str:
        """Surface name."""
        return self._name

    @property
    def handle(self) -> TerminalHandle | None:
        """Current handle, if any."""
        return self._handle

    def acquire(self) -> TerminalHandle:
        """Return the live sink, creating a fresh one when needed."""
        with self._lock:
            same_name = [s for s in self._surface.open_surfaces() if s.name == self._name]

            if self._handle is not None:
                if any(s.identity == self._handle.identity for s in same_name):
                    return self._handle
                logger.info(f"Terminal {self._handle.identity} is gone, recreating")
                self._handle = None

            for orphan in same_name:
                logger.info(f"Closing orphaned terminal {orphan.identity} ({orphan.name})")
                self._surface.close_surface(orphan.identity)

            self._handle = self._surface.create_sink(self._name)
            self._line_open = False
            logger.debug(f"Acquired terminal {self._handle.identity}")
            return self._handle

    def write(self, text: str) -> None:
        """Write text with line endings normalized for the terminal."""
        self.write_raw(normalize_line_endings(text))

    def write_raw(self, text: str) -> None:
        """Write text as-is (in-place progress updates, control sequences)."""
        if not text:
            return
        with self._lock:
            self.acquire().write(text)
            self._line_open = not text.endswith("\n")

    def write_line(self, text: str = "") -> None:
        """Write one line, first ending a line left open by a progress update."""
        with self._lock:
            prefix = "\n" if self._line_open else ""
            self.write(f"{prefix}{text}\n")

    def close(self) -> None:
        """Dispose the current sink."""
        with self._lock:
            handle, self._handle = self._handle, None
        if handle is not None:
            handle.dispose()

    def _on_surface_closed(self, name: str, identity: str) -> None:
        with self._lock:
            if self._handle is not None and self._handle.identity == identity:
                logger.info(f"Terminal {identity} closed, handle cleared")
                self._handle = None
                self._line_open = False
