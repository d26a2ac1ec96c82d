"""Terminal sink management."""

from .session import DEFAULT_TERMINAL_NAME, TerminalSession
from .surface import BufferedSurface, SurfaceInfo, TerminalHandle, UISurface, to_plain_text

__all__ = [
    "TerminalSession",
    "DEFAULT_TERMINAL_NAME",
    "UISurface",
    "TerminalHandle",
    "SurfaceInfo",
    "BufferedSurface",
    "to_plain_text",
]
