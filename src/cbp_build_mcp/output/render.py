"""Terminal rendering of build tool output.

Two kinds of lines come out of the build scripts:

- progress lines, ``[3/10] cc -c foo.c -o foo.o``: collapsed in place to
  ``[3/10] Building foo.c`` by returning the cursor and clearing the line,
  without a trailing newline;
- everything else: relative ``file.c:42:`` locations are made absolute so the
  terminal can link them, then the line is written on its own row.
"""

from __future__ import annotations

import os
import re

# ANSI control sequences
RESET = "\x1b[0m"
BOLD = "\x1b[1m"
RED = "\x1b[31m"
GREEN = "\x1b[32m"
YELLOW = "\x1b[33m"
CYAN = "\x1b[36m"
CLEAR_LINE = "\x1b[K"

PROGRESS_PATTERN = re.compile(r"^\[(\d+)/(\d+)\]\s*(.*)$")

# Extensions recognized as "the file being built" in a progress line
SOURCE_EXTENSIONS: tuple[str, ...] = (
    "cpp", "cxx", "cc", "c++", "c", "C",
    "sx", "S", "s", "asm",
    "lds", "ld",
    "xmm", "xm",
)

# Extensions whose "file:line" locations get rewritten to absolute paths
LOCATION_EXTENSIONS: tuple[str, ...] = SOURCE_EXTENSIONS + (
    "hpp", "hxx", "hh", "h", "H", "inl", "ipp", "tcc",
)


def _alternation(extensions: tuple[str, ...]) -> str:
    # Longest first so "cpp" wins over "c"
    ordered = sorted(extensions, key=len, reverse=True)
    return "|".join(re.escape(ext) for ext in ordered)


SOURCE_TOKEN_PATTERN = re.compile(
    r"(?<![^\s\"'=])"
    r"([^\s\"'=]+\.(?:" + _alternation(SOURCE_EXTENSIONS) + r"))"
    r"(?=$|[\s\"'])"
)

LOCATION_PATTERN = re.compile(
    r"(?<![^\s\"'(\[])"
    r"(?P<path>[^\s\"'()\[\]:]+\.(?:" + _alternation(LOCATION_EXTENSIONS) + r"))"
    r"(?P<loc>:\d+)"
    r"(?=$|[:,)\s])"
)

SEVERITY_PATTERN = re.compile(r"\b(fatal error|error|warning)(?=:)")

_LINE_ENDINGS = re.compile(r"\r\n|\r|\n")


def is_progress_line(line: str) -> bool:
    """Check for a leading ``[n/m]`` fraction."""
    return PROGRESS_PATTERN.match(line) is not None


def extract_source_label(text: str) -> str | None:
    """Return the basename of the first source-file token in ``text``.

    Best effort: compiler invocations are free-form, so this only looks for
    whitespace-separated tokens ending in a known source extension.
    """
    match = SOURCE_TOKEN_PATTERN.search(text)
    if not match:
        return None
    token = match.group(1).replace("\\", "/")
    return token.rsplit("/", 1)[-1]


def rewrite_paths(line: str, cwd: str) -> str:
    """Make relative ``path.ext:line`` locations absolute against ``cwd``."""

    def _replace(match: re.Match[str]) -> str:
        path = match.group("path")
        if os.path.isabs(path):
            return match.group(0)
        resolved = os.path.normpath(os.path.join(cwd, path))
        return f"{resolved}{match.group('loc')}"

    return LOCATION_PATTERN.sub(_replace, line)


def normalize_line_endings(text: str) -> str:
    """Collapse every line-ending variant, then expand to ``\\r\\n``.

    Compiler output and build-tool output mix ``\\r``, ``\\n`` and ``\\r\\n``;
    written as-is they produce staircased or overlapping rows. Applying this
    twice gives the same result as applying it once.
    """
    return _LINE_ENDINGS.sub("\n", text).replace("\n", "\r\n")


class OutputRenderer:
    """Formats raw log lines for a terminal sink.

    One renderer serves every stream of a process so it knows whether the
    cursor currently sits at the end of an unterminated progress line.
    """

    def __init__(self, color: bool = True):
        self._color = color
        self._progress_pending = False

    @property
    def progress_pending(self) -> bool:
        """Whether the last rendered line was an unterminated progress line."""
        return self._progress_pending

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{RESET}" if self._color else text

    def render(self, line: str, cwd: str) -> str:
        """Render one complete line.

        Args:
            line: Line without its terminator
            cwd: Directory relative locations are resolved against

        Returns:
            Formatted text ready for the sink
        """
        match = PROGRESS_PATTERN.match(line)
        if match:
            done, total, rest = match.groups()
            source = extract_source_label(rest)
            label = f"Building {source}" if source else rest
            fraction = self._paint(f"[{done}/{total}]", CYAN)
            self._progress_pending = True
            return f"\r{CLEAR_LINE}{fraction} {label}"

        text = rewrite_paths(line, cwd)
        if self._color:
            text = SEVERITY_PATTERN.sub(
                lambda m: self._paint(m.group(1), RED if "error" in m.group(1) else YELLOW),
                text,
            )
        prefix = "\n" if self._progress_pending else ""
        self._progress_pending = False
        return f"{prefix}{text}\n"

    def finish(self) -> str:
        """Terminator for a progress line left open at end of stream."""
        if self._progress_pending:
            self._progress_pending = False
            return "\n"
        return ""
