"""Version parsing and compatibility checking for the converter tool."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass

from ..output.decoder import StreamDecoder

logger = logging.getLogger(__name__)

# First "v1.2.3" style token in tool output; the "v" is optional
TOOL_VERSION_PATTERN = re.compile(r"(?<![\w.])v?(\d+)\.(\d+)\.(\d+)(?:\.(\d+))?")

_LEADING_DIGITS = re.compile(r"\d+")


@dataclass
class VersionInfo:
    """Version information with major.minor.patch components."""

    major: int
    minor: int
    patch: int
    build: int | None = None
    raw: str = ""

    def __str__(self) -> str:
        if self.build is not None:
            return f"{self.major}.{self.minor}.{self.patch}.{self.build}"
        return f"{self.major}.{self.minor}.{self.patch}"

    @classmethod
    def from_string(cls, version_str: str) -> VersionInfo | None:
        """Parse version from string like '1.2.7' or 'v1.2.7.15'."""
        if not version_str:
            return None

        match = re.match(r"v?(\d+)\.(\d+)\.(\d+)(?:\.(\d+))?", version_str.strip())
        if not match:
            return None

        return cls(
            major=int(match.group(1)),
            minor=int(match.group(2)),
            patch=int(match.group(3)),
            build=int(match.group(4)) if match.group(4) else None,
            raw=version_str,
        )


def _component(part: str) -> int:
    """Numeric value of one dotted component; malformed parts count as 0."""
    match = _LEADING_DIGITS.match(part.strip())
    return int(match.group(0)) if match else 0


def compare_versions(a: str, b: str) -> bool:
    """Return True if version ``a`` is greater than or equal to ``b``.

    Components are compared left to right. Missing trailing components are
    treated as 0, so "1.2" and "1.2.0" are equal. A component without leading
    digits (e.g. "x" or "") also counts as 0.

    Args:
        a: Candidate version, e.g. the installed tool version
        b: Required minimum version

    Returns:
        True when ``a >= b``
    """
    left = [_component(p) for p in str(a).split(".")]
    right = [_component(p) for p in str(b).split(".")]
    width = max(len(left), len(right))
    left += [0] * (width - len(left))
    right += [0] * (width - len(right))

    for x, y in zip(left, right):
        if x > y:
            return True
        if x < y:
            return False
    return True


def parse_tool_version(output: str) -> VersionInfo | None:
    """Extract the first ``v<major>.<minor>.<patch>`` token from tool output."""
    if not output:
        return None
    match = TOOL_VERSION_PATTERN.search(output)
    if not match:
        return None
    return VersionInfo(
        major=int(match.group(1)),
        minor=int(match.group(2)),
        patch=int(match.group(3)),
        build=int(match.group(4)) if match.group(4) else None,
        raw=match.group(0),
    )


async def probe_tool_version(
    tool_path: str,
    flag: str = "--version",
    decoder: StreamDecoder | None = None,
) -> VersionInfo | None:
    """Run ``tool_path flag`` and parse its reported version.

    The tool is started directly, not through a shell, so ``tool_path`` must
    name one executable file. Shell shims and values carrying arguments are
    not resolved here.

    Args:
        tool_path: Converter executable
        flag: Version query flag
        decoder: Decoder for the tool's output

    Returns:
        VersionInfo if detected, None if the tool could not be run or printed
        no recognizable version
    """
    decoder = decoder or StreamDecoder()
    try:
        process = await asyncio.create_subprocess_exec(
            tool_path,
            flag,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
    except OSError as e:
        logger.warning(f"Failed to run {tool_path} {flag}: {e}")
        return None

    text = decoder.decode(stdout or b"") + "\n" + decoder.decode(stderr or b"")
    version = parse_tool_version(text)
    if version is None:
        logger.warning(f"No version found in output of {tool_path} {flag}")
    else:
        logger.debug(f"Detected {tool_path} version: {version}")
    return version
