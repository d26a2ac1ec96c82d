"""Pytest fixtures for cbp-build-mcp tests."""

import pytest
import sys
import os
from unittest.mock import AsyncMock, MagicMock

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from cbp_build_mcp.build.command import CommandLine  # noqa: E402
from cbp_build_mcp.build.state import NonZeroExit, ProcessOutcome  # noqa: E402
from cbp_build_mcp.terminal import BufferedSurface, TerminalSession  # noqa: E402


@pytest.fixture
def workspace(tmp_path):
    """Workspace with three Code::Blocks projects, one inside a hidden dir."""
    for rel in ("app/App.cbp", "lib/core/Core.cbp", "tools/Tool.cbp", ".cache/Hidden.cbp"):
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("<CodeBlocks_project_file/>")
    (tmp_path / "app" / "notes.txt").write_text("not a project")
    return tmp_path


@pytest.fixture
def surface():
    """In-memory terminal surface."""
    return BufferedSurface()


@pytest.fixture
def terminal(surface):
    """Terminal session on the in-memory surface."""
    return TerminalSession(surface, "Test Build")


def ok_outcome(command="cmd", cwd=None):
    """Successful process outcome."""
    return ProcessOutcome(command=command, cwd=cwd, exit_code=0)


def failed_outcome(exit_code=2, command="cmd", cwd=None):
    """Outcome of a command that exited with a failure code."""
    return ProcessOutcome(
        command=command,
        cwd=cwd,
        exit_code=exit_code,
        error=NonZeroExit(f"Exit code {exit_code}", exit_code=exit_code),
    )


@pytest.fixture
def fake_runner():
    """ProcessRunner stand-in; every command succeeds unless reconfigured."""
    runner = MagicMock()
    runner.command_line = CommandLine("linux")

    async def _run(command, sink, cwd=None):
        return ok_outcome(command, cwd)

    runner.run = AsyncMock(side_effect=_run)
    return runner


def make_process(stdout_chunks=(), stderr_chunks=(), exit_code=0):
    """Mock asyncio subprocess whose pipes yield the given chunks, then EOF."""
    process = AsyncMock()
    process.stdout = AsyncMock()
    process.stdout.read = AsyncMock(side_effect=list(stdout_chunks) + [b""])
    process.stderr = AsyncMock()
    process.stderr.read = AsyncMock(side_effect=list(stderr_chunks) + [b""])
    process.wait = AsyncMock(return_value=exit_code)
    process.returncode = exit_code
    return process
