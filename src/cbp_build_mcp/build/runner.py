"""Process runner - spawns one external command and streams its output.

stdout and stderr are read concurrently. Each has its own LineBuffer; both
share one OutputRenderer and end up in the same terminal session:

bytes → StreamDecoder → LineBuffer → OutputRenderer → TerminalSession
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Callable

from ..output.decoder import StreamDecoder
from ..output.lines import LineBuffer
from ..output.render import OutputRenderer, is_progress_line
from ..terminal.session import TerminalSession
from .command import CommandLine
from .state import NonZeroExit, OutputFailure, ProcessOutcome, SpawnFailure

logger = logging.getLogger(__name__)

# Forced on every child so tools flush promptly and keep their colors
FORCED_ENV: dict[str, str] = {
    "PYTHONUNBUFFERED": "1",
    "FORCE_COLOR": "1",
    "CLICOLOR_FORCE": "1",
}

READ_CHUNK_SIZE: int = 4096


class ProcessRunner:
    """Runs commands one at a time into a terminal session.

    Never retries and enforces no timeout; the caller decides what a failure
    means.
    """

    def __init__(
        self,
        command_line: CommandLine | None = None,
        decoder: StreamDecoder | None = None,
        renderer_factory: Callable[[], OutputRenderer] = OutputRenderer,
        env: dict[str, str] | None = None,
    ):
        self._command_line = command_line or CommandLine()
        self._decoder = decoder or StreamDecoder()
        self._renderer_factory = renderer_factory
        self._extra_env = env or {}

    @property
    def command_line(self) -> CommandLine:
        return self._command_line

    def build_env(self) -> dict[str, str]:
        """Inherited environment plus forced flags."""
        env = dict(os.environ)
        env.update(self._extra_env)
        env.update(FORCED_ENV)
        return env

    async def _pump(
        self,
        stream: asyncio.StreamReader | None,
        renderer: OutputRenderer,
        sink: TerminalSession,
        cwd: str,
    ) -> None:
        if stream is None:
            return

        def emit(line: str) -> None:
            text = renderer.render(line, cwd)
            if is_progress_line(line):
                sink.write_raw(text)
            else:
                sink.write(text)

        lines = LineBuffer(emit)
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            lines.append(self._decoder.decode(chunk))
        lines.flush()

    async def _stop(self, process: asyncio.subprocess.Process) -> int | None:
        """Kill the child if it is still running and reap it."""
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        return await process.wait()

    async def run(
        self,
        command: str,
        sink: TerminalSession,
        cwd: str | None = None,
    ) -> ProcessOutcome:
        """Run a command to completion.

        Args:
            command: Shell command line
            sink: Terminal session receiving the output
            cwd: Working directory (inherited when None)

        Returns:
            Outcome; failures are carried, not raised
        """
        start_time = time.perf_counter()
        workdir = os.path.abspath(cwd) if cwd else os.getcwd()

        sink.write_line(f"> {command}")
        logger.info(f"Running: {command} (cwd={workdir})")

        try:
            process = await asyncio.create_subprocess_shell(
                self._command_line.shell_line(command),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=self.build_env(),
            )
        except OSError as e:
            logger.warning(f"Failed to start {command!r}: {e}")
            return ProcessOutcome(
                command=command,
                cwd=cwd,
                error=SpawnFailure(f"Failed to start '{command}': {e}"),
                duration_ms=(time.perf_counter() - start_time) * 1000,
            )

        renderer = self._renderer_factory()
        try:
            await asyncio.gather(
                self._pump(process.stdout, renderer, sink, workdir),
                self._pump(process.stderr, renderer, sink, workdir),
            )
            exit_code = await process.wait()
            sink.write(renderer.finish())
        except asyncio.CancelledError:
            await self._stop(process)
            raise
        except Exception as e:
            logger.exception(f"Output handling failed for {command!r}")
            exit_code = await self._stop(process)
            return ProcessOutcome(
                command=command,
                cwd=cwd,
                exit_code=exit_code,
                error=OutputFailure(f"Output of '{command}' could not be written: {e}"),
                duration_ms=(time.perf_counter() - start_time) * 1000,
            )

        duration = (time.perf_counter() - start_time) * 1000
        error = None
        if exit_code != 0:
            logger.info(f"Command exited with code {exit_code}: {command}")
            error = NonZeroExit(f"Exit code {exit_code}", exit_code=exit_code)

        return ProcessOutcome(
            command=command,
            cwd=cwd,
            exit_code=exit_code,
            error=error,
            duration_ms=duration,
        )
