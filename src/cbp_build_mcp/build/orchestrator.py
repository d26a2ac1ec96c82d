"""Build orchestrator - version gate, then the queue in order.

State machine:
IDLE → VERSION_CHECK → GATED | BUILDING → DONE → IDLE

A failed or too-old converter gates the whole run before any target is
touched. Inside the loop, a failing step only aborts its own target; the
next target is still built.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from ..config import BuildConfig
from ..terminal.session import TerminalSession
from ..utils.version import VersionInfo, compare_versions, probe_tool_version
from .command import get_step_command
from .queue import BuildQueue, BuildTarget
from .runner import ProcessRunner
from .state import (
    BuildError,
    RunState,
    RunSummary,
    StepKind,
    TargetResult,
    VersionIncompatible,
    VersionUnavailable,
)

logger = logging.getLogger(__name__)

VersionProbe = Callable[[str, str], Awaitable[VersionInfo | None]]


class BuildOrchestrator:
    """Runs the checked targets of a build queue, one at a time."""

    def __init__(
        self,
        queue: BuildQueue,
        session: TerminalSession,
        config: BuildConfig | None = None,
        runner: ProcessRunner | None = None,
        version_probe: VersionProbe = probe_tool_version,
    ):
        self._queue = queue
        self._session = session
        self._config = config or BuildConfig()
        self._runner = runner or ProcessRunner()
        self._version_probe = version_probe
        self._state = RunState.IDLE
        self._lock = asyncio.Lock()
        self._last_summary: RunSummary | None = None
        self._state_listeners: list[Callable[[RunState], None]] = []

    @property
    def state(self) -> RunState:
        """Current run state."""
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state not in (RunState.IDLE, RunState.DONE)

    @property
    def last_summary(self) -> RunSummary | None:
        """Summary of the last finished run."""
        return self._last_summary

    @property
    def config(self) -> BuildConfig:
        return self._config

    def on_state_change(self, listener: Callable[[RunState], None]) -> None:
        """Register state change listener."""
        self._state_listeners.append(listener)

    def _set_state(self, new_state: RunState) -> None:
        """Update state and notify listeners."""
        old_state = self._state
        self._state = new_state
        if old_state != new_state:
            logger.info(f"Run state: {old_state.value} -> {new_state.value}")
            for listener in self._state_listeners:
                try:
                    listener(new_state)
                except Exception:
                    logger.exception("State listener error")

    async def check_version(self) -> VersionInfo:
        """Query the converter version and compare with the minimum.

        Raises:
            VersionUnavailable: If no version could be determined
            VersionIncompatible: If the version is below the minimum
        """
        tool = self._config.converter_path
        minimum = self._config.minimum_tool_version
        try:
            version = await self._version_probe(tool, self._config.version_flag)
        except OSError as e:
            raise VersionUnavailable(f"Could not run {tool}: {e}") from e

        if version is None:
            raise VersionUnavailable(
                f"Could not determine {tool} version (minimum required: {minimum})"
            )
        if not compare_versions(str(version), minimum):
            raise VersionIncompatible(
                f"{tool} version {version} is below the minimum {minimum}"
            )
        return version

    async def build_target(self, target: BuildTarget) -> TargetResult:
        """Run the clean, convert and build steps of one target.

        Failures are recorded in the result, never raised.
        """
        start_time = time.perf_counter()
        result = TargetResult(path=target.path, name=target.name)

        steps: list[StepKind] = []
        if self._config.clean_before_build and self._config.clean_command:
            steps.append(StepKind.CLEAN)
        if not self._config.skip_convert:
            steps.append(StepKind.CONVERT)
        steps.append(StepKind.BUILD)

        self._session.write_line(f">>> {target.name} ({target.path})")
        for index, step in enumerate(steps, start=1):
            self._session.write_line(f"[{index}/{len(steps)}] {step.value}")
            try:
                command, cwd = get_step_command(
                    step, target, self._config, self._runner.command_line
                )
                outcome = await self._runner.run(command, self._session, cwd=cwd)
                result.steps.append(outcome)
                outcome.raise_for_status()
            except BuildError as e:
                result.failed_step = step
                result.error = e
                logger.warning(f"Target {target.name} failed at {step.value}: {e}")
                self._session.write_line(f"!!! {target.name} failed at {step.value}: {e}")
                break
            except Exception as e:
                logger.exception(f"Target {target.name} crashed at {step.value}")
                result.failed_step = step
                result.error = BuildError(f"Unexpected error: {e}")
                break

        result.duration_ms = (time.perf_counter() - start_time) * 1000
        if result.success:
            self._session.write_line(f">>> {target.name} done.")
        return result

    async def run(self) -> RunSummary:
        """Build every checked target in queue order.

        Returns:
            Run summary; a gated run carries exactly one version error

        Raises:
            BuildError: If a run is already in progress
        """
        if self._lock.locked():
            raise BuildError("A build is already running")

        async with self._lock:
            start_time = time.perf_counter()
            summary = RunSummary()
            targets = self._queue.checked_items()

            self._session.write_line("=== Build started ===")
            self._session.write_line(f"Selected targets: {len(targets)}")

            try:
                if not targets:
                    self._session.write_line("No targets selected.")
                    return self._finish(summary, start_time)

                self._set_state(RunState.VERSION_CHECK)
                try:
                    version = await self.check_version()
                except VersionIncompatible as e:
                    self._set_state(RunState.GATED)
                    summary.gated = True
                    summary.errors.append(e)
                    logger.warning(f"Build gated: {e}")
                    self._session.write_line(f"!!! {e}")
                    return self._finish(summary, start_time)

                summary.tool_version = str(version)
                self._session.write_line(f"{self._config.converter_path} {version}")

                self._set_state(RunState.BUILDING)
                for target in targets:
                    summary.targets.append(await self.build_target(target))

                return self._finish(summary, start_time)
            finally:
                self._set_state(RunState.IDLE)

    def _finish(self, summary: RunSummary, start_time: float) -> RunSummary:
        summary.duration_ms = (time.perf_counter() - start_time) * 1000
        self._set_state(RunState.DONE)
        self._session.write_line(f"=== Build finished: {summary.message} ===")
        self._last_summary = summary
        return summary
