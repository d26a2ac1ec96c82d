"""Build service - wires queue, terminal session and orchestrator together."""

from __future__ import annotations

import logging
import os
from typing import Any

from .build import BuildOrchestrator, BuildQueue, JsonQueueStore, ProcessRunner, RunSummary
from .build.orchestrator import VersionProbe
from .build.queue import QueueStore
from .config import BuildConfig
from .terminal import BufferedSurface, TerminalSession
from .utils.project import scan_catalog
from .utils.version import probe_tool_version

logger = logging.getLogger(__name__)


class BuildService:
    """One workspace: its catalog, persisted queue and the single terminal."""

    def __init__(
        self,
        workspace_root: str,
        config: BuildConfig | None = None,
        surface: BufferedSurface | None = None,
        store: QueueStore | None = None,
        runner: ProcessRunner | None = None,
        version_probe: VersionProbe = probe_tool_version,
    ):
        self._config = config or BuildConfig.load()
        self._surface = surface or BufferedSurface()
        self._terminal = TerminalSession(self._surface, self._config.terminal_name)
        self._runner = runner or ProcessRunner()
        self._version_probe = version_probe
        self._workspace_root = os.path.abspath(workspace_root)
        self._queue = BuildQueue(store or JsonQueueStore(self._config.state_path(self._workspace_root)))
        self._orchestrator = self._create_orchestrator()

    def _create_orchestrator(self) -> BuildOrchestrator:
        return BuildOrchestrator(
            self._queue,
            self._terminal,
            self._config,
            runner=self._runner,
            version_probe=self._version_probe,
        )

    @property
    def workspace_root(self) -> str:
        return self._workspace_root

    @property
    def config(self) -> BuildConfig:
        return self._config

    @property
    def queue(self) -> BuildQueue:
        return self._queue

    @property
    def terminal(self) -> TerminalSession:
        return self._terminal

    @property
    def surface(self) -> BufferedSurface:
        return self._surface

    @property
    def orchestrator(self) -> BuildOrchestrator:
        return self._orchestrator

    def set_workspace_root(self, workspace_root: str) -> bool:
        """Switch to another workspace and its persisted queue.

        Returns:
            True if the workspace changed

        Raises:
            RuntimeError: If a build is running
        """
        new_root = os.path.abspath(workspace_root)
        if new_root == self._workspace_root:
            return False
        if self._orchestrator.is_running:
            raise RuntimeError("Cannot switch workspace while a build is running")

        logger.info(f"Switching workspace: {self._workspace_root} -> {new_root}")
        self._workspace_root = new_root
        self._queue = BuildQueue(JsonQueueStore(self._config.state_path(new_root)))
        self._orchestrator = self._create_orchestrator()
        return True

    def refresh(self) -> dict[str, Any]:
        """Rescan the workspace and prune the queue to what still exists."""
        catalog = scan_catalog(self._workspace_root, self._config.project_glob)
        removed = self._queue.prune_to_catalog(catalog)
        return {
            "workspace": self._workspace_root,
            "projectCount": len(catalog),
            "removed": removed,
            **self._queue.to_dict(),
        }

    async def build(self) -> RunSummary:
        """Build the checked targets, scanning first if never scanned."""
        if self._queue.catalog is None:
            self.refresh()
        return await self._orchestrator.run()

    def read_output(self, tail_lines: int | None = None) -> str:
        """Plain-text terminal output of the current or last build."""
        return self._surface.read(self._terminal.name, tail_lines=tail_lines)

    def status(self) -> dict[str, Any]:
        """Current state and last summary."""
        last = self._orchestrator.last_summary
        return {
            "workspace": self._workspace_root,
            "state": self._orchestrator.state.value,
            "queued": len(self._queue),
            "checked": len(self._queue.checked_items()),
            "lastRun": last.to_dict() if last else None,
        }
