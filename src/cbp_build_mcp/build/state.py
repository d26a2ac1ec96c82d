"""Build run state and result types.

State machine for a build run:
IDLE → VERSION_CHECK → GATED | BUILDING → DONE
  ↑______________________________________|
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RunState(str, Enum):
    """Orchestrator state machine states."""

    IDLE = "idle"
    VERSION_CHECK = "version_check"
    GATED = "gated"
    BUILDING = "building"
    DONE = "done"


class StepKind(str, Enum):
    """Steps executed for one target, in order."""

    CLEAN = "clean"
    CONVERT = "convert"
    BUILD = "build"


class BuildError(Exception):
    """Build operation error."""

    kind = "build_error"

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.exit_code = exit_code

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"kind": self.kind, "error": str(self)}
        if self.exit_code is not None:
            result["exitCode"] = self.exit_code
        return result


class SpawnFailure(BuildError):
    """The command could not be started."""

    kind = "spawn_failure"


class NonZeroExit(BuildError):
    """The command ran and exited with a failure code."""

    kind = "non_zero_exit"


class OutputFailure(BuildError):
    """Output of a running command could not be delivered; the command was stopped."""

    kind = "output_failure"


class VersionIncompatible(BuildError):
    """The converter is older than the configured minimum."""

    kind = "version_incompatible"


class VersionUnavailable(VersionIncompatible):
    """The converter version could not be determined; gates like incompatible."""

    kind = "version_unavailable"


@dataclass
class ProcessOutcome:
    """Result of one ProcessRunner invocation."""

    command: str
    cwd: str | None = None
    exit_code: int | None = None
    error: BuildError | None = None
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None and self.exit_code == 0

    def raise_for_status(self) -> None:
        """Raise the carried error, if any."""
        if self.error is not None:
            raise self.error

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "command": self.command,
            "success": self.success,
            "durationMs": round(self.duration_ms, 2),
        }
        if self.cwd:
            result["cwd"] = self.cwd
        if self.exit_code is not None:
            result["exitCode"] = self.exit_code
        if self.error is not None:
            result["error"] = self.error.to_dict()
        return result


@dataclass
class TargetResult:
    """Outcome of all steps for one build target."""

    path: str
    name: str
    steps: list[ProcessOutcome] = field(default_factory=list)
    failed_step: StepKind | None = None
    error: BuildError | None = None
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "path": self.path,
            "name": self.name,
            "success": self.success,
            "steps": [s.to_dict() for s in self.steps],
            "durationMs": round(self.duration_ms, 2),
        }
        if self.failed_step is not None:
            result["failedStep"] = self.failed_step.value
        if self.error is not None:
            result["error"] = self.error.to_dict()
        return result


@dataclass
class RunSummary:
    """Result of one orchestrator run."""

    targets: list[TargetResult] = field(default_factory=list)
    errors: list[BuildError] = field(default_factory=list)
    gated: bool = False
    tool_version: str | None = None
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> list[TargetResult]:
        return [t for t in self.targets if t.success]

    @property
    def failed(self) -> list[TargetResult]:
        return [t for t in self.targets if not t.success]

    @property
    def success(self) -> bool:
        return not self.errors and not self.failed

    @property
    def message(self) -> str:
        """One-line summary for the caller."""
        if self.gated:
            return f"[GATED] {self.errors[0]}" if self.errors else "[GATED] Build not allowed"
        if not self.targets:
            return "No targets selected"
        status = "[OK]" if self.success else "[FAILED]"
        text = f"{status} {len(self.succeeded)} succeeded, {len(self.failed)} failed"
        if self.failed:
            text += ": " + ", ".join(t.name for t in self.failed)
        return text

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "success": self.success,
            "gated": self.gated,
            "message": self.message,
            "targets": [t.to_dict() for t in self.targets],
            "durationMs": round(self.duration_ms, 2),
        }
        if self.tool_version:
            result["toolVersion"] = self.tool_version
        if self.errors:
            result["errors"] = [e.to_dict() for e in self.errors]
        return result
