"""Build orchestration for Code::Blocks projects.

Provides:
- Ordered, persisted build queue with checked state per target
- Streaming process runner with encoding fallback and progress collapsing
- Version-gated, strictly sequential orchestration with per-target failures
"""

from .command import CommandLine, CommandSpec, get_step_command
from .orchestrator import BuildOrchestrator
from .queue import BuildQueue, BuildTarget, JsonQueueStore, MemoryQueueStore, QueueError, QueueState
from .runner import ProcessRunner
from .state import (
    BuildError,
    NonZeroExit,
    OutputFailure,
    ProcessOutcome,
    RunState,
    RunSummary,
    SpawnFailure,
    StepKind,
    TargetResult,
    VersionIncompatible,
    VersionUnavailable,
)

__all__ = [
    "BuildOrchestrator",
    "BuildQueue",
    "BuildTarget",
    "QueueState",
    "QueueError",
    "JsonQueueStore",
    "MemoryQueueStore",
    "ProcessRunner",
    "CommandLine",
    "CommandSpec",
    "get_step_command",
    "RunState",
    "StepKind",
    "RunSummary",
    "TargetResult",
    "ProcessOutcome",
    "BuildError",
    "SpawnFailure",
    "NonZeroExit",
    "OutputFailure",
    "VersionIncompatible",
    "VersionUnavailable",
]
