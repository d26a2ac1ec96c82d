"""Command construction for build steps.

Command templates come from configuration as shell strings with named
placeholders. They are resolved once per target, right before execution, and
run through the platform's native shell:

- Windows: ``cmd.exe /c "echo off && <command>"``, ``./script`` rewritten to
  ``.\\script``
- elsewhere: ``/bin/sh -c <command>``
"""

from __future__ import annotations

import re
import shlex
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from .state import StepKind

if TYPE_CHECKING:
    from ..config import BuildConfig
    from .queue import BuildTarget

PLACEHOLDER_PATTERN: Final[re.Pattern[str]] = re.compile(r"\{(\w+)\}")

# Placeholders understood in convert/clean/build templates
KNOWN_PLACEHOLDERS: Final[frozenset[str]] = frozenset({"tool", "inputFile", "outputDir"})

# Characters cmd.exe treats specially outside quotes
_WINDOWS_SPECIAL: Final[re.Pattern[str]] = re.compile(r'[\s"&|<>^()%!]')


class CommandLine:
    """Per-platform quoting and shell selection."""

    def __init__(self, platform: str | None = None):
        self.platform = platform or sys.platform

    @property
    def is_windows(self) -> bool:
        return self.platform.startswith("win")

    @property
    def shell(self) -> str:
        """Shell the command line is handed to."""
        return "cmd.exe /c" if self.is_windows else "/bin/sh -c"

    def quote(self, arg: str) -> str:
        """Quote one argument for the platform shell."""
        if not self.is_windows:
            return shlex.quote(arg)
        if arg and not _WINDOWS_SPECIAL.search(arg):
            return arg
        return '"' + arg.replace('"', '""') + '"'

    def join(self, args: list[str]) -> str:
        """Join arguments into one quoted command line."""
        return " ".join(self.quote(a) for a in args)

    def native(self, command: str) -> str:
        """Rewrite a leading ``./`` to the platform separator."""
        if self.is_windows and command.startswith("./"):
            return ".\\" + command[2:]
        return command

    def shell_line(self, command: str) -> str:
        """Full line handed to the shell for ``command``."""
        command = self.native(command)
        if self.is_windows:
            return f"echo off && {command}"
        return command


@dataclass(frozen=True)
class CommandSpec:
    """A command template with ``{name}`` placeholders."""

    template: str

    def placeholders(self) -> set[str]:
        """Placeholder names used by the template."""
        return set(PLACEHOLDER_PATTERN.findall(self.template))

    def resolve(self, **values: str) -> str:
        """Substitute placeholders verbatim; unknown names are left as-is."""

        def _replace(match: re.Match[str]) -> str:
            key = match.group(1)
            if key in values and values[key] is not None:
                return str(values[key])
            return match.group(0)

        return PLACEHOLDER_PATTERN.sub(_replace, self.template)


def get_step_command(
    step: StepKind,
    target: BuildTarget,
    config: BuildConfig,
    command_line: CommandLine | None = None,
) -> tuple[str, str | None]:
    """Resolve the command for one step of a target.

    Args:
        step: Step to run
        target: Build target
        config: Build configuration
        command_line: Platform quoting rules

    Returns:
        Tuple of (command, working directory)
    """
    command_line = command_line or CommandLine()
    values = {
        "tool": config.converter_path,
        "inputFile": target.path,
        "outputDir": target.output_dir or config.default_output_dir,
    }

    if step == StepKind.CLEAN:
        if not config.clean_command:
            raise ValueError("No clean command configured")
        return CommandSpec(config.clean_command).resolve(**values), target.directory
    elif step == StepKind.CONVERT:
        command = CommandSpec(config.convert_command).resolve(**values)
        if config.ninja_path:
            command += f" --ninja {command_line.quote(config.ninja_path)}"
        return command, None
    elif step == StepKind.BUILD:
        return CommandSpec(config.build_command).resolve(**values), target.directory
    else:
        raise ValueError(f"Unknown step: {step}")
