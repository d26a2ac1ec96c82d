"""Build configuration.

Sources, lowest priority first:
1. Defaults below
2. JSON settings file (``--config`` or ``CBP_BUILD_CONFIG``); keys may be
   snake_case or camelCase
3. Environment variables ``CBP_BUILD_<FIELD>``, e.g. ``CBP_BUILD_NINJA_PATH``

Every string is an opaque value substituted verbatim into commands.
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Any

logger = logging.getLogger(__name__)

ENV_PREFIX = "CBP_BUILD_"
CONFIG_FILE_ENV = "CBP_BUILD_CONFIG"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})


def default_build_command() -> str:
    """Per-project build script for the current platform."""
    return "./build.bat" if sys.platform == "win32" else "./build.sh"


def _snake_case(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"Not a boolean: {value!r}")


@dataclass
class BuildConfig:
    """Tool paths, command templates and feature flags."""

    converter_path: str = "cbp2clang"
    """Converter executable, substituted for ``{tool}``.

    Must be a single executable path or name: the version check starts it
    without a shell, so a value with arguments (``python cbp2clang.py``) or a
    Windows ``.cmd`` shim gates the run even though the convert template
    would accept it.
    """

    convert_command: str = "{tool} {inputFile} {outputDir} -l ld"
    """Descriptor → compile database conversion template."""

    build_command: str = field(default_factory=default_build_command)
    """Build script run in each target's own directory."""

    clean_command: str = ""
    """Optional clean step, run before conversion when enabled."""

    ninja_path: str = ""
    """Alternate build tool; passed to the converter as ``--ninja``."""

    default_output_dir: str = "."
    """``{outputDir}`` for targets without their own."""

    minimum_tool_version: str = "1.2.7"
    version_flag: str = "--version"

    clean_before_build: bool = False
    skip_convert: bool = False
    """Skip the conversion step (build only)."""

    project_glob: str = "*.cbp"
    terminal_name: str = "CBP Build Manager"
    state_file: str | None = None
    """Queue state file; defaults to ``<workspace>/.cbp-build/queue.json``."""

    def state_path(self, workspace_root: str) -> str:
        """Resolve the queue state file for a workspace."""
        if self.state_file:
            return os.path.abspath(os.path.join(workspace_root, self.state_file))
        return os.path.join(os.path.abspath(workspace_root), ".cbp-build", "queue.json")

    def merged(self, data: Mapping[str, Any]) -> BuildConfig:
        """Copy with values from ``data`` applied; unknown keys are ignored."""
        known = {f.name: f for f in fields(self)}
        updates: dict[str, Any] = {}
        for key, value in data.items():
            name = key if key in known else _snake_case(key)
            if name not in known:
                logger.warning(f"Ignoring unknown config key: {key}")
                continue
            if isinstance(getattr(self, name), bool):
                updates[name] = _parse_bool(value)
            elif value is None:
                updates[name] = None if name == "state_file" else ""
            else:
                updates[name] = str(value)
        return replace(self, **updates)

    @classmethod
    def from_file(cls, path: str) -> BuildConfig:
        """Load a JSON settings file on top of the defaults."""
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a JSON object: {path}")
        return cls().merged(data)

    @classmethod
    def load(
        cls,
        config_file: str | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> BuildConfig:
        """Build configuration from file and environment.

        Args:
            config_file: JSON settings file (falls back to ``CBP_BUILD_CONFIG``)
            environ: Environment mapping (defaults to ``os.environ``)

        Returns:
            Resolved configuration
        """
        environ = os.environ if environ is None else environ
        config_file = config_file or environ.get(CONFIG_FILE_ENV)

        config = cls.from_file(config_file) if config_file else cls()
        if config_file:
            logger.info(f"Loaded build config from {config_file}")

        overrides = {}
        for f in fields(cls):
            env_name = f"{ENV_PREFIX}{f.name.upper()}"
            if env_name in environ:
                overrides[f.name] = environ[env_name]
        if overrides:
            logger.debug(f"Config overrides from environment: {sorted(overrides)}")
            config = config.merged(overrides)
        return config

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {f.name: getattr(self, f.name) for f in fields(self)}
