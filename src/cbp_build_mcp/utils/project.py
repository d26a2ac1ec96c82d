"""Workspace root detection and project catalog scanning.

The workspace root comes from, in order:
1. MCP Roots from the client (via Context.list_roots())
2. Environment variable CBP_BUILD_WORKSPACE
3. Explicit --workspace path
4. Startup CWD
"""

from __future__ import annotations

import fnmatch
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlparse

if TYPE_CHECKING:
    from mcp.server.fastmcp import Context

logger = logging.getLogger(__name__)

# Directories never descended into while scanning
SKIP_DIRS: frozenset[str] = frozenset({"node_modules", "__pycache__"})


@dataclass
class WorkspaceConfig:
    """Settings that affect how the workspace root is determined."""

    startup_cwd: Path | None = None
    explicit_workspace: Path | None = None
    env_var_names: tuple[str, ...] = field(default_factory=lambda: ("CBP_BUILD_WORKSPACE",))


_config: WorkspaceConfig = WorkspaceConfig()


def configure_workspace(
    *,
    explicit_workspace: str | Path | None = None,
    startup_cwd: str | Path | None = None,
) -> None:
    """Configure workspace detection. Called once at startup."""
    global _config
    _config = WorkspaceConfig(
        explicit_workspace=Path(explicit_workspace) if explicit_workspace else None,
        startup_cwd=Path(startup_cwd) if startup_cwd else None,
    )
    logger.debug(f"Workspace configured: explicit={explicit_workspace}, startup_cwd={startup_cwd}")


def get_config() -> WorkspaceConfig:
    """Get current workspace configuration."""
    return _config


def parse_file_uri(uri: str) -> Path | None:
    """Parse a file:// URI to a Path.

    - Unix: file:///home/user/project → /home/user/project
    - Windows: file:///C:/Users/project → C:\\Users\\project
    - Windows UNC: file://server/share → \\\\server\\share

    Returns:
        Path object if parsing succeeds, None otherwise
    """
    try:
        parsed = urlparse(str(uri))
        if parsed.scheme != "file":
            logger.warning(f"Not a file URI: {uri}")
            return None

        path_str = unquote(parsed.path)
        if sys.platform == "win32":
            # "/C:/path" → "C:/path"
            if path_str.startswith("/") and len(path_str) > 2 and path_str[2] == ":":
                path_str = path_str[1:]
            if parsed.netloc:
                path_str = f"\\\\{parsed.netloc}{path_str}"

        path = Path(path_str)
        if not path.is_absolute():
            logger.warning(f"Parsed path is not absolute: {path}")
            return None
        return path

    except Exception as e:
        logger.warning(f"Failed to parse file URI '{uri}': {e}")
        return None


def get_workspace_root_sync() -> Path | None:
    """Workspace root without MCP roots (environment, --workspace, CWD)."""
    config = get_config()

    for env_var in config.env_var_names:
        env_value = os.environ.get(env_var)
        if env_value:
            path = Path(env_value)
            if path.is_dir():
                return path
            logger.warning(f"{env_var}={env_value} - path does not exist or is not a directory")

    if config.explicit_workspace:
        if config.explicit_workspace.is_dir():
            return config.explicit_workspace
        logger.warning(f"Explicit workspace not valid: {config.explicit_workspace}")

    return config.startup_cwd


async def get_workspace_root(ctx: Context | None = None) -> Path | None:
    """Determine the workspace root, preferring client-provided roots."""
    if ctx is not None:
        try:
            roots = await ctx.list_roots()
            if roots:
                path = parse_file_uri(str(roots[0].uri))
                if path and path.is_dir():
                    logger.info(f"Using workspace root from MCP client: {path}")
                    return path
                logger.warning(f"MCP root path invalid or not accessible: {path}")
        except Exception as e:
            # Client may not support roots
            logger.info(f"Could not get roots from client: {e}")

    return get_workspace_root_sync()


def scan_catalog(root: str | Path, pattern: str = "*.cbp") -> list[str]:
    """Find every project descriptor under ``root``.

    Hidden directories and dependency caches are skipped.

    Args:
        root: Workspace root
        pattern: File name glob

    Returns:
        Sorted absolute paths
    """
    root = os.path.abspath(str(root))
    found: list[str] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = [d for d in dirnames if not d.startswith(".") and d not in SKIP_DIRS]
        for name in filenames:
            if fnmatch.fnmatch(name, pattern):
                found.append(os.path.normpath(os.path.join(dirpath, name)))
    found.sort()
    logger.debug(f"Catalog scan of {root}: {len(found)} projects")
    return found
