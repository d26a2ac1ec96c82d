"""Utility modules for cbp-build-mcp."""

from .project import (
    WorkspaceConfig,
    configure_workspace,
    get_workspace_root,
    get_workspace_root_sync,
    parse_file_uri,
    scan_catalog,
)
from .version import VersionInfo, compare_versions, parse_tool_version, probe_tool_version

__all__ = [
    "WorkspaceConfig",
    "configure_workspace",
    "get_workspace_root",
    "get_workspace_root_sync",
    "parse_file_uri",
    "scan_catalog",
    "VersionInfo",
    "compare_versions",
    "parse_tool_version",
    "probe_tool_version",
]
