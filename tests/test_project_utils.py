"""Tests for workspace detection and catalog scanning."""

import os
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from cbp_build_mcp.utils.project import (
    configure_workspace,
    get_workspace_root,
    get_workspace_root_sync,
    parse_file_uri,
    scan_catalog,
)


@pytest.fixture(autouse=True)
def reset_workspace_config(monkeypatch):
    monkeypatch.delenv("CBP_BUILD_WORKSPACE", raising=False)
    configure_workspace()
    yield
    configure_workspace()


class TestScanCatalog:
    """Tests for finding .cbp files."""

    def test_finds_projects_sorted(self, workspace):
        found = scan_catalog(workspace)
        assert found == sorted(
            [
                os.path.join(str(workspace), "app", "App.cbp"),
                os.path.join(str(workspace), "lib", "core", "Core.cbp"),
                os.path.join(str(workspace), "tools", "Tool.cbp"),
            ]
        )

    def test_hidden_and_dependency_dirs_skipped(self, workspace):
        (workspace / "node_modules" / "pkg").mkdir(parents=True)
        (workspace / "node_modules" / "pkg" / "Dep.cbp").write_text("")
        found = scan_catalog(workspace)
        assert not any("Hidden" in p or "Dep" in p for p in found)

    def test_custom_pattern(self, workspace):
        (workspace / "app" / "App.workspace").write_text("")
        assert scan_catalog(workspace, "*.workspace") == [
            os.path.join(str(workspace), "app", "App.workspace")
        ]

    def test_empty_directory(self, tmp_path):
        assert scan_catalog(tmp_path) == []


class TestParseFileUri:
    """Tests for parse_file_uri."""

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX path")
    def test_unix_path(self):
        assert parse_file_uri("file:///home/user/fw") == Path("/home/user/fw")

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX path")
    def test_encoded_characters(self):
        assert parse_file_uri("file:///home/user/my%20fw") == Path("/home/user/my fw")

    def test_non_file_scheme(self):
        assert parse_file_uri("https://example.com/x") is None


class TestWorkspaceRoot:
    """Tests for workspace root resolution."""

    def test_startup_cwd_fallback(self, tmp_path):
        configure_workspace(startup_cwd=tmp_path)
        assert get_workspace_root_sync() == tmp_path

    def test_explicit_workspace(self, tmp_path):
        explicit = tmp_path / "ws"
        explicit.mkdir()
        configure_workspace(explicit_workspace=explicit, startup_cwd=tmp_path)
        assert get_workspace_root_sync() == explicit

    def test_env_var_wins(self, tmp_path, monkeypatch):
        env_ws = tmp_path / "env"
        env_ws.mkdir()
        monkeypatch.setenv("CBP_BUILD_WORKSPACE", str(env_ws))
        configure_workspace(explicit_workspace=tmp_path, startup_cwd=tmp_path)
        assert get_workspace_root_sync() == env_ws

    def test_invalid_explicit_falls_back(self, tmp_path):
        configure_workspace(explicit_workspace=tmp_path / "missing", startup_cwd=tmp_path)
        assert get_workspace_root_sync() == tmp_path

    @pytest.mark.asyncio
    async def test_mcp_root_preferred(self, tmp_path):
        root = MagicMock()
        root.uri = tmp_path.as_uri()
        ctx = MagicMock()
        ctx.list_roots = AsyncMock(return_value=[root])
        configure_workspace(startup_cwd="/")

        assert await get_workspace_root(ctx) == tmp_path

    @pytest.mark.asyncio
    async def test_roots_unsupported(self, tmp_path):
        ctx = MagicMock()
        ctx.list_roots = AsyncMock(side_effect=Exception("Method not found"))
        configure_workspace(startup_cwd=tmp_path)

        assert await get_workspace_root(ctx) == tmp_path
