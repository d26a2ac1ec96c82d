"""Tests for the MCP server tools and resources."""

from __future__ import annotations

import json
import os
from unittest.mock import patch

import pytest

from cbp_build_mcp.config import BuildConfig
from cbp_build_mcp.server import create_server, get_service
from cbp_build_mcp.terminal import BufferedSurface
from cbp_build_mcp.utils.project import configure_workspace

EXPECTED_TOOLS = {
    "refresh_projects",
    "list_build_queue",
    "list_available_projects",
    "add_to_build_queue",
    "remove_from_build_queue",
    "move_in_build_queue",
    "set_project_checked",
    "set_output_dir",
    "build_selected",
    "get_build_output",
    "get_build_status",
}


async def call(mcp, name: str, **arguments) -> dict:
    """Call a tool and decode its JSON result."""
    result = await mcp.call_tool(name, arguments)
    if isinstance(result, tuple):
        result = result[0]
    return json.loads(result[0].text)


@pytest.fixture
def mcp(workspace):
    configure_workspace()
    return create_server(str(workspace), BuildConfig(), surface=BufferedSurface())


def project(workspace, rel):
    return os.path.join(str(workspace), rel)


class TestServerRegistration:
    """Tests for tool and resource registration."""

    @pytest.mark.asyncio
    async def test_tools_registered(self, mcp):
        tools = await mcp.list_tools()
        assert EXPECTED_TOOLS <= {t.name for t in tools}

    @pytest.mark.asyncio
    async def test_resources_registered(self, mcp):
        resources = await mcp.list_resources()
        uris = {str(r.uri).rstrip("/"): r.mimeType for r in resources}
        assert uris["queue://state"] == "application/json"
        assert uris["build://output"] == "text/plain"

    def test_service_uses_workspace(self, mcp, workspace):
        assert get_service().workspace_root == str(workspace)


class TestQueueTools:
    """Tests for queue manipulation tools."""

    @pytest.mark.asyncio
    async def test_refresh_and_add(self, mcp, workspace):
        refreshed = await call(mcp, "refresh_projects")
        assert refreshed["success"]
        assert refreshed["data"]["projectCount"] == 3

        added = await call(mcp, "add_to_build_queue", paths=[project(workspace, "app/App.cbp")])
        assert added["success"]
        assert added["data"]["added"] == 1
        assert [item["name"] for item in added["data"]["queue"]] == ["App"]

        available = await call(mcp, "list_available_projects")
        assert project(workspace, "app/App.cbp") not in available["data"]
        assert len(available["data"]) == 2

    @pytest.mark.asyncio
    async def test_move_and_check(self, mcp, workspace):
        await call(mcp, "refresh_projects")
        paths = [
            project(workspace, "app/App.cbp"),
            project(workspace, "lib/core/Core.cbp"),
            project(workspace, "tools/Tool.cbp"),
        ]
        await call(mcp, "add_to_build_queue", paths=paths)

        moved = await call(mcp, "move_in_build_queue", paths=[paths[2]], target=paths[0])
        assert [item["name"] for item in moved["data"]["queue"]] == ["Tool", "App", "Core"]

        checked = await call(mcp, "set_project_checked", path=paths[1], checked=False)
        states = {item["name"]: item["checked"] for item in checked["data"]["queue"]}
        assert states == {"Tool": True, "App": True, "Core": False}

    @pytest.mark.asyncio
    async def test_move_to_unknown_target(self, mcp, workspace):
        result = await call(
            mcp, "move_in_build_queue", paths=[], target=project(workspace, "nope/Nope.cbp")
        )
        assert not result["success"]
        assert "not in build queue" in result["error"]

    @pytest.mark.asyncio
    async def test_set_checked_unknown(self, mcp, workspace):
        result = await call(
            mcp, "set_project_checked", path=project(workspace, "app/App.cbp"), checked=True
        )
        assert not result["success"]
        assert "Not in build queue" in result["error"]

    @pytest.mark.asyncio
    async def test_remove_and_output_dir(self, mcp, workspace):
        await call(mcp, "refresh_projects")
        app = project(workspace, "app/App.cbp")
        await call(mcp, "add_to_build_queue", paths=[app])

        result = await call(mcp, "set_output_dir", path=app, output_dir="db")
        assert result["data"]["queue"][0]["outputDir"] == "db"

        removed = await call(mcp, "remove_from_build_queue", paths=[app])
        assert removed["data"]["removed"] == 1
        assert removed["data"]["queue"] == []

    @pytest.mark.asyncio
    async def test_queue_resource(self, mcp, workspace):
        await call(mcp, "refresh_projects")
        await call(mcp, "add_to_build_queue", paths=[project(workspace, "tools/Tool.cbp")])

        contents = list(await mcp.read_resource("queue://state"))
        data = json.loads(contents[0].content)

        assert [item["name"] for item in data["queue"]] == ["Tool"]


class TestBuildTools:
    """Tests for build tools."""

    @pytest.mark.asyncio
    async def test_build_gated_when_converter_missing(self, mcp, workspace):
        await call(mcp, "refresh_projects")
        await call(mcp, "add_to_build_queue", paths=[project(workspace, "app/App.cbp")])

        with patch("asyncio.create_subprocess_exec", side_effect=FileNotFoundError("cbp2clang")), \
                patch("asyncio.create_subprocess_shell") as mock_shell:
            result = await call(mcp, "build_selected")

        mock_shell.assert_not_called()
        assert not result["success"]
        assert result["data"]["gated"] is True
        assert result["data"]["errors"][0]["kind"] == "version_unavailable"

        output = await call(mcp, "get_build_output", tail_lines=None)
        assert "=== Build started ===" in output["data"]

        status = await call(mcp, "get_build_status")
        assert status["data"]["lastRun"]["gated"] is True

    @pytest.mark.asyncio
    async def test_build_nothing_selected(self, mcp):
        result = await call(mcp, "build_selected")
        assert result["success"]
        assert result["data"]["message"] == "No targets selected"

    @pytest.mark.asyncio
    async def test_output_resource(self, mcp):
        await call(mcp, "build_selected")
        contents = list(await mcp.read_resource("build://output"))
        assert "Selected targets: 0" in contents[0].content

