"""Tests for the build service."""

import os
from unittest.mock import AsyncMock

import pytest

from cbp_build_mcp.build.queue import MemoryQueueStore
from cbp_build_mcp.build.state import RunState
from cbp_build_mcp.config import BuildConfig
from cbp_build_mcp.service import BuildService
from cbp_build_mcp.terminal import BufferedSurface
from cbp_build_mcp.utils.version import VersionInfo


@pytest.fixture
def config():
    return BuildConfig(build_command="./build.sh")


def make_service(workspace, config, fake_runner=None, version="1.2.7", store=None):
    return BuildService(
        str(workspace),
        config=config,
        surface=BufferedSurface(),
        store=store,
        runner=fake_runner,
        version_probe=AsyncMock(return_value=VersionInfo.from_string(version)),
    )


class TestBuildServiceInit:
    """Tests for BuildService initialization."""

    def test_init(self, workspace, config):
        service = make_service(workspace, config)
        assert service.workspace_root == str(workspace)
        assert service.orchestrator.state == RunState.IDLE
        assert service.terminal.name == "CBP Build Manager"
        assert len(service.queue) == 0

    def test_queue_persisted_in_workspace(self, workspace, config):
        service = make_service(workspace, config)
        service.refresh()
        service.queue.add(service.queue.available()[:1])

        assert os.path.isfile(os.path.join(str(workspace), ".cbp-build", "queue.json"))
        reopened = make_service(workspace, config)
        assert reopened.queue.paths == service.queue.paths


class TestBuildServiceRefresh:
    """Tests for catalog refresh."""

    def test_refresh_lists_projects(self, workspace, config):
        service = make_service(workspace, config)

        data = service.refresh()

        assert data["projectCount"] == 3
        assert data["removed"] == []
        assert len(data["available"]) == 3
        assert data["queue"] == []

    def test_refresh_prunes_deleted_project(self, workspace, config):
        service = make_service(workspace, config, store=MemoryQueueStore())
        service.refresh()
        service.queue.add(service.queue.available())
        tool = os.path.join(str(workspace), "tools", "Tool.cbp")
        os.remove(tool)

        data = service.refresh()

        assert data["removed"] == [tool]
        assert tool not in service.queue


class TestBuildServiceBuild:
    """Tests for build execution through the service."""

    @pytest.mark.asyncio
    async def test_build_scans_first(self, workspace, config, fake_runner):
        """Queued projects deleted before the first scan are not built."""
        store = MemoryQueueStore()
        service = make_service(workspace, config, fake_runner, store=store)
        missing = os.path.join(str(workspace), "gone", "Gone.cbp")
        service.queue.add([missing, os.path.join(str(workspace), "app", "App.cbp")])

        summary = await service.build()

        assert [t.name for t in summary.targets] == ["App"]
        assert missing not in service.queue

    @pytest.mark.asyncio
    async def test_output_readable(self, workspace, config, fake_runner):
        service = make_service(workspace, config, fake_runner)
        service.refresh()
        service.queue.add(service.queue.available())

        await service.build()

        output = service.read_output()
        assert "=== Build started ===" in output
        assert "Selected targets: 3" in output
        assert service.read_output(tail_lines=1).startswith("=== Build finished")

    @pytest.mark.asyncio
    async def test_status(self, workspace, config, fake_runner):
        service = make_service(workspace, config, fake_runner, version="1.0.0")
        service.refresh()
        service.queue.add(service.queue.available()[:2])
        service.queue.set_checked(service.queue.paths[0], False)

        await service.build()
        status = service.status()

        assert status["state"] == "idle"
        assert status["queued"] == 2
        assert status["checked"] == 1
        assert status["lastRun"]["gated"] is True
        fake_runner.run.assert_not_called()


class TestBuildServiceWorkspace:
    """Tests for switching workspaces."""

    def test_switch_workspace(self, workspace, config, tmp_path_factory):
        other = tmp_path_factory.mktemp("other")
        service = make_service(workspace, config)

        assert service.set_workspace_root(str(other))
        assert service.workspace_root == str(other)
        assert not service.set_workspace_root(str(other))

    def test_switch_while_running(self, workspace, config):
        service = make_service(workspace, config)
        service.orchestrator._set_state(RunState.BUILDING)

        with pytest.raises(RuntimeError):
            service.set_workspace_root(str(workspace / "app"))
