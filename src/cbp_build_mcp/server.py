"""MCP Server for the CBP build queue."""

from __future__ import annotations

import json
import logging
import os

from mcp.server.fastmcp import Context, FastMCP
from pydantic import AnyUrl

from .config import BuildConfig
from .service import BuildService
from .terminal import BufferedSurface
from .utils.project import get_workspace_root

logger = logging.getLogger(__name__)

# Global build service (single workspace at a time)
_service: BuildService | None = None
_initial_workspace: str | None = None
_initial_config: BuildConfig | None = None


def get_service() -> BuildService:
    """Get or create the build service."""
    global _service
    if _service is None:
        _service = BuildService(
            _initial_workspace or os.getcwd(),
            config=_initial_config,
        )
    return _service


async def resolve_workspace(ctx: Context, service: BuildService) -> None:
    """Follow the client's workspace root, if it provides one."""
    root = await get_workspace_root(ctx)
    if root and not service.orchestrator.is_running:
        service.set_workspace_root(str(root))


def create_server(
    workspace: str | None = None,
    config: BuildConfig | None = None,
    surface: BufferedSurface | None = None,
) -> FastMCP:
    """Create and configure the MCP server.

    Args:
        workspace: Initial workspace root scanned for ``*.cbp`` projects.
            Can be updated from MCP client roots.
        config: Build configuration (loaded from file/environment if omitted)
        surface: Terminal surface (in-memory if omitted)
    """
    global _initial_workspace, _initial_config, _service
    _initial_workspace = workspace
    _initial_config = config
    _service = BuildService(workspace or os.getcwd(), config=config, surface=surface)
    mcp = FastMCP("cbp-build-mcp")
    service = get_service()

    async def notify_queue_changed(ctx: Context) -> None:
        """Notify client that queue://state has changed."""
        try:
            if ctx.session:
                await ctx.session.send_resource_updated(AnyUrl("queue://state"))
        except Exception:
            pass  # Notification failure shouldn't break the tool

    async def notify_output_changed(ctx: Context) -> None:
        """Notify client that build://output has changed."""
        try:
            if ctx.session:
                await ctx.session.send_resource_updated(AnyUrl("build://output"))
        except Exception:
            pass

    # ============== Catalog & Queue Tools ==============

    @mcp.tool()
    async def refresh_projects(ctx: Context) -> dict:
        """
        Rescan the workspace for .cbp projects.

        Queued projects whose files no longer exist are removed from the queue.
        Returns the queue and the projects that can still be added.
        """
        try:
            await resolve_workspace(ctx, service)
            data = service.refresh()
            await notify_queue_changed(ctx)
            return {"success": True, "data": data}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def list_build_queue() -> dict:
        """List queued projects in build order with their checked state."""
        try:
            return {"success": True, "data": service.queue.to_dict()}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def list_available_projects() -> dict:
        """List detected projects that are not in the build queue yet."""
        try:
            return {"success": True, "data": service.queue.available()}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def add_to_build_queue(ctx: Context, paths: list[str]) -> dict:
        """
        Append projects to the end of the build queue.

        Projects already queued are ignored. New entries start checked.

        Args:
            paths: Absolute paths of .cbp files (see list_available_projects)
        """
        try:
            added = service.queue.add(paths)
            if added:
                await notify_queue_changed(ctx)
            return {"success": True, "data": {"added": added, **service.queue.to_dict()}}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def remove_from_build_queue(ctx: Context, paths: list[str]) -> dict:
        """Remove projects from the build queue."""
        try:
            removed = service.queue.remove(paths)
            await notify_queue_changed(ctx)
            return {"success": True, "data": {"removed": removed, **service.queue.to_dict()}}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def move_in_build_queue(ctx: Context, paths: list[str], target: str) -> dict:
        """
        Reorder the build queue.

        The given projects are moved as one block to the position of `target`,
        ahead of it, keeping the order they were given in.

        Args:
            paths: Queued projects to move
            target: Queued project whose position the block takes
        """
        try:
            moved = service.queue.move(paths, target)
            if not moved:
                return {"success": False, "error": f"Target not in build queue: {target}"}
            await notify_queue_changed(ctx)
            return {"success": True, "data": service.queue.to_dict()}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def set_project_checked(ctx: Context, path: str, checked: bool) -> dict:
        """Include (checked) or skip (unchecked) a queued project in builds."""
        try:
            service.queue.set_checked(path, checked)
            await notify_queue_changed(ctx)
            return {"success": True, "data": service.queue.to_dict()}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def set_output_dir(ctx: Context, path: str, output_dir: str | None = None) -> dict:
        """
        Set where the compile database of a queued project is written.

        Substituted for {outputDir} in the convert command. Omit output_dir to
        go back to the configured default.
        """
        try:
            service.queue.set_output_dir(path, output_dir)
            await notify_queue_changed(ctx)
            return {"success": True, "data": service.queue.to_dict()}
        except Exception as e:
            return {"success": False, "error": str(e)}

    # ============== Build Tools ==============

    @mcp.tool()
    async def build_selected(ctx: Context) -> dict:
        """
        Build every checked project in queue order.

        The converter version is checked first; if it is too old or cannot be
        determined nothing is built. Each project then runs its convert and
        build steps. A failing project does not stop the ones after it.

        The full log is available through get_build_output.
        """
        try:
            await resolve_workspace(ctx, service)
            summary = await service.build()
            await notify_output_changed(ctx)
            return {"success": summary.success, "data": summary.to_dict()}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def get_build_output(tail_lines: int | None = 200) -> dict:
        """
        Get the build log as plain text.

        Args:
            tail_lines: Only return the last N lines (None for everything)
        """
        try:
            return {"success": True, "data": service.read_output(tail_lines)}
        except Exception as e:
            return {"success": False, "error": str(e)}

    @mcp.tool()
    async def get_build_status() -> dict:
        """Get the orchestrator state and the result of the last build."""
        try:
            return {"success": True, "data": service.status()}
        except Exception as e:
            return {"success": False, "error": str(e)}

    # ============== Resources ==============

    @mcp.resource("queue://state", mime_type="application/json")
    async def queue_state_resource() -> str:
        """Build queue and available projects (JSON).

        Updates when: projects are added, removed, reordered or (un)checked.
        """
        return json.dumps(service.queue.to_dict(), indent=2)

    @mcp.resource("build://output", mime_type="text/plain")
    async def build_output_resource() -> str:
        """Build log of the current or last run (plain text)."""
        return service.read_output()

    logger.info("CBP Build MCP Server initialized")
    return mcp
