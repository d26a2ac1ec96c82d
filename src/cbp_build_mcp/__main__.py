"""Entry point for cbp-build-mcp."""

import argparse
import asyncio
import logging
import os
import sys

from .config import BuildConfig
from .server import create_server, get_service
from .service import BuildService
from .terminal import BufferedSurface
from .utils.project import configure_workspace, get_workspace_root_sync


def configure_logging() -> None:
    """Configure logging based on environment."""
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="CBP Build MCP Server - convert and build Code::Blocks projects via MCP"
    )
    parser.add_argument(
        "--workspace",
        type=str,
        default=None,
        help="Workspace root scanned for .cbp projects. "
        "Defaults to the current directory; MCP client roots take precedence.",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="JSON build settings file (also CBP_BUILD_CONFIG).",
    )
    parser.add_argument(
        "--run",
        action="store_true",
        default=False,
        help="Build the checked projects of the saved queue once, "
        "print the output and exit instead of serving MCP.",
    )
    return parser.parse_args(argv)


async def run_once(workspace: str, config: BuildConfig) -> int:
    """Build the saved queue with output mirrored to stdout.

    Returns:
        Process exit code
    """
    service = BuildService(workspace, config=config, surface=BufferedSurface(mirror=sys.stdout))
    service.refresh()
    summary = await service.build()
    print(summary.message)
    return 0 if summary.success else 1


async def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    configure_logging()
    logger = logging.getLogger(__name__)

    args = parse_args(argv)
    configure_workspace(explicit_workspace=args.workspace, startup_cwd=os.getcwd())
    workspace = str(get_workspace_root_sync() or os.getcwd())

    try:
        config = BuildConfig.load(args.config)
    except (OSError, ValueError) as e:
        logger.error(f"Invalid build config: {e}")
        return 2

    if args.run:
        logger.info(f"Building queue of {workspace}")
        return await run_once(workspace, config)

    logger.info(f"Starting CBP Build MCP Server (workspace: {workspace})...")

    mcp = create_server(workspace, config)

    try:
        await mcp.run_stdio_async()
    except Exception:
        logger.exception("Server error")
        raise
    finally:
        get_service().terminal.close()
        logger.info("Server stopped")
    return 0


def run() -> None:
    """Run the server."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
