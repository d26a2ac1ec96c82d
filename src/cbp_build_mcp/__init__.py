"""cbp-build-mcp - build queue for Code::Blocks projects, served over MCP."""

__version__ = "0.1.0"
