"""FastMCP server setup and tool registration."""
from fastmcp import FastMCP

from .tools import changes, diagnostics, promotion

mcp = FastMCP("tollgate")
_registered = False


def create_server():
    """Create and configure the MCP server."""
    global _registered
    if _registered:
        return mcp

    # Modification tools
    changes.register(mcp)

    # Promotion tools
    promotion.register(mcp)

    # Diagnostics
    diagnostics.register(mcp)

    _registered = True
    return mcp


def run_server():
    """Run the MCP server."""
    server = create_server()
    server.run(show_banner=False)
