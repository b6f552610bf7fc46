"""MCP server exposing the modification and promotion pipeline as tools."""
from .server import create_server, run_server

__all__ = ["create_server", "run_server"]
