"""MCP tool modules. Each exposes register(mcp)."""
