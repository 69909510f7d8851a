"""Service layer: MCP server."""
