"""Beans MCP server: exposes a Beans workspace to MCP clients via the beans CLI."""

__version__ = "0.1.0"
