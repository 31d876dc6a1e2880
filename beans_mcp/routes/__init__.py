"""
HTTP routes:
- health: liveness probe
- mcp: JSON-RPC endpoint for MCP clients without stdio
"""
