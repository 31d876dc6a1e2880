from .tools import TOOL_SPECS, ToolRegistry, tool_definitions

__all__ = ["TOOL_SPECS", "ToolRegistry", "tool_definitions"]
