"""
Tools module.

Contains:
- Tool / build_tool: explicit tool definitions
- ToolRegistry: unique name → tool mapping
- ToolExecutor: isolated, never-raising tool execution
"""

from thinkloop.core.tools.executor import ToolExecutor, ToolRegistry
from thinkloop.core.tools.tool import Tool, ToolExecutionContext, build_tool

__all__ = ["Tool", "ToolExecutionContext", "ToolExecutor", "ToolRegistry", "build_tool"]
