"""
Tools module for agent capabilities.
"""

from .base import BaseTool, Tool, ToolParameter, ToolResult
from .file_tool import FileManager, create_file_tools
from .registry import ToolRegistry, build_tool_registry
from .shell_tool import ApprovalDecision, ShellConfig, ShellTool

__all__ = [
    "ApprovalDecision",
    "BaseTool",
    "FileManager",
    "ShellConfig",
    "ShellTool",
    "Tool",
    "ToolParameter",
    "ToolResult",
    "ToolRegistry",
    "build_tool_registry",
    "create_file_tools",
]
