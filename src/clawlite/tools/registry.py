"""
Tool registry for managing available tools.
"""

from typing import Any, Union

import structlog

from ..config import Settings
from ..llm.base import ToolDefinition
from ..memory.approvals import ApprovalStore
from .base import BaseTool, Tool, ToolResult
from .file_tool import FileManager, create_file_tools
from .shell_tool import ConfirmCallback, ShellConfig, ShellTool

logger = structlog.get_logger()

AnyTool = Union[BaseTool, Tool]


class ToolRegistry:
    """Registry for managing tools.

    A plain directory: lookups never fail loudly, and the caller decides
    what a missing tool means.
    """

    def __init__(self):
        self._tools: dict[str, AnyTool] = {}

    def register(self, tool: AnyTool) -> None:
        """Register a tool, replacing any tool with the same name."""
        replaced = tool.name in self._tools
        self._tools[tool.name] = tool
        logger.info("Tool replaced" if replaced else "Tool registered", tool_name=tool.name)

    def unregister(self, name: str) -> None:
        """Unregister a tool."""
        if name in self._tools:
            del self._tools[name]
            logger.info("Tool unregistered", tool_name=name)

    def get(self, name: str) -> AnyTool | None:
        """Get a tool by name."""
        return self._tools.get(name)

    def list_tools(self) -> list[str]:
        """List all registered tool names."""
        return list(self._tools.keys())

    def get_definitions(self, names: list[str] | None = None) -> list[ToolDefinition]:
        """Get tool definitions for the LLM.

        Pass specific names to send only those schemas (every schema costs
        context tokens). Unknown names are skipped.
        """
        if names is None:
            tools = list(self._tools.values())
        else:
            tools = [self._tools[n] for n in names if n in self._tools]
        return [tool.to_definition() for tool in tools]

    async def execute(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Execute a tool by name."""
        tool = self.get(name)
        if tool is None:
            return ToolResult(
                success=False,
                output="",
                error=f'unknown tool "{name}"',
            )

        try:
            logger.info("Executing tool", tool_name=name, arguments=arguments)
            result = await tool.execute(**arguments)
            logger.info("Tool executed", tool_name=name, success=result.success)
            return result
        except Exception as e:
            logger.error("Tool execution error", tool_name=name, error=str(e))
            return ToolResult(
                success=False,
                output="",
                error=str(e),
            )


def build_tool_registry(
    settings: Settings,
    approvals: ApprovalStore | None = None,
    confirm: ConfirmCallback | None = None,
) -> ToolRegistry:
    """Create a registry holding the tools enabled in ``settings``."""
    registry = ToolRegistry()

    shell = settings.tools.shell
    if shell.enabled:
        registry.register(ShellTool(
            ShellConfig(
                working_dir=shell.working_dir,
                timeout_seconds=shell.timeout_seconds,
                require_approval=settings.safety.require_approval,
                blocked_patterns=list(settings.safety.blocked_patterns),
            ),
            approvals=approvals,
            confirm=confirm,
        ))

    files = settings.tools.files
    if files.enabled:
        manager = FileManager(files.allowed_paths)
        for tool in create_file_tools(manager):
            registry.register(tool)

    return registry
