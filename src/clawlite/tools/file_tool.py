"""
File Operations Tool - Read, write, and edit files inside allowed directories.
"""

import logging
from pathlib import Path
from typing import Optional

from .base import Tool, ToolParameter, ToolResult

logger = logging.getLogger(__name__)

MAX_READ_CHARS = 8000


class FileManager:
    """Manages file operations within a set of allowed root directories."""

    def __init__(self, allowed_paths: list[str], base_dir: Optional[str] = None):
        self.base_dir = Path(base_dir or ".").expanduser().resolve()
        self.allowed_roots = [self._normalize_path(p).resolve() for p in allowed_paths]

    def _normalize_path(self, path: str) -> Path:
        """Resolve ``path`` relative to the base directory."""
        p = Path(path).expanduser()

        if not p.is_absolute():
            p = self.base_dir / p

        return p

    def is_allowed(self, path: Path) -> bool:
        """True when ``path`` is an allowed root or lies beneath one.

        Compared by path segments, so ``/home/userX`` is not inside
        ``/home/user``.
        """
        resolved = path.resolve()
        return any(
            resolved == root or root in resolved.parents
            for root in self.allowed_roots
        )

    def _checked_path(self, path: str) -> Path:
        file_path = self._normalize_path(path)
        if not self.is_allowed(file_path):
            logger.warning(f"Path outside allowed directories: {path}")
            raise PermissionError(f"path {path} is outside allowed directories")
        return file_path

    def read_file(self, path: str, max_chars: int = MAX_READ_CHARS) -> str:
        """Read a file's contents, truncated to ``max_chars``."""
        file_path = self._checked_path(path)

        if not file_path.exists():
            raise FileNotFoundError(f"file not found: {path}")

        if not file_path.is_file():
            raise IsADirectoryError(f"path is a directory: {path}")

        content = file_path.read_text(encoding="utf-8")

        if len(content) > max_chars:
            return content[:max_chars] + f"\n... (truncated, {len(content)} total chars)"

        return content

    def write_file(self, path: str, content: str) -> str:
        """Write content to a file, creating parent directories."""
        file_path = self._checked_path(path)

        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")

        return f"Written {len(content)} chars to {path}"

    def edit_file(self, path: str, old_string: str, new_string: str) -> str:
        """Replace the single occurrence of ``old_string`` in a file."""
        file_path = self._checked_path(path)

        if not file_path.is_file():
            raise FileNotFoundError(f"file not found: {path}")

        content = file_path.read_text(encoding="utf-8")

        occurrences = content.count(old_string)
        if occurrences == 0:
            raise ValueError("old_string not found in file")
        if occurrences > 1:
            raise ValueError(
                f"old_string found {occurrences} times, must be unique. Add more context."
            )

        file_path.write_text(content.replace(old_string, new_string, 1), encoding="utf-8")
        return f"Edited {path} successfully"


def create_file_tools(manager: FileManager) -> list[Tool]:
    """Create file operation tools bound to ``manager``."""

    async def read_file_handler(path: str = "") -> ToolResult:
        """Read a file."""
        if not path:
            return ToolResult(success=False, error="no path provided")
        try:
            return ToolResult(success=True, output=manager.read_file(path))
        except (OSError, ValueError) as e:
            return ToolResult(success=False, error=str(e))

    async def write_file_handler(path: str = "", content: Optional[str] = None) -> ToolResult:
        """Write to a file."""
        if not path or content is None:
            return ToolResult(success=False, error="path and content are required")
        try:
            return ToolResult(success=True, output=manager.write_file(path, content))
        except (OSError, ValueError) as e:
            return ToolResult(success=False, error=str(e))

    async def edit_file_handler(
        path: str = "",
        old_string: str = "",
        new_string: Optional[str] = None,
    ) -> ToolResult:
        """Replace one exact string in a file."""
        if not path or not old_string or new_string is None:
            return ToolResult(
                success=False,
                error="path, old_string, and new_string are required",
            )
        try:
            return ToolResult(success=True, output=manager.edit_file(path, old_string, new_string))
        except (OSError, ValueError) as e:
            return ToolResult(success=False, error=str(e))

    read_file = Tool(
        name="read_file",
        description="Read the contents of a file. Returns the text content.",
        parameters=[
            ToolParameter(
                name="path",
                param_type="string",
                description="Path to the file to read",
                required=True,
            ),
        ],
        handler=read_file_handler,
    )

    write_file = Tool(
        name="write_file",
        description="Write content to a file. Creates parent directories if needed.",
        parameters=[
            ToolParameter(
                name="path",
                param_type="string",
                description="Path to write the file to",
                required=True,
            ),
            ToolParameter(
                name="content",
                param_type="string",
                description="The content to write",
                required=True,
            ),
        ],
        handler=write_file_handler,
    )

    edit_file = Tool(
        name="edit_file",
        description="Replace a specific string in a file. The old_string must match exactly.",
        parameters=[
            ToolParameter(
                name="path",
                param_type="string",
                description="Path to the file to edit",
                required=True,
            ),
            ToolParameter(
                name="old_string",
                param_type="string",
                description="The exact text to find and replace",
                required=True,
            ),
            ToolParameter(
                name="new_string",
                param_type="string",
                description="The replacement text",
                required=True,
            ),
        ],
        handler=edit_file_handler,
    )

    return [read_file, write_file, edit_file]
