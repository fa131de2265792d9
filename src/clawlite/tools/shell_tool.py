"""
Shell Command Tool - Controlled execution of shell commands.

Dangerous patterns are refused outright. Commands outside the read-only
safe list need the user's approval, either remembered from an earlier
"always" answer or asked for interactively.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable

from ..memory.approvals import ApprovalStore
from .base import BaseTool, ToolResult

logger = logging.getLogger(__name__)


class ApprovalDecision(str, Enum):
    """User's answer to a command approval prompt."""
    DENY = "deny"
    ONCE = "once"
    ALWAYS = "always"


ConfirmCallback = Callable[[str], Awaitable[ApprovalDecision]]


@dataclass
class ShellConfig:
    """Configuration for shell command execution."""

    working_dir: str = "."
    timeout_seconds: float = 30
    require_approval: bool = True
    max_output_chars: int = 4000
    max_error_chars: int = 2000

    blocked_patterns: list[str] = field(default_factory=lambda: [
        r"rm\s+-rf\s+/",
        r"mkfs",
        r">\s*/dev/sd",
        r"dd\s+if=",
        r":\(\)\{\s*:\|\s*:&\s*\}\s*;",
        r"\$\(.*\)",
        r"`[^`]*`",
        r"sudo\s+rm",
        r">\s*/etc/",
        r"chmod\s+777",
    ])

    safe_commands: list[str] = field(default_factory=lambda: [
        "ls", "pwd", "echo", "cat", "head", "tail", "grep", "find",
        "wc", "sort", "uniq", "cut", "tr", "date", "whoami", "uname",
        "df", "du",
        "git status", "git log", "git diff", "git branch",
        "npm list", "node --version", "python --version",
    ])


def _truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + f"\n... (truncated, {len(text) - max_chars} chars omitted)"


class ShellTool(BaseTool):
    """Runs a shell command and returns its output as text."""

    def __init__(
        self,
        config: ShellConfig | None = None,
        approvals: ApprovalStore | None = None,
        confirm: ConfirmCallback | None = None,
    ):
        self.config = config or ShellConfig()
        self.approvals = approvals
        self.confirm = confirm

    @property
    def name(self) -> str:
        return "shell"

    @property
    def description(self) -> str:
        return "Run a shell command. Use for git, npm, system commands. Output is returned as text."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {
                    "type": "string",
                    "description": "The shell command to execute",
                },
            },
            "required": ["command"],
        }

    def blocked_pattern(self, command: str) -> str | None:
        """Return the dangerous pattern ``command`` matches, if any."""
        for pattern in self.config.blocked_patterns:
            if re.search(pattern, command, re.IGNORECASE):
                return pattern
        return None

    def is_safe(self, command: str) -> bool:
        """Read-only commands that never need approval."""
        stripped = command.strip()
        return any(
            stripped == safe or stripped.startswith(safe + " ")
            for safe in self.config.safe_commands
        )

    async def _authorize(self, command: str) -> bool:
        if not self.config.require_approval or self.is_safe(command):
            return True

        if self.approvals is not None and self.approvals.is_pre_approved(command):
            return True

        if self.confirm is None:
            logger.warning(f"No approver available, refusing: {command}")
            return False

        decision = await self.confirm(command)
        if decision == ApprovalDecision.ALWAYS and self.approvals is not None:
            self.approvals.record_approval(command)
        return decision in (ApprovalDecision.ONCE, ApprovalDecision.ALWAYS)

    async def execute(self, command: str = "") -> ToolResult:
        """Execute a shell command."""
        if not command or not command.strip():
            return ToolResult(success=False, error="no command provided")

        pattern = self.blocked_pattern(command)
        if pattern:
            return ToolResult(
                success=False,
                error=f"command blocked, matches dangerous pattern {pattern}",
            )

        if not await self._authorize(command):
            return ToolResult(success=False, error="command denied by user")

        return await self._run(command)

    async def _run(self, command: str) -> ToolResult:
        cwd = Path(self.config.working_dir).expanduser()

        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd),
            )
        except OSError as e:
            logger.error(f"Error starting command: {e}")
            return ToolResult(success=False, error=str(e))

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return ToolResult(
                success=False,
                error=f"command timed out after {self.config.timeout_seconds} seconds",
            )

        stdout_str = stdout.decode("utf-8", errors="replace")
        stderr_str = stderr.decode("utf-8", errors="replace")

        if process.returncode != 0:
            message = stderr_str or stdout_str or f"command exited with code {process.returncode}"
            return ToolResult(
                success=False,
                error=_truncate(message, self.config.max_error_chars),
                data={"exit_code": process.returncode},
            )

        output = stdout_str or stderr_str or "(no output)"
        return ToolResult(
            success=True,
            output=_truncate(output, self.config.max_output_chars),
            data={"exit_code": 0},
        )
