"""
Agent notices for host UIs.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable


class AgentEventType(str, Enum):
    """Kinds of progress notices the agent emits during a turn."""
    TOOL_INVOKED = "tool_invoked"
    PROVIDER_FALLBACK = "provider_fallback"
    CONTEXT_COMPACTED = "context_compacted"


@dataclass
class AgentEvent:
    """Event emitted during a turn."""
    type: AgentEventType
    message: str
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def tool_invoked(cls, tool_name: str, call_id: str) -> "AgentEvent":
        return cls(
            type=AgentEventType.TOOL_INVOKED,
            message=f"[tool: {tool_name}]",
            data={"tool": tool_name, "call_id": call_id},
        )

    @classmethod
    def provider_fallback(cls, failed: str, fallback: str, error: str) -> "AgentEvent":
        return cls(
            type=AgentEventType.PROVIDER_FALLBACK,
            message=f"[{failed} failed, falling back to {fallback}]",
            data={"failed": failed, "fallback": fallback, "error": error},
        )

    @classmethod
    def context_compacted(
        cls,
        tokens_before: int,
        tokens_after: int,
        messages_before: int,
        messages_after: int,
    ) -> "AgentEvent":
        return cls(
            type=AgentEventType.CONTEXT_COMPACTED,
            message=(
                f"[context compacted: {tokens_before} -> {tokens_after} tokens "
                f"({messages_before} -> {messages_after} messages)]"
            ),
            data={
                "tokens_before": tokens_before,
                "tokens_after": tokens_after,
                "messages_before": messages_before,
                "messages_after": messages_after,
            },
        )


EventHandler = Callable[[AgentEvent], None]
