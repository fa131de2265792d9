"""
Agent module - the brain of the system.

Includes:
- Agent: Turn loop driving the LLM and tools
- ConversationContext: In-memory conversation state
- ContextGuard: Token budget watch and compaction
- AgentEvent: Progress notices for the host UI
"""

from .context import ContextGuard
from .core import Agent, ConversationContext, TurnOutcome, TurnResult
from .events import AgentEvent, AgentEventType

__all__ = [
    "Agent",
    "AgentEvent",
    "AgentEventType",
    "ContextGuard",
    "ConversationContext",
    "TurnOutcome",
    "TurnResult",
]
