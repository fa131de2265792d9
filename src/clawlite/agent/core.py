"""
Core agent implementation: the turn loop.

For each user message the agent:
1. Rebuilds the system prompt from the base prompt plus relevant skills
2. Compacts the conversation when it nears the context budget
3. Calls the model, falling back to a second provider on failure
4. Runs requested tools strictly one at a time and feeds results back
5. Stops on a final answer, an unrecoverable provider failure, or the turn limit

Turns run on the default lane, so the conversation has a single writer
even when messages arrive while a turn is still in progress.
"""

import json
from dataclasses import dataclass, field
from enum import Enum

import structlog

from ..lane import LaneManager
from ..llm import BaseLLM, LLMMessage, ToolCall
from ..memory.session import SessionStore
from ..memory.skills import SkillLoader
from ..tools import ToolRegistry
from .context import ContextGuard
from .events import AgentEvent, EventHandler

logger = structlog.get_logger()

MAX_TURNS = 15

DEFAULT_SYSTEM_PROMPT = """You are a helpful coding assistant running locally. You have access to tools for shell commands and file operations.

Rules:
- Be concise. Short answers save context tokens.
- Use tools when needed, don't guess file contents.
- One tool call at a time for reliability.
- If a command fails, explain why and suggest alternatives.
- Ask for clarification if the request is ambiguous."""


class TurnOutcome(str, Enum):
    """How a turn ended."""
    FINAL_ANSWER = "final_answer"
    PROVIDER_FAILURE = "provider_failure"
    TURN_LIMIT = "turn_limit"


@dataclass
class TurnResult:
    """Outcome of processing one user message."""

    text: str
    turns: int
    outcome: TurnOutcome


@dataclass
class ConversationContext:
    """In-memory conversation state.

    The system message, when present, is always ``messages[0]``.
    """

    messages: list[LLMMessage] = field(default_factory=list)
    compaction_count: int = 0  # Track how many times we've compacted

    def add_message(self, message: LLMMessage) -> LLMMessage:
        self.messages.append(message)
        return message

    def add_user_message(self, content: str) -> LLMMessage:
        """Add a user message to the context."""
        return self.add_message(LLMMessage(role="user", content=content))

    def add_assistant_message(self, content: str, tool_calls: list[ToolCall] | None = None) -> LLMMessage:
        """Add an assistant message to the context."""
        return self.add_message(LLMMessage(role="assistant", content=content, tool_calls=tool_calls))

    def add_tool_result(self, tool_call_id: str, result: str, tool_name: str) -> LLMMessage:
        """Add a tool result to the context."""
        return self.add_message(LLMMessage(
            role="tool",
            content=result,
            tool_call_id=tool_call_id,
            name=tool_name,
        ))

    def set_system_prompt(self, prompt: str) -> None:
        """Replace the system message in place, or insert it first."""
        system = LLMMessage(role="system", content=prompt)
        if self.messages and self.messages[0].role == "system":
            self.messages[0] = system
        else:
            self.messages.insert(0, system)

    @property
    def system_prompt(self) -> str | None:
        if self.messages and self.messages[0].role == "system":
            return self.messages[0].content
        return None

    @property
    def message_count(self) -> int:
        """Get the number of messages."""
        return len(self.messages)


class Agent:
    """Drives the model/tool loop for one conversation."""

    def __init__(
        self,
        provider: BaseLLM,
        tool_registry: ToolRegistry,
        context_guard: ContextGuard,
        session: SessionStore,
        lanes: LaneManager | None = None,
        fallback: BaseLLM | None = None,
        skills: SkillLoader | None = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        max_turns: int = MAX_TURNS,
        tool_names: list[str] | None = None,
        on_event: EventHandler | None = None,
    ):
        self.provider = provider
        self.fallback = fallback
        self.tool_registry = tool_registry
        self.context_guard = context_guard
        self.session = session
        self.lanes = lanes or LaneManager()
        self.skills = skills
        self.base_system_prompt = system_prompt
        self.max_turns = max_turns
        self.tool_names = tool_names
        self.on_event = on_event

        self.context = ConversationContext()
        self.context.set_system_prompt(system_prompt)

    @property
    def message_count(self) -> int:
        return self.context.message_count

    @property
    def provider_name(self) -> str:
        return self.provider.provider_name

    async def handle_message(self, user_input: str) -> str:
        """Process a user message and return the text to show the user."""
        result = await self.run_turn(user_input)
        return result.text

    async def run_turn(self, user_input: str) -> TurnResult:
        """Queue a turn on the default lane and wait for its result."""
        return await self.lanes.run(lambda: self._process_turn(user_input))

    def resume_session(self, session_id: str) -> bool:
        """Continue an earlier session log as the tail of this conversation."""
        if not self.session.resume(session_id):
            return False

        restored = [m for m in self.session.load() if m.role != "system"]
        self.context.messages = self.context.messages[:1] + restored
        logger.info("Session resumed", session_id=session_id, messages=len(restored))
        return True

    def _emit(self, event: AgentEvent) -> None:
        logger.info("Agent event", event_type=event.type.value, **event.data)
        if self.on_event is not None:
            self.on_event(event)

    def _commit(self, message: LLMMessage) -> None:
        """Write a message already added to the context to the session log."""
        self.session.append(message)

    def _refresh_system_prompt(self, user_input: str) -> None:
        # Recomputed from the base prompt every turn so skill text never piles up
        prompt = self.base_system_prompt
        if self.skills is not None:
            prompt += self.skills.select_relevant_text(user_input)
        if prompt != self.context.system_prompt:
            self.context.set_system_prompt(prompt)

    def _maybe_compact(self, provider: BaseLLM) -> None:
        """Run compaction if the context is too large for ``provider``."""
        messages = self.context.messages
        if not self.context_guard.needs_compaction(messages, provider):
            return

        compacted = self.context_guard.compact(messages, provider)
        if compacted is messages:
            return

        self.context.messages = compacted
        self.context.compaction_count += 1
        self._emit(AgentEvent.context_compacted(
            tokens_before=self.context_guard.estimate_total(messages, provider),
            tokens_after=self.context_guard.estimate_total(compacted, provider),
            messages_before=len(messages),
            messages_after=len(compacted),
        ))

    async def _dispatch(self, call: ToolCall) -> None:
        """Answer one tool call with a tool message."""
        tool = self.tool_registry.get(call.name)
        if tool is None:
            logger.warning("Unknown tool requested", tool=call.name)
            self._record_tool_result(call, f'Error: unknown tool "{call.name}"')
            return

        try:
            arguments = json.loads(call.arguments) if call.arguments.strip() else {}
        except json.JSONDecodeError:
            arguments = None
        if not isinstance(arguments, dict):
            logger.warning("Malformed tool arguments", tool=call.name, arguments=call.arguments)
            self._record_tool_result(
                call, f"Error: invalid JSON in tool arguments: {call.arguments}"
            )
            return

        self._emit(AgentEvent.tool_invoked(call.name, call.id))
        result = await self.tool_registry.execute(call.name, arguments)
        self._record_tool_result(call, result.content)

    def _record_tool_result(self, call: ToolCall, content: str) -> None:
        self._commit(self.context.add_tool_result(call.id, content, call.name))

    async def _process_turn(self, user_input: str) -> TurnResult:
        self._refresh_system_prompt(user_input)
        self._commit(self.context.add_user_message(user_input))

        provider = self.provider
        turns = 0

        while turns < self.max_turns:
            turns += 1

            self._maybe_compact(provider)
            tools = self.tool_registry.get_definitions(self.tool_names)

            try:
                response = await provider.chat(self.context.messages, tools or None)
            except Exception as e:
                if self.fallback is None or provider is self.fallback:
                    logger.error("LLM generation error", provider=provider.provider_name, error=str(e))
                    return TurnResult(f"LLM error: {e}", turns, TurnOutcome.PROVIDER_FAILURE)

                failed = provider
                provider = self.fallback
                self._emit(AgentEvent.provider_fallback(
                    failed.provider_name, provider.provider_name, str(e)
                ))
                try:
                    response = await provider.chat(self.context.messages, tools or None)
                except Exception as e2:
                    logger.error(
                        "Fallback generation error",
                        primary=failed.provider_name,
                        fallback=provider.provider_name,
                        error=str(e2),
                    )
                    return TurnResult(
                        f"Both providers failed ({failed.provider_name}, "
                        f"{provider.provider_name}). {e2}",
                        turns,
                        TurnOutcome.PROVIDER_FAILURE,
                    )

            self._commit(self.context.add_message(response))

            if not response.tool_calls:
                return TurnResult(response.content, turns, TurnOutcome.FINAL_ANSWER)

            # One at a time, in the order the model asked
            for call in response.tool_calls:
                await self._dispatch(call)

        logger.warning("Turn limit reached", max_turns=self.max_turns)
        return TurnResult(
            f"Reached maximum turns ({self.max_turns}). Last response may be incomplete.",
            turns,
            TurnOutcome.TURN_LIMIT,
        )
