"""
Tests for agent module.
"""

import asyncio
from unittest.mock import MagicMock

import pytest
from structlog.testing import capture_logs

from clawlite.agent.context import ContextGuard
from clawlite.agent.core import Agent, ConversationContext, TurnOutcome
from clawlite.agent.events import AgentEventType
from clawlite.llm.base import BaseLLM, LLMMessage, ProviderError, ToolCall
from clawlite.memory.session import SessionStore, SessionWriteError
from clawlite.memory.skills import SkillLoader
from clawlite.tools.base import Tool, ToolParameter, ToolResult
from clawlite.tools.registry import ToolRegistry


class ScriptedLLM(BaseLLM):
    """Provider stub that replays canned responses.

    Exceptions in the script are raised instead of returned. Once the
    script runs out, ``default`` is returned for every call.
    """

    def __init__(self, responses=None, name="stub", default=None, delay=0.0):
        super().__init__(api_key="", model="stub-model")
        self.responses = list(responses or [])
        self.default = default
        self.delay = delay
        self.calls = []
        self._name = name

    @property
    def provider_name(self) -> str:
        return self._name

    async def chat(self, messages, tools=None):
        self.calls.append((list(messages), tools))
        if self.delay:
            await asyncio.sleep(self.delay)
        item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, Exception):
            raise item
        return item


def answer(text: str) -> LLMMessage:
    return LLMMessage(role="assistant", content=text)


def tool_request(name: str, arguments: str, call_id: str = "call_1") -> LLMMessage:
    return LLMMessage(
        role="assistant",
        content="",
        tool_calls=[ToolCall(id=call_id, name=name, arguments=arguments)],
    )


def make_registry(handler=None) -> ToolRegistry:
    """Registry with a fake ``shell`` tool that lists one file."""

    async def default_handler(command: str = "") -> ToolResult:
        return ToolResult(success=True, output="a.txt")

    registry = ToolRegistry()
    registry.register(Tool(
        name="shell",
        description="Run a shell command",
        parameters=[ToolParameter(name="command", param_type="string", description="Command")],
        handler=handler or default_handler,
    ))
    return registry


def make_agent(tmp_path, provider, **kwargs):
    events = []
    kwargs.setdefault("tool_registry", make_registry())
    kwargs.setdefault("context_guard", ContextGuard())
    kwargs.setdefault("session", SessionStore(tmp_path / "sessions"))
    agent = Agent(provider=provider, on_event=events.append, **kwargs)
    return agent, events


def test_conversation_context_add_user_message():
    """Test adding user message to context."""
    context = ConversationContext()
    context.add_user_message("Hello!")

    assert len(context.messages) == 1
    assert context.messages[0].role == "user"
    assert context.messages[0].content == "Hello!"


def test_conversation_context_add_assistant_message():
    """Test adding assistant message to context."""
    context = ConversationContext()
    context.add_assistant_message("Hi there!")

    assert len(context.messages) == 1
    assert context.messages[0].role == "assistant"
    assert context.messages[0].content == "Hi there!"


def test_conversation_context_tool_result():
    """Test adding tool result to context."""
    context = ConversationContext()
    context.add_tool_result("tool_123", "Result data", "shell")

    assert len(context.messages) == 1
    assert context.messages[0].role == "tool"
    assert context.messages[0].tool_call_id == "tool_123"
    assert context.messages[0].content == "Result data"
    assert context.messages[0].name == "shell"


def test_conversation_context_system_prompt_stays_first():
    """Test that the system prompt is replaced in place."""
    context = ConversationContext()
    context.add_user_message("Hello")
    context.set_system_prompt("first")
    context.set_system_prompt("second")

    assert context.message_count == 2
    assert context.messages[0].role == "system"
    assert context.system_prompt == "second"


@pytest.mark.asyncio
async def test_agent_answers_without_tools(tmp_path):
    """A plain answer ends the turn after one provider call."""
    provider = ScriptedLLM([answer("hello")])
    agent, events = make_agent(tmp_path, provider)

    result = await agent.run_turn("hi")

    assert result.text == "hello"
    assert result.turns == 1
    assert result.outcome == TurnOutcome.FINAL_ANSWER
    assert [m.role for m in agent.context.messages] == ["system", "user", "assistant"]
    assert events == []


@pytest.mark.asyncio
async def test_agent_runs_tool_and_feeds_result_back(tmp_path):
    """A tool request is executed and the result answered to the model."""
    provider = ScriptedLLM([
        tool_request("shell", '{"command": "ls"}'),
        answer("There is one file: a.txt"),
    ])
    agent, events = make_agent(tmp_path, provider)

    response = await agent.handle_message("list files")

    assert response == "There is one file: a.txt"
    assert len(provider.calls) == 2
    assert [m.role for m in agent.context.messages] == [
        "system", "user", "assistant", "tool", "assistant",
    ]

    tool_message = agent.context.messages[3]
    assert tool_message.content == "a.txt"
    assert tool_message.tool_call_id == "call_1"
    assert tool_message.name == "shell"

    # The second call sees the tool result
    second_call_messages = provider.calls[1][0]
    assert second_call_messages[-1].role == "tool"

    assert [e.type for e in events] == [AgentEventType.TOOL_INVOKED]
    assert events[0].message == "[tool: shell]"


@pytest.mark.asyncio
async def test_agent_runs_multiple_tool_calls_in_order(tmp_path):
    """Several tool calls in one response run one after another."""
    seen = []

    async def handler(command: str = "") -> ToolResult:
        seen.append(command)
        return ToolResult(success=True, output=command)

    request = LLMMessage(
        role="assistant",
        content="",
        tool_calls=[
            ToolCall(id="call_1", name="shell", arguments='{"command": "first"}'),
            ToolCall(id="call_2", name="shell", arguments='{"command": "second"}'),
        ],
    )
    provider = ScriptedLLM([request, answer("done")])
    agent, _ = make_agent(tmp_path, provider, tool_registry=make_registry(handler))

    await agent.run_turn("go")

    assert seen == ["first", "second"]
    tool_ids = [m.tool_call_id for m in agent.context.messages if m.role == "tool"]
    assert tool_ids == ["call_1", "call_2"]


@pytest.mark.asyncio
async def test_agent_unknown_tool(tmp_path):
    """Unknown tools are reported back to the model, not raised."""
    provider = ScriptedLLM([
        tool_request("nonexistent", "{}"),
        answer("Sorry, I can't do that."),
    ])
    agent, events = make_agent(tmp_path, provider)

    result = await agent.run_turn("do something")

    assert result.outcome == TurnOutcome.FINAL_ANSWER
    tool_message = agent.context.messages[3]
    assert tool_message.role == "tool"
    assert tool_message.content == 'Error: unknown tool "nonexistent"'
    assert events == []


@pytest.mark.asyncio
async def test_agent_malformed_tool_arguments(tmp_path):
    """Bad JSON arguments produce an error message and skip the tool."""
    handler_calls = []

    async def handler(command: str = "") -> ToolResult:
        handler_calls.append(command)
        return ToolResult(success=True, output="ran")

    provider = ScriptedLLM([
        tool_request("shell", "{not json"),
        answer("Let me try again."),
    ])
    agent, _ = make_agent(tmp_path, provider, tool_registry=make_registry(handler))

    await agent.run_turn("list files")

    assert handler_calls == []
    assert agent.context.messages[3].content == "Error: invalid JSON in tool arguments: {not json"


@pytest.mark.asyncio
async def test_agent_non_object_arguments_are_malformed(tmp_path):
    provider = ScriptedLLM([tool_request("shell", "[1, 2]"), answer("ok")])
    agent, _ = make_agent(tmp_path, provider)

    await agent.run_turn("list files")

    assert agent.context.messages[3].content.startswith("Error: invalid JSON in tool arguments")


@pytest.mark.asyncio
async def test_agent_empty_arguments_mean_no_arguments(tmp_path):
    received = []

    async def handler(**kwargs) -> ToolResult:
        received.append(kwargs)
        return ToolResult(success=True, output="ok")

    provider = ScriptedLLM([tool_request("shell", ""), answer("done")])
    agent, _ = make_agent(tmp_path, provider, tool_registry=make_registry(handler))

    await agent.run_turn("go")

    assert received == [{}]


@pytest.mark.asyncio
async def test_agent_tool_failure_is_fed_back(tmp_path):
    async def handler(command: str = "") -> ToolResult:
        raise RuntimeError("boom")

    provider = ScriptedLLM([tool_request("shell", '{"command": "ls"}'), answer("It failed.")])
    agent, _ = make_agent(tmp_path, provider, tool_registry=make_registry(handler))

    result = await agent.run_turn("list files")

    assert result.text == "It failed."
    assert agent.context.messages[3].content == "Error: boom"


@pytest.mark.asyncio
async def test_agent_turn_limit(tmp_path):
    """A model that never stops asking for tools hits the turn limit."""
    provider = ScriptedLLM(default=tool_request("shell", '{"command": "ls"}'))
    agent, _ = make_agent(tmp_path, provider, max_turns=3)

    result = await agent.run_turn("loop forever")

    assert result.outcome == TurnOutcome.TURN_LIMIT
    assert result.turns == 3
    assert result.text == "Reached maximum turns (3). Last response may be incomplete."
    assert len(provider.calls) == 3


@pytest.mark.asyncio
async def test_agent_handles_error(tmp_path):
    """Test agent handles LLM errors gracefully."""
    provider = ScriptedLLM([ProviderError("stub", "API Error")])
    agent, _ = make_agent(tmp_path, provider)

    result = await agent.run_turn("Hello!")

    assert result.outcome == TurnOutcome.PROVIDER_FAILURE
    assert result.text == "LLM error: stub: API Error"


@pytest.mark.asyncio
async def test_agent_falls_back_once(tmp_path):
    """The fallback answers and exactly one fallback notice is emitted."""
    primary = ScriptedLLM([ProviderError("ollama", "connection refused")], name="ollama")
    fallback = ScriptedLLM([
        tool_request("shell", '{"command": "ls"}'),
        answer("a.txt is there"),
    ], name="groq")
    agent, events = make_agent(tmp_path, primary, fallback=fallback)

    result = await agent.run_turn("list files")

    assert result.text == "a.txt is there"
    assert len(primary.calls) == 1
    # The rest of the turn stays on the fallback
    assert len(fallback.calls) == 2

    fallback_events = [e for e in events if e.type == AgentEventType.PROVIDER_FALLBACK]
    assert len(fallback_events) == 1
    assert fallback_events[0].message == "[ollama failed, falling back to groq]"


@pytest.mark.asyncio
async def test_agent_next_turn_starts_on_primary(tmp_path):
    primary = ScriptedLLM([ProviderError("ollama", "down"), answer("primary is back")], name="ollama")
    fallback = ScriptedLLM([answer("from fallback")], name="groq")
    agent, _ = make_agent(tmp_path, primary, fallback=fallback)

    first = await agent.run_turn("one")
    second = await agent.run_turn("two")

    assert first.text == "from fallback"
    assert second.text == "primary is back"


@pytest.mark.asyncio
async def test_agent_both_providers_fail(tmp_path):
    primary = ScriptedLLM([ProviderError("ollama", "connection refused")], name="ollama")
    fallback = ScriptedLLM([ProviderError("groq", "rate limited")], name="groq")
    agent, events = make_agent(tmp_path, primary, fallback=fallback)

    result = await agent.run_turn("hi")

    assert result.outcome == TurnOutcome.PROVIDER_FAILURE
    assert "ollama" in result.text
    assert "groq" in result.text
    assert result.text.startswith("Both providers failed (ollama, groq).")
    assert len([e for e in events if e.type == AgentEventType.PROVIDER_FALLBACK]) == 1


@pytest.mark.asyncio
async def test_agent_compacts_large_context(tmp_path):
    provider = ScriptedLLM([answer("done")])
    agent, events = make_agent(
        tmp_path, provider, context_guard=ContextGuard(max_tokens=100, threshold=0.5)
    )
    for i in range(3):
        agent.context.add_user_message(f"question {i} " + "x" * 200)
        agent.context.add_assistant_message(f"answer {i} " + "y" * 200)

    await agent.run_turn("next")

    sent = provider.calls[0][0]
    assert sent[0].role == "system"
    assert sent[1].content.startswith("[Context compacted.")
    assert len(sent) == 6
    assert sent[-1].content == "next"

    assert agent.context.compaction_count == 1
    compacted = [e for e in events if e.type == AgentEventType.CONTEXT_COMPACTED]
    assert len(compacted) == 1
    assert compacted[0].data["messages_before"] == 8
    assert compacted[0].data["messages_after"] == 6


@pytest.mark.asyncio
async def test_agent_skills_recomputed_each_turn(tmp_path):
    skills_dir = tmp_path / "skills"
    skills_dir.mkdir()
    (skills_dir / "style.md").write_text("Keep answers short.")
    (skills_dir / "review.md").write_text(
        "---\nname: code-review\ntrigger: review\n---\nCheck for bugs first."
    )

    provider = ScriptedLLM(default=answer("ok"))
    agent, _ = make_agent(tmp_path, provider, skills=SkillLoader(skills_dir))

    await agent.run_turn("hello")
    await agent.run_turn("please review this")
    await agent.run_turn("hello again")

    prompts = [call[0][0].content for call in provider.calls]
    assert "[Skill: style]" in prompts[0]
    assert "[Skill: code-review]" not in prompts[0]
    assert prompts[1].count("[Skill: code-review]") == 1
    assert prompts[1].count("[Skill: style]") == 1
    assert "[Skill: code-review]" not in prompts[2]
    assert prompts[2].count("[Skill: style]") == 1


@pytest.mark.asyncio
async def test_agent_tool_names_filter(tmp_path):
    provider = ScriptedLLM([answer("ok")])
    agent, _ = make_agent(tmp_path, provider, tool_names=["read_file"])

    await agent.run_turn("hi")

    # No requested tool is registered, so none are offered
    assert provider.calls[0][1] is None


@pytest.mark.asyncio
async def test_agent_offers_registered_tools(tmp_path):
    provider = ScriptedLLM([answer("ok")])
    agent, _ = make_agent(tmp_path, provider)

    await agent.run_turn("hi")

    assert [d.name for d in provider.calls[0][1]] == ["shell"]


@pytest.mark.asyncio
async def test_agent_writes_session_log(tmp_path):
    provider = ScriptedLLM([tool_request("shell", '{"command": "ls"}'), answer("done")])
    agent, _ = make_agent(tmp_path, provider)

    await agent.run_turn("list files")

    logged = agent.session.load()
    assert [m.role for m in logged] == ["user", "assistant", "tool", "assistant"]
    assert logged[1].tool_calls[0].name == "shell"


@pytest.mark.asyncio
async def test_agent_session_write_error_propagates(tmp_path):
    session = MagicMock(spec=SessionStore)
    session.append.side_effect = SessionWriteError("disk full")
    provider = ScriptedLLM([answer("never seen")])
    agent, _ = make_agent(tmp_path, provider, session=session)

    with pytest.raises(SessionWriteError):
        await agent.run_turn("hi")

    assert provider.calls == []


@pytest.mark.asyncio
async def test_agent_serializes_overlapping_turns(tmp_path):
    """Turns submitted together run one after the other."""
    provider = ScriptedLLM([answer("first answer"), answer("second answer")], delay=0.01)
    agent, _ = make_agent(tmp_path, provider)

    first, second = await asyncio.gather(agent.run_turn("one"), agent.run_turn("two"))

    assert first.text == "first answer"
    assert second.text == "second answer"
    # The second turn saw the whole first exchange
    second_call = [m.content for m in provider.calls[1][0]]
    assert second_call[1:] == ["one", "first answer", "two"]


def test_agent_resume_session(tmp_path):
    store = SessionStore(tmp_path / "sessions")
    store.session_id = "session_1"
    store.path = store.session_dir / "session_1.jsonl"
    store.append(LLMMessage(role="user", content="earlier question"))
    store.append(LLMMessage(role="assistant", content="earlier answer"))

    agent, _ = make_agent(tmp_path, ScriptedLLM())

    assert agent.resume_session("session_1") is True
    assert [m.content for m in agent.context.messages[1:]] == ["earlier question", "earlier answer"]
    assert agent.context.messages[0].role == "system"
    assert agent.session.session_id == "session_1"


def test_agent_resume_missing_session(tmp_path):
    agent, _ = make_agent(tmp_path, ScriptedLLM())

    assert agent.resume_session("session_404") is False
    assert agent.message_count == 1


def test_agent_provider_name(tmp_path):
    agent, _ = make_agent(tmp_path, ScriptedLLM(name="ollama"))
    assert agent.provider_name == "ollama"


@pytest.mark.asyncio
async def test_agent_logs_each_notice(tmp_path):
    """Notices are logged with their type and data next to the callback."""
    provider = ScriptedLLM([tool_request("shell", '{"command": "ls"}'), answer("done")])
    agent, events = make_agent(tmp_path, provider)

    with capture_logs() as logs:
        result = await agent.run_turn("list files")

    assert result.text == "done"
    notices = [entry for entry in logs if entry["event"] == "Agent event"]
    assert len(notices) == 1
    assert notices[0]["event_type"] == "tool_invoked"
    assert notices[0]["tool"] == "shell"
    assert notices[0]["call_id"] == "call_1"
    assert len(events) == 1


@pytest.mark.asyncio
async def test_agent_logs_compaction_once(tmp_path):
    provider = ScriptedLLM([answer("done")])
    agent, _ = make_agent(
        tmp_path, provider, context_guard=ContextGuard(max_tokens=100, threshold=0.5)
    )
    for i in range(3):
        agent.context.add_user_message(f"question {i} " + "x" * 200)
        agent.context.add_assistant_message(f"answer {i} " + "y" * 200)

    with capture_logs() as logs:
        await agent.run_turn("next")

    compaction_logs = [entry for entry in logs if "tokens_before" in entry]
    assert len(compaction_logs) == 1
    assert compaction_logs[0]["event_type"] == "context_compacted"
    assert compaction_logs[0]["messages_before"] == 8
