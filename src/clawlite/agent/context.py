"""
Context window guard.

Watches the estimated size of the conversation and, when it nears the
budget, compacts older turns into a single digest message while keeping
the system prompt and the most recent exchanges verbatim.

Token counts always come from the active provider: providers disagree on
what a token is, so the guard never carries a tokenizer of its own.
"""

from typing import Protocol

from ..llm.base import LLMMessage

DEFAULT_MAX_CONTEXT_TOKENS = 16384
DEFAULT_COMPACTION_THRESHOLD = 0.8  # Compact when 80% of budget used
KEEP_RECENT = 4  # Last two exchanges stay verbatim

USER_PREVIEW_CHARS = 100
ASSISTANT_PREVIEW_CHARS = 100
TOOL_PREVIEW_CHARS = 60


class TokenEstimator(Protocol):
    def estimate_tokens(self, text: str) -> int: ...


def _truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


def _digest_line(message: LLMMessage) -> str | None:
    """One summary line for a message being compacted away."""
    if message.role == "user":
        return f"User asked: {_truncate(message.content, USER_PREVIEW_CHARS)}"
    if message.role == "assistant":
        if message.tool_calls:
            names = ", ".join(tc.name for tc in message.tool_calls)
            return f"Assistant used tools: {names}"
        return f"Assistant: {_truncate(message.content, ASSISTANT_PREVIEW_CHARS)}"
    if message.role == "tool":
        return f"Tool result: {_truncate(message.content, TOOL_PREVIEW_CHARS)}"
    return None


class ContextGuard:
    """Decides when to compact and produces the compacted conversation."""

    def __init__(
        self,
        max_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS,
        threshold: float = DEFAULT_COMPACTION_THRESHOLD,
    ):
        if not 0 < threshold < 1:
            raise ValueError(f"threshold must be between 0 and 1, got {threshold}")
        self.max_tokens = max_tokens
        self.threshold = threshold

    @property
    def limit(self) -> float:
        return self.max_tokens * self.threshold

    def estimate_total(self, messages: list[LLMMessage], estimator: TokenEstimator) -> int:
        """Estimate tokens for message contents plus serialized tool arguments."""
        total = 0
        for msg in messages:
            total += estimator.estimate_tokens(msg.content or "")
            for tc in msg.tool_calls or []:
                total += estimator.estimate_tokens(tc.arguments)
        return total

    def needs_compaction(self, messages: list[LLMMessage], estimator: TokenEstimator) -> bool:
        """Check if messages are approaching the context limit."""
        return self.estimate_total(messages, estimator) > self.limit

    def compact(self, messages: list[LLMMessage], estimator: TokenEstimator) -> list[LLMMessage]:
        """Compact messages by summarizing older conversation turns.

        Keeps the leading system message, the last ``KEEP_RECENT`` other
        messages, and replaces everything in between with one user-role
        digest. Returns ``messages`` itself when there is nothing to fold.
        """
        if len(messages) <= KEEP_RECENT:
            return messages

        system = messages[0] if messages[0].role == "system" else None
        non_system = messages[1:] if system else messages

        to_summarize = non_system[:-KEEP_RECENT]
        recent = non_system[-KEEP_RECENT:]

        if not to_summarize:
            return messages

        lines = [line for line in map(_digest_line, to_summarize) if line is not None]
        summary = LLMMessage(
            role="user",
            content=(
                "[Context compacted. Summary of earlier conversation:\n"
                + "\n".join(lines)
                + "\n]\nContinue from here."
            ),
        )

        compacted: list[LLMMessage] = []
        if system:
            compacted.append(system)
        compacted.append(summary)
        compacted.extend(recent)

        return compacted
