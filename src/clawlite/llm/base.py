"""
Base classes for LLM providers.
"""

import json
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Literal


@dataclass
class ToolDefinition:
    """Definition of a tool that the LLM can use."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class ToolCall:
    """A tool call made by the LLM.

    ``arguments`` is the serialized JSON payload exactly as the provider
    emitted it; the agent parses it right before dispatch.
    """

    id: str
    name: str
    arguments: str


@dataclass
class LLMMessage:
    """A message in the conversation."""

    role: Literal["user", "assistant", "system", "tool"]
    content: str
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None


class ProviderError(Exception):
    """Transport or parse failure while calling a model provider."""

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider

    def __str__(self) -> str:
        return f"{self.provider}: {self.args[0]}"


class BaseLLM(ABC):
    """Base class for LLM providers.

    Providers hold only their own configuration; the conversation travels
    with every call.
    """

    chars_per_token: float = 4.0

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature

    @abstractmethod
    async def chat(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
    ) -> LLMMessage:
        """Send the conversation and return the assistant message.

        Raises:
            ProviderError: on transport or parse failure.
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the provider name."""
        pass

    def estimate_tokens(self, text: str) -> int:
        """Rough token count for ``text`` under this provider's tokenizer."""
        return math.ceil(len(text) / self.chars_per_token)


def arguments_as_object(arguments: str) -> dict[str, Any]:
    """Best-effort decode of a serialized tool-call payload for re-sending."""
    try:
        value = json.loads(arguments) if arguments else {}
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}
