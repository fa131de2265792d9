"""
OpenAI-compatible LLM provider (OpenAI itself, Groq and other compatible APIs).
"""

from typing import Any

import openai
import structlog

from .base import BaseLLM, LLMMessage, ProviderError, ToolCall, ToolDefinition

logger = structlog.get_logger()

GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class OpenAILLM(BaseLLM):
    """OpenAI chat-completions provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        name: str = "openai",
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature)
        self._name = name
        self.client = openai.AsyncOpenAI(
            api_key=api_key or "unset",
            base_url=base_url,
        )

    @property
    def provider_name(self) -> str:
        return self._name

    def _convert_messages(self, messages: list[LLMMessage]) -> list[dict[str, Any]]:
        """Convert LLMMessages to OpenAI format."""
        converted = []

        for msg in messages:
            if msg.role == "tool":
                converted.append({
                    "role": "tool",
                    "tool_call_id": msg.tool_call_id or "",
                    "content": msg.content,
                })
            elif msg.role == "assistant" and msg.tool_calls:
                tool_calls = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": tc.arguments,
                        },
                    }
                    for tc in msg.tool_calls
                ]
                converted.append({
                    "role": "assistant",
                    "content": msg.content or "",
                    "tool_calls": tool_calls,
                })
            else:
                converted.append({
                    "role": msg.role,
                    "content": msg.content,
                })

        return converted

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert ToolDefinitions to OpenAI format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }
            for tool in tools
        ]

    def _parse_response(self, response: Any) -> LLMMessage:
        """Turn a chat-completions response into an assistant message."""
        if not response.choices:
            raise ProviderError(self.provider_name, "response contained no choices")

        message = response.choices[0].message
        tool_calls = [
            ToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=tc.function.arguments or "",
            )
            for tc in message.tool_calls or []
        ]

        return LLMMessage(
            role="assistant",
            content=message.content or "",
            tool_calls=tool_calls or None,
        )

    async def chat(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
    ) -> LLMMessage:
        """Generate a response from a chat-completions endpoint."""
        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": self._convert_messages(messages),
        }

        if tools:
            kwargs["tools"] = self._convert_tools(tools)

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            logger.error("OpenAI API error", provider=self.provider_name, error=str(e))
            raise ProviderError(self.provider_name, str(e)) from e

        return self._parse_response(response)


def create_groq_llm(
    api_key: str,
    model: str,
    base_url: str | None = None,
    max_tokens: int = 4096,
    temperature: float = 0.7,
) -> OpenAILLM:
    """Groq serves an OpenAI-compatible endpoint."""
    return OpenAILLM(
        api_key=api_key,
        model=model,
        base_url=base_url or GROQ_BASE_URL,
        max_tokens=max_tokens,
        temperature=temperature,
        name="groq",
    )
