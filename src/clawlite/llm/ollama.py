"""
Ollama LLM provider using the native /api/chat endpoint.
"""

import json
import time
from typing import Any

import httpx
import structlog

from .base import (
    BaseLLM,
    LLMMessage,
    ProviderError,
    ToolCall,
    ToolDefinition,
    arguments_as_object,
)

logger = structlog.get_logger()

DEFAULT_OLLAMA_URL = "http://localhost:11434"


class OllamaLLM(BaseLLM):
    """Local models served by Ollama."""

    chars_per_token = 3.5

    def __init__(
        self,
        api_key: str = "",
        model: str = "qwen2.5:32b",
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        timeout: float = 300.0,
    ):
        super().__init__(api_key, model, base_url or DEFAULT_OLLAMA_URL, max_tokens, temperature)
        self.timeout = timeout

    @property
    def provider_name(self) -> str:
        return "ollama"

    def _convert_messages(self, messages: list[LLMMessage]) -> list[dict[str, Any]]:
        """Convert LLMMessages to Ollama format.

        Ollama has no tool-call ids; tool results are matched by position.
        """
        converted = []

        for msg in messages:
            entry: dict[str, Any] = {"role": msg.role, "content": msg.content}
            if msg.role == "assistant" and msg.tool_calls:
                entry["tool_calls"] = [
                    {
                        "function": {
                            "name": tc.name,
                            "arguments": arguments_as_object(tc.arguments),
                        }
                    }
                    for tc in msg.tool_calls
                ]
            converted.append(entry)

        return converted

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
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

    def _parse_response(self, data: dict[str, Any]) -> LLMMessage:
        message = data.get("message")
        if not isinstance(message, dict):
            raise ProviderError(self.provider_name, "response contained no message")

        stamp = int(time.time() * 1000)
        tool_calls = []
        for i, tc in enumerate(message.get("tool_calls") or []):
            function = tc.get("function", {})
            arguments = function.get("arguments", {})
            tool_calls.append(ToolCall(
                id=f"call_{stamp}_{i}",
                name=function.get("name", ""),
                arguments=arguments if isinstance(arguments, str) else json.dumps(arguments),
            ))

        return LLMMessage(
            role="assistant",
            content=message.get("content") or "",
            tool_calls=tool_calls or None,
        )

    async def chat(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
    ) -> LLMMessage:
        """Generate a response from the local Ollama server."""
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(messages),
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }

        if tools:
            payload["tools"] = self._convert_tools(tools)

        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout) as client:
                response = await client.post("/api/chat", json=payload)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            logger.error("Ollama API error", error=str(e))
            raise ProviderError(self.provider_name, str(e)) from e

        return self._parse_response(data)

