"""
LLM module for multi-provider AI model support.

Providers:
- Ollama (local, native API)
- Groq (via OpenAI-compatible endpoint)
- OpenAI GPT (native SDK)
- Anthropic Claude (native SDK)
"""

from .base import BaseLLM, LLMMessage, ProviderError, ToolCall, ToolDefinition
from .anthropic import AnthropicLLM
from .ollama import OllamaLLM
from .openai import OpenAILLM, create_groq_llm
from .factory import create_llm

__all__ = [
    "BaseLLM",
    "LLMMessage",
    "ProviderError",
    "ToolCall",
    "ToolDefinition",
    "AnthropicLLM",
    "OllamaLLM",
    "OpenAILLM",
    "create_groq_llm",
    "create_llm",
]
