"""
LLM factory for creating provider instances.

Supports: Ollama (native API), Groq and OpenAI (OpenAI-compatible SDK), Anthropic Claude.
"""

from ..config import LLMConfig, Settings
from .anthropic import AnthropicLLM
from .base import BaseLLM
from .ollama import OllamaLLM
from .openai import OpenAILLM, create_groq_llm


def create_llm(config: LLMConfig, settings: Settings | None = None) -> BaseLLM:
    """Create an LLM instance based on configuration.

    Provider routing:
    - ollama -> OllamaLLM (native /api/chat over httpx)
    - groq -> OpenAILLM pointed at Groq's OpenAI-compatible endpoint
    - openai -> OpenAILLM (native OpenAI SDK)
    - anthropic -> AnthropicLLM (native Anthropic SDK)

    The API key comes from the provider config, falling back to the
    provider's key in ``settings``.
    """
    api_key = config.api_key
    if not api_key and settings is not None:
        api_key = settings.get_api_key(config.provider)

    provider = config.provider

    if provider == "ollama":
        return OllamaLLM(
            model=config.model,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
    elif provider == "groq":
        return create_groq_llm(
            api_key=api_key,
            model=config.model,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
    elif provider == "openai":
        return OpenAILLM(
            api_key=api_key,
            model=config.model,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
    elif provider == "anthropic":
        return AnthropicLLM(
            api_key=api_key,
            model=config.model,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
    else:
        raise ValueError(f"Unknown LLM provider: {provider}")
