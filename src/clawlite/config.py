"""
Configuration management for clawlite.

Uses pydantic-settings for environment variable parsing and validation,
optionally layered under a JSON config file (``clawlite.config.json``).
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import structlog
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()

DEFAULT_CONFIG_FILE = "clawlite.config.json"

ProviderName = Literal["ollama", "groq", "openai", "anthropic"]


class LLMConfig(BaseModel):
    """Configuration for a single LLM provider."""

    provider: ProviderName = "ollama"
    model: str = "qwen2.5:32b"
    api_key: str = ""
    base_url: str | None = None
    max_tokens: int = 4096
    temperature: float = 0.7


class LLMSettings(BaseModel):
    """Primary/fallback providers and the context budget."""

    primary: LLMConfig = Field(default_factory=LLMConfig)
    fallback: LLMConfig | None = None
    max_context_tokens: int = Field(default=16384, gt=0)
    compact_threshold: float = Field(default=0.8, gt=0, lt=1)
    max_turns: int = Field(default=15, gt=0)


class ShellSettings(BaseModel):
    enabled: bool = True
    working_dir: str = "."
    timeout_seconds: float = 30


class FilesSettings(BaseModel):
    enabled: bool = True
    allowed_paths: list[str] = Field(default_factory=lambda: ["."])


class ToolsSettings(BaseModel):
    shell: ShellSettings = Field(default_factory=ShellSettings)
    files: FilesSettings = Field(default_factory=FilesSettings)


class SafetySettings(BaseModel):
    blocked_patterns: list[str] = Field(default_factory=lambda: [
        r"rm\s+-rf\s+/",
        r"mkfs",
        r">\s*/dev/sd",
        r"dd\s+if=",
        r":\(\)\{\s*:\|\s*:&\s*\}\s*;",
        r"\$\(.*\)",
        r"`[^`]*`",
        r"sudo\s+rm",
        r">\s*/etc/",
        r"chmod\s+777",
    ])
    require_approval: bool = True


class SessionSettings(BaseModel):
    dir: str = ".clawlite/sessions"
    approvals_file: str = ".clawlite/approvals.json"


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application
    app_name: str = "clawlite"
    log_level: str = "INFO"

    # LLM Providers (API Keys)
    groq_api_key: str = Field(default="", description="Groq API key")
    openai_api_key: str = Field(default="", description="OpenAI API key")
    anthropic_api_key: str = Field(default="", description="Anthropic API key for Claude")

    llm: LLMSettings = Field(default_factory=LLMSettings)
    tools: ToolsSettings = Field(default_factory=ToolsSettings)
    safety: SafetySettings = Field(default_factory=SafetySettings)
    session: SessionSettings = Field(default_factory=SessionSettings)

    skills_dir: str = Field(default="skills", description="Directory of SKILL markdown files")

    def get_api_key(self, provider: str) -> str:
        """Get the configured API key for a provider."""
        api_key_map = {
            "groq": self.groq_api_key,
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
        }
        return api_key_map.get(provider, "")


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings, merging a JSON config file over the defaults.

    Keys missing from the file keep their defaults, including keys inside
    nested sections. A file that cannot be read or validated is reported
    and ignored.
    """
    config_path = Path(path or DEFAULT_CONFIG_FILE)

    overrides: dict[str, Any] = {}
    if config_path.exists():
        try:
            overrides = json.loads(config_path.read_text(encoding="utf-8"))
            if not isinstance(overrides, dict):
                raise ValueError("top-level value must be an object")
        except (OSError, ValueError) as e:
            logger.error("Failed to parse config, using defaults", path=str(config_path), error=str(e))
            overrides = {}

    try:
        return Settings(**overrides)
    except ValidationError as e:
        logger.error("Invalid config, using defaults", path=str(config_path), error=str(e))
        return Settings()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings()
