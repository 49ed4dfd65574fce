from __future__ import annotations

from ..types import LLMProviderError
from .anthropic import AnthropicProvider
from .base import BaseProvider
from .gemini import GeminiProvider
from .generic_openai import GenericOpenAIProvider

__all__ = [
    "AnthropicProvider",
    "BaseProvider",
    "GeminiProvider",
    "GenericOpenAIProvider",
    "LLMProviderError",
    "build_provider",
]


def build_provider(provider_name: str, provider_config: dict) -> BaseProvider:
    """Build a text-generation provider from its config section.

    ``type`` defaults to the section name. Keys are read from ``api_key`` or
    the environment variable named by ``api_key_env``.
    """
    ptype = provider_config.get("type", provider_name)
    temperature = provider_config.get("temperature", 0.3)

    if ptype == "generic_openai":
        return GenericOpenAIProvider(
            base_url=provider_config.get("base_url", "http://127.0.0.1:11434/v1"),
            model=provider_config.get("model", "qwen3:4b-instruct-2507-fp16"),
            temperature=temperature,
            api_key=provider_config.get("api_key", "not-needed"),
        )

    if ptype == "anthropic":
        return AnthropicProvider(
            api_key=provider_config.get("api_key"),
            api_key_env=provider_config.get("api_key_env", "ANTHROPIC_API_KEY"),
            model=provider_config.get("model", "claude-haiku-4-5"),
            temperature=temperature,
        )

    if ptype == "gemini":
        return GeminiProvider(
            api_key=provider_config.get("api_key"),
            api_key_env=provider_config.get("api_key_env", "GEMINI_API_KEY"),
            model=provider_config.get("model", "gemini-1.5-pro-002"),
            temperature=temperature,
        )

    raise LLMProviderError(f"Unknown provider type '{ptype}'", provider=provider_name)
