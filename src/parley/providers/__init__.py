"""Provider translators."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .anthropic import AnthropicTranslator
from .base import ProviderCapabilities, Translator, WireRequest, WireResponse
from .gemini import GeminiTranslator
from .mistral import MistralTranslator
from .mock import MockTranslator, MockTransport
from .ollama import OllamaTranslator
from .openai import OpenAITranslator

if TYPE_CHECKING:
    from parley.config import Config


def translator_for(config: Config) -> Translator:
    """Build the translator selected by ``config.provider``."""
    api_key = config.api_key or ""
    if config.provider == "openai":
        return OpenAITranslator(
            api_key, base_url=config.base_url, organization=config.organization
        )
    if config.provider == "anthropic":
        return AnthropicTranslator(api_key, base_url=config.base_url)
    if config.provider == "gemini":
        return GeminiTranslator(api_key, base_url=config.base_url)
    if config.provider == "mistral":
        return MistralTranslator(api_key, base_url=config.base_url)
    if config.provider == "ollama":
        return OllamaTranslator(base_url=config.base_url)
    return MockTranslator()


__all__ = [
    "AnthropicTranslator",
    "GeminiTranslator",
    "MistralTranslator",
    "MockTranslator",
    "MockTransport",
    "OllamaTranslator",
    "OpenAITranslator",
    "ProviderCapabilities",
    "Translator",
    "WireRequest",
    "WireResponse",
    "translator_for",
]
