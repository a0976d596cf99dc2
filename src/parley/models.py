"""Known model identifiers per backend.

Each enum member is its own wire identifier, so members can be passed
anywhere a model string is accepted. Unknown identifiers are still allowed
as plain strings; these enums only name the models parley is tested with.
"""

from __future__ import annotations

from enum import StrEnum


class OpenAIModel(StrEnum):
    GPT_4O = "gpt-4o"
    GPT_4O_MINI = "gpt-4o-mini"
    GPT_4_TURBO = "gpt-4-turbo"
    GPT_35_TURBO = "gpt-3.5-turbo"
    O4_MINI = "o4-mini-2025-04-16"
    O3 = "o3-2025-04-16"
    O3_MINI = "o3-mini-2025-01-31"
    O1 = "o1-2024-12-17"
    O1_MINI = "o1-mini-2024-09-12"
    O1_PRO = "o1-pro-2025-03-19"


class AnthropicModel(StrEnum):
    SONNET_37 = "claude-3-7-sonnet-latest"
    SONNET_35 = "claude-3-5-sonnet-latest"
    HAIKU_35 = "claude-3-5-haiku-latest"
    HAIKU_3 = "claude-3-haiku-20240307"
    OPUS_3 = "claude-3-opus-latest"


class GeminiModel(StrEnum):
    FLASH_15 = "gemini-1.5-flash"
    FLASH_20 = "gemini-2.0-flash"
    FLASH_20_LITE = "gemini-2.0-flash-lite"
    FLASH_25_PREVIEW = "gemini-2.5-flash-preview-04-17"


class MistralModel(StrEnum):
    LARGE = "mistral-large-latest"
    SMALL = "mistral-small-latest"
    NEMO = "open-mistral-nemo"
    CODESTRAL = "codestral-latest"


class OllamaModel(StrEnum):
    LLAMA3_8B = "llama3:8b"
    LLAMA3_70B = "llama3:70b"
    MISTRAL_7B = "mistral:7b"
    QWEN3_8B = "qwen3:8b"


def uses_completion_tokens(model: str) -> bool:
    """OpenAI reasoning models take ``max_completion_tokens`` instead of ``max_tokens``."""
    return len(model) > 1 and model[0] == "o" and model[1].isdigit()
