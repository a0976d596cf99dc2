"""Mistral translator (OpenAI-compatible chat completions)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from parley.providers.base import ProviderCapabilities
from parley.providers.openai import OpenAITranslator

if TYPE_CHECKING:
    from parley.chat import Chat

DEFAULT_BASE_URL = "https://api.mistral.ai/v1"


class MistralTranslator(OpenAITranslator):
    """Same wire format as OpenAI with Mistral's tool-choice vocabulary.

    Mistral has no "force this tool" option, so a specific choice is sent
    as ``any`` with the tool list narrowed to the named tool.
    """

    name = "mistral"
    default_base_url = DEFAULT_BASE_URL

    def __init__(self, api_key: str, *, base_url: str | None = None) -> None:
        super().__init__(api_key, base_url=base_url)

    @property
    def capabilities(self) -> ProviderCapabilities:
        return ProviderCapabilities(tools=True, images=False)

    def _limit_key(self, model: str) -> str:
        return "max_tokens"

    def _tools(self, chat: Chat) -> tuple[list[dict[str, Any]], Any]:
        tools, _ = super()._tools(chat)
        choice = chat.tool_choice
        if choice is None or choice.mode == "auto":
            return tools, "auto"
        if choice.mode == "none":
            return tools, "none"
        if choice.mode == "specific":
            tools = [t for t in tools if t["function"]["name"] == choice.name]
        return tools, "any"
