"""Ollama ``/api/chat`` translator."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from parley.errors import ProviderFeatureNotSupportedError, SerializationError
from parley.message import (
    AssistantMessage,
    ImagePart,
    SystemMessage,
    ToolCall,
    ToolMessage,
    content_text,
)
from parley.providers._errors import error_from_payload
from parley.providers._utils import (
    check_chat,
    dump_json,
    expect,
    load_arguments,
    load_json,
    malformed_response,
    resolve_endpoint,
    split_data_url,
)
from parley.providers.base import ProviderCapabilities, WireRequest

if TYPE_CHECKING:
    from parley.chat import Chat
    from parley.message import Message

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434/api"


class OllamaTranslator:
    """Maps chats onto a local Ollama server's ``POST /api/chat``.

    No authentication. Images must be inline base64 ``data:`` URLs.
    Ollama cannot force a specific tool.
    """

    name = "ollama"

    def __init__(self, *, base_url: str | None = None) -> None:
        self.base_url = base_url or DEFAULT_BASE_URL

    def __repr__(self) -> str:
        return f"OllamaTranslator(base_url={self.base_url!r})"

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(
            tools=True, images=True, forced_tool_choice=False, specific_tool_choice=False
        )

    def build_request(self, model: str, chat: Chat) -> WireRequest:
        """Build a non-streaming chat request for ``model``."""
        url = resolve_endpoint(self.base_url, "chat")
        check_chat(chat, self.capabilities, provider=self.name)
        choice = chat.tool_choice

        messages: list[dict[str, Any]] = []
        if chat.system_prompt:
            messages.append({"role": "system", "content": chat.system_prompt})
        call_names: dict[str, str] = {}
        for message in chat.history:
            messages.append(self._message(message, call_names))

        payload: dict[str, Any] = {
            "model": str(model),
            "messages": messages,
            "stream": False,
            "options": {"num_predict": chat.max_output_tokens},
        }
        # "none" is expressed by sending no tools at all.
        if chat.tools and not (choice is not None and choice.mode == "none"):
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": spec.name,
                        "description": spec.description,
                        "parameters": spec.parameters,
                    },
                }
                for spec in chat.tools
            ]

        log.debug("ollama request: model=%s messages=%d", model, len(messages))
        headers = {"Content-Type": "application/json"}
        return WireRequest(method="POST", url=url, headers=headers, body=dump_json(payload))

    def _message(self, message: Message, call_names: dict[str, str]) -> dict[str, Any]:
        if isinstance(message, SystemMessage):
            return {"role": "system", "content": content_text(message.content)}
        if isinstance(message, ToolMessage):
            item: dict[str, Any] = {"role": "tool", "content": content_text(message.content)}
            name = call_names.get(message.tool_call_id)
            if name is not None:
                item["tool_name"] = name
            return item
        if isinstance(message, AssistantMessage):
            item = {"role": "assistant", "content": content_text(message.content)}
            if message.tool_calls:
                item["tool_calls"] = []
                for tc in message.tool_calls:
                    call_names[tc.id] = tc.name
                    item["tool_calls"].append(
                        {
                            "function": {
                                "name": tc.name,
                                "arguments": load_arguments(tc.arguments, tool_name=tc.name),
                            }
                        }
                    )
            return item

        item = {"role": "user", "content": content_text(message.content)}
        if isinstance(message.content, tuple):
            images = [self._image(p) for p in message.content if isinstance(p, ImagePart)]
            if images:
                item["images"] = images
        return item

    def _image(self, part: ImagePart) -> str:
        inline = split_data_url(part.url)
        if inline is None:
            raise ProviderFeatureNotSupportedError(
                "ollama only accepts inline base64 images",
                provider=self.name,
                hint="Pass images as data:<mime>;base64,<data> URLs.",
            )
        return inline[1]

    def parse_response(self, body: bytes) -> AssistantMessage:
        """Read the ``message`` object of a non-streaming chat response."""
        payload = load_json(body)
        error = error_from_payload(payload, provider=self.name)
        if error is not None:
            raise error
        payload = expect(payload, dict, "expected a JSON object")
        try:
            return self._assistant(payload)
        except (TypeError, ValueError) as e:
            raise malformed_response(self.name, e) from e

    def _assistant(self, payload: dict[str, Any]) -> AssistantMessage:
        message = expect(payload.get("message"), dict, "missing 'message'")

        tool_calls: list[ToolCall] = []
        for raw in message.get("tool_calls") or ():
            raw = expect(raw, dict, "tool call is not an object")
            function = expect(raw.get("function"), dict, "tool call has no 'function'")
            name = expect(function.get("name"), str, "tool call has no name")
            arguments = function.get("arguments") or {}
            tool_calls.append(
                ToolCall(
                    id=f"ollama_call_{len(tool_calls) + 1}",
                    name=name,
                    arguments=arguments if isinstance(arguments, str) else dump_json(arguments).decode(),
                )
            )

        content = message.get("content")
        if content is not None and not isinstance(content, str):
            raise SerializationError("Malformed ollama response: non-text content")
        if not content and tool_calls:
            content = None
        if content is None and not tool_calls:
            raise SerializationError("Malformed ollama response: empty message")
        metadata = {
            k: v
            for k, v in (
                ("model", payload.get("model")),
                ("finish_reason", payload.get("done_reason")),
                ("usage", _usage(payload)),
            )
            if v is not None
        }
        return AssistantMessage(content=content, tool_calls=tuple(tool_calls), metadata=metadata)


def _usage(payload: dict[str, Any]) -> dict[str, int] | None:
    prompt = payload.get("prompt_eval_count")
    completion = payload.get("eval_count")
    if not isinstance(prompt, int) and not isinstance(completion, int):
        return None
    return {
        "input_tokens": prompt if isinstance(prompt, int) else 0,
        "output_tokens": completion if isinstance(completion, int) else 0,
    }
