"""Anthropic Messages API translator."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from parley.errors import SerializationError
from parley.message import (
    AssistantMessage,
    ImagePart,
    SystemMessage,
    TextPart,
    ToolCall,
    ToolMessage,
    UserMessage,
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
    from parley.message import Content

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"


class AnthropicTranslator:
    """Maps chats onto ``POST /messages``.

    Anthropic requires strict user/assistant alternation: tool results
    travel as ``tool_result`` blocks inside a user turn, and consecutive
    same-role turns are merged.
    """

    name = "anthropic"

    def __init__(self, api_key: str, *, base_url: str | None = None) -> None:
        """Initialize with an API key and optional endpoint override."""
        self.api_key = api_key
        self.base_url = base_url or DEFAULT_BASE_URL

    def __repr__(self) -> str:
        return f"AnthropicTranslator(base_url={self.base_url!r})"

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(tools=True, images=True, specific_tool_choice=True)

    def build_request(self, model: str, chat: Chat) -> WireRequest:
        """Build a Messages API request for ``model``."""
        url = resolve_endpoint(self.base_url, "messages")
        check_chat(chat, self.capabilities, provider=self.name)

        system_parts = [chat.system_prompt] if chat.system_prompt else []
        messages: list[dict[str, Any]] = []
        for message in chat.history:
            if isinstance(message, SystemMessage):
                # Mid-history system turns fold into the top-level prompt.
                system_parts.append(content_text(message.content))
            elif isinstance(message, UserMessage):
                _append_message(
                    messages, {"role": "user", "content": _content(message.content)}
                )
            elif isinstance(message, ToolMessage):
                block = {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id,
                    "content": content_text(message.content),
                }
                _append_message(messages, {"role": "user", "content": [block]})
            else:
                _append_message(messages, _assistant_turn(message))

        payload: dict[str, Any] = {
            "model": str(model),
            "max_tokens": chat.max_output_tokens,
            "messages": messages,
        }
        if system_parts:
            payload["system"] = "\n\n".join(p for p in system_parts if p)
        if chat.tools:
            payload["tools"] = [
                {
                    "name": spec.name,
                    "description": spec.description,
                    "input_schema": spec.parameters or {"type": "object"},
                }
                for spec in chat.tools
            ]
            mapped = _map_tool_choice(chat)
            if mapped is not None:
                payload["tool_choice"] = mapped

        log.debug(
            "anthropic request: model=%s messages=%d tools=%d",
            model,
            len(messages),
            len(chat.tools),
        )
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        return WireRequest(method="POST", url=url, headers=headers, body=dump_json(payload))

    def parse_response(self, body: bytes) -> AssistantMessage:
        """Collect text and ``tool_use`` blocks into one assistant message."""
        payload = load_json(body)
        if isinstance(payload, dict) and payload.get("type") == "error":
            error = error_from_payload(payload, provider=self.name)
            if error is not None:
                raise error
        payload = expect(payload, dict, "expected a JSON object")
        try:
            return self._assistant(payload)
        except (TypeError, ValueError) as e:
            raise malformed_response(self.name, e) from e

    def _assistant(self, payload: dict[str, Any]) -> AssistantMessage:
        blocks = expect(payload.get("content"), list, "missing 'content'")

        texts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in blocks:
            block = expect(block, dict, "content block is not an object")
            block_type = block.get("type")
            if block_type == "text":
                texts.append(expect(block.get("text"), str, "text block has no text"))
            elif block_type == "tool_use":
                tool_calls.append(
                    ToolCall(
                        id=expect(block.get("id"), str, "tool_use block has no id"),
                        name=expect(block.get("name"), str, "tool_use block has no name"),
                        arguments=dump_json(block.get("input") or {}).decode(),
                    )
                )

        if not texts and not tool_calls:
            raise SerializationError(
                "Malformed anthropic response: no text or tool_use blocks"
            )
        metadata = {
            k: v
            for k, v in (
                ("id", payload.get("id")),
                ("model", payload.get("model")),
                ("finish_reason", _normalize_stop_reason(payload.get("stop_reason"))),
                ("usage", payload.get("usage")),
            )
            if v is not None
        }
        return AssistantMessage(
            content="".join(texts) if texts else None,
            tool_calls=tuple(tool_calls),
            metadata=metadata,
        )


def _assistant_turn(message: AssistantMessage) -> dict[str, Any]:
    blocks: list[dict[str, Any]] = []
    text = content_text(message.content)
    if text:
        blocks.append({"type": "text", "text": text})
    for tc in message.tool_calls:
        blocks.append(
            {
                "type": "tool_use",
                "id": tc.id,
                "name": tc.name,
                "input": load_arguments(tc.arguments, tool_name=tc.name),
            }
        )
    return {"role": "assistant", "content": blocks}


def _content(content: Content) -> str | list[dict[str, Any]]:
    if isinstance(content, str):
        return content
    blocks: list[dict[str, Any]] = []
    for part in content:
        if isinstance(part, TextPart):
            blocks.append({"type": "text", "text": part.text})
        elif isinstance(part, ImagePart):
            blocks.append({"type": "image", "source": _image_source(part.url)})
    return blocks


def _image_source(url: str) -> dict[str, str]:
    inline = split_data_url(url)
    if inline is not None:
        media_type, data = inline
        return {"type": "base64", "media_type": media_type, "data": data}
    return {"type": "url", "url": url}


def _map_tool_choice(chat: Chat) -> dict[str, Any] | None:
    choice = chat.tool_choice
    if choice is None:
        return None
    if choice.mode == "specific":
        return {"type": "tool", "name": choice.name}
    return {"type": choice.mode}


def _normalize_stop_reason(stop_reason: Any) -> str | None:
    """Map Anthropic stop_reason to a normalized lowercase string."""
    if stop_reason is None:
        return None
    reason = str(stop_reason).lower()

    mapping: dict[str, str] = {
        "end_turn": "stop",
        "stop_sequence": "stop",
        "max_tokens": "max_tokens",
        "tool_use": "tool_calls",
    }
    return mapping.get(reason, reason)


def _append_message(messages: list[dict[str, Any]], msg: dict[str, Any]) -> None:
    """Append *msg*, merging into the previous message when roles match."""
    if messages and messages[-1]["role"] == msg["role"]:
        prev = messages[-1]
        prev_content = prev["content"]
        new_content = msg["content"]
        if isinstance(prev_content, str):
            prev_content = [{"type": "text", "text": prev_content}]
        if isinstance(new_content, str):
            new_content = [{"type": "text", "text": new_content}]
        prev["content"] = prev_content + new_content
    else:
        messages.append(msg)
