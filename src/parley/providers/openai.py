"""OpenAI Chat Completions translator."""

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
from parley.models import uses_completion_tokens
from parley.providers._errors import error_from_payload
from parley.providers._utils import (
    check_chat,
    dump_json,
    expect,
    load_json,
    malformed_response,
    resolve_endpoint,
)
from parley.providers.base import ProviderCapabilities, WireRequest

if TYPE_CHECKING:
    from parley.chat import Chat
    from parley.message import Content, Message

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"


class OpenAITranslator:
    """Maps chats onto ``POST /chat/completions``.

    Also the base for OpenAI-compatible backends; subclasses override the
    tool-choice and limit hooks.
    """

    name = "openai"
    default_base_url = DEFAULT_BASE_URL

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str | None = None,
        organization: str | None = None,
    ) -> None:
        """Initialize with an API key and optional endpoint overrides."""
        self.api_key = api_key
        self.base_url = base_url or self.default_base_url
        self.organization = organization

    def __repr__(self) -> str:
        return f"{type(self).__name__}(base_url={self.base_url!r})"

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(tools=True, images=True, specific_tool_choice=True)

    # --- request -------------------------------------------------------------

    def build_request(self, model: str, chat: Chat) -> WireRequest:
        """Build a Chat Completions request for ``model``."""
        url = resolve_endpoint(self.base_url, "chat/completions")
        check_chat(chat, self.capabilities, provider=self.name)

        payload: dict[str, Any] = {
            "model": str(model),
            "messages": self._messages(chat),
        }
        payload[self._limit_key(str(model))] = chat.max_output_tokens
        tools, tool_choice = self._tools(chat)
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = tool_choice

        log.debug(
            "%s request: model=%s messages=%d tools=%d",
            self.name,
            model,
            len(payload["messages"]),
            len(tools),
        )
        return WireRequest(
            method="POST", url=url, headers=self._headers(), body=dump_json(payload)
        )

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if self.organization:
            headers["OpenAI-Organization"] = self.organization
        return headers

    def _limit_key(self, model: str) -> str:
        return "max_completion_tokens" if uses_completion_tokens(model) else "max_tokens"

    def _messages(self, chat: Chat) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        if chat.system_prompt:
            messages.append({"role": "system", "content": chat.system_prompt})
        messages.extend(self._message(m) for m in chat.history)
        return messages

    def _message(self, message: Message) -> dict[str, Any]:
        if isinstance(message, SystemMessage):
            return {"role": "system", "content": content_text(message.content)}
        if isinstance(message, UserMessage):
            return {"role": "user", "content": self._content(message.content)}
        if isinstance(message, ToolMessage):
            return {
                "role": "tool",
                "tool_call_id": message.tool_call_id,
                "content": content_text(message.content),
            }
        item: dict[str, Any] = {
            "role": "assistant",
            "content": content_text(message.content) if message.content is not None else None,
        }
        if message.tool_calls:
            item["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": tc.arguments},
                }
                for tc in message.tool_calls
            ]
        return item

    def _content(self, content: Content) -> str | list[dict[str, Any]]:
        if isinstance(content, str):
            return content
        parts: list[dict[str, Any]] = []
        for part in content:
            if isinstance(part, TextPart):
                parts.append({"type": "text", "text": part.text})
            elif isinstance(part, ImagePart):
                image: dict[str, Any] = {"url": part.url}
                if part.detail is not None:
                    image["detail"] = part.detail
                parts.append({"type": "image_url", "image_url": image})
        return parts

    def _tools(self, chat: Chat) -> tuple[list[dict[str, Any]], Any]:
        tools = [
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
        choice = chat.tool_choice
        if choice is None or choice.mode == "auto":
            return tools, "auto"
        if choice.mode == "any":
            return tools, "required"
        if choice.mode == "none":
            return tools, "none"
        return tools, {"type": "function", "function": {"name": choice.name}}

    # --- response ------------------------------------------------------------

    def parse_response(self, body: bytes) -> AssistantMessage:
        """Recover the assistant message from the first choice."""
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
        choices = expect(payload.get("choices"), list, "missing 'choices'")
        if not choices:
            raise SerializationError(f"Malformed {self.name} response: empty 'choices'")
        choice = expect(choices[0], dict, "choice is not an object")
        message = expect(choice.get("message"), dict, "choice has no 'message'")

        tool_calls = tuple(self._tool_call(tc) for tc in message.get("tool_calls") or ())
        legacy = message.get("function_call")
        if not tool_calls and isinstance(legacy, dict) and legacy.get("name"):
            tool_calls = (
                ToolCall(
                    id=f"legacy_function_{legacy['name']}",
                    name=legacy["name"],
                    arguments=legacy.get("arguments") or "{}",
                ),
            )

        content = message.get("content")
        if content is None and not tool_calls:
            content = message.get("refusal")
        if content is not None and not isinstance(content, str):
            raise SerializationError(f"Malformed {self.name} response: non-text content")
        if content is None and not tool_calls:
            raise SerializationError(
                f"Malformed {self.name} response: message has neither content nor tool calls"
            )

        metadata = {
            k: v
            for k, v in (
                ("id", payload.get("id")),
                ("model", payload.get("model")),
                ("finish_reason", choice.get("finish_reason")),
                ("usage", payload.get("usage")),
            )
            if v is not None
        }
        return AssistantMessage(content=content, tool_calls=tool_calls, metadata=metadata)

    def _tool_call(self, raw: Any) -> ToolCall:
        raw = expect(raw, dict, "tool call is not an object")
        function = expect(raw.get("function"), dict, "tool call has no 'function'")
        name = expect(function.get("name"), str, "tool call has no name")
        arguments = function.get("arguments")
        if not isinstance(arguments, str):
            arguments = dump_json(arguments if arguments is not None else {}).decode()
        call_id = raw.get("id")
        if not isinstance(call_id, str) or not call_id:
            raise SerializationError(f"Malformed {self.name} response: tool call has no id")
        return ToolCall(id=call_id, name=name, arguments=arguments)
