"""Mock translator and transport for offline use and tests."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Any

from parley.errors import SerializationError
from parley.message import (
    AssistantMessage,
    ImagePart,
    TextPart,
    ToolCall,
)
from parley.providers._utils import check_chat, dump_json, expect, load_json
from parley.providers.base import ProviderCapabilities, WireRequest, WireResponse

if TYPE_CHECKING:
    from collections.abc import Iterable

    from parley.chat import Chat
    from parley.message import Content, Message

MOCK_URL = "http://mock.parley.invalid/generate"


def _content_to_json(content: Content | None) -> Any:
    if content is None or isinstance(content, str):
        return content
    return [
        {"type": "text", "text": p.text}
        if isinstance(p, TextPart)
        else {"type": "image", "url": p.url}
        for p in content
    ]


def message_to_json(message: Message) -> dict[str, Any]:
    """Canonical JSON form of a message."""
    item: dict[str, Any] = {"role": message.role, "content": _content_to_json(message.content)}
    if isinstance(message, AssistantMessage) and message.tool_calls:
        item["tool_calls"] = [
            {"id": tc.id, "name": tc.name, "arguments": tc.arguments}
            for tc in message.tool_calls
        ]
    tool_call_id = getattr(message, "tool_call_id", None)
    if tool_call_id is not None:
        item["tool_call_id"] = tool_call_id
    return item


class MockTranslator:
    """Encodes chats and assistant messages as canonical JSON."""

    name = "mock"

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(tools=True, images=True, specific_tool_choice=True)

    def build_request(self, model: str, chat: Chat) -> WireRequest:
        check_chat(chat, self.capabilities, provider=self.name)
        choice = chat.tool_choice
        payload = {
            "model": str(model),
            "system": chat.system_prompt,
            "messages": [message_to_json(m) for m in chat.history],
            "tools": [
                {"name": t.name, "description": t.description, "parameters": t.parameters}
                for t in chat.tools
            ],
            "tool_choice": None if choice is None else {"mode": choice.mode, "name": choice.name},
            "max_output_tokens": chat.max_output_tokens,
        }
        return WireRequest(
            method="POST",
            url=MOCK_URL,
            headers={"Content-Type": "application/json"},
            body=dump_json(payload),
        )

    def parse_response(self, body: bytes) -> AssistantMessage:
        payload = expect(load_json(body), dict, "expected a JSON object")
        if payload.get("role") != "assistant":
            raise SerializationError("Malformed mock response: role must be 'assistant'")
        try:
            calls = tuple(
                ToolCall(id=tc["id"], name=tc["name"], arguments=tc.get("arguments", "{}"))
                for tc in payload.get("tool_calls") or []
            )
            raw = payload.get("content")
            content: Content | None
            if raw is None or isinstance(raw, str):
                content = raw
            else:
                content = tuple(
                    TextPart(p["text"]) if p.get("type") == "text" else ImagePart(p["url"])
                    for p in raw
                )
            return AssistantMessage(content=content, tool_calls=calls)
        except (KeyError, AttributeError, TypeError, ValueError) as e:
            raise SerializationError(f"Malformed mock response: {e}") from e


class MockTransport:
    """Replays scripted assistant messages, or echoes the last user turn.

    Every request is recorded in ``requests`` for inspection.
    """

    def __init__(self, script: Iterable[AssistantMessage | WireResponse] = ()) -> None:
        self._script: deque[AssistantMessage | WireResponse] = deque(script)
        self.requests: list[WireRequest] = []

    @property
    def remaining(self) -> int:
        return len(self._script)

    async def send(self, request: WireRequest) -> WireResponse:
        self.requests.append(request)
        if self._script:
            item = self._script.popleft()
            if isinstance(item, WireResponse):
                return item
            return WireResponse(200, dump_json(message_to_json(item)))
        return WireResponse(200, dump_json(message_to_json(_echo(request))))

    async def aclose(self) -> None:
        return None


def _echo(request: WireRequest) -> AssistantMessage:
    payload = request.json() or {}
    text = ""
    for m in reversed(payload.get("messages") or []):
        if m.get("role") == "user":
            raw = m.get("content")
            if isinstance(raw, str):
                text = raw
            else:
                text = "".join(p.get("text", "") for p in raw or [])
            break
    return AssistantMessage(content=f"echo: {text[:100]}")
