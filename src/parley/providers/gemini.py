"""Gemini ``generateContent`` translator."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from parley.errors import SerializationError
from parley.message import (
    AssistantMessage,
    ImagePart,
    SystemMessage,
    TextPart,
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
    from parley.message import Content

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

_MODE = {"auto": "AUTO", "any": "ANY", "none": "NONE", "specific": "ANY"}


class GeminiTranslator:
    """Maps chats onto ``POST /models/{model}:generateContent``.

    The API key travels in the ``x-goog-api-key`` header, never in the URL.
    Gemini omits tool-call ids, so calls are numbered ``gemini_call_{n}``
    within each response; tool results are matched back to their call name
    through the history.
    """

    name = "gemini"

    def __init__(self, api_key: str, *, base_url: str | None = None) -> None:
        """Initialize with an API key and optional endpoint override."""
        self.api_key = api_key
        self.base_url = base_url or DEFAULT_BASE_URL

    def __repr__(self) -> str:
        return f"GeminiTranslator(base_url={self.base_url!r})"

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Return supported feature flags."""
        return ProviderCapabilities(tools=True, images=True, specific_tool_choice=True)

    def build_request(self, model: str, chat: Chat) -> WireRequest:
        """Build a ``generateContent`` request for ``model``."""
        model_id = str(model).removeprefix("models/")
        url = resolve_endpoint(self.base_url, f"models/{quote(model_id)}:generateContent")
        check_chat(chat, self.capabilities, provider=self.name)

        system_texts = [chat.system_prompt] if chat.system_prompt else []
        call_names: dict[str, str] = {}
        contents: list[dict[str, Any]] = []
        for message in chat.history:
            if isinstance(message, SystemMessage):
                system_texts.append(content_text(message.content))
                continue
            if isinstance(message, AssistantMessage):
                role = "model"
                parts = _parts(message.content) if message.content is not None else []
                for tc in message.tool_calls:
                    call_names[tc.id] = tc.name
                    parts.append(
                        {
                            "functionCall": {
                                "name": tc.name,
                                "args": load_arguments(tc.arguments, tool_name=tc.name),
                            }
                        }
                    )
            elif isinstance(message, ToolMessage):
                role = "user"
                name = call_names.get(message.tool_call_id)
                if name is None:
                    raise SerializationError(
                        f"Tool message {message.tool_call_id!r} has no matching assistant call",
                        hint="Tool messages must follow the assistant message that requested them.",
                    )
                parts = [
                    {
                        "functionResponse": {
                            "name": name,
                            "response": {"content": content_text(message.content)},
                        }
                    }
                ]
            else:
                role = "user"
                parts = _parts(message.content)

            if contents and contents[-1]["role"] == role:
                contents[-1]["parts"].extend(parts)
            else:
                contents.append({"role": role, "parts": parts})

        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {"maxOutputTokens": chat.max_output_tokens},
        }
        system_text = "\n\n".join(t for t in system_texts if t)
        if system_text:
            payload["systemInstruction"] = {"parts": [{"text": system_text}]}
        if chat.tools:
            payload["tools"] = [
                {
                    "functionDeclarations": [
                        {
                            "name": spec.name,
                            "description": spec.description,
                            "parameters": spec.parameters,
                        }
                        for spec in chat.tools
                    ]
                }
            ]
            choice = chat.tool_choice
            if choice is not None:
                config: dict[str, Any] = {"mode": _MODE[choice.mode]}
                if choice.mode == "specific":
                    config["allowedFunctionNames"] = [choice.name]
                payload["toolConfig"] = {"functionCallingConfig": config}

        log.debug(
            "gemini request: model=%s contents=%d tools=%d",
            model_id,
            len(contents),
            len(chat.tools),
        )
        headers = {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}
        return WireRequest(method="POST", url=url, headers=headers, body=dump_json(payload))

    def parse_response(self, body: bytes) -> AssistantMessage:
        """Collect text and ``functionCall`` parts of the first candidate."""
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
        candidates = expect(payload.get("candidates"), list, "missing 'candidates'")
        if not candidates:
            feedback = payload.get("promptFeedback")
            raise SerializationError(
                f"Malformed gemini response: no candidates (promptFeedback={feedback!r})"
            )
        candidate = expect(candidates[0], dict, "candidate is not an object")
        content = expect(candidate.get("content") or {}, dict, "candidate content")
        parts = expect(content.get("parts") or [], list, "candidate parts")

        texts: list[str] = []
        tool_calls: list[ToolCall] = []
        for part in parts:
            part = expect(part, dict, "part is not an object")
            call = part.get("functionCall")
            if isinstance(call, dict):
                name = expect(call.get("name"), str, "functionCall has no name")
                call_id = call.get("id")
                if not isinstance(call_id, str) or not call_id:
                    call_id = f"gemini_call_{len(tool_calls) + 1}"
                tool_calls.append(
                    ToolCall(
                        id=call_id,
                        name=name,
                        arguments=dump_json(call.get("args") or {}).decode(),
                    )
                )
            text = part.get("text")
            if isinstance(text, str):
                texts.append(text)

        if not texts and not tool_calls:
            raise SerializationError("Malformed gemini response: candidate has no parts")
        metadata = {
            k: v
            for k, v in (
                ("model", payload.get("modelVersion")),
                ("finish_reason", _normalize_finish_reason(candidate.get("finishReason"))),
                ("usage", payload.get("usageMetadata")),
            )
            if v is not None
        }
        return AssistantMessage(
            content="".join(texts) if texts else None,
            tool_calls=tuple(tool_calls),
            metadata=metadata,
        )


def _parts(content: Content) -> list[dict[str, Any]]:
    if isinstance(content, str):
        return [{"text": content}]
    parts: list[dict[str, Any]] = []
    for part in content:
        if isinstance(part, TextPart):
            parts.append({"text": part.text})
        elif isinstance(part, ImagePart):
            inline = split_data_url(part.url)
            if inline is not None:
                mime_type, data = inline
                parts.append({"inlineData": {"mimeType": mime_type, "data": data}})
            else:
                parts.append({"fileData": {"mimeType": "image/jpeg", "fileUri": part.url}})
    return parts


def _normalize_finish_reason(reason: Any) -> str | None:
    if not isinstance(reason, str):
        return None
    return {"STOP": "stop", "MAX_TOKENS": "max_tokens"}.get(reason, reason.lower())
