"""Shared utilities for translator implementations."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import httpx

from parley.errors import (
    BaseUrlError,
    ConfigurationError,
    ProviderFeatureNotSupportedError,
    SerializationError,
)
from parley.message import has_images

if TYPE_CHECKING:
    from parley.chat import Chat
    from parley.providers.base import ProviderCapabilities


def dump_json(payload: Any) -> bytes:
    """Encode a request payload, raising ``SerializationError`` on failure."""
    try:
        return json.dumps(payload, ensure_ascii=False, allow_nan=False).encode()
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Request payload is not JSON serializable: {e}") from e


def load_json(body: bytes) -> Any:
    try:
        return json.loads(body)
    except ValueError as e:
        raise SerializationError(f"Response body is not valid JSON: {e}") from e


def load_arguments(arguments: str, *, tool_name: str) -> dict[str, Any]:
    """Decode serialized tool-call arguments for backends that want objects."""
    raw = arguments.strip() or "{}"
    try:
        value = json.loads(raw)
    except ValueError as e:
        raise SerializationError(
            f"Arguments of tool call {tool_name!r} are not valid JSON: {e}"
        ) from e
    if not isinstance(value, dict):
        raise SerializationError(
            f"Arguments of tool call {tool_name!r} must be a JSON object"
        )
    return value


def expect(value: Any, typ: type | tuple[type, ...], what: str) -> Any:
    """Return ``value`` if it has type ``typ``, else raise ``SerializationError``."""
    if not isinstance(value, typ):
        raise SerializationError(f"Malformed response: {what}")
    return value


def resolve_endpoint(base_url: str, path: str) -> str:
    """Join ``base_url`` and ``path``, validating the result.

    Raises:
        BaseUrlError: Unparseable URL, non-http(s) scheme, or missing host.
    """
    try:
        url = httpx.URL(base_url)
    except (httpx.InvalidURL, TypeError, ValueError) as e:
        raise BaseUrlError(f"Invalid base URL {base_url!r}: {e}") from e
    if url.scheme not in ("http", "https") or not url.host:
        raise BaseUrlError(
            f"Invalid base URL {base_url!r}",
            hint="Use an absolute http(s) URL such as https://api.example.com/v1.",
        )
    return f"{str(url).rstrip('/')}/{path.lstrip('/')}"


def check_chat(chat: Chat, capabilities: ProviderCapabilities, *, provider: str) -> None:
    """Reject chats that ``capabilities`` cannot express, before any I/O.

    Raises:
        ProviderFeatureNotSupportedError: The chat needs a feature the
            backend lacks.
        ConfigurationError: The tool choice forces a tool the chat does not offer.
    """
    if chat.tools and not capabilities.tools:
        raise ProviderFeatureNotSupportedError(
            f"{provider} does not accept tool definitions",
            provider=provider,
            hint="Remove Chat.tools or switch provider.",
        )
    if not capabilities.images and any(has_images(m) for m in chat.history):
        raise ProviderFeatureNotSupportedError(
            f"{provider} does not accept image content",
            provider=provider,
            hint="Send text-only content or switch provider.",
        )

    choice = chat.tool_choice
    if choice is None or choice.mode in ("auto", "none"):
        return
    if not capabilities.forced_tool_choice or (
        choice.mode == "specific" and not capabilities.specific_tool_choice
    ):
        raise ProviderFeatureNotSupportedError(
            f"{provider} cannot force tool use (tool_choice={choice.mode!r})",
            provider=provider,
            hint="Use ToolChoice.auto() or ToolChoice.none() with this provider.",
        )
    if not chat.tools:
        raise ConfigurationError(
            f"tool_choice={choice.mode!r} requires at least one tool in Chat.tools",
            hint="Add tools with Chat.with_tools() or use ToolChoice.auto().",
        )
    if choice.mode == "specific" and choice.name not in {t.name for t in chat.tools}:
        raise ConfigurationError(
            f"tool_choice names {choice.name!r}, which is not in Chat.tools",
            hint="Name one of the tools offered in Chat.tools.",
        )


def malformed_response(provider: str, error: Exception) -> SerializationError:
    """Wrap a canonical-type validation failure raised while parsing."""
    return SerializationError(f"Malformed {provider} response: {error}")


def split_data_url(url: str) -> tuple[str, str] | None:
    """Return ``(mime_type, base64_data)`` for a base64 ``data:`` URL, else None."""
    if not url.startswith("data:") or ";base64," not in url:
        return None
    header, data = url[5:].split(";base64,", 1)
    return (header or "application/octet-stream", data)
