"""Translator protocol: the boundary between canonical chats and vendor wire formats."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from parley._validation import _freeze_mapping
from parley.errors import SerializationError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from parley.chat import Chat
    from parley.message import AssistantMessage

# Header names are compared case-insensitively.
_CREDENTIAL_HEADERS = frozenset(
    {"authorization", "x-api-key", "x-goog-api-key", "api-key", "openai-organization"}
)


@dataclass(frozen=True)
class ProviderCapabilities:
    """Feature flags exposed by translators.

    ``check_chat`` reads these before any request is built.
    """

    tools: bool = True
    images: bool = False
    forced_tool_choice: bool = True
    specific_tool_choice: bool = True


@dataclass(frozen=True)
class WireRequest:
    """A fully-built HTTP request, short-lived and never logged verbatim."""

    method: str
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", _freeze_mapping(self.headers))

    def json(self) -> Any:
        return json.loads(self.body) if self.body else None

    def redacted_headers(self) -> dict[str, str]:
        return {
            k: ("[REDACTED]" if k.lower() in _CREDENTIAL_HEADERS else v)
            for k, v in self.headers.items()
        }

    def __repr__(self) -> str:
        return (
            f"WireRequest(method={self.method!r}, url={self.url!r}, "
            f"headers={self.redacted_headers()!r}, body=<{len(self.body)} bytes>)"
        )

    __str__ = __repr__


@dataclass(frozen=True)
class WireResponse:
    """Status, headers and raw body of a completed HTTP exchange."""

    status_code: int
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        lowered = {k.lower(): v for k, v in dict(self.headers).items()}
        object.__setattr__(self, "headers", _freeze_mapping(lowered))

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    def json(self) -> Any:
        """Decode the body, raising ``SerializationError`` when it is not JSON."""
        try:
            return json.loads(self.body)
        except (ValueError, UnicodeDecodeError) as e:
            raise SerializationError(f"Response body is not valid JSON: {e}") from e


@runtime_checkable
class Translator(Protocol):
    """Per-backend adapter. Performs no I/O."""

    @property
    def name(self) -> str:
        """Provider name used in errors and logs."""
        ...

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Feature capabilities checked by ``check_chat`` before building."""
        ...

    def build_request(self, model: str, chat: Chat) -> WireRequest:
        """Serialize ``chat`` for ``model`` into a ready-to-send request.

        Raises:
            SerializationError: The chat cannot be encoded as JSON.
            BaseUrlError: The configured endpoint is malformed.
            ProviderFeatureNotSupportedError: The chat uses a feature this
                backend cannot express.
        """
        ...

    def parse_response(self, body: bytes) -> AssistantMessage:
        """Recover the assistant message from a successful response body.

        Raises:
            SerializationError: The body is not JSON or lacks the expected shape.
            ProviderUnavailableError: The body is an error payload.
        """
        ...
