"""Canonical, provider-agnostic conversation messages.

A message is one of four frozen variants. Content is either plain text or an
ordered tuple of typed parts; metadata is a read-only mapping.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import typing

from parley._validation import _freeze_mapping, _is_tuple_of, _require


@dataclass(frozen=True, slots=True)
class TextPart:
    """A span of text inside multi-part content."""

    text: str

    def __post_init__(self) -> None:
        _require(
            condition=isinstance(self.text, str),
            message="must be a str",
            exc=TypeError,
            field_name="text",
        )


@dataclass(frozen=True, slots=True)
class ImagePart:
    """An image referenced by URL (``https://`` or ``data:`` URI)."""

    url: str
    detail: typing.Literal["auto", "low", "high"] | None = None

    def __post_init__(self) -> None:
        _require(
            condition=isinstance(self.url, str) and self.url != "",
            message="must be a non-empty str",
            exc=ValueError,
            field_name="url",
        )


ContentPart = TextPart | ImagePart
Content = str | tuple[ContentPart, ...]


def _normalize_content(content: object, *, field_name: str = "content") -> Content | None:
    if content is None or isinstance(content, str):
        return content
    if isinstance(content, list):
        content = tuple(content)
    _require(
        condition=_is_tuple_of(content, (TextPart, ImagePart)),
        message="must be a str or a sequence of TextPart/ImagePart",
        exc=TypeError,
        field_name=field_name,
    )
    return typing.cast("tuple[ContentPart, ...]", content)


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A tool invocation requested by the model.

    ``arguments`` is the serialized payload exactly as the backend produced
    it. It is validated lazily by the tool registry.
    """

    id: str
    name: str
    arguments: str = "{}"

    def __post_init__(self) -> None:
        _require(
            condition=isinstance(self.id, str) and self.id != "",
            message="must be a non-empty str",
            field_name="id",
        )
        _require(
            condition=isinstance(self.name, str) and self.name != "",
            message="must be a non-empty str",
            field_name="name",
        )
        _require(
            condition=isinstance(self.arguments, str),
            message="must be a serialized str",
            exc=TypeError,
            field_name="arguments",
        )


@dataclass(frozen=True, slots=True)
class SystemMessage:
    content: Content
    metadata: typing.Mapping[str, object] = field(default_factory=dict)
    role: typing.ClassVar[str] = "system"

    def __post_init__(self) -> None:
        object.__setattr__(self, "content", _normalize_content(self.content))
        object.__setattr__(self, "metadata", _freeze_mapping(self.metadata))


@dataclass(frozen=True, slots=True)
class UserMessage:
    content: Content
    metadata: typing.Mapping[str, object] = field(default_factory=dict)
    role: typing.ClassVar[str] = "user"

    def __post_init__(self) -> None:
        object.__setattr__(self, "content", _normalize_content(self.content))
        object.__setattr__(self, "metadata", _freeze_mapping(self.metadata))


@dataclass(frozen=True, slots=True)
class AssistantMessage:
    """A model turn: text content, tool calls, or both."""

    content: Content | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    metadata: typing.Mapping[str, object] = field(default_factory=dict)
    role: typing.ClassVar[str] = "assistant"

    def __post_init__(self) -> None:
        object.__setattr__(self, "content", _normalize_content(self.content))
        if isinstance(self.tool_calls, list):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))
        _require(
            condition=_is_tuple_of(self.tool_calls, ToolCall),
            message="must be a tuple of ToolCall",
            exc=TypeError,
            field_name="tool_calls",
        )
        _require(
            condition=self.content is not None or len(self.tool_calls) > 0,
            message="assistant message needs content, tool_calls, or both",
        )
        object.__setattr__(self, "metadata", _freeze_mapping(self.metadata))

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


@dataclass(frozen=True, slots=True)
class ToolMessage:
    """The result of one tool call, answering ``tool_call_id``."""

    tool_call_id: str
    content: Content
    metadata: typing.Mapping[str, object] = field(default_factory=dict)
    role: typing.ClassVar[str] = "tool"

    def __post_init__(self) -> None:
        _require(
            condition=isinstance(self.tool_call_id, str) and self.tool_call_id != "",
            message="must be a non-empty str",
            field_name="tool_call_id",
        )
        object.__setattr__(self, "content", _normalize_content(self.content))
        object.__setattr__(self, "metadata", _freeze_mapping(self.metadata))


Message = SystemMessage | UserMessage | AssistantMessage | ToolMessage


def content_text(content: Content | None) -> str:
    """Flatten content to plain text, dropping non-text parts."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return "".join(p.text for p in content if isinstance(p, TextPart))


def has_images(message: Message) -> bool:
    content = message.content
    return isinstance(content, tuple) and any(isinstance(p, ImagePart) for p in content)


# --- Convenience constructors ------------------------------------------------


def system(text: str) -> SystemMessage:
    return SystemMessage(content=text)


def user(content: Content) -> UserMessage:
    return UserMessage(content=content)


def assistant(
    content: Content | None = None, *, tool_calls: typing.Sequence[ToolCall] = ()
) -> AssistantMessage:
    return AssistantMessage(content=content, tool_calls=tuple(tool_calls))


def tool(tool_call_id: str, content: Content) -> ToolMessage:
    return ToolMessage(tool_call_id=tool_call_id, content=content)
