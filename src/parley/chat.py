"""The conversation value passed through every operation.

``Chat`` is immutable: every mutator returns a new instance and leaves the
receiver untouched, so a chat can be shared freely across concurrent turns.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
import typing

from parley._validation import _is_tuple_of, _require
from parley.message import (
    AssistantMessage,
    Message,
    SystemMessage,
    ToolMessage,
    UserMessage,
)
from parley.tools import ToolSpec

if typing.TYPE_CHECKING:
    from collections.abc import Iterable

ToolChoiceMode = typing.Literal["auto", "any", "none", "specific"]

_MESSAGE_TYPES = (SystemMessage, UserMessage, AssistantMessage, ToolMessage)


@dataclass(frozen=True, slots=True)
class ToolChoice:
    """Tool-selection policy for the next generation.

    ``auto`` lets the model decide, ``any`` forces some tool, ``none``
    forbids tools and ``specific`` forces the tool called ``name``.
    """

    mode: ToolChoiceMode = "auto"
    name: str | None = None

    def __post_init__(self) -> None:
        _require(
            condition=self.mode in ("auto", "any", "none", "specific"),
            message=f"unknown tool choice {self.mode!r}",
            field_name="mode",
        )
        if self.mode == "specific":
            _require(
                condition=bool(self.name),
                message="a specific tool choice needs a tool name",
                field_name="name",
            )
        else:
            _require(
                condition=self.name is None,
                message=f"name is only valid with mode='specific', got mode={self.mode!r}",
                field_name="name",
            )

    @classmethod
    def auto(cls) -> ToolChoice:
        return cls("auto")

    @classmethod
    def any(cls) -> ToolChoice:
        return cls("any")

    @classmethod
    def none(cls) -> ToolChoice:
        return cls("none")

    @classmethod
    def specific(cls, name: str) -> ToolChoice:
        return cls("specific", name)


@dataclass(frozen=True, slots=True)
class Chat:
    """Conversation history plus the per-turn generation settings."""

    history: tuple[Message, ...] = ()
    system_prompt: str | None = None
    tools: tuple[ToolSpec, ...] = ()
    tool_choice: ToolChoice | None = None
    max_output_tokens: int = 2048

    def __post_init__(self) -> None:
        if isinstance(self.history, list):
            object.__setattr__(self, "history", tuple(self.history))
        if isinstance(self.tools, list):
            object.__setattr__(self, "tools", tuple(self.tools))
        _require(
            condition=_is_tuple_of(self.history, _MESSAGE_TYPES),
            message="must be a tuple of messages",
            exc=TypeError,
            field_name="history",
        )
        _require(
            condition=_is_tuple_of(self.tools, ToolSpec),
            message="must be a tuple of ToolSpec",
            exc=TypeError,
            field_name="tools",
        )
        _require(
            condition=isinstance(self.max_output_tokens, int)
            and self.max_output_tokens > 0,
            message=f"must be a positive int, got {self.max_output_tokens!r}",
            field_name="max_output_tokens",
        )

    def add_message(self, message: Message) -> Chat:
        """Return a new chat with ``message`` appended to the history."""
        return replace(self, history=(*self.history, message))

    def add_messages(self, messages: Iterable[Message]) -> Chat:
        return replace(self, history=(*self.history, *messages))

    def with_system_prompt(self, prompt: str | None) -> Chat:
        return replace(self, system_prompt=prompt)

    def with_tools(self, tools: Iterable[ToolSpec]) -> Chat:
        return replace(self, tools=tuple(tools))

    def with_tool_choice(self, choice: ToolChoice | None) -> Chat:
        return replace(self, tool_choice=choice)

    def with_max_output_tokens(self, limit: int) -> Chat:
        return replace(self, max_output_tokens=limit)

    def most_recent_message(self) -> Message | None:
        return self.history[-1] if self.history else None

    def last_assistant_message(self) -> AssistantMessage | None:
        for message in reversed(self.history):
            if isinstance(message, AssistantMessage):
                return message
        return None

    def tool_spec(self, name: str) -> ToolSpec | None:
        return next((t for t in self.tools if t.name == name), None)


def add_message(chat: Chat, message: Message) -> Chat:
    """Append ``message`` to ``chat`` without mutating it."""
    return chat.add_message(message)
