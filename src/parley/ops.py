"""Operation algebra: programs as inert data with attached continuations.

A ``Program`` is either one pending operation or one final value, never both
and never neither. Building a program performs no effects; an interpreter
chain (see ``parley.interpreters``) walks it and feeds each operation's
result into its continuation.

Example:
    program = generate_next_message(chat).map(lambda r: unwrap(r).most_recent_message())
    message = await runtime.run(program)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
import typing
from typing import Any

from parley.errors import InternalError
from parley.message import UserMessage
from parley.result import Failure, Success

if typing.TYPE_CHECKING:
    from collections.abc import Callable

    from parley.chat import Chat
    from parley.message import Message, ToolCall
    from parley.tools import ToolResult

T = typing.TypeVar("T")
U = typing.TypeVar("U")


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "<missing>"


_MISSING: Any = _Missing()


class Continuation:
    """A one-shot callback from an operation's result to the next program.

    ``owners`` records which interpreters have rewritten the callback so an
    interpreter never wraps the same continuation twice.
    """

    __slots__ = ("_fn", "_consumed", "owners")

    def __init__(
        self,
        fn: Callable[[Any], Program[Any]],
        *,
        owners: frozenset[object] = frozenset(),
    ) -> None:
        self._fn = fn
        self._consumed = False
        self.owners = owners

    def owned_by(self, interpreter: object) -> bool:
        return interpreter in self.owners

    def wrap(
        self, fn: Callable[[Any], Program[Any]], *, owner: object
    ) -> Continuation:
        """Return a new continuation marked as rewritten by ``owner``."""
        return Continuation(fn, owners=self.owners | {owner})

    @property
    def consumed(self) -> bool:
        return self._consumed

    def __call__(self, result: Any) -> Program[Any]:
        if self._consumed:
            raise InternalError("Continuation invoked more than once")
        self._consumed = True
        program = self._fn(result)
        if not isinstance(program, Program):
            raise InternalError(
                f"Continuation returned {type(program).__name__}, expected Program"
            )
        return program

    def __repr__(self) -> str:
        state = "consumed" if self._consumed else "pending"
        names = sorted(type(o).__name__ for o in self.owners)
        return f"<Continuation {state} owners={names}>"


@dataclass(frozen=True, slots=True)
class GenerateNextMessage:
    """Ask the model for the next message in ``chat``."""

    chat: Chat
    continuation: Continuation

    def resume(self, result: Success[Chat] | Failure[Exception]) -> Program[Any]:
        return self.continuation(result)

    def with_continuation(self, continuation: Continuation) -> GenerateNextMessage:
        return replace(self, continuation=continuation)


@dataclass(frozen=True, slots=True)
class ExecuteTool:
    """Run the registered handler for ``tool_call``."""

    tool_call: ToolCall
    continuation: Continuation

    def resume(self, result: Success[ToolResult] | Failure[Exception]) -> Program[Any]:
        return self.continuation(result)

    def with_continuation(self, continuation: Continuation) -> ExecuteTool:
        return replace(self, continuation=continuation)


@dataclass(frozen=True, slots=True)
class Done:
    """Terminate with ``result``, discarding any pending continuation."""

    result: Success[Chat] | Failure[Exception]


Operation = GenerateNextMessage | ExecuteTool | Done


class Program(typing.Generic[T]):
    """Either one pending operation or one final value.

    Use ``Program.pure`` and ``Program.new`` rather than the constructor; the
    constructor accepts any combination so that impossible states can be
    reported by ``validate`` instead of being coerced.
    """

    __slots__ = ("operation", "value")

    def __init__(self, operation: Operation | None = None, value: Any = _MISSING) -> None:
        self.operation = operation
        self.value = value

    @classmethod
    def pure(cls, value: T) -> Program[T]:
        return cls(value=value)

    @classmethod
    def new(cls, operation: Operation) -> Program[Any]:
        if not isinstance(operation, (GenerateNextMessage, ExecuteTool, Done)):
            raise InternalError(f"Not an operation: {type(operation).__name__}")
        return cls(operation=operation)

    @property
    def has_value(self) -> bool:
        return self.value is not _MISSING

    @property
    def is_done(self) -> bool:
        return isinstance(self.operation, Done)

    @property
    def is_terminal(self) -> bool:
        """True when no interpreter has anything left to resolve."""
        return self.has_value or self.is_done

    def validate(self) -> None:
        """Raise ``InternalError`` unless exactly one of operation/value is set."""
        has_op = self.operation is not None
        if has_op == self.has_value:
            state = "both" if has_op else "neither"
            raise InternalError(
                f"Invalid program state: {state} of operation and value present"
            )

    def and_then(self, f: Callable[[T], Program[U]]) -> Program[U]:
        """Sequence ``f`` after this program.

        A final value is passed to ``f`` immediately. A pending operation is
        kept as-is with its continuation extended to run ``f`` afterwards.
        """
        self.validate()
        if self.has_value:
            return _expect_program(f(self.value))

        op = self.operation
        if isinstance(op, Done):
            return typing.cast("Program[U]", self)

        assert op is not None
        k = op.continuation
        extended = Continuation(lambda result: k(result).and_then(f))
        return Program.new(op.with_continuation(extended))

    def map(self, f: Callable[[T], U]) -> Program[U]:
        return self.and_then(lambda value: Program.pure(f(value)))

    def __repr__(self) -> str:
        if self.operation is not None and not self.has_value:
            return f"Program(operation={type(self.operation).__name__})"
        if self.has_value and self.operation is None:
            return f"Program(value={self.value!r})"
        return "Program(<invalid>)"


def _expect_program(value: object) -> Program[Any]:
    if not isinstance(value, Program):
        raise InternalError(
            f"and_then callback returned {type(value).__name__}, expected Program"
        )
    return value


# --- Caller-facing builders --------------------------------------------------


def generate_next_message(chat: Chat) -> Program[Success[Chat] | Failure[Exception]]:
    """Program that asks the model for the next message and yields the new chat."""
    return Program.new(GenerateNextMessage(chat=chat, continuation=Continuation(Program.pure)))


def execute_tool(tool_call: ToolCall) -> Program[Success[ToolResult] | Failure[Exception]]:
    """Program that runs one tool call and yields its result."""
    return Program.new(ExecuteTool(tool_call=tool_call, continuation=Continuation(Program.pure)))


def add_message(chat: Chat, message: Message) -> Program[Success[Chat] | Failure[Exception]]:
    """Program whose value is ``chat`` with ``message`` appended."""
    return Program.pure(Success(chat.add_message(message)))


def done(result: Success[Chat] | Failure[Exception]) -> Program[Success[Chat] | Failure[Exception]]:
    """Program that terminates immediately with ``result``."""
    return Program.new(Done(result=result))


def send_user_message(chat: Chat, text: str) -> Program[Success[Chat] | Failure[Exception]]:
    """Append a user turn, then generate the reply."""
    return add_message(chat, UserMessage(content=text)).and_then(
        lambda result: (
            generate_next_message(result.value)
            if isinstance(result, Success)
            else Program.pure(result)
        )
    )
