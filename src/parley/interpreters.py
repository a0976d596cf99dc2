"""Interpreter chain: middleware that walks a ``Program``.

Each interpreter resolves the operation kinds it recognizes and forwards
everything else, untouched, to ``inner``. The innermost link is always a
``TerminalInterpreter``, which resolves nothing and extracts final values.

``run`` drives the chain from the interpreter it is called on: every program
produced by a continuation re-enters at that head, so operations created
mid-flight (for example by auto-execute) are seen by every interpreter again.

Typical assembly, outermost first::

    ToolExecutorInterpreter(auto) -> BreakOnToolInterpreter -> GenerationInterpreter -> TerminalInterpreter
"""

from __future__ import annotations

import asyncio
import functools
import logging
import typing
from typing import Any, Literal

from parley.errors import InternalError, MaxToolRoundsExceededError, ParleyError
from parley.message import AssistantMessage, ToolMessage
from parley.ops import (
    Continuation,
    Done,
    ExecuteTool,
    GenerateNextMessage,
    Program,
    execute_tool,
)
from parley.providers._errors import error_from_response
from parley.result import Failure, Success

if typing.TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from parley.chat import Chat
    from parley.message import ToolCall
    from parley.providers.base import Translator
    from parley.tools import ToolRegistry, ToolResult
    from parley.transport import HttpTransport

log = logging.getLogger(__name__)

ToolErrorPolicy = Literal["raise", "continue"]

ChatResult = Success["Chat"] | Failure[Exception]


class Interpreter:
    """Base middleware link: forwards every program to ``inner``."""

    def __init__(self, inner: Interpreter | None = None) -> None:
        self.inner = inner

    async def step(self, program: Program[Any]) -> Program[Any]:
        """Resolve at most one operation, or forward ``program`` unchanged."""
        if self.inner is None:
            return program
        return await self.inner.step(program)

    async def run(self, program: Program[Any]) -> Any:
        """Drive ``program`` to completion and return its final value.

        Raises:
            InternalError: The program is in an impossible state, or no
                interpreter in the chain can resolve its pending operation.
        """
        while True:
            program.validate()
            if program.is_terminal:
                break
            nxt = await self.step(program)
            if nxt is program:
                op = program.operation
                raise InternalError(
                    f"No interpreter in the chain handles {type(op).__name__}",
                    hint="Add the matching interpreter to the chain.",
                )
            program = nxt
        return self.finish(program)

    def finish(self, program: Program[Any]) -> Any:
        if self.inner is None:
            raise InternalError("Interpreter chain has no terminal interpreter")
        return self.inner.finish(program)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(inner={self.inner!r})"


class TerminalInterpreter(Interpreter):
    """Innermost link: returns final values and ``Done`` results."""

    def __init__(self) -> None:
        super().__init__(None)

    async def step(self, program: Program[Any]) -> Program[Any]:
        return program

    def finish(self, program: Program[Any]) -> Any:
        program.validate()
        if program.has_value:
            return program.value
        op = program.operation
        if isinstance(op, Done):
            return op.result
        raise InternalError(
            f"Program still has a pending {type(op).__name__} at the terminal interpreter"
        )

    def __repr__(self) -> str:
        return "TerminalInterpreter()"


class GenerationInterpreter(Interpreter):
    """Resolves ``GenerateNextMessage`` by calling the backend.

    The new assistant message is appended to the chat only after the whole
    exchange succeeds; any failure, including cancellation, leaves the chat
    as it was.
    """

    def __init__(
        self,
        translator: Translator,
        transport: HttpTransport,
        *,
        model: str,
        inner: Interpreter | None = None,
    ) -> None:
        super().__init__(inner)
        self.translator = translator
        self.transport = transport
        self.model = model

    async def step(self, program: Program[Any]) -> Program[Any]:
        program.validate()
        op = program.operation
        if not isinstance(op, GenerateNextMessage):
            return await super().step(program)
        result = await self.generate(op.chat)
        return op.resume(result)

    async def generate(self, chat: Chat) -> ChatResult:
        """Run one request/response exchange and return the extended chat."""
        provider = self.translator.name
        try:
            request = self.translator.build_request(self.model, chat)
            log.debug(
                "Generating with %s/%s (%d messages, %d tools)",
                provider,
                self.model,
                len(chat.history),
                len(chat.tools),
            )
            response = await self.transport.send(request)
            if not response.is_success:
                raise error_from_response(response, provider=provider)
            message = self.translator.parse_response(response.body)
        except asyncio.CancelledError:
            log.debug("Generation with %s cancelled", provider)
            raise
        except ParleyError as e:
            log.debug("Generation with %s failed: %s", provider, type(e).__name__)
            return Failure(e)
        return Success(chat.add_message(message))


class ToolExecutorInterpreter(Interpreter):
    """Resolves ``ExecuteTool`` through a ``ToolRegistry``.

    With ``auto=True`` it also rewrites the continuation of every generation
    so that tool calls in the resulting assistant message are executed in
    call order, answered with one tool message each, and followed by a fresh
    generation. The loop stops when a generation has no tool calls, when an
    error surfaces, or after ``max_tool_rounds`` rounds.

    ``tool_error_policy="continue"`` records a failed call as a tool message
    carrying the error text instead of failing the turn.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        inner: Interpreter | None = None,
        auto: bool = False,
        max_tool_rounds: int = 8,
        tool_error_policy: ToolErrorPolicy = "raise",
    ) -> None:
        super().__init__(inner)
        if max_tool_rounds < 1:
            raise ValueError("max_tool_rounds must be >= 1")
        if tool_error_policy not in ("raise", "continue"):
            raise ValueError(f"Unknown tool_error_policy: {tool_error_policy!r}")
        self.registry = registry
        self.auto = auto
        self.max_tool_rounds = max_tool_rounds
        self.tool_error_policy = tool_error_policy

    async def step(self, program: Program[Any]) -> Program[Any]:
        program.validate()
        op = program.operation
        if isinstance(op, ExecuteTool):
            result = await self.execute(op.tool_call)
            return op.resume(result)
        if (
            self.auto
            and isinstance(op, GenerateNextMessage)
            and not op.continuation.owned_by(self)
        ):
            k = op.continuation
            wrapped = k.wrap(
                functools.partial(self._after_generation, k=k, rounds=0), owner=self
            )
            program = Program.new(op.with_continuation(wrapped))
        return await super().step(program)

    async def execute(self, call: ToolCall) -> Success[ToolResult] | Failure[Exception]:
        try:
            return Success(await self.registry.invoke(call))
        except ParleyError as e:
            log.debug("Tool %s (call %s) failed: %s", call.name, call.id, type(e).__name__)
            return Failure(e)

    # --- auto-execute loop ---------------------------------------------------

    def _after_generation(
        self, result: ChatResult, *, k: Continuation, rounds: int
    ) -> Program[Any]:
        if isinstance(result, Failure):
            return k(result)
        chat = result.value
        last = chat.most_recent_message()
        if not isinstance(last, AssistantMessage) or not last.tool_calls:
            return k(result)
        if rounds >= self.max_tool_rounds:
            log.debug("Tool round limit %d reached", self.max_tool_rounds)
            return k(Failure(MaxToolRoundsExceededError(self.max_tool_rounds)))

        log.debug("Tool round %d: %d call(s)", rounds + 1, len(last.tool_calls))
        return self._answer_calls(chat, last.tool_calls).and_then(
            functools.partial(self._regenerate, k=k, rounds=rounds + 1)
        )

    def _answer_calls(self, chat: Chat, calls: Sequence[ToolCall]) -> Program[ChatResult]:
        program: Program[ChatResult] = Program.pure(Success(chat))
        for call in calls:
            program = program.and_then(functools.partial(self._execute_and_append, call))
        return program

    def _execute_and_append(self, call: ToolCall, result: ChatResult) -> Program[ChatResult]:
        if isinstance(result, Failure):
            return Program.pure(result)
        chat = result.value
        return execute_tool(call).map(
            functools.partial(self._append_tool_result, chat, call)
        )

    def _append_tool_result(
        self,
        chat: Chat,
        call: ToolCall,
        result: Success[ToolResult] | Failure[Exception],
    ) -> ChatResult:
        if isinstance(result, Success):
            return Success(chat.add_message(result.value.to_message()))
        if self.tool_error_policy == "continue":
            message = ToolMessage(tool_call_id=call.id, content=f"Error: {result.error}")
            return Success(chat.add_message(message))
        return result

    def _regenerate(self, result: ChatResult, *, k: Continuation, rounds: int) -> Program[Any]:
        if isinstance(result, Failure):
            return k(result)
        cont = Continuation(
            functools.partial(self._after_generation, k=k, rounds=rounds),
            owners=frozenset({self}),
        )
        return Program.new(GenerateNextMessage(chat=result.value, continuation=cont))


class BreakOnToolInterpreter(Interpreter):
    """Stops the program when the model calls one of ``tool_names``.

    The generation's result is returned as ``Done`` with the assistant
    message untouched: no tool runs and no follow-up generation is issued.
    To pre-empt auto-execute this link must sit inside the tool executor.
    """

    def __init__(
        self, tool_names: str | Iterable[str], *, inner: Interpreter | None = None
    ) -> None:
        super().__init__(inner)
        names = (tool_names,) if isinstance(tool_names, str) else tuple(tool_names)
        if not names:
            raise ValueError("BreakOnToolInterpreter needs at least one tool name")
        self.tool_names = frozenset(names)

    async def step(self, program: Program[Any]) -> Program[Any]:
        program.validate()
        op = program.operation
        if isinstance(op, GenerateNextMessage) and not op.continuation.owned_by(self):
            k = op.continuation
            wrapped = k.wrap(functools.partial(self._check, k=k), owner=self)
            program = Program.new(op.with_continuation(wrapped))
        return await super().step(program)

    def _check(self, result: ChatResult, *, k: Continuation) -> Program[Any]:
        if isinstance(result, Success):
            last = result.value.most_recent_message()
            if isinstance(last, AssistantMessage):
                hit = next((c for c in last.tool_calls if c.name in self.tool_names), None)
                if hit is not None:
                    log.debug("Breaking on tool %s (call %s)", hit.name, hit.id)
                    return Program.new(Done(result=result))
        return k(result)
