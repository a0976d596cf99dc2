"""Scenario-first entry point: a ready-made interpreter chain from a ``Config``.

``Runtime`` assembles, outermost first::

    ToolExecutorInterpreter(auto) -> BreakOnToolInterpreter (optional)
        -> GenerationInterpreter -> TerminalInterpreter

Example:
    registry = ToolRegistry()

    @registry.tool()
    def calculate(args: Expression) -> str:
        return str(evaluate(args.expression))

    async with Runtime(Config(provider="openai", model="gpt-4o-mini"), tools=registry) as rt:
        chat = Chat(system_prompt="You are a calculator").with_tools(registry.specs())
        result = await rt.send(chat, "What is 2+2?")
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from parley.interpreters import (
    BreakOnToolInterpreter,
    GenerationInterpreter,
    Interpreter,
    TerminalInterpreter,
    ToolExecutorInterpreter,
)
from parley.ops import generate_next_message, send_user_message
from parley.providers import translator_for
from parley.providers.mock import MockTransport
from parley.tools import ToolRegistry
from parley.transport import HttpxTransport

if TYPE_CHECKING:
    from collections.abc import Iterable
    from types import TracebackType

    from parley.chat import Chat
    from parley.config import Config
    from parley.ops import Program
    from parley.providers.base import Translator
    from parley.result import Failure, Success
    from parley.transport import HttpTransport

log = logging.getLogger(__name__)


class Runtime:
    """Owns a transport and the standard interpreter chain for one config.

    A runtime holds no per-conversation state and may run many independent
    chats concurrently.
    """

    def __init__(
        self,
        config: Config,
        *,
        tools: ToolRegistry | None = None,
        break_on: str | Iterable[str] | None = None,
        transport: HttpTransport | None = None,
        translator: Translator | None = None,
    ) -> None:
        self.config = config
        self.tools = tools if tools is not None else ToolRegistry()
        self.translator = translator or translator_for(config)
        self._owns_transport = transport is None
        self.transport = transport or self._default_transport(config)

        chain: Interpreter = GenerationInterpreter(
            self.translator,
            self.transport,
            model=config.model,
            inner=TerminalInterpreter(),
        )
        if break_on:
            chain = BreakOnToolInterpreter(break_on, inner=chain)
        self.interpreter: Interpreter = ToolExecutorInterpreter(
            self.tools,
            inner=chain,
            auto=True,
            max_tool_rounds=config.max_tool_rounds,
            tool_error_policy=config.tool_error_policy,
        )

    @staticmethod
    def _default_transport(config: Config) -> HttpTransport:
        if config.provider == "mock":
            return MockTransport()
        return HttpxTransport(timeout_s=config.timeout_s, provider=config.provider)

    async def run(self, program: Program[Any]) -> Any:
        """Drive ``program`` through the chain and return its final value."""
        return await self.interpreter.run(program)

    async def generate(self, chat: Chat) -> Success[Chat] | Failure[Exception]:
        """Generate the next message, auto-executing any tool calls."""
        return await self.run(generate_next_message(chat))

    async def send(self, chat: Chat, text: str) -> Success[Chat] | Failure[Exception]:
        """Append a user message with ``text``, then generate the reply."""
        return await self.run(send_user_message(chat, text))

    async def aclose(self) -> None:
        if not self._owns_transport:
            return
        aclose = getattr(self.transport, "aclose", None)
        if callable(aclose):
            try:
                await aclose()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                # Cleanup should never mask the primary failure.
                log.warning("Transport cleanup failed: %s", exc)

    async def __aenter__(self) -> Runtime:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"Runtime(config={self.config!r}, tools={len(self.tools)})"
