"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: it exists to prevent test suites from
growing lots of one-off transports and chains as coverage expands.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from typing import Any

from parley.interpreters import (
    BreakOnToolInterpreter,
    GenerationInterpreter,
    Interpreter,
    TerminalInterpreter,
    ToolExecutorInterpreter,
)
from parley.message import AssistantMessage, ToolCall
from parley.providers.base import WireRequest, WireResponse
from parley.providers.mock import MockTranslator, MockTransport
from parley.tools import ToolRegistry

MOCK_MODEL = "mock-model"


def calls(*specs: tuple[str, dict[str, Any]]) -> AssistantMessage:
    """Assistant message requesting ``(name, arguments)`` calls, ids ``call_1..n``."""
    return AssistantMessage(
        tool_calls=tuple(
            ToolCall(id=f"call_{i}", name=name, arguments=json.dumps(args))
            for i, (name, args) in enumerate(specs, start=1)
        )
    )


def generation(transport: Any, *, inner: Interpreter | None = None) -> GenerationInterpreter:
    return GenerationInterpreter(
        MockTranslator(),
        transport,
        model=MOCK_MODEL,
        inner=inner if inner is not None else TerminalInterpreter(),
    )


def build_chain(
    transport: Any,
    registry: ToolRegistry | None = None,
    *,
    break_on: str | tuple[str, ...] | None = None,
    **executor_kwargs: Any,
) -> ToolExecutorInterpreter:
    """Executor -> (break-on-tool) -> generation -> terminal over the mock backend."""
    inner: Interpreter = generation(transport)
    if break_on:
        inner = BreakOnToolInterpreter(break_on, inner=inner)
    return ToolExecutorInterpreter(
        registry if registry is not None else ToolRegistry(),
        inner=inner,
        **executor_kwargs,
    )


@dataclass
class RaisingTransport:
    """Transport that raises scripted exceptions, then defers to a MockTransport."""

    errors: list[BaseException] = field(default_factory=list)
    fallback: MockTransport = field(default_factory=MockTransport)
    sends: int = 0

    async def send(self, request: WireRequest) -> WireResponse:
        self.sends += 1
        if self.errors:
            raise self.errors.pop(0)
        return await self.fallback.send(request)


def error_response(
    status: int, message: str = "boom", headers: dict[str, str] | None = None
) -> WireResponse:
    body = json.dumps({"error": {"message": message}}).encode()
    return WireResponse(status, body, headers or {})
