"""Runtime tests: the ready-made chain assembled from a Config."""

from __future__ import annotations

import logging

from pydantic import BaseModel
import pytest

from parley import Chat, Config, Runtime, ToolRegistry
from parley.errors import MaxToolRoundsExceededError
from parley.message import AssistantMessage, ToolMessage
from parley.ops import generate_next_message
from parley.providers.mock import MockTransport
from parley.result import Failure, Success
from parley.transport import HttpxTransport
from tests.helpers import calls

pytestmark = pytest.mark.integration


class Expression(BaseModel):
    expression: str


def _calculator() -> ToolRegistry:
    registry = ToolRegistry()

    @registry.tool()
    def calculate(args: Expression) -> str:
        """Add integers."""
        return str(sum(int(term) for term in args.expression.split("+")))

    return registry


@pytest.mark.asyncio
async def test_mock_runtime_echoes_without_network() -> None:
    async with Runtime(Config(provider="mock", model="m")) as runtime:
        result = await runtime.send(Chat(), "ping")

    assert isinstance(result, Success)
    assert result.value.most_recent_message() == AssistantMessage("echo: ping")


@pytest.mark.asyncio
async def test_runtime_auto_executes_tools() -> None:
    registry = _calculator()
    transport = MockTransport(
        [calls(("calculate", {"expression": "2+2"})), AssistantMessage("It is 4.")]
    )
    runtime = Runtime(Config(provider="mock", model="m"), tools=registry, transport=transport)
    chat = Chat(system_prompt="You are a calculator").with_tools(registry.specs())

    result = await runtime.send(chat, "What is 2+2?")

    assert [m.role for m in result.value.history] == ["user", "assistant", "tool", "assistant"]
    assert result.value.history[2] == ToolMessage("call_1", "4")


@pytest.mark.asyncio
async def test_runtime_honors_config_round_limit() -> None:
    transport = MockTransport([calls(("calculate", {"expression": "1+1"}))] * 3)
    runtime = Runtime(
        Config(provider="mock", model="m", max_tool_rounds=1),
        tools=_calculator(),
        transport=transport,
    )

    result = await runtime.send(Chat(), "loop")

    assert isinstance(result, Failure)
    assert isinstance(result.error, MaxToolRoundsExceededError)


@pytest.mark.asyncio
async def test_runtime_break_on_returns_pending_call() -> None:
    transport = MockTransport([calls(("calculate", {"expression": "1+1"}))])
    runtime = Runtime(
        Config(provider="mock", model="m"),
        tools=_calculator(),
        break_on="calculate",
        transport=transport,
    )

    result = await runtime.run(generate_next_message(Chat()))

    assert result.value.most_recent_message().tool_calls[0].name == "calculate"
    assert transport.remaining == 0


@pytest.mark.asyncio
async def test_runtime_uses_httpx_for_real_providers() -> None:
    runtime = Runtime(Config(provider="openai", model="gpt-4o-mini", api_key="sk-secret"))

    assert isinstance(runtime.transport, HttpxTransport)
    assert "sk-secret" not in repr(runtime)
    await runtime.aclose()


@pytest.mark.asyncio
async def test_borrowed_transport_is_not_closed() -> None:
    closed: list[bool] = []

    class Tracking(MockTransport):
        async def aclose(self) -> None:
            closed.append(True)

    async with Runtime(Config(provider="mock", model="m"), transport=Tracking()):
        pass

    assert closed == []


@pytest.mark.asyncio
async def test_cleanup_failure_is_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    runtime = Runtime(Config(provider="mock", model="m"))

    async def boom() -> None:
        raise RuntimeError("socket already closed")

    runtime.transport.aclose = boom  # type: ignore[method-assign]

    with caplog.at_level(logging.WARNING, logger="parley.frontdoor"):
        await runtime.aclose()

    assert "Transport cleanup failed" in caplog.text
