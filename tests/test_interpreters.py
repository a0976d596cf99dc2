"""Interpreter chain tests over the mock backend."""

from __future__ import annotations

import asyncio
import json

from pydantic import BaseModel
import pytest

from parley.chat import Chat, ToolChoice
from parley.errors import (
    ConfigurationError,
    InternalError,
    MaxToolRoundsExceededError,
    RateLimitError,
    RequestError,
    SerializationError,
    ToolExecutionError,
    ToolNotFoundError,
)
from parley.interpreters import (
    BreakOnToolInterpreter,
    GenerationInterpreter,
    TerminalInterpreter,
    ToolExecutorInterpreter,
)
from parley.message import AssistantMessage, ToolCall, ToolMessage, UserMessage
from parley.ops import Program, execute_tool, generate_next_message
from parley.providers import (
    AnthropicTranslator,
    GeminiTranslator,
    OllamaTranslator,
    OpenAITranslator,
    Translator,
)
from parley.providers.base import WireResponse
from parley.providers.mock import MockTransport
from parley.result import Failure, Success
from parley.tools import ToolDefinition, ToolRegistry, ToolResult, ToolSpec
from tests.helpers import RaisingTransport, build_chain, calls, error_response, generation

pytestmark = pytest.mark.integration


class Expression(BaseModel):
    expression: str


class City(BaseModel):
    city: str


class Step(BaseModel):
    n: int


def _calculator() -> ToolRegistry:
    registry = ToolRegistry()

    @registry.tool()
    def calculate(args: Expression) -> str:
        """Add integers."""
        return str(sum(int(term) for term in args.expression.split("+")))

    return registry


def _ask(text: str, registry: ToolRegistry | None = None) -> Chat:
    chat = Chat(system_prompt="You are a calculator").add_message(UserMessage(text))
    return chat.with_tools(registry.specs()) if registry is not None else chat


# =============================================================================
# Generation
# =============================================================================


@pytest.mark.asyncio
async def test_generation_appends_reply_to_chat() -> None:
    transport = MockTransport([AssistantMessage("Hello!")])
    chat = _ask("hi")

    result = await generation(transport).run(generate_next_message(chat))

    assert result == Success(chat.add_message(AssistantMessage("Hello!")))
    assert len(transport.requests) == 1
    assert transport.requests[0].json()["system"] == "You are a calculator"


@pytest.mark.asyncio
async def test_http_error_becomes_failure_and_chat_is_unchanged() -> None:
    transport = MockTransport([error_response(429, "slow down", {"Retry-After": "3"})])
    chat = _ask("hi")

    result = await generation(transport).run(generate_next_message(chat))

    assert isinstance(result, Failure)
    assert isinstance(result.error, RateLimitError)
    assert result.error.retry_after_s == 3.0
    assert chat.history == (UserMessage("hi"),)


@pytest.mark.asyncio
async def test_transport_error_becomes_failure() -> None:
    transport = RaisingTransport([RequestError("connection refused", retryable=True)])

    result = await generation(transport).run(generate_next_message(_ask("hi")))

    assert isinstance(result, Failure)
    assert isinstance(result.error, RequestError)


@pytest.mark.asyncio
async def test_cancellation_propagates_out_of_run() -> None:
    transport = RaisingTransport([asyncio.CancelledError()])

    with pytest.raises(asyncio.CancelledError):
        await generation(transport).run(generate_next_message(_ask("hi")))


@pytest.mark.asyncio
async def test_unserializable_chat_fails_before_any_transport_call() -> None:
    transport = MockTransport()
    chat = _ask("hi").with_tools([ToolSpec("odd", "d", {"default": object()})])

    result = await generation(transport).run(generate_next_message(chat))

    assert isinstance(result, Failure)
    assert isinstance(result.error, SerializationError)
    assert transport.requests == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("translator", "payload"),
    [
        (
            OpenAITranslator("k"),
            {
                "choices": [
                    {
                        "message": {
                            "content": None,
                            "tool_calls": [
                                {"id": "c1", "type": "function", "function": {"name": "", "arguments": "{}"}}
                            ],
                        }
                    }
                ]
            },
        ),
        (
            AnthropicTranslator("k"),
            {"content": [{"type": "tool_use", "id": "", "name": "calculate", "input": {}}]},
        ),
        (
            GeminiTranslator("k"),
            {"candidates": [{"content": {"parts": [{"functionCall": {"name": "", "args": {}}}]}}]},
        ),
        (
            OllamaTranslator(),
            {"message": {"tool_calls": [{"function": {"name": "", "arguments": {}}}]}},
        ),
    ],
    ids=["openai", "anthropic", "gemini", "ollama"],
)
async def test_malformed_tool_call_in_response_becomes_failure(
    translator: Translator, payload: dict[str, object]
) -> None:
    transport = MockTransport([WireResponse(200, json.dumps(payload).encode())])
    chain = GenerationInterpreter(translator, transport, model="m", inner=TerminalInterpreter())

    result = await chain.run(generate_next_message(_ask("hi")))

    assert isinstance(result, Failure)
    assert isinstance(result.error, SerializationError)
    assert "Malformed" in str(result.error)


@pytest.mark.asyncio
async def test_forced_choice_without_tools_fails_before_any_transport_call() -> None:
    transport = MockTransport()
    chat = _ask("hi").with_tool_choice(ToolChoice.any())

    result = await generation(transport).run(generate_next_message(chat))

    assert isinstance(result, Failure)
    assert isinstance(result.error, ConfigurationError)
    assert transport.requests == []


@pytest.mark.asyncio
async def test_concurrent_chats_share_one_chain() -> None:
    chain = generation(MockTransport())

    first, second = await asyncio.gather(
        chain.run(generate_next_message(_ask("one"))),
        chain.run(generate_next_message(_ask("two"))),
    )

    assert first.value.most_recent_message().content == "echo: one"
    assert second.value.most_recent_message().content == "echo: two"


# =============================================================================
# Chain mechanics
# =============================================================================


@pytest.mark.asyncio
async def test_run_rejects_invalid_program_state() -> None:
    with pytest.raises(InternalError, match="neither"):
        await generation(MockTransport()).run(Program())


@pytest.mark.asyncio
async def test_unhandled_operation_raises_internal_error() -> None:
    with pytest.raises(InternalError, match="ExecuteTool"):
        await generation(MockTransport()).run(execute_tool(ToolCall(id="c1", name="t")))


@pytest.mark.asyncio
async def test_terminal_alone_cannot_generate() -> None:
    with pytest.raises(InternalError, match="GenerateNextMessage"):
        await TerminalInterpreter().run(generate_next_message(_ask("hi")))


@pytest.mark.asyncio
async def test_pass_through_links_do_not_change_results() -> None:
    script = [AssistantMessage("plain answer")]
    chat = _ask("hi")

    bare = await generation(MockTransport(script)).run(generate_next_message(chat))
    wrapped = await BreakOnToolInterpreter(
        "get_weather",
        inner=ToolExecutorInterpreter(ToolRegistry(), inner=generation(MockTransport(script))),
    ).run(generate_next_message(chat))

    assert bare == wrapped


@pytest.mark.asyncio
async def test_non_auto_executor_forwards_generation_unchanged() -> None:
    program = generate_next_message(_ask("hi"))
    continuation = program.operation.continuation

    stepped = await ToolExecutorInterpreter(
        ToolRegistry(), auto=False, inner=TerminalInterpreter()
    ).step(program)

    assert stepped is program
    assert stepped.operation.continuation is continuation


@pytest.mark.asyncio
async def test_break_on_forwards_execute_tool_unchanged() -> None:
    program = execute_tool(ToolCall(id="c1", name="calculate"))
    continuation = program.operation.continuation

    stepped = await BreakOnToolInterpreter("get_weather", inner=TerminalInterpreter()).step(program)

    assert stepped is program
    assert stepped.operation.continuation is continuation


@pytest.mark.asyncio
async def test_wrapping_links_forward_programs_they_already_own() -> None:
    executor = ToolExecutorInterpreter(ToolRegistry(), auto=True, inner=TerminalInterpreter())
    owned = await executor.step(generate_next_message(_ask("hi")))

    assert owned.operation.continuation.owned_by(executor)
    assert await executor.step(owned) is owned


def test_executor_validates_its_options() -> None:
    with pytest.raises(ValueError, match="max_tool_rounds"):
        ToolExecutorInterpreter(ToolRegistry(), max_tool_rounds=0)
    with pytest.raises(ValueError, match="tool_error_policy"):
        ToolExecutorInterpreter(ToolRegistry(), tool_error_policy="ignore")  # type: ignore[arg-type]


def test_break_on_requires_a_tool_name() -> None:
    with pytest.raises(ValueError, match="at least one"):
        BreakOnToolInterpreter(())


# =============================================================================
# Tool execution
# =============================================================================


@pytest.mark.asyncio
async def test_explicit_execute_tool_program() -> None:
    chain = build_chain(MockTransport(), _calculator())
    call = ToolCall(id="c7", name="calculate", arguments='{"expression": "20+22"}')

    result = await chain.run(execute_tool(call))

    assert result == Success(ToolResult("c7", "42", "calculate"))


@pytest.mark.asyncio
async def test_without_auto_tool_calls_are_returned_to_caller() -> None:
    transport = MockTransport([calls(("calculate", {"expression": "2+2"}))])
    chain = build_chain(transport, _calculator())

    result = await chain.run(generate_next_message(_ask("What is 2+2?")))

    assert result.value.most_recent_message().tool_calls[0].name == "calculate"
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_calculator_auto_executes_and_generates_again() -> None:
    registry = _calculator()
    transport = MockTransport(
        [calls(("calculate", {"expression": "2+2"})), AssistantMessage("2+2 is 4.")]
    )
    chain = build_chain(transport, registry, auto=True)

    result = await chain.run(generate_next_message(_ask("What is 2+2?", registry)))

    history = result.value.history
    assert [m.role for m in history] == ["user", "assistant", "tool", "assistant"]
    assert history[2] == ToolMessage(tool_call_id="call_1", content="4")
    assert history[3].content == "2+2 is 4."
    assert len(transport.requests) == 2
    resent = transport.requests[1].json()["messages"]
    assert resent[2] == {"role": "tool", "content": "4", "tool_call_id": "call_1"}


@pytest.mark.asyncio
async def test_tool_results_follow_call_order() -> None:
    registry = ToolRegistry()
    order: list[int] = []

    @registry.tool()
    async def step(args: Step) -> str:
        # Later calls finish first unless execution is sequential.
        await asyncio.sleep(0.003 * (3 - args.n))
        order.append(args.n)
        return f"step {args.n}"

    transport = MockTransport(
        [
            calls(("step", {"n": 1}), ("step", {"n": 2}), ("step", {"n": 3})),
            AssistantMessage("all done"),
        ]
    )
    chain = build_chain(transport, registry, auto=True)

    result = await chain.run(generate_next_message(_ask("go")))

    tool_messages = [m for m in result.value.history if isinstance(m, ToolMessage)]
    assert order == [1, 2, 3]
    assert [m.tool_call_id for m in tool_messages] == ["call_1", "call_2", "call_3"]
    assert [m.content for m in tool_messages] == ["step 1", "step 2", "step 3"]


@pytest.mark.asyncio
async def test_max_tool_rounds_stops_the_loop() -> None:
    transport = MockTransport([calls(("calculate", {"expression": "1+1"}))] * 5)
    chain = build_chain(transport, _calculator(), auto=True, max_tool_rounds=2)

    result = await chain.run(generate_next_message(_ask("loop")))

    assert isinstance(result, Failure)
    assert isinstance(result.error, MaxToolRoundsExceededError)
    assert result.error.max_rounds == 2
    assert len(transport.requests) == 3


@pytest.mark.asyncio
async def test_tool_failure_fails_the_turn_by_default() -> None:
    registry = ToolRegistry()

    @registry.tool()
    def calculate(args: Expression) -> str:
        raise ZeroDivisionError("division by zero")

    transport = MockTransport([calls(("calculate", {"expression": "1/0"}))])
    chain = build_chain(transport, registry, auto=True)

    result = await chain.run(generate_next_message(_ask("1/0?")))

    assert isinstance(result, Failure)
    assert isinstance(result.error, ToolExecutionError)
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_unknown_tool_fails_the_turn() -> None:
    transport = MockTransport([calls(("missing", {}))])
    chain = build_chain(transport, ToolRegistry(), auto=True)

    result = await chain.run(generate_next_message(_ask("hi")))

    assert isinstance(result, Failure)
    assert isinstance(result.error, ToolNotFoundError)


@pytest.mark.asyncio
async def test_continue_policy_reports_tool_errors_to_the_model() -> None:
    transport = MockTransport(
        [calls(("missing", {})), AssistantMessage("Sorry, that tool is unavailable.")]
    )
    chain = build_chain(transport, ToolRegistry(), auto=True, tool_error_policy="continue")

    result = await chain.run(generate_next_message(_ask("hi")))

    assert isinstance(result, Success)
    tool_message = result.value.history[2]
    assert isinstance(tool_message, ToolMessage)
    assert tool_message.tool_call_id == "call_1"
    assert tool_message.content.startswith("Error: Unknown tool 'missing'")
    assert result.value.most_recent_message().content == "Sorry, that tool is unavailable."


@pytest.mark.asyncio
async def test_generation_failure_inside_loop_is_returned() -> None:
    transport = MockTransport(
        [calls(("calculate", {"expression": "1+1"})), error_response(503, "overloaded")]
    )
    chain = build_chain(transport, _calculator(), auto=True)

    result = await chain.run(generate_next_message(_ask("hi")))

    assert isinstance(result, Failure)
    assert result.error.status_code == 503


# =============================================================================
# Break on tool
# =============================================================================


def _weather_registry(seen: list[str]) -> ToolRegistry:
    registry = ToolRegistry()

    @registry.tool()
    def get_weather(args: City) -> str:
        seen.append(args.city)
        return "sunny"

    return registry


@pytest.mark.asyncio
async def test_break_on_tool_returns_control_without_running_it() -> None:
    seen: list[str] = []
    transport = MockTransport([calls(("get_weather", {"city": "Paris"}))])
    chain = build_chain(transport, _weather_registry(seen), auto=True, break_on="get_weather")

    result = await chain.run(generate_next_message(_ask("Weather in Paris?")))

    assert isinstance(result, Success)
    last = result.value.most_recent_message()
    assert isinstance(last, AssistantMessage)
    assert last.tool_calls[0].name == "get_weather"
    assert not any(isinstance(m, ToolMessage) for m in result.value.history)
    assert seen == []
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_break_on_skips_caller_continuation() -> None:
    transport = MockTransport([calls(("get_weather", {"city": "Paris"}))])
    chain = build_chain(transport, _weather_registry([]), auto=True, break_on="get_weather")

    program = generate_next_message(_ask("Weather?")).map(lambda r: "continued")

    assert isinstance(await chain.run(program), Success)


@pytest.mark.asyncio
async def test_break_on_ignores_other_tools() -> None:
    seen: list[str] = []
    registry = _weather_registry(seen)
    transport = MockTransport(
        [calls(("get_weather", {"city": "Oslo"})), AssistantMessage("It is sunny.")]
    )
    chain = build_chain(transport, registry, auto=True, break_on=("book_flight",))

    result = await chain.run(generate_next_message(_ask("Weather in Oslo?")))

    assert seen == ["Oslo"]
    assert result.value.most_recent_message().content == "It is sunny."


@pytest.mark.asyncio
async def test_break_on_applies_to_regenerated_turns() -> None:
    registry = _calculator()
    registry.register(
        ToolDefinition("get_weather", "", City), lambda a: "sunny"
    )
    transport = MockTransport(
        [
            calls(("calculate", {"expression": "1+2"})),
            calls(("get_weather", {"city": "Rome"})),
            AssistantMessage("never reached"),
        ]
    )
    chain = build_chain(transport, registry, auto=True, break_on="get_weather")

    result = await chain.run(generate_next_message(_ask("hi")))

    assert result.value.most_recent_message().tool_calls[0].name == "get_weather"
    assert transport.remaining == 1
