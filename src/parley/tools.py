"""Tool definitions, the registry, and the invoker.

Tool inputs are Pydantic models: the JSON schema advertised to the model is
derived from the input model, and the serialized arguments a backend sends are
validated against it before the handler runs.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import inspect
import logging
import typing
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from parley._validation import _require
from parley.errors import (
    ConfigurationError,
    InvalidToolArgumentsError,
    SerializationError,
    ToolExecutionError,
    ToolNotFoundError,
)
from parley.message import ToolCall, ToolMessage

if typing.TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterator

log = logging.getLogger(__name__)

I = typing.TypeVar("I", bound=BaseModel)

_ANY_ADAPTER: TypeAdapter[Any] = TypeAdapter(Any)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """What a backend sees of a tool: name, description, argument schema."""

    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _require(
            condition=isinstance(self.name, str) and self.name != "",
            message="must be a non-empty str",
            field_name="name",
        )
        _require(
            condition=isinstance(self.parameters, dict),
            message="must be a JSON-schema dict",
            exc=TypeError,
            field_name="parameters",
        )


@dataclass(frozen=True, slots=True)
class ToolDefinition(typing.Generic[I]):
    """A named tool with typed input and (optionally) typed output.

    The input model owns schema derivation; ``output_model`` only steers
    how handler results are serialized.
    """

    name: str
    description: str
    input_model: type[I]
    output_model: type[Any] | None = None

    def __post_init__(self) -> None:
        _require(
            condition=isinstance(self.name, str) and self.name != "",
            message="must be a non-empty str",
            field_name="name",
        )
        _require(
            condition=isinstance(self.input_model, type)
            and issubclass(self.input_model, BaseModel),
            message="must be a pydantic BaseModel subclass",
            exc=TypeError,
            field_name="input_model",
        )

    def spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description=self.description,
            parameters=self.input_model.model_json_schema(),
        )


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Serialized output of one tool call."""

    tool_call_id: str
    content: str
    tool_name: str | None = None

    def to_message(self) -> ToolMessage:
        return ToolMessage(tool_call_id=self.tool_call_id, content=self.content)


Handler = typing.Callable[[Any], Any]


@dataclass(frozen=True, slots=True)
class Tool:
    """A registered definition paired with its handler."""

    definition: ToolDefinition[Any]
    handler: Handler

    @property
    def name(self) -> str:
        return self.definition.name

    def parse_arguments(self, call: ToolCall) -> BaseModel:
        raw = call.arguments.strip() or "{}"
        try:
            return self.definition.input_model.model_validate_json(raw)
        except ValidationError as e:
            raise InvalidToolArgumentsError(
                f"Invalid arguments for tool {call.name!r}: {e.error_count()} error(s)",
                tool_name=call.name,
                tool_call_id=call.id,
                hint=_first_error(e),
            ) from e

    def serialize_output(self, value: Any) -> str:
        if isinstance(value, str):
            return value
        try:
            if isinstance(value, BaseModel):
                return value.model_dump_json()
            if self.definition.output_model is not None:
                adapter: TypeAdapter[Any] = TypeAdapter(self.definition.output_model)
                return adapter.dump_json(value).decode()
            return _ANY_ADAPTER.dump_json(value).decode()
        except PydanticSerializationError as e:
            raise SerializationError(
                f"Output of tool {self.name!r} is not JSON serializable: {e}"
            ) from e


def _first_error(e: ValidationError) -> str | None:
    errors = e.errors(include_url=False)
    if not errors:
        return None
    first = errors[0]
    loc = ".".join(str(p) for p in first.get("loc", ())) or "<root>"
    return f"{loc}: {first.get('msg', 'invalid')}"


class ToolRegistry:
    """Maps tool names to handlers and invokes them.

    Exactly one handler runs per call and the registry never retries.
    Handlers may be plain functions or coroutine functions taking the
    validated input model.
    """

    def __init__(self, tools: typing.Iterable[Tool] = ()) -> None:
        self._tools: dict[str, Tool] = {}
        for t in tools:
            self._add(t)

    def _add(self, entry: Tool) -> Tool:
        if entry.name in self._tools:
            raise ConfigurationError(
                f"Tool {entry.name!r} is already registered",
                hint="Tool names must be unique within a registry.",
            )
        self._tools[entry.name] = entry
        return entry

    def register(
        self,
        definition: ToolDefinition[I],
        handler: Callable[[I], Any] | Callable[[I], Awaitable[Any]],
    ) -> Tool:
        """Associate ``definition.name`` with ``handler``."""
        if not callable(handler):
            raise ConfigurationError(
                f"Handler for tool {definition.name!r} is not callable"
            )
        return self._add(Tool(definition=definition, handler=handler))

    def tool(
        self,
        *,
        name: str | None = None,
        description: str | None = None,
        output_model: type[Any] | None = None,
    ) -> Callable[[Handler], Handler]:
        """Register the decorated function, inferring the input model.

        The function's single parameter must be annotated with a Pydantic
        model. The name defaults to the function name and the description
        to its docstring.
        """

        def decorator(fn: Handler) -> Handler:
            input_model = _input_model_of(fn)
            definition = ToolDefinition(
                name=name or fn.__name__,
                description=description or inspect.getdoc(fn) or "",
                input_model=input_model,
                output_model=output_model,
            )
            self.register(definition, fn)
            return fn

        return decorator

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[Tool]:
        return iter(self._tools.values())

    def specs(self) -> tuple[ToolSpec, ...]:
        """Tool catalogue in registration order, ready for ``Chat.with_tools``."""
        return tuple(t.definition.spec() for t in self._tools.values())

    async def invoke(self, call: ToolCall) -> ToolResult:
        """Run the handler for ``call`` and return its serialized output.

        Raises:
            ToolNotFoundError: No tool is registered under ``call.name``.
            InvalidToolArgumentsError: Arguments do not fit the input model.
            ToolExecutionError: The handler raised.
            SerializationError: The handler output cannot be serialized.
        """
        entry = self._tools.get(call.name)
        if entry is None:
            raise ToolNotFoundError(
                f"Unknown tool {call.name!r}",
                tool_name=call.name,
                tool_call_id=call.id,
                hint=f"Registered tools: {sorted(self._tools) or 'none'}",
            )

        args = entry.parse_arguments(call)
        log.debug("Invoking tool %s (call %s)", call.name, call.id)
        try:
            output = entry.handler(args)
            if inspect.isawaitable(output):
                output = await output
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise ToolExecutionError(
                f"Tool {call.name!r} failed: {e}",
                tool_name=call.name,
                tool_call_id=call.id,
            ) from e

        return ToolResult(
            tool_call_id=call.id,
            content=entry.serialize_output(output),
            tool_name=call.name,
        )


def _input_model_of(fn: Handler) -> type[BaseModel]:
    try:
        hints = typing.get_type_hints(fn)
    except Exception as e:
        raise ConfigurationError(
            f"Cannot resolve annotations of {getattr(fn, '__name__', fn)!r}: {e}"
        ) from e
    params = [
        p
        for p in inspect.signature(fn).parameters.values()
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
    ]
    model = hints.get(params[0].name) if len(params) == 1 else None
    if not (isinstance(model, type) and issubclass(model, BaseModel)):
        raise ConfigurationError(
            f"Tool function {getattr(fn, '__name__', fn)!r} must take one argument "
            "annotated with a pydantic model",
            hint="Use ToolRegistry.register(ToolDefinition(...), handler) instead.",
        )
    return model
