"""parley: multi-provider LLM conversations as composable programs.

Public API:
    - Chat, messages, ToolChoice: the canonical conversation model
    - ToolRegistry, ToolDefinition: typed tools and their invoker
    - generate_next_message / execute_tool / add_message / done: program builders
    - Interpreters: the middleware chain that runs programs
    - Runtime, Config: the ready-made chain for one provider
"""

from __future__ import annotations

import logging

from parley.chat import Chat, ToolChoice
from parley.config import Config
from parley.errors import (
    APIError,
    AuthenticationError,
    BaseUrlError,
    ConfigurationError,
    ContextLengthExceededError,
    InternalError,
    InvalidToolArgumentsError,
    MaxToolRoundsExceededError,
    ParleyError,
    ProviderFeatureNotSupportedError,
    ProviderUnavailableError,
    RateLimitError,
    RequestError,
    SerializationError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    UnsupportedModelError,
)
from parley.frontdoor import Runtime
from parley.interpreters import (
    BreakOnToolInterpreter,
    GenerationInterpreter,
    Interpreter,
    TerminalInterpreter,
    ToolExecutorInterpreter,
)
from parley.message import (
    AssistantMessage,
    ImagePart,
    Message,
    SystemMessage,
    TextPart,
    ToolCall,
    ToolMessage,
    UserMessage,
)
from parley.ops import (
    Done,
    ExecuteTool,
    GenerateNextMessage,
    Program,
    add_message,
    done,
    execute_tool,
    generate_next_message,
    send_user_message,
)
from parley.result import Failure, Result, Success, unwrap
from parley.retry import RetryPolicy, retry_async
from parley.tools import ToolDefinition, ToolRegistry, ToolResult, ToolSpec

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("parley-llm")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("parley").addHandler(logging.NullHandler())

__all__ = [
    "APIError",
    "AssistantMessage",
    "AuthenticationError",
    "BaseUrlError",
    "BreakOnToolInterpreter",
    "Chat",
    "Config",
    "ConfigurationError",
    "ContextLengthExceededError",
    "Done",
    "ExecuteTool",
    "Failure",
    "GenerateNextMessage",
    "GenerationInterpreter",
    "ImagePart",
    "InternalError",
    "Interpreter",
    "InvalidToolArgumentsError",
    "MaxToolRoundsExceededError",
    "Message",
    "ParleyError",
    "Program",
    "ProviderFeatureNotSupportedError",
    "ProviderUnavailableError",
    "RateLimitError",
    "RequestError",
    "Result",
    "RetryPolicy",
    "Runtime",
    "SerializationError",
    "Success",
    "SystemMessage",
    "TerminalInterpreter",
    "TextPart",
    "ToolCall",
    "ToolChoice",
    "ToolDefinition",
    "ToolError",
    "ToolExecutionError",
    "ToolExecutorInterpreter",
    "ToolMessage",
    "ToolNotFoundError",
    "ToolRegistry",
    "ToolResult",
    "ToolSpec",
    "UnsupportedModelError",
    "UserMessage",
    "add_message",
    "done",
    "execute_tool",
    "generate_next_message",
    "retry_async",
    "send_user_message",
    "unwrap",
]
