"""Exception hierarchy for parley."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class ParleyError(Exception):
    """Base exception for all parley errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(ParleyError):
    """Configuration validation or resolution failed."""


class SerializationError(ParleyError):
    """JSON could not be produced or parsed, in either direction."""


class BaseUrlError(ConfigurationError):
    """A provider endpoint is malformed."""


class InternalError(ParleyError):
    """A parley internal error (bug) or invariant violation."""


class ProviderFeatureNotSupportedError(ParleyError):
    """The chat uses a feature the selected backend cannot express."""

    def __init__(
        self, message: str, *, provider: str | None = None, hint: str | None = None
    ) -> None:
        super().__init__(message, hint=hint)
        self.provider = provider


class APIError(ParleyError):
    """A provider call failed.

    Providers attach retry metadata so callers can perform bounded retries
    without brittle substring matching.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        provider: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.provider = provider
        self.phase = phase


class RequestError(APIError):
    """The HTTP exchange itself failed (connect, timeout, protocol)."""


class RateLimitError(APIError):
    """Rate limit exceeded (HTTP 429)."""


class AuthenticationError(APIError):
    """Credentials were missing, malformed, or rejected."""


class UnsupportedModelError(APIError):
    """The backend does not know the requested model."""


class ProviderUnavailableError(APIError):
    """The backend is down, overloaded, or reported an error payload."""


class ContextLengthExceededError(APIError):
    """The conversation does not fit the model's context window."""


class ToolError(ParleyError):
    """Base class for tool lookup, argument and execution failures."""

    def __init__(
        self,
        message: str,
        *,
        tool_name: str | None = None,
        tool_call_id: str | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.tool_name = tool_name
        self.tool_call_id = tool_call_id


class ToolNotFoundError(ToolError):
    """No handler is registered under the requested tool name."""


class InvalidToolArgumentsError(ToolError):
    """Tool arguments could not be parsed into the tool's input shape."""


class ToolExecutionError(ToolError):
    """The tool handler raised."""


class MaxToolRoundsExceededError(ToolError):
    """The auto-execute loop hit its round limit without a final answer."""

    def __init__(self, max_rounds: int) -> None:
        super().__init__(
            f"Model kept requesting tools after {max_rounds} rounds",
            hint="Raise Config.max_tool_rounds or use break_on to hand control back.",
        )
        self.max_rounds = max_rounds


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
