"""Result type for explicit error flow through continuations.

Every continuation in a program receives a ``Result`` rather than a raised
exception, so a caller's ``and_then`` chain observes a failure at exactly the
point it would have observed the success.
"""

from __future__ import annotations

import dataclasses
import typing

TSuccess = typing.TypeVar("TSuccess")
TFailure = typing.TypeVar("TFailure", bound=Exception)


@dataclasses.dataclass(frozen=True, slots=True)
class Success(typing.Generic[TSuccess]):
    """A successful outcome."""

    value: TSuccess


@dataclasses.dataclass(frozen=True, slots=True)
class Failure(typing.Generic[TFailure]):
    """A failed outcome, carrying the error."""

    error: TFailure


Result = Success[TSuccess] | Failure[TFailure]


def unwrap(result: Success[TSuccess] | Failure[Exception]) -> TSuccess:
    """Return the success value or raise the carried error."""
    if isinstance(result, Success):
        return result.value
    if isinstance(result, Failure):
        raise result.error
    raise TypeError(f"expected Success or Failure, got {type(result).__name__}")
