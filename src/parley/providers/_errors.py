"""Shared provider-side error helpers.

Non-2xx responses and transport failures are mapped into ``APIError``
subclasses carrying stable retry metadata, so callers can retry without
brittle substring matching.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import TYPE_CHECKING, Any

import httpx

from parley.errors import (
    APIError,
    AuthenticationError,
    ContextLengthExceededError,
    ProviderUnavailableError,
    RateLimitError,
    RequestError,
    UnsupportedModelError,
    _walk_exception_chain,
)

if TYPE_CHECKING:
    from parley.providers.base import WireResponse

# Retryable status codes shared by provider mapping and caller-side retry.
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 409, 429, 500, 502, 503, 504})

API_KEY_ENV_VARS: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
}

_CONTEXT_LENGTH_RE = re.compile(
    r"context[ _-]?(length|window)|maximum context|too many tokens|prompt is too long"
    r"|token limit|exceeds the maximum",
    re.IGNORECASE,
)
_PROTO_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)s$")


def _decode_body(body: bytes) -> Any:
    try:
        return json.loads(body)
    except ValueError:
        return None


def error_message(payload: Any) -> str | None:
    """Pull a human-readable message out of a vendor error payload.

    Handles ``{"error": {"message": ...}}`` (OpenAI, Anthropic, Gemini),
    ``{"error": "..."}`` (Ollama) and ``{"message": ...}`` (Mistral).
    """
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
    if isinstance(error, str) and error:
        return error
    message = payload.get("message")
    if isinstance(message, str) and message:
        return message
    return None


def _retry_info_seconds(payload: Any) -> float | None:
    """Extract a Google API-style ``RetryInfo`` delay from an error payload.

    Shaped like ``{"error": {"details": [{"@type": "...RetryInfo", "retryDelay": "8s"}]}}``.
    """
    if not isinstance(payload, dict):
        return None
    error: Any = payload.get("error")
    if not isinstance(error, dict):
        return None
    detail_list: Any = error.get("details")
    if not isinstance(detail_list, list):
        return None
    for entry in detail_list:
        if not isinstance(entry, dict):
            continue
        at_type = entry.get("@type", "")
        if not isinstance(at_type, str) or "RetryInfo" not in at_type:
            continue
        delay_raw = entry.get("retryDelay")
        if not isinstance(delay_raw, str):
            continue
        m = _PROTO_DURATION_RE.match(delay_raw)
        if m:
            return float(m.group(1))
    return None


def extract_retry_after_s(response: WireResponse, payload: Any = None) -> float | None:
    """Find a retry-after delay in seconds from headers or the error payload."""
    raw = response.header("retry-after")
    if isinstance(raw, str) and raw.strip():
        try:
            seconds = float(raw)
        except ValueError:
            seconds = None
        if seconds is not None and seconds >= 0:
            return seconds
    return _retry_info_seconds(payload)


def _auth_hint(provider: str) -> str:
    env_var = API_KEY_ENV_VARS.get(provider, "the provider API key")
    return f"Check credentials/permissions (try setting {env_var} or Config.api_key)."


def error_from_response(response: WireResponse, *, provider: str) -> APIError:
    """Map a non-2xx response into the matching ``APIError`` subclass."""
    status = response.status_code
    payload = _decode_body(response.body)
    detail = error_message(payload) or response.body[:200].decode(errors="replace")
    retry_after_s = extract_retry_after_s(response, payload)
    retryable = status in RETRYABLE_STATUS_CODES or retry_after_s is not None

    err_cls: type[APIError] = APIError
    hint: str | None = None
    if status == 429:
        err_cls = RateLimitError
    elif status in (401, 403):
        err_cls = AuthenticationError
        hint = _auth_hint(provider)
    elif status == 404:
        err_cls = UnsupportedModelError
        hint = "Check the model name against the provider's model list."
    elif status in (400, 413) and _CONTEXT_LENGTH_RE.search(detail or ""):
        err_cls = ContextLengthExceededError
        hint = "Shorten the history or lower Chat.max_output_tokens."
    elif status >= 500:
        err_cls = ProviderUnavailableError

    msg = f"{provider} request failed (status={status})"
    return err_cls(
        f"{msg}: {detail}" if detail else msg,
        hint=hint,
        retryable=retryable,
        status_code=status,
        retry_after_s=retry_after_s,
        provider=provider,
        phase="generate",
    )


def error_from_payload(payload: Any, *, provider: str) -> ProviderUnavailableError | None:
    """Return an error for an error payload delivered with a 2xx status."""
    if not isinstance(payload, dict) or "error" not in payload:
        return None
    detail = error_message(payload) or "unknown error"
    return ProviderUnavailableError(
        f"{provider} returned an error payload: {detail}",
        provider=provider,
        phase="generate",
    )


def wrap_transport_error(exc: BaseException, *, provider: str | None) -> APIError:
    """Map an httpx transport failure into ``RequestError``."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    if isinstance(exc, APIError):
        if exc.provider is None:
            exc.provider = provider
        return exc

    retryable = any(
        isinstance(e, (httpx.TimeoutException, httpx.RequestError))
        for e in _walk_exception_chain(exc)
    )
    label = provider or "http"
    cause = str(exc) or type(exc).__name__
    return RequestError(
        f"{label} transport failed: {cause}",
        retryable=retryable,
        provider=provider,
        phase="transport",
    )
