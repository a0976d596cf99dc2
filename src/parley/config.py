"""Configuration: frozen Config with explicit provider/model requirements."""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Literal

from dotenv import load_dotenv

from parley.errors import ConfigurationError
from parley.providers._errors import API_KEY_ENV_VARS
from parley.providers._utils import resolve_endpoint

load_dotenv()

ProviderName = Literal["openai", "anthropic", "gemini", "mistral", "ollama", "mock"]
ToolErrorPolicy = Literal["raise", "continue"]

_PROVIDERS: tuple[str, ...] = ("openai", "anthropic", "gemini", "mistral", "ollama", "mock")
# Backends that need no credentials.
_KEYLESS: frozenset[str] = frozenset({"ollama", "mock"})


@dataclass(frozen=True)
class Config:
    """Immutable configuration for a parley runtime.

    Provider and model are required. API keys are auto-resolved from
    standard environment variables.

    Example:
        config = Config(provider="openai", model="gpt-4o-mini")
        # API key is automatically resolved from OPENAI_API_KEY
    """

    provider: ProviderName
    model: str
    #: Auto-resolved from ``<PROVIDER>_API_KEY`` when *None*.
    api_key: str | None = None
    #: Overrides the provider's default endpoint.
    base_url: str | None = None
    #: OpenAI-only; sent as the ``OpenAI-Organization`` header.
    organization: str | None = None
    timeout_s: float = 60.0
    max_tool_rounds: int = 8
    tool_error_policy: ToolErrorPolicy = "raise"

    def __post_init__(self) -> None:
        """Auto-resolve API key and validate configuration."""
        if self.provider not in _PROVIDERS:
            raise ConfigurationError(
                f"Unknown provider: {self.provider!r}",
                hint=f"Supported providers: {', '.join(_PROVIDERS)}",
            )
        if not isinstance(self.model, str) or not self.model:
            raise ConfigurationError(
                "model must be a non-empty string",
                hint="Pass a model identifier, e.g. Config(provider='openai', model='gpt-4o-mini').",
            )

        if self.timeout_s <= 0:
            raise ConfigurationError(
                f"timeout_s must be > 0, got {self.timeout_s}",
                hint="This bounds each HTTP exchange in seconds.",
            )
        if self.max_tool_rounds < 1:
            raise ConfigurationError(
                f"max_tool_rounds must be ≥ 1, got {self.max_tool_rounds}",
                hint="This bounds how many tool round-trips one turn may take.",
            )
        if self.tool_error_policy not in ("raise", "continue"):
            raise ConfigurationError(
                f"Unknown tool_error_policy: {self.tool_error_policy!r}",
                hint="Use 'raise' to fail the turn or 'continue' to report errors to the model.",
            )
        if self.base_url is not None:
            resolve_endpoint(self.base_url, "")

        if self.provider in _KEYLESS:
            return

        env_var = API_KEY_ENV_VARS[self.provider]
        if self.api_key is None:
            object.__setattr__(self, "api_key", os.environ.get(env_var))
        if not self.api_key:
            raise ConfigurationError(
                f"API key required for {self.provider}",
                hint=f"Set {env_var} environment variable or pass api_key=...",
            )

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"Config(provider={self.provider!r}, model={self.model!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, "
            f"base_url={self.base_url!r}, max_tool_rounds={self.max_tool_rounds})"
        )

    __repr__ = __str__
