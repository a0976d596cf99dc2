"""Configuration boundary tests."""

from __future__ import annotations

import pytest

from parley.config import Config
from parley.errors import BaseUrlError, ConfigurationError

pytestmark = pytest.mark.unit


def test_mock_and_ollama_need_no_key() -> None:
    assert Config(provider="mock", model="m").api_key is None
    assert Config(provider="ollama", model="llama3:8b").api_key is None


@pytest.mark.parametrize(
    ("provider", "env_var"),
    [
        ("openai", "OPENAI_API_KEY"),
        ("anthropic", "ANTHROPIC_API_KEY"),
        ("gemini", "GEMINI_API_KEY"),
        ("mistral", "MISTRAL_API_KEY"),
    ],
)
def test_config_auto_resolves_api_key_from_env(
    monkeypatch: pytest.MonkeyPatch, provider: str, env_var: str
) -> None:
    """API key should be auto-resolved from the provider's environment variable."""
    monkeypatch.setenv(env_var, "env-key")

    cfg = Config(provider=provider, model="m")  # type: ignore[arg-type]

    assert cfg.api_key == "env-key"


def test_explicit_api_key_takes_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")

    cfg = Config(provider="openai", model="gpt-4o-mini", api_key="explicit-key")

    assert cfg.api_key == "explicit-key"


def test_missing_api_key_raises_clear_error() -> None:
    with pytest.raises(ConfigurationError, match="API key required") as exc:
        Config(provider="anthropic", model="claude-3-5-haiku-latest")

    assert "ANTHROPIC_API_KEY" in (exc.value.hint or "")


def test_unknown_provider_lists_supported_ones() -> None:
    with pytest.raises(ConfigurationError, match="Unknown provider") as exc:
        Config(provider="cohere", model="m")  # type: ignore[arg-type]

    assert "openai" in (exc.value.hint or "")


@pytest.mark.parametrize(
    ("kwargs", "match"),
    [
        ({"model": ""}, "model"),
        ({"model": "m", "timeout_s": 0}, "timeout_s"),
        ({"model": "m", "max_tool_rounds": 0}, "max_tool_rounds"),
        ({"model": "m", "tool_error_policy": "ignore"}, "tool_error_policy"),
    ],
)
def test_invalid_values_rejected(kwargs: dict[str, object], match: str) -> None:
    with pytest.raises(ConfigurationError, match=match) as exc:
        Config(provider="mock", **kwargs)  # type: ignore[arg-type]

    assert exc.value.hint


def test_malformed_base_url_rejected() -> None:
    with pytest.raises(BaseUrlError):
        Config(provider="ollama", model="m", base_url="localhost:11434")


def test_str_and_repr_redact_api_key() -> None:
    cfg = Config(provider="openai", model="gpt-4o", api_key="sk-very-secret")

    assert "sk-very-secret" not in str(cfg)
    assert "sk-very-secret" not in repr(cfg)
    assert "[REDACTED]" in repr(cfg)


def test_config_is_frozen() -> None:
    cfg = Config(provider="mock", model="m")

    with pytest.raises(AttributeError):
        cfg.model = "other"  # type: ignore[misc]
