"""Runtime configuration, read once from the environment (and .env) into a Settings object.

Environment variables
---------------------
LLM_PROVIDER           : "openai" (default) or "anthropic".
OPENAI_API_KEY         : Bearer token for the chat-completion endpoint.
OPENAI_BASE_URL        : Optional endpoint override (e.g. https://openrouter.ai/api/v1).
OPENAI_MODEL           : Model for the openai provider (default: gpt-4o-mini).
ANTHROPIC_API_KEY      : API key for the anthropic provider.
ANTHROPIC_MODEL        : Model for the anthropic provider (default: claude-sonnet-4-6).
MAX_TOKENS             : Max output tokens per request (default: 8192).
LLM_TEMPERATURE        : Optional sampling temperature.
LLM_REASONING          : "1"/"true" to request the provider's reasoning mode.
LLM_TIMEOUT            : Request timeout in seconds (default: 120).
MAX_RETRIES            : Retries on rate limiting (default: 3).
RETRY_BASE_DELAY       : Backoff base in seconds (default: 2.0).
NOTE_DELAY             : Pause between per-note calls in seconds (default: 1.5).
INTERLINK_STRATEGY     : "batch" (default) or "per_note".
EVERGREEN_SESSION_PATH : Session file (default: .evergreen/session.json).
"""
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

from evergreen.errors import ConfigError

PROVIDERS = ("openai", "anthropic")
STRATEGIES = ("batch", "per_note")

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-6"
DEFAULT_SESSION_PATH = Path(".evergreen") / "session.json"


@dataclass(frozen=True)
class Settings:
    provider: str = "openai"
    api_key: str | None = None
    base_url: str | None = None
    model: str = DEFAULT_OPENAI_MODEL
    max_output_tokens: int = 8192
    temperature: float | None = None
    reasoning: bool = False
    timeout: float = 120.0
    max_retries: int = 3
    retry_base_delay: float = 2.0
    note_delay: float = 1.5
    interlink_strategy: str = "batch"
    session_path: Path = DEFAULT_SESSION_PATH

    def __post_init__(self):
        if self.provider not in PROVIDERS:
            raise ConfigError(f"Unknown LLM_PROVIDER {self.provider!r}; expected one of {', '.join(PROVIDERS)}")
        if self.interlink_strategy not in STRATEGIES:
            raise ConfigError(
                f"Unknown INTERLINK_STRATEGY {self.interlink_strategy!r}; expected one of {', '.join(STRATEGIES)}"
            )
        if self.max_retries < 0:
            raise ConfigError("MAX_RETRIES must be >= 0")
        if self.max_output_tokens <= 0:
            raise ConfigError("MAX_TOKENS must be positive")
        if self.retry_base_delay < 0 or self.note_delay < 0:
            raise ConfigError("Delays must be >= 0")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environ (default: os.environ after loading .env)."""
        if environ is None:
            load_dotenv()
            environ = os.environ
        provider = environ.get("LLM_PROVIDER", "openai").strip().lower()
        if provider == "anthropic":
            api_key = environ.get("ANTHROPIC_API_KEY")
            model = environ.get("ANTHROPIC_MODEL", DEFAULT_ANTHROPIC_MODEL)
        else:
            api_key = environ.get("OPENAI_API_KEY")
            model = environ.get("OPENAI_MODEL", DEFAULT_OPENAI_MODEL)
        temperature = environ.get("LLM_TEMPERATURE")
        return cls(
            provider=provider,
            api_key=(api_key or "").strip() or None,
            base_url=environ.get("OPENAI_BASE_URL") or None,
            model=model,
            max_output_tokens=_number(environ, "MAX_TOKENS", int, 8192),
            temperature=_number(environ, "LLM_TEMPERATURE", float, 0.0) if temperature else None,
            reasoning=environ.get("LLM_REASONING", "").strip().lower() in ("1", "true", "yes"),
            timeout=_number(environ, "LLM_TIMEOUT", float, 120.0),
            max_retries=_number(environ, "MAX_RETRIES", int, 3),
            retry_base_delay=_number(environ, "RETRY_BASE_DELAY", float, 2.0),
            note_delay=_number(environ, "NOTE_DELAY", float, 1.5),
            interlink_strategy=environ.get("INTERLINK_STRATEGY", "batch").strip().lower(),
            session_path=Path(environ.get("EVERGREEN_SESSION_PATH") or DEFAULT_SESSION_PATH),
        )

    def with_overrides(self, **changes) -> "Settings":
        """Return a copy with the non-None changes applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _number(environ: Mapping[str, str], name: str, kind, default):
    value = environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return kind(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a {kind.__name__}, got {value!r}") from exc
