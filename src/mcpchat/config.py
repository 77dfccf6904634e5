"""Settings — model backend credentials and defaults from the environment."""

from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from mcpchat.errors import ConfigError

DEFAULT_MAX_TOKENS = 1000
DEFAULT_API_BASE = "https://api.anthropic.com"

# Tried in order after the override and the configured default.
FALLBACK_MODELS: tuple[str, ...] = (
    "claude-sonnet-4-5",
    "claude-3-7-sonnet-latest",
    "claude-3-5-haiku-latest",
)


class ChatSettings(BaseModel):
    """Configuration for the model backend.

    Model ids follow LiteLLM's naming; bare ids (``claude-...``) are sent to
    the ``anthropic`` provider.
    """

    api_key: str
    model: str | None = None
    max_tokens: int = DEFAULT_MAX_TOKENS
    api_base: str = DEFAULT_API_BASE
    fallback_models: list[str] = Field(default_factory=lambda: list(FALLBACK_MODELS))

    @property
    def provider(self) -> str:
        """Provider prefix of the configured model, ``anthropic`` by default."""
        if self.model and "/" in self.model:
            return self.model.split("/", 1)[0]
        return "anthropic"


def parse_max_tokens(value: str | None, default: int = DEFAULT_MAX_TOKENS) -> int:
    """Parse a max-token override; empty, non-numeric, or non-positive values give *default*."""
    if value is None or not value.strip():
        return default
    try:
        parsed = int(float(value))
    except (ValueError, OverflowError):
        return default
    return parsed if parsed > 0 else default


def load_settings() -> ChatSettings:
    """Load settings from the environment (and a ``.env`` file if present).

    Raises:
        ConfigError: If ``ANTHROPIC_API_KEY`` is missing.
    """
    load_dotenv()

    api_key = os.getenv("ANTHROPIC_API_KEY", "").strip()
    if not api_key:
        msg = "Missing ANTHROPIC_API_KEY in environment (.env)"
        raise ConfigError(msg)

    return ChatSettings(
        api_key=api_key,
        model=os.getenv("ANTHROPIC_MODEL", "").strip() or None,
        max_tokens=parse_max_tokens(os.getenv("ANTHROPIC_MAX_TOKENS")),
        api_base=os.getenv("ANTHROPIC_BASE_URL", "").strip().rstrip("/") or DEFAULT_API_BASE,
    )
