"""Application configuration loaded from environment variables.

Uses ``pydantic-settings`` for automatic env-var loading, type coercion,
and ``.env`` file support.  Nothing is strictly required at startup: the
LLM API keys may also arrive per request (``apiSettings`` on the one-shot
fix endpoint), so a missing key only fails the repair that needs it.
"""

VERSION = "0.1.0"

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings — sourced from environment / ``.env`` file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    FRONTEND_URL: str = "http://localhost:5173"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    # Optional plain-text log file (rotated at 10 MiB).  Blank = stderr only.
    LOG_FILE: str = ""

    # -------------------------------------------------------------------------
    # Oracle (LLM) provider.
    #
    #   "anthropic": Messages API, streamed
    #   "openai":    Chat Completions API, streamed
    #
    # LLM_MODEL overrides the provider default resolved in
    # get_model_for_provider below.
    # -------------------------------------------------------------------------
    LLM_PROVIDER: str = "anthropic"  # "anthropic" | "openai"
    ANTHROPIC_API_KEY: str = ""
    OPENAI_API_KEY: str = ""
    LLM_MODEL: str = ""
    LLM_MAX_TOKENS: int = Field(default=16_384, ge=256)
    LLM_TIMEOUT_S: float = Field(default=300.0, gt=0)

    # Fault gate: cooldown after an accepted fault, grace window after a
    # clean build, and how much of the raw message feeds the fingerprint.
    REPAIR_COOLDOWN_S: float = Field(default=5.0, ge=0)
    REPAIR_SUCCESS_GRACE_S: float = Field(default=2.0, ge=0)
    FINGERPRINT_PREFIX_CHARS: int = Field(default=100, ge=1)

    # Sandbox preview recompile delay, normal vs. while a repair is running.
    PREVIEW_RECOMPILE_DELAY_MS: int = Field(default=500, ge=0)
    PREVIEW_RECOMPILE_DELAY_REPAIRING_MS: int = Field(default=2000, ge=0)


settings = Settings()

# ---------------------------------------------------------------------------
# Model resolution
# ---------------------------------------------------------------------------
_DEFAULT_MODELS: dict[str, str] = {
    "anthropic": "claude-sonnet-4-5",
    "openai": "gpt-4o",
}


def get_model_for_provider(provider: str | None = None) -> str:
    """Return the model ID to use for *provider*.

    Resolution order:
      1. LLM_MODEL, but only for the configured LLM_PROVIDER
      2. Provider default

    Args:
        provider: "anthropic" | "openai"; defaults to LLM_PROVIDER.
    """
    configured = (settings.LLM_PROVIDER or "anthropic").lower()
    provider = (provider or configured).lower()
    if settings.LLM_MODEL and provider == configured:
        return settings.LLM_MODEL
    return _DEFAULT_MODELS.get(provider, _DEFAULT_MODELS["anthropic"])


def get_api_key_for_provider(provider: str | None = None) -> str:
    """Return the configured API key for *provider* (may be blank)."""
    provider = (provider or settings.LLM_PROVIDER or "anthropic").lower()
    if provider == "openai":
        return settings.OPENAI_API_KEY
    return settings.ANTHROPIC_API_KEY
