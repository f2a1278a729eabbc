"""
Pydantic configuration schema for av9Assist.

Settings come from environment variables, optionally layered on top of
a YAML file (see av9assist.config.loader). These models validate the
merged result once at startup; the LLM layer then freezes it into an
immutable LLMConfig.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_PROVIDER_ORDER = ["gemini", "sambanova", "openrouter"]

DEFAULT_SYSTEM_PROMPT = (
    "You are av9Assist, a helpful AI assistant. Respond naturally and "
    "helpfully to user questions. When users send images, analyze and "
    "describe them accurately."
)

GEMINI_URL_TEMPLATE = (
    "https://generativelanguage.googleapis.com/v1/models/"
    "{model}:generateContent?key={key}"
)


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------

class ProviderSettings(BaseModel):
    """Credentials and endpoint for one AI backend."""
    api_keys: list[str] = Field(
        default_factory=list,
        description="Interchangeable API keys, tried in order",
    )
    model: str = Field(..., min_length=1)
    url: str = Field(
        ..., min_length=1,
        description="Endpoint URL; may contain {model} and {key} placeholders",
    )
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Extra request headers (e.g. OpenRouter attribution)",
    )
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(2048, ge=1)

    @field_validator("api_keys", mode="before")
    @classmethod
    def drop_blank_keys(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [str(k).strip() for k in v if k and str(k).strip()]


def _gemini_defaults() -> ProviderSettings:
    return ProviderSettings(model="gemini-2.5-flash", url=GEMINI_URL_TEMPLATE)


def _sambanova_defaults() -> ProviderSettings:
    return ProviderSettings(
        model="Llama-4-Maverick-17B-128E-Instruct",
        url="https://api.sambanova.ai/v1/chat/completions",
    )


def _openrouter_defaults() -> ProviderSettings:
    return ProviderSettings(
        model="meta-llama/llama-3.3-8b-instruct:free",
        url="https://openrouter.ai/api/v1/chat/completions",
        headers={
            "HTTP-Referer": "https://av9assist.com",
            "X-Title": "av9Assist Chat",
        },
    )


# ---------------------------------------------------------------------------
# Root model
# ---------------------------------------------------------------------------

class AppSettings(BaseModel):
    """Complete application settings."""

    gemini: ProviderSettings = Field(default_factory=_gemini_defaults)
    sambanova: ProviderSettings = Field(default_factory=_sambanova_defaults)
    openrouter: ProviderSettings = Field(default_factory=_openrouter_defaults)

    providers_order: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PROVIDER_ORDER),
        description="Default provider order for both strategies",
    )
    timeout_ms: int = Field(
        10000, gt=0, description="Per-call timeout for sequential fallback"
    )
    fast_timeout_ms: int = Field(
        6000, gt=0, description="Per-provider timeout for the parallel race"
    )
    vision_timeout_ms: int = Field(
        30000, gt=0, description="Race timeout when an image is attached"
    )
    context_window: int = Field(
        8, ge=1, le=50, description="Most recent context entries sent upstream"
    )
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    @field_validator("providers_order", mode="before")
    @classmethod
    def split_order(cls, v):
        if isinstance(v, str):
            v = v.split(",")
        return [str(p).strip().lower() for p in v if str(p).strip()]

    def provider_settings(self) -> dict[str, ProviderSettings]:
        """Provider name → settings, for every backend the app knows."""
        return {
            "gemini": self.gemini,
            "sambanova": self.sambanova,
            "openrouter": self.openrouter,
        }

    def masked_credentials(self) -> dict[str, str]:
        """
        Credential diagnostics safe to expose: first 10 characters of
        each key followed by '...', or 'NOT SET'.
        """
        def _mask(keys: list[str], index: int) -> str:
            if len(keys) > index:
                return f"{keys[index][:10]}..."
            return "NOT SET"

        return {
            "GOOGLE_API_KEY": _mask(self.gemini.api_keys, 0),
            "GOOGLE_API_KEY_2": _mask(self.gemini.api_keys, 1),
            "GOOGLE_MODEL": self.gemini.model,
            "SAMBANOVA_API_KEY": _mask(self.sambanova.api_keys, 0),
            "OPENROUTER_API_KEY": _mask(self.openrouter.api_keys, 0),
            "PROVIDERS_ORDER": ",".join(self.providers_order),
        }
