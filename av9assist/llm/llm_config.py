"""
LLM Configuration — provider registry and timeouts.

Freezes validated settings into immutable objects that are built once
at startup and shared by reference across concurrent requests.

Usage:
    from av9assist.config.loader import load_settings
    from av9assist.llm.llm_config import LLMConfig

    config = LLMConfig.from_settings(load_settings())
    config.get_provider("gemini")
    # → ProviderConfig(name="gemini", model="gemini-2.5-flash", ...)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional

from av9assist.config.schema import AppSettings, ProviderSettings

logger = logging.getLogger(__name__)


# Backends whose wire format accepts inline image parts
VISION_PROVIDERS = frozenset({"gemini"})


# ---------------------------------------------------------------------------
# Provider Config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProviderConfig:
    """Everything needed to call one AI backend."""

    name: str                     # "gemini", "sambanova", "openrouter"
    model: str
    url: str                      # may contain {model} / {key}
    api_keys: tuple[str, ...] = ()
    supports_vision: bool = False
    extra_headers: Mapping[str, str] = field(default_factory=dict)
    temperature: float = 0.7
    max_tokens: int = 2048

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_keys)

    @property
    def display_name(self) -> str:
        return f"{self.name}/{self.model}"

    @classmethod
    def from_settings(cls, name: str, settings: ProviderSettings) -> ProviderConfig:
        return cls(
            name=name,
            model=settings.model,
            url=settings.url,
            api_keys=tuple(settings.api_keys),
            supports_vision=name in VISION_PROVIDERS,
            extra_headers=MappingProxyType(dict(settings.headers)),
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )


# ---------------------------------------------------------------------------
# LLM Config
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LLMConfig:
    """
    Provider registry plus orchestration settings.

    Read-only after construction; no locking needed.
    """

    providers: Mapping[str, ProviderConfig]
    provider_order: tuple[str, ...] = ("gemini", "sambanova", "openrouter")
    timeout_ms: int = 10000
    fast_timeout_ms: int = 6000
    vision_timeout_ms: int = 30000
    context_window: int = 8

    def __post_init__(self) -> None:
        # Accept a plain dict but store a read-only view
        if not isinstance(self.providers, MappingProxyType):
            object.__setattr__(
                self, "providers", MappingProxyType(dict(self.providers))
            )

    @classmethod
    def from_settings(cls, settings: AppSettings) -> LLMConfig:
        providers = {
            name: ProviderConfig.from_settings(name, provider_settings)
            for name, provider_settings in settings.provider_settings().items()
        }
        config = cls(
            providers=providers,
            provider_order=tuple(settings.providers_order),
            timeout_ms=settings.timeout_ms,
            fast_timeout_ms=settings.fast_timeout_ms,
            vision_timeout_ms=settings.vision_timeout_ms,
            context_window=settings.context_window,
        )
        logger.info(
            "llm_config_loaded",
            extra={
                "configured": config.configured_providers(),
                "provider_order": list(config.provider_order),
            },
        )
        return config

    def get_provider(self, name: str) -> Optional[ProviderConfig]:
        return self.providers.get(name)

    def configured_providers(self) -> list[str]:
        """Names of providers that have at least one credential."""
        return [p.name for p in self.providers.values() if p.has_credentials]

    def race_timeout_ms(self, has_image: bool) -> int:
        """Default per-provider timeout for the parallel race."""
        return self.vision_timeout_ms if has_image else self.fast_timeout_ms

    def list_providers(self) -> list[dict[str, Any]]:
        """Summary of every known provider, in configured order first."""
        ordered = [n for n in self.provider_order if n in self.providers]
        ordered += [n for n in self.providers if n not in ordered]
        return [
            {
                "name": name,
                "model": self.providers[name].model,
                "configured": self.providers[name].has_credentials,
                "credentials": len(self.providers[name].api_keys),
                "supports_vision": self.providers[name].supports_vision,
                "in_order": name in self.provider_order,
            }
            for name in ordered
        ]
