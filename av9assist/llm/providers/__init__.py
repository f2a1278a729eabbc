"""
Provider adapters, one per AI backend.

    create_adapter(config, transport) picks the adapter class by the
    provider's name.
"""

from __future__ import annotations

from av9assist.llm.llm_config import ProviderConfig
from av9assist.llm.providers.base import (
    BaseProviderAdapter,
    Malformed,
    Parsed,
    ParseResult,
    PreparedRequest,
)
from av9assist.llm.providers.gemini import GeminiAdapter
from av9assist.llm.providers.openai_compatible import (
    OpenAICompatibleAdapter,
    OpenRouterAdapter,
    SambaNovaAdapter,
)
from av9assist.llm.transport import HTTPTransport

ADAPTERS: dict[str, type[BaseProviderAdapter]] = {
    "gemini": GeminiAdapter,
    "sambanova": SambaNovaAdapter,
    "openrouter": OpenRouterAdapter,
}


def create_adapter(
    config: ProviderConfig,
    transport: HTTPTransport,
    context_window: int = 8,
) -> BaseProviderAdapter:
    """Create the adapter for a provider config."""
    adapter_class = ADAPTERS.get(config.name)
    if adapter_class is None:
        raise ValueError(f"Unsupported provider: {config.name}")
    return adapter_class(config, transport, context_window=context_window)


__all__ = [
    "ADAPTERS",
    "BaseProviderAdapter",
    "GeminiAdapter",
    "Malformed",
    "OpenAICompatibleAdapter",
    "OpenRouterAdapter",
    "Parsed",
    "ParseResult",
    "PreparedRequest",
    "SambaNovaAdapter",
    "create_adapter",
]
