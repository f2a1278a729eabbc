"""
LLM orchestration layer — multi-provider calls with fallback and racing.

Modules:
- llm_config: ProviderConfig / LLMConfig, immutable provider registry
- context: ChatMessage, ConversationContext, data-URL decoding
- transport: HTTPTransport, JSON over httpx with hard timeouts
- providers: Gemini, SambaNova and OpenRouter adapters
- router: ProviderRouter, sequential fallback and parallel race
"""
