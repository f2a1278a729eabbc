"""
OpenAI-compatible chat/completions adapters (SambaNova, OpenRouter).

Both speak the same wire format: a flat `messages` list where 'system',
'user' and 'assistant' are all first-class roles. Neither is used for
image requests, so any image carried by earlier turns is sent as text
only.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from av9assist.llm.context import ConversationContext
from av9assist.llm.providers.base import (
    BaseProviderAdapter,
    Malformed,
    Parsed,
    ParseResult,
    PreparedRequest,
    raw_body_of,
)

logger = logging.getLogger(__name__)

ROLE_MAP = {
    "user": "user",
    "assistant": "assistant",
    "ai": "assistant",
    "model": "assistant",
    "system": "system",
}


class OpenAICompatibleAdapter(BaseProviderAdapter):
    """Bearer-token chat/completions backend."""

    label = "OpenAI-compatible"

    def build_messages(
        self, message: str, context: ConversationContext
    ) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        for entry in context:
            role = ROLE_MAP.get(entry.role)
            if role is None:
                logger.debug(
                    "context_entry_dropped",
                    extra={"provider": self.name, "reason": f"role {entry.role!r}"},
                )
                continue
            if entry.image:
                logger.debug(
                    "context_image_dropped",
                    extra={"provider": self.name, "reason": "no vision support"},
                )
            messages.append({"role": role, "content": entry.content})
        messages.append({"role": "user", "content": message})
        return messages

    def build_request(
        self,
        api_key: str,
        message: str,
        context: ConversationContext,
        image: Optional[str],
    ) -> PreparedRequest:
        payload = {
            "model": self.config.model,
            "messages": self.build_messages(message, context),
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }
        headers = {
            "Authorization": f"Bearer {api_key}",
            **self.config.extra_headers,
        }
        return PreparedRequest(url=self.config.url, payload=payload, headers=headers)

    def parse_response(self, data: Any) -> ParseResult:
        if not isinstance(data, dict):
            return Malformed(raw_body_of(data), "body is not an object")

        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            return Malformed(raw_body_of(data), "no choices")

        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            return Malformed(raw_body_of(data), "empty choice content")
        return Parsed(content.strip())


class SambaNovaAdapter(OpenAICompatibleAdapter):
    label = "SambaNova"


class OpenRouterAdapter(OpenAICompatibleAdapter):
    """Adds the HTTP-Referer / X-Title attribution headers from config."""

    label = "OpenRouter"
