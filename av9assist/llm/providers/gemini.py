"""
Google Gemini adapter (Generative Language API, generateContent).

Gemini only accepts two turn roles, 'user' and 'model':
- 'assistant' (and the aliases 'ai', 'model') map to 'model'
- 'system' entries move into the top-level system_instruction
- anything else is dropped

Each turn is {role, parts: [{text}, {inline_data: {mime_type, data}}]};
images ride along as inline_data parts, for the current message and for
any earlier turn that carried one.
"""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

from av9assist.llm.context import SYSTEM, ConversationContext, parse_data_url
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
    "assistant": "model",
    "ai": "model",
    "model": "model",
}


def inline_image_part(data_url: str) -> dict[str, Any]:
    image = parse_data_url(data_url)
    return {"inline_data": {"mime_type": image.mime_type, "data": image.data}}


class GeminiAdapter(BaseProviderAdapter):
    """Vision-capable adapter for Gemini models."""

    label = "Gemini"

    def build_request(
        self,
        api_key: str,
        message: str,
        context: ConversationContext,
        image: Optional[str],
    ) -> PreparedRequest:
        contents: list[dict[str, Any]] = []
        system_texts: list[str] = []

        for entry in context:
            if entry.role == SYSTEM:
                system_texts.append(entry.content)
                if entry.image:
                    logger.debug(
                        "context_image_dropped",
                        extra={"provider": self.name, "reason": "system entry"},
                    )
                continue

            role = ROLE_MAP.get(entry.role)
            if role is None:
                logger.debug(
                    "context_entry_dropped",
                    extra={"provider": self.name, "reason": f"role {entry.role!r}"},
                )
                continue

            parts: list[dict[str, Any]] = [{"text": entry.content}]
            if entry.image:
                parts.append(inline_image_part(entry.image))
            contents.append({"role": role, "parts": parts})

        user_parts: list[dict[str, Any]] = [{"text": message}]
        if image:
            user_parts.append(inline_image_part(image))
        contents.append({"role": "user", "parts": user_parts})

        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "temperature": self.config.temperature,
                "maxOutputTokens": self.config.max_tokens,
            },
        }
        if system_texts:
            payload["system_instruction"] = {
                "parts": [{"text": "\n".join(system_texts)}]
            }

        if image:
            logger.info(
                "gemini_vision_request",
                extra={
                    "provider": self.name,
                    "mime_type": parse_data_url(image).mime_type,
                    "image_chars": len(image),
                    "contents": len(contents),
                },
            )

        url = (
            self.config.url
            .replace("{model}", self.config.model)
            .replace("{key}", quote(api_key, safe=""))
        )
        return PreparedRequest(url=url, payload=payload, headers={})

    def parse_response(self, data: Any) -> ParseResult:
        if not isinstance(data, dict):
            return Malformed(raw_body_of(data), "body is not an object")

        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            return Malformed(raw_body_of(data), "no candidates")

        content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list):
            return Malformed(raw_body_of(data), "candidate has no parts")

        texts = [
            part["text"] for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        ]
        text = "".join(texts).strip()
        if not text:
            return Malformed(raw_body_of(data), "empty candidate text")
        return Parsed(text)
