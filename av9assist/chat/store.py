"""
In-memory conversation store.

Keeps each conversation's messages for the lifetime of the process.
Good enough for a single instance; history is lost on restart.
"""

from __future__ import annotations

import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

USER = "user"
AI = "ai"

_ID_ALPHABET = string.ascii_lowercase + string.digits


def _suffix(length: int = 9) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def generate_conversation_id() -> str:
    return f"conv_{int(time.time() * 1000)}_{_suffix()}"


def generate_message_id() -> str:
    return f"msg_{int(time.time() * 1000)}_{_suffix()}"


@dataclass(frozen=True)
class StoredMessage:
    """One message as the chat UI sees it."""

    id: str
    content: str
    sender: str                     # "user" or "ai"
    timestamp: str
    image: Optional[str] = None
    provider: Optional[str] = None

    @classmethod
    def create(
        cls,
        content: str,
        sender: str,
        image: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> StoredMessage:
        return cls(
            id=generate_message_id(),
            content=content,
            sender=sender,
            timestamp=datetime.now(timezone.utc).isoformat(),
            image=image,
            provider=provider,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "content": self.content,
            "sender": self.sender,
            "timestamp": self.timestamp,
        }
        if self.image:
            data["image"] = self.image
        if self.provider:
            data["provider"] = self.provider
        return data


class ConversationStore:
    """conversation_id → ordered messages, capped per conversation."""

    def __init__(self, max_messages: int = 200):
        self._max_messages = max_messages
        self._conversations: dict[str, list[StoredMessage]] = {}

    def get(self, conversation_id: str) -> list[StoredMessage]:
        """A copy of the conversation's messages (empty if unknown)."""
        return list(self._conversations.get(conversation_id, ()))

    def append(self, conversation_id: str, *messages: StoredMessage) -> None:
        history = self._conversations.setdefault(conversation_id, [])
        history.extend(messages)
        if len(history) > self._max_messages:
            del history[: len(history) - self._max_messages]

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)

    def clear(self) -> None:
        self._conversations.clear()
