"""
Conversation context — normalized chat history handed to providers.

The chat endpoint owns the history; the router receives an immutable
snapshot (a tuple of ChatMessage) per call and never retains it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Union

logger = logging.getLogger(__name__)

SYSTEM = "system"
USER = "user"
ASSISTANT = "assistant"

DEFAULT_IMAGE_MIME = "image/jpeg"

_DATA_URL_RE = re.compile(r"^data:(image/[\w.+-]+);base64,", re.IGNORECASE)


@dataclass(frozen=True)
class ChatMessage:
    """One entry of a conversation, oldest first."""

    role: str
    content: str
    image: Optional[str] = None   # data URL

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Optional[ChatMessage]:
        """
        Build from a loosely-typed dict ({role, content, image?}).

        Returns None for entries without a role or content; those are
        dropped rather than failing the whole request.
        """
        role = data.get("role")
        content = data.get("content")
        if not role or not content:
            return None
        image = data.get("image") or None
        return cls(
            role=str(role).strip().lower(),
            content=str(content),
            image=str(image) if image else None,
        )


ConversationContext = tuple[ChatMessage, ...]

ContextInput = Optional[Iterable[Union[ChatMessage, Mapping[str, Any]]]]


def normalize_context(context: ContextInput) -> ConversationContext:
    """
    Turn caller-supplied history into an immutable ConversationContext.

    Accepts ChatMessage objects or dicts. Entries missing a role or
    content are skipped; role names are lowercased.
    """
    if not context:
        return ()

    messages: list[ChatMessage] = []
    for entry in context:
        if isinstance(entry, ChatMessage):
            message: Optional[ChatMessage] = entry
        elif isinstance(entry, Mapping):
            message = ChatMessage.from_dict(entry)
        else:
            message = None
        if message is None:
            logger.debug("context_entry_dropped", extra={"reason": "missing role or content"})
            continue
        messages.append(message)
    return tuple(messages)


def recent(context: ConversationContext, limit: int) -> ConversationContext:
    """The most recent `limit` entries, still oldest first."""
    if limit <= 0:
        return ()
    return context[-limit:]


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class InlineImage:
    """A base64 image payload split out of a data URL."""

    mime_type: str
    data: str


def parse_data_url(data_url: str) -> InlineImage:
    """
    Split `data:<mime>;base64,<payload>` into (mime_type, payload).

    Falls back to image/jpeg when the prefix cannot be parsed. A string
    without a comma is treated as bare base64.
    """
    match = _DATA_URL_RE.match(data_url)
    mime_type = match.group(1).lower() if match else DEFAULT_IMAGE_MIME
    _, sep, payload = data_url.partition(",")
    return InlineImage(mime_type=mime_type, data=payload if sep else data_url)
