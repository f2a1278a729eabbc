"""
Chat service — the caller side of provider orchestration.

Owns conversation history, prepends the assistant's system prompt,
and asks the router for a reply using the combined race-then-fallback
policy. An optional deadline bounds the whole exchange; when it
expires the caller gets a cancellation outcome, distinct from "all
providers failed".

Usage:
    from av9assist.chat.service import ChatService

    service = ChatService.from_settings(load_settings())
    reply = await service.reply("How are you?", conversation_id=None)
    print(reply.message.content)
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

from av9assist.chat.store import (
    AI,
    USER,
    ConversationStore,
    StoredMessage,
    generate_conversation_id,
)
from av9assist.config.schema import DEFAULT_SYSTEM_PROMPT, AppSettings
from av9assist.llm.context import ASSISTANT, SYSTEM, ChatMessage
from av9assist.llm.llm_config import LLMConfig
from av9assist.llm.router import OrchestratorResult, ProviderRouter
from av9assist.observability.logging_config import reset_request_id, set_request_id

logger = logging.getLogger(__name__)


@dataclass
class ChatReply:
    """Reply to one user message."""

    conversation_id: str
    message: StoredMessage
    result: OrchestratorResult

    def to_dict(self) -> dict:
        return {
            "message": self.message.to_dict(),
            "conversationId": self.conversation_id,
            "success": self.result.success,
        }


class ChatService:
    """Builds provider context from history and records the exchange."""

    def __init__(
        self,
        router: ProviderRouter,
        store: Optional[ConversationStore] = None,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        deadline_ms: Optional[int] = None,
    ):
        self.router = router
        self.store = store or ConversationStore()
        self.system_prompt = system_prompt
        self.deadline_ms = deadline_ms

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        deadline_ms: Optional[int] = None,
    ) -> ChatService:
        router = ProviderRouter(LLMConfig.from_settings(settings))
        return cls(router, system_prompt=settings.system_prompt, deadline_ms=deadline_ms)

    def build_context(self, history: Iterable[StoredMessage]) -> list[ChatMessage]:
        """
        System prompt followed by the most recent history.

        AI turns with no provider are the fallback or cancellation notices
        of failed exchanges; they stay in the store but are not sent back.
        History is trimmed so that, together with the system prompt, it
        fits the router's context window and the prompt is never cut.
        """
        window = self.router.config.context_window
        context: list[ChatMessage] = []
        if self.system_prompt:
            context.append(ChatMessage(role=SYSTEM, content=self.system_prompt))

        usable = [m for m in history if m.sender != AI or m.provider]
        room = window - len(context)
        recent = usable[-room:] if room > 0 else []
        for stored in recent:
            role = ASSISTANT if stored.sender == AI else stored.sender
            context.append(ChatMessage(role=role, content=stored.content, image=stored.image))
        return context

    async def generate(
        self,
        message: str,
        history: Iterable[StoredMessage] = (),
        image: Optional[str] = None,
        deadline_ms: Optional[int] = None,
    ) -> OrchestratorResult:
        """Ask the router for a reply, bounded by the deadline if any."""
        deadline_ms = deadline_ms or self.deadline_ms
        call = self.router.race_or_fallback(message, self.build_context(history), image)

        if deadline_ms is None:
            return await call

        try:
            return await asyncio.wait_for(call, timeout=deadline_ms / 1000)
        except asyncio.TimeoutError:
            logger.warning("chat_deadline_exceeded", extra={"latency_ms": deadline_ms})
            return OrchestratorResult.cancelled_result()

    async def reply(
        self,
        message: str,
        conversation_id: Optional[str] = None,
        image: Optional[str] = None,
        deadline_ms: Optional[int] = None,
    ) -> ChatReply:
        """Generate a reply and append both turns to the conversation."""
        conversation_id = conversation_id or generate_conversation_id()
        token = set_request_id(uuid.uuid4().hex[:12])
        try:
            history = self.store.get(conversation_id)
            user_message = StoredMessage.create(message.strip(), USER, image=image)

            result = await self.generate(message, history, image, deadline_ms)

            ai_message = StoredMessage.create(result.response, AI, provider=result.provider_name)
            self.store.append(conversation_id, user_message, ai_message)

            logger.info(
                "chat_replied",
                extra={
                    "provider": result.provider_name,
                    "strategy": result.strategy,
                    "status": "ok" if result.success else ("cancelled" if result.cancelled else "failed"),
                },
            )
            return ChatReply(conversation_id, ai_message, result)
        finally:
            reset_request_id(token)
