"""
Chat API Server.

FastAPI application exposing the chat endpoint and its diagnostics.

Usage:
    from av9assist.chat.api_server import create_api_app

    app = create_api_app(service=service, settings=settings)
    uvicorn.run(app, host="0.0.0.0", port=8000)

Endpoints:
    POST /api/chat        — Send a message, get the assistant's reply
    GET  /api/chat        — Conversation history (?conversationId=...)
    GET  /api/health      — Health check with eligible providers
    GET  /api/env-check   — Masked credential diagnostics
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from av9assist.chat.service import ChatService
from av9assist.config.schema import AppSettings

logger = logging.getLogger(__name__)


# ── Request Models ───────────────────────────────────────────


class ChatRequest(BaseModel):
    """Request body for POST /api/chat."""
    model_config = ConfigDict(extra="ignore")

    message: Any = None            # validated by hand for a 400, not a 422
    conversationId: Optional[str] = None
    image: Optional[str] = None    # data URL
    userId: Optional[str] = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# ── App Factory ──────────────────────────────────────────────


def create_api_app(
    service: ChatService,
    settings: Optional[AppSettings] = None,
    cors_origins: Optional[list[str]] = None,
) -> FastAPI:
    """
    Create the FastAPI application with the chat routes.

    Args:
        service: ChatService that owns the router and history.
        settings: Used by /api/env-check (optional).
        cors_origins: Allowed CORS origins (default: all).
    """
    app = FastAPI(
        title="av9Assist Chat API",
        description="Chat endpoint backed by multi-provider AI orchestration.",
        version="1.0.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── Chat ─────────────────────────────────────────────

    @app.post("/api/chat", tags=["Chat"])
    async def post_chat(body: ChatRequest):
        """Reply to a user message (optionally with an image)."""
        if not isinstance(body.message, str) or not body.message.strip():
            return _error(400, "Message is required and must be a string")

        try:
            reply = await service.reply(
                body.message,
                conversation_id=body.conversationId,
                image=body.image or None,
            )
        except Exception:
            logger.exception("chat_api_error")
            return _error(500, "Internal server error")

        return reply.to_dict()

    @app.get("/api/chat", tags=["Chat"])
    async def get_chat(conversationId: Optional[str] = Query(default=None)):
        """Return a conversation's stored messages."""
        if not conversationId:
            return _error(400, "Conversation ID is required")

        messages = service.store.get(conversationId)
        return {
            "messages": [m.to_dict() for m in messages],
            "conversationId": conversationId,
        }

    # ── Diagnostics ──────────────────────────────────────

    @app.get("/api/health", tags=["Health"])
    async def health_check():
        """Health check (no provider calls are made)."""
        eligible = service.router.eligible_providers()
        return {
            "status": "healthy" if eligible else "degraded",
            "providers": eligible,
            "vision_providers": service.router.eligible_providers(has_image=True),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/api/env-check", tags=["Health"])
    async def env_check():
        """Which credentials are set, masked to their first characters."""
        if settings is None:
            return _error(404, "Settings not available")
        return settings.masked_credentials()

    return app
