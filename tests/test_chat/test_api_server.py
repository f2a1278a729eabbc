"""
Tests for the chat API server.

Uses FastAPI's TestClient against create_api_app with a ChatService
whose router is backed by fake adapters.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from av9assist.chat.api_server import create_api_app
from av9assist.chat.service import ChatService
from av9assist.config.loader import load_settings
from av9assist.llm.llm_config import LLMConfig, ProviderConfig
from av9assist.llm.router import FALLBACK_MESSAGE, ProviderRouter


class EchoAdapter:
    async def generate(self, message, context=(), image=None, *, timeout_ms=None):
        return f"echo: {message}"


def _service(with_keys: bool = True) -> ChatService:
    keys = ("k",) if with_keys else ()
    config = LLMConfig(
        providers={
            "gemini": ProviderConfig("gemini", "m", "u", keys, supports_vision=True),
            "sambanova": ProviderConfig("sambanova", "m", "u", keys),
        },
        provider_order=("gemini", "sambanova"),
    )
    adapters = {"gemini": EchoAdapter(), "sambanova": EchoAdapter()}
    return ChatService(ProviderRouter(config, adapters=adapters))


@pytest.fixture
def service():
    return _service()


@pytest.fixture
def client(service):
    settings = load_settings(environ={"GOOGLE_API_KEY": "AIzaSyABCDEFGHIJKLMNOP"})
    return TestClient(create_api_app(service=service, settings=settings))


# ── POST /api/chat ──────────────────────────────────────────


class TestPostChat:

    def test_reply(self, client):
        resp = client.post("/api/chat", json={"message": "Hi"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["message"]["content"] == "echo: Hi"
        assert data["message"]["sender"] == "ai"
        assert data["conversationId"].startswith("conv_")

    def test_continues_conversation(self, client):
        first = client.post("/api/chat", json={"message": "Hi"}).json()
        client.post(
            "/api/chat",
            json={"message": "Again", "conversationId": first["conversationId"]},
        )
        history = client.get(
            "/api/chat", params={"conversationId": first["conversationId"]}
        ).json()
        assert len(history["messages"]) == 4

    @pytest.mark.parametrize("body", [{}, {"message": ""}, {"message": "   "}, {"message": 42}])
    def test_invalid_message(self, client, body):
        resp = client.post("/api/chat", json=body)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Message is required and must be a string"}

    def test_all_providers_down_still_200(self):
        client = TestClient(create_api_app(service=_service(with_keys=False)))
        resp = client.post("/api/chat", json={"message": "Hi"})
        assert resp.status_code == 200
        assert resp.json()["success"] is False
        assert resp.json()["message"]["content"] == FALLBACK_MESSAGE

    def test_unexpected_error_is_500(self, service, client):
        service.reply = AsyncMock(side_effect=RuntimeError("boom"))
        resp = client.post("/api/chat", json={"message": "Hi"})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}


# ── GET /api/chat ───────────────────────────────────────────


class TestGetChat:

    def test_requires_conversation_id(self, client):
        resp = client.get("/api/chat")
        assert resp.status_code == 400
        assert resp.json() == {"error": "Conversation ID is required"}

    def test_unknown_conversation_is_empty(self, client):
        resp = client.get("/api/chat", params={"conversationId": "conv_unknown"})
        assert resp.status_code == 200
        assert resp.json() == {"messages": [], "conversationId": "conv_unknown"}

    def test_image_returned_in_history(self, client):
        image = "data:image/png;base64,iVBORw0KGgo="
        first = client.post("/api/chat", json={"message": "Look", "image": image}).json()
        history = client.get(
            "/api/chat", params={"conversationId": first["conversationId"]}
        ).json()
        assert history["messages"][0]["image"] == image
        assert history["messages"][1]["provider"] == "gemini"


# ── Diagnostics ─────────────────────────────────────────────


class TestDiagnostics:

    def test_health(self, client):
        data = client.get("/api/health").json()
        assert data["status"] == "healthy"
        assert data["providers"] == ["gemini", "sambanova"]
        assert data["vision_providers"] == ["gemini"]

    def test_health_degraded(self):
        client = TestClient(create_api_app(service=_service(with_keys=False)))
        assert client.get("/api/health").json()["status"] == "degraded"

    def test_env_check_masks_keys(self, client):
        data = client.get("/api/env-check").json()
        assert data["GOOGLE_API_KEY"] == "AIzaSyABCD..."
        assert data["SAMBANOVA_API_KEY"] == "NOT SET"

    def test_env_check_without_settings(self, service):
        client = TestClient(create_api_app(service=service))
        assert client.get("/api/env-check").status_code == 404
