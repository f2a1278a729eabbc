"""
Tests for the HTTP transport.

All requests go through httpx.MockTransport; nothing leaves the process.

Covers:
- 2xx JSON decoded, empty body → {}
- non-2xx → HTTPStatusError with status and raw body
- invalid JSON → MalformedResponseError
- network failure → TransportError
- timeout → ProviderTimeoutError, bounded by timeout_ms, request aborted
"""

from __future__ import annotations

import asyncio
import json
import logging
import time

import httpx
import pytest

from av9assist.exceptions import (
    HTTPStatusError,
    MalformedResponseError,
    ProviderTimeoutError,
    TransportError,
)
from av9assist.llm.transport import HTTPTransport

URL = "https://api.example.test/v1/chat/completions"


def _transport(handler) -> HTTPTransport:
    """HTTPTransport backed by a mock httpx client."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HTTPTransport(default_timeout_ms=2000, client=client)


class TestRequestJson:
    """Successful exchanges."""

    @pytest.mark.asyncio
    async def test_decodes_json(self):
        async with _transport(lambda r: httpx.Response(200, json={"ok": True})) as t:
            assert await t.request_json(URL, payload={}) == {"ok": True}

    @pytest.mark.asyncio
    async def test_empty_body_is_empty_object(self):
        async with _transport(lambda r: httpx.Response(200, content=b"")) as t:
            assert await t.request_json(URL, payload={}) == {}

    @pytest.mark.asyncio
    async def test_sends_json_payload_and_headers(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["content_type"] = request.headers["content-type"]
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={})

        async with _transport(handler) as t:
            await t.request_json(
                URL,
                headers={"Authorization": "Bearer k"},
                payload={"model": "m", "messages": []},
            )

        assert seen == {
            "method": "POST",
            "content_type": "application/json",
            "auth": "Bearer k",
            "body": {"model": "m", "messages": []},
        }


class TestRequestJsonErrors:
    """Every failure surfaces as a typed ProviderError."""

    @pytest.mark.asyncio
    async def test_non_2xx_keeps_status_and_body(self):
        async with _transport(lambda r: httpx.Response(500, text="upstream exploded")) as t:
            with pytest.raises(HTTPStatusError) as exc_info:
                await t.request_json(URL, payload={})

        assert exc_info.value.status_code == 500
        assert exc_info.value.body == "upstream exploded"
        assert str(exc_info.value) == "HTTP 500: upstream exploded"

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        async with _transport(lambda r: httpx.Response(200, text="<html>oops</html>")) as t:
            with pytest.raises(MalformedResponseError) as exc_info:
                await t.request_json(URL, payload={})

        assert exc_info.value.raw_body == "<html>oops</html>"
        assert str(exc_info.value).startswith("JSON parse error")

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _transport(handler) as t:
            with pytest.raises(TransportError) as exc_info:
                await t.request_json(URL, payload={})

        assert not isinstance(exc_info.value, ProviderTimeoutError)
        assert "ConnectError" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout_is_bounded(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json={})

        async with _transport(handler) as t:
            start = time.monotonic()
            with pytest.raises(ProviderTimeoutError) as exc_info:
                await t.request_json(URL, payload={}, timeout_ms=100)
            elapsed = time.monotonic() - start

        assert elapsed < 1.0
        assert exc_info.value.timeout_ms == 100
        assert str(exc_info.value) == "Request timeout after 100ms"

    @pytest.mark.asyncio
    async def test_timeout_aborts_in_flight_request(self):
        """The pending exchange is cancelled, not left running in the background."""
        state = {"started": False, "aborted": False, "finished": False}

        async def handler(request: httpx.Request) -> httpx.Response:
            state["started"] = True
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                state["aborted"] = True
                raise
            state["finished"] = True
            return httpx.Response(200, json={})

        async with _transport(handler) as t:
            with pytest.raises(ProviderTimeoutError):
                await t.request_json(URL, payload={}, timeout_ms=100)

        assert state["started"] is True
        assert state["aborted"] is True
        assert state["finished"] is False

    @pytest.mark.asyncio
    async def test_timeout_log_hides_query_string(self, caplog):
        """Gemini keys travel in the query; logs carry only the host."""
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json={})

        caplog.set_level(logging.DEBUG, logger="av9assist.llm.transport")
        async with _transport(handler) as t:
            with pytest.raises(ProviderTimeoutError):
                await t.request_json(f"{URL}?key=SECRET-KEY", payload={}, timeout_ms=50)

        assert caplog.records
        for record in caplog.records:
            assert "SECRET-KEY" not in str(record.__dict__)


class TestHTTPTransportInit:

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError):
            HTTPTransport(default_timeout_ms=0)

    def test_default_timeout(self):
        assert HTTPTransport().default_timeout_ms == 10000
