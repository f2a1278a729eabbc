"""
HTTP transport — one JSON request, one parsed JSON response.

Every provider adapter goes through this layer. It never retries;
retry and fallback belong to the adapters (credential loop) and the
router (provider loop).

Usage:
    from av9assist.llm.transport import HTTPTransport

    transport = HTTPTransport(default_timeout_ms=10000)
    data = await transport.request_json(
        "https://api.sambanova.ai/v1/chat/completions",
        headers={"Authorization": "Bearer ..."},
        payload={"model": "...", "messages": [...]},
        timeout_ms=6000,
    )
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional
from urllib.parse import urlsplit

import httpx

from av9assist.exceptions import (
    HTTPStatusError,
    MalformedResponseError,
    ProviderTimeoutError,
    TransportError,
)

logger = logging.getLogger(__name__)


class HTTPTransport:
    """
    Async JSON-over-HTTP executor with a hard per-request timeout.

    Pass a shared `httpx.AsyncClient` to reuse connections across calls;
    without one, each request opens and closes its own client.
    """

    def __init__(
        self,
        default_timeout_ms: int = 10000,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if default_timeout_ms <= 0:
            raise ValueError("default_timeout_ms must be positive")
        self._default_timeout_ms = default_timeout_ms
        self._client = client

    @property
    def default_timeout_ms(self) -> int:
        return self._default_timeout_ms

    async def __aenter__(self) -> HTTPTransport:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def request_json(
        self,
        url: str,
        *,
        method: str = "POST",
        headers: Optional[dict[str, str]] = None,
        payload: Any = None,
        timeout_ms: Optional[int] = None,
    ) -> Any:
        """
        Perform a single request and return the decoded JSON body.

        Raises:
            ProviderTimeoutError: The exchange exceeded timeout_ms. The
                in-flight request is cancelled and its connection closed.
            TransportError: Network failure.
            HTTPStatusError: Non-2xx status (carries status and raw body).
            MalformedResponseError: 2xx body that is not valid JSON.
        """
        timeout_ms = timeout_ms or self._default_timeout_ms
        timeout_s = timeout_ms / 1000
        host = urlsplit(url).netloc  # never log the URL: Gemini keys live in the query

        try:
            response = await asyncio.wait_for(
                self._send(method, url, headers, payload, timeout_s),
                timeout=timeout_s,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.debug("http_timeout", extra={"host": host, "timeout_ms": timeout_ms})
            raise ProviderTimeoutError(
                f"Request timeout after {timeout_ms}ms",
                timeout_ms=timeout_ms,
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(
                f"Network error: {type(e).__name__}: {e}",
                details={"host": host},
            ) from e

        body = response.text
        if not 200 <= response.status_code < 300:
            raise HTTPStatusError(
                f"HTTP {response.status_code}: {body}",
                status_code=response.status_code,
                body=body,
            )

        if not body.strip():
            return {}

        try:
            return json.loads(body)
        except ValueError as e:
            raise MalformedResponseError(
                f"JSON parse error: {e}",
                raw_body=body,
            ) from e

    async def _send(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]],
        payload: Any,
        timeout_s: float,
    ) -> httpx.Response:
        request_headers = {"Content-Type": "application/json", **(headers or {})}

        if self._client is not None:
            return await self._client.request(
                method, url, headers=request_headers, json=payload, timeout=timeout_s,
            )

        async with httpx.AsyncClient(timeout=timeout_s) as client:
            return await client.request(
                method, url, headers=request_headers, json=payload,
            )
