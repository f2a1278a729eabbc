"""
Provider adapter base — shared request lifecycle for every AI backend.

An adapter translates (message, context, image) into one backend's wire
format, sends it through the transport, and turns the reply back into
plain text. Subclasses only implement the two format-specific halves:

    build_request(api_key, message, context, image) -> PreparedRequest
    parse_response(data) -> Parsed | Malformed

The base class owns the credential loop: each configured API key is
tried in order and the first one that works wins.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional, Union

from av9assist.exceptions import (
    ConfigurationError,
    HTTPStatusError,
    MalformedResponseError,
    ProviderAPIError,
    ProviderError,
)
from av9assist.llm.context import ConversationContext, recent
from av9assist.llm.llm_config import ProviderConfig
from av9assist.llm.transport import HTTPTransport

logger = logging.getLogger(__name__)

_RAW_BODY_LIMIT = 2000


# ---------------------------------------------------------------------------
# Request / Parse Types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PreparedRequest:
    """A fully shaped backend request."""

    url: str
    payload: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Parsed:
    """The body had the success shape; `text` is already trimmed."""

    text: str


@dataclass(frozen=True)
class Malformed:
    """The body lacked the success shape."""

    raw_body: str
    reason: str


ParseResult = Union[Parsed, Malformed]


def raw_body_of(data: Any) -> str:
    """Compact, bounded rendering of a response body for diagnostics."""
    try:
        text = json.dumps(data, ensure_ascii=False)
    except (TypeError, ValueError):
        text = str(data)
    return text[:_RAW_BODY_LIMIT]


def extract_api_error(body: Any) -> Optional[str]:
    """
    Pull the backend's own error message out of a response body.

    Handles both `{"error": {"message": "..."}}` (Gemini, OpenAI-style)
    and `{"error": "..."}`. Accepts decoded JSON or raw text.
    """
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except ValueError:
            return None

    if not isinstance(body, dict) or not body.get("error"):
        return None

    error = body["error"]
    if isinstance(error, dict):
        return str(error.get("message") or json.dumps(error))
    return str(error)


# ---------------------------------------------------------------------------
# Base Adapter
# ---------------------------------------------------------------------------

class BaseProviderAdapter(ABC):
    """
    One instance per backend; stateless between calls.

    Adapters never mutate the context they receive.
    """

    label: ClassVar[str] = "Provider"

    def __init__(
        self,
        config: ProviderConfig,
        transport: HTTPTransport,
        context_window: int = 8,
    ):
        self.config = config
        self.transport = transport
        self.context_window = context_window

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def supports_vision(self) -> bool:
        return self.config.supports_vision

    # --- Public API ---

    async def generate(
        self,
        message: str,
        context: ConversationContext = (),
        image: Optional[str] = None,
        *,
        timeout_ms: Optional[int] = None,
    ) -> str:
        """
        Get the assistant's reply text.

        Args:
            message: The current user message.
            context: Prior conversation, oldest first. Only the most
                     recent `context_window` entries are sent.
            image: Optional data URL; only valid for vision backends.
            timeout_ms: Per-request timeout (defaults to the transport's).

        Raises:
            ConfigurationError: No credentials configured.
            ProviderError: Every credential failed; the last error is raised.
        """
        if not self.config.has_credentials:
            raise ConfigurationError(
                f"{self.label} has no API key configured",
                setting=self.name,
            )
        if image and not self.supports_vision:
            raise ValueError(f"{self.label} does not accept image attachments")

        window = recent(tuple(context), self.context_window)
        keys = self.config.api_keys
        last_error: Optional[ProviderError] = None

        for slot, api_key in enumerate(keys, start=1):
            try:
                return await self._generate_with_key(
                    api_key, message, window, image, timeout_ms
                )
            except ProviderError as e:
                if e.provider is None:
                    e.provider = self.name
                last_error = e
                if slot < len(keys):
                    logger.warning(
                        "provider_credential_failed",
                        extra={
                            "provider": self.name,
                            "credential": slot,
                            "reason": str(e)[:200],
                        },
                    )

        assert last_error is not None
        raise last_error

    # --- Format hooks ---

    @abstractmethod
    def build_request(
        self,
        api_key: str,
        message: str,
        context: ConversationContext,
        image: Optional[str],
    ) -> PreparedRequest:
        """Shape the backend-specific request."""

    @abstractmethod
    def parse_response(self, data: Any) -> ParseResult:
        """Classify a decoded 2xx body as Parsed or Malformed."""

    # --- Internals ---

    async def _generate_with_key(
        self,
        api_key: str,
        message: str,
        context: ConversationContext,
        image: Optional[str],
        timeout_ms: Optional[int],
    ) -> str:
        request = self.build_request(api_key, message, context, image)

        try:
            data = await self.transport.request_json(
                request.url,
                headers=request.headers,
                payload=request.payload,
                timeout_ms=timeout_ms,
            )
        except HTTPStatusError as e:
            api_message = extract_api_error(e.body)
            if api_message:
                raise ProviderAPIError(
                    f"{self.label} API Error: {api_message}",
                    api_message=api_message,
                    status_code=e.status_code,
                    provider=self.name,
                ) from e
            raise

        result = self.parse_response(data)
        if isinstance(result, Parsed):
            return result.text

        api_message = extract_api_error(data)
        if api_message:
            raise ProviderAPIError(
                f"{self.label} API Error: {api_message}",
                api_message=api_message,
                provider=self.name,
            )

        raise MalformedResponseError(
            f"Invalid {self.label} response format: {result.reason}",
            raw_body=result.raw_body,
            provider=self.name,
        )
