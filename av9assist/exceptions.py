"""
Custom exception hierarchy for av9Assist.

Structured error handling with clear categories:
- Configuration errors (caught at startup)
- Provider errors (raised by transports and adapters, absorbed by the router)

Usage:
    from av9assist.exceptions import ProviderError, ProviderTimeoutError

    try:
        text = await adapter.generate(message, context)
    except ProviderTimeoutError:
        ...
    except ProviderError as e:
        logger.warning("provider_failed", extra={"reason": str(e)})
"""

from __future__ import annotations

from typing import Optional


class Av9AssistError(Exception):
    """
    Base exception for all av9Assist errors.

    All custom exceptions inherit from this, so you can catch
    `Av9AssistError` to handle any application-specific error.
    """

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


# ── Configuration Errors ──────────────────────────────────────────


class ConfigurationError(Av9AssistError):
    """
    Raised when settings are invalid or a provider is used without
    the credentials it needs.

    Examples:
    - AI_PROVIDER_TIMEOUT_MS is not a number
    - YAML config file is not a mapping
    - An adapter is invoked with no API keys
    """

    def __init__(
        self,
        message: str,
        *,
        setting: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.setting = setting


# ── Provider Errors ───────────────────────────────────────────────


class ProviderError(Av9AssistError):
    """
    A single provider call failed.

    The router logs these and moves on to the next provider; they
    never reach the end user.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.provider = provider


class TransportError(ProviderError):
    """Network-level failure: DNS, connection refused, reset, etc."""


class ProviderTimeoutError(TransportError):
    """The request did not complete within its timeout and was aborted."""

    def __init__(
        self,
        message: str,
        *,
        timeout_ms: Optional[int] = None,
        provider: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, provider=provider, details=details)
        self.timeout_ms = timeout_ms


class HTTPStatusError(ProviderError):
    """The backend answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        body: str = "",
        provider: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, provider=provider, details=details)
        self.status_code = status_code
        self.body = body


class MalformedResponseError(ProviderError):
    """
    The body was not valid JSON, or was JSON without the fields a
    successful completion carries (no candidate/choice text).
    """

    def __init__(
        self,
        message: str,
        *,
        raw_body: str = "",
        provider: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, provider=provider, details=details)
        self.raw_body = raw_body


class ProviderAPIError(ProviderError):
    """
    The backend reported an error of its own (quota exceeded, invalid
    key, unknown model). `api_message` is the backend's text, verbatim.
    """

    def __init__(
        self,
        message: str,
        *,
        api_message: str = "",
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, provider=provider, details=details)
        self.api_message = api_message
        self.status_code = status_code
