"""
Provider Router — multi-backend orchestration with fallback and racing.

Given a user message, picks which AI backends to call and how:

- Sequential fallback: try providers one at a time in the configured
  order; the first success wins.
- Parallel race: call every eligible provider at once, each under its
  own timeout; the first *successful* reply wins, the rest are
  cancelled and discarded.
- Combined (race_or_fallback): race with the short timeout first, then
  fall back to the sequential chain with the longer default timeout.

A provider is eligible only if its credentials are configured and,
when the request carries an image, it supports vision. Ineligible
providers are skipped (logged, never invoked), which is different from
being tried and failing.

Provider failures never escape: callers always get an
OrchestratorResult, with a user-safe message when nothing worked.

Usage:
    from av9assist.llm.router import ProviderRouter

    router = ProviderRouter(config)
    result = await router.race_or_fallback(
        "How are you?",
        context=[{"role": "user", "content": "Hi"}],
    )
    print(result.response, result.provider_name)
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Union

from av9assist.exceptions import Av9AssistError
from av9assist.llm.context import ContextInput, ConversationContext, normalize_context
from av9assist.llm.llm_config import LLMConfig
from av9assist.llm.providers import ADAPTERS, BaseProviderAdapter, create_adapter
from av9assist.llm.transport import HTTPTransport

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = (
    "Sorry, all AI services are currently unavailable. Please try again later."
)
CANCELLED_MESSAGE = (
    "The request was cancelled before an AI response was ready. Please try again."
)

SEQUENTIAL = "sequential"
RACE = "race"

ProviderOrder = Optional[Union[str, Iterable[str]]]


# ---------------------------------------------------------------------------
# Result Types
# ---------------------------------------------------------------------------

class ProviderStatus(str, Enum):
    """Per-call state of one candidate provider."""

    SKIPPED = "skipped"
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class ProviderAttempt:
    """What happened to one provider during one call."""

    provider_name: str
    status: ProviderStatus
    text: Optional[str] = None
    error_reason: Optional[str] = None
    latency_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.status is ProviderStatus.SUCCEEDED


@dataclass
class OrchestratorResult:
    """Aggregate outcome handed back to the caller."""

    success: bool
    response: str
    provider_name: Optional[str] = None
    error: Optional[str] = None    # diagnostics only, never shown to users
    strategy: str = ""
    cancelled: bool = False
    attempts: tuple[ProviderAttempt, ...] = field(default_factory=tuple)

    @classmethod
    def failure(
        cls,
        error: str,
        strategy: str,
        attempts: Iterable[ProviderAttempt] = (),
    ) -> OrchestratorResult:
        return cls(
            success=False,
            response=FALLBACK_MESSAGE,
            error=error,
            strategy=strategy,
            attempts=tuple(attempts),
        )

    @classmethod
    def cancelled_result(
        cls,
        strategy: str = "",
        attempts: Iterable[ProviderAttempt] = (),
    ) -> OrchestratorResult:
        return cls(
            success=False,
            response=CANCELLED_MESSAGE,
            error="Request cancelled",
            strategy=strategy,
            cancelled=True,
            attempts=tuple(attempts),
        )

    @property
    def skipped(self) -> list[str]:
        return [a.provider_name for a in self.attempts if a.status is ProviderStatus.SKIPPED]

    @property
    def attempted(self) -> list[str]:
        return [a.provider_name for a in self.attempts if a.status is not ProviderStatus.SKIPPED]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, "response": self.response}
        if self.provider_name:
            data["providerName"] = self.provider_name
        return data


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------

class ProviderRouter:
    """
    Decides which adapters to call, in what order or concurrency.

    Holds no per-request state: every call builds its own attempts and
    result, so one router is shared by all concurrent requests.
    """

    def __init__(
        self,
        config: LLMConfig,
        transport: Optional[HTTPTransport] = None,
        adapters: Optional[Mapping[str, BaseProviderAdapter]] = None,
    ):
        self._config = config
        self._transport = transport or HTTPTransport(default_timeout_ms=config.timeout_ms)

        if adapters is None:
            adapters = {
                name: create_adapter(provider, self._transport, config.context_window)
                for name, provider in config.providers.items()
                if name in ADAPTERS
            }
        self._adapters = dict(adapters)

    @property
    def config(self) -> LLMConfig:
        return self._config

    async def aclose(self) -> None:
        await self._transport.aclose()

    # --- Eligibility ---

    def resolve_order(self, provider_order: ProviderOrder = None) -> list[str]:
        """Normalize an order (list or comma-separated string), no duplicates."""
        if provider_order is None:
            provider_order = self._config.provider_order
        if isinstance(provider_order, str):
            provider_order = provider_order.split(",")

        order: list[str] = []
        for name in provider_order:
            name = str(name).strip().lower()
            if name and name not in order:
                order.append(name)
        return order

    def plan(
        self,
        provider_order: ProviderOrder = None,
        has_image: bool = False,
    ) -> tuple[list[str], list[ProviderAttempt]]:
        """
        Split the order into eligible providers and skipped attempts.

        Skip reasons: unknown provider, missing credentials, no vision
        support for an image request.
        """
        eligible: list[str] = []
        skipped: list[ProviderAttempt] = []

        for name in self.resolve_order(provider_order):
            provider = self._config.get_provider(name)
            if provider is None or name not in self._adapters:
                reason = "provider not found"
            elif not provider.has_credentials:
                reason = "missing API key"
            elif has_image and not provider.supports_vision:
                reason = "does not support vision"
            else:
                eligible.append(name)
                continue
            skipped.append(ProviderAttempt(name, ProviderStatus.SKIPPED, error_reason=reason))

        return eligible, skipped

    def eligible_providers(
        self,
        provider_order: ProviderOrder = None,
        has_image: bool = False,
    ) -> list[str]:
        return self.plan(provider_order, has_image)[0]

    # --- Strategies ---

    async def get_response(
        self,
        message: str,
        provider_order: ProviderOrder = None,
        context: ContextInput = None,
        image: Optional[str] = None,
        *,
        timeout_ms: Optional[int] = None,
    ) -> OrchestratorResult:
        """
        Sequential fallback: strict order, one provider at a time.

        Args:
            message: Current user message.
            provider_order: Names to try (default: configured order).
            context: Prior conversation, oldest first.
            image: Optional data URL; restricts to vision providers.
            timeout_ms: Per-request timeout (default: config.timeout_ms).
                Each of a provider's credentials gets the full timeout.
        """
        self._validate(message, image, timeout_ms)
        snapshot = normalize_context(context)
        timeout_ms = timeout_ms or self._config.timeout_ms

        eligible, attempts = self.plan(provider_order, has_image=bool(image))
        self._log_skips(attempts, SEQUENTIAL)
        return await self._sequential(message, snapshot, image, eligible, attempts, timeout_ms)

    async def get_response_fast(
        self,
        message: str,
        provider_order: ProviderOrder = None,
        context: ContextInput = None,
        *,
        timeout_ms: Optional[int] = None,
        image: Optional[str] = None,
    ) -> OrchestratorResult:
        """
        Parallel race: every eligible provider at once, first success wins.

        Each provider runs under its own timeout (default: the fast
        timeout, or the vision timeout when an image is attached). A
        failure does not end the race; only a success or the last
        failure does.
        """
        self._validate(message, image, timeout_ms)
        snapshot = normalize_context(context)
        timeout_ms = timeout_ms or self._config.race_timeout_ms(bool(image))

        eligible, attempts = self.plan(provider_order, has_image=bool(image))
        self._log_skips(attempts, RACE)
        return await self._race(message, snapshot, image, eligible, attempts, timeout_ms)

    async def race_or_fallback(
        self,
        message: str,
        context: ContextInput = None,
        image: Optional[str] = None,
        provider_order: ProviderOrder = None,
    ) -> OrchestratorResult:
        """
        Race with the short timeout; if nothing succeeds, walk the
        sequential chain with the default timeout.

        Eligibility is decided once, so skips are logged and recorded
        once for the whole call.
        """
        self._validate(message, image, None)
        snapshot = normalize_context(context)

        eligible, skipped = self.plan(provider_order, has_image=bool(image))
        self._log_skips(skipped, RACE)

        fast = await self._race(
            message, snapshot, image, eligible, list(skipped),
            self._config.race_timeout_ms(bool(image)),
        )
        if fast.success or not eligible:
            return fast

        logger.warning("race_failed_falling_back", extra={"strategy": SEQUENTIAL})
        result = await self._sequential(
            message, snapshot, image, eligible, [], self._config.timeout_ms,
        )
        result.attempts = fast.attempts + result.attempts
        return result

    async def _sequential(
        self,
        message: str,
        context: ConversationContext,
        image: Optional[str],
        eligible: list[str],
        attempts: list[ProviderAttempt],
        timeout_ms: int,
    ) -> OrchestratorResult:
        for name in eligible:
            attempt = await self._attempt(name, message, context, image, timeout_ms, SEQUENTIAL)
            attempts.append(attempt)
            if attempt.success:
                return OrchestratorResult(
                    success=True,
                    response=attempt.text or "",
                    provider_name=name,
                    strategy=SEQUENTIAL,
                    attempts=tuple(attempts),
                )

        error = "All AI providers failed" if eligible else "No providers configured"
        logger.error("all_providers_failed", extra={"strategy": SEQUENTIAL, "reason": error})
        return OrchestratorResult.failure(error, SEQUENTIAL, attempts)

    async def _race(
        self,
        message: str,
        context: ConversationContext,
        image: Optional[str],
        eligible: list[str],
        attempts: list[ProviderAttempt],
        timeout_ms: int,
    ) -> OrchestratorResult:
        if not eligible:
            logger.error("all_providers_failed", extra={"strategy": RACE, "reason": "No providers configured"})
            return OrchestratorResult.failure("No providers configured", RACE, attempts)

        tasks = {
            asyncio.create_task(
                self._attempt(name, message, context, image, timeout_ms, RACE),
                name=f"race:{name}",
            ): name
            for name in eligible
        }
        pending: set[asyncio.Task] = set(tasks)
        winner: Optional[ProviderAttempt] = None

        try:
            while pending and winner is None:
                done, pending = await asyncio.wait(
                    pending, return_when=asyncio.FIRST_COMPLETED
                )
                # Simultaneous finishers resolve in configured order
                for task in sorted(done, key=lambda t: eligible.index(tasks[t])):
                    attempt = task.result()
                    attempts.append(attempt)
                    if winner is None and attempt.success:
                        winner = attempt
        finally:
            for task in pending:
                task.cancel()

        for task in pending:
            attempts.append(ProviderAttempt(tasks[task], ProviderStatus.PENDING))

        if winner is not None:
            if pending:
                logger.debug(
                    "race_losers_abandoned",
                    extra={"strategy": RACE, "providers": [tasks[t] for t in pending]},
                )
            return OrchestratorResult(
                success=True,
                response=winner.text or "",
                provider_name=winner.provider_name,
                strategy=RACE,
                attempts=tuple(attempts),
            )

        logger.error("all_providers_failed", extra={"strategy": RACE, "reason": "All parallel providers failed"})
        return OrchestratorResult.failure("All parallel providers failed", RACE, attempts)

    # --- Internals ---

    async def _attempt(
        self,
        name: str,
        message: str,
        context: ConversationContext,
        image: Optional[str],
        timeout_ms: int,
        strategy: str,
    ) -> ProviderAttempt:
        """Call one adapter; convert every provider failure into an attempt."""
        adapter = self._adapters[name]
        bound_ms = timeout_ms
        if strategy == SEQUENTIAL:
            # Each credential gets the full timeout before the next is tried
            provider = self._config.get_provider(name)
            bound_ms = timeout_ms * max(1, len(provider.api_keys) if provider else 1)
        start = time.monotonic()
        logger.info("provider_attempt", extra={"provider": name, "strategy": strategy})

        try:
            text = await asyncio.wait_for(
                adapter.generate(message, context, image, timeout_ms=timeout_ms),
                timeout=bound_ms / 1000,
            )
        except asyncio.TimeoutError:
            reason = f"Timeout from {name} after {bound_ms}ms"
        except Av9AssistError as e:
            reason = f"{type(e).__name__}: {e}"
        else:
            text = str(text).strip() if text else ""
            latency_ms = round((time.monotonic() - start) * 1000, 1)
            if text:
                logger.info(
                    "provider_succeeded",
                    extra={"provider": name, "strategy": strategy, "latency_ms": latency_ms},
                )
                return ProviderAttempt(name, ProviderStatus.SUCCEEDED, text=text, latency_ms=latency_ms)
            reason = "Empty response"

        latency_ms = round((time.monotonic() - start) * 1000, 1)
        logger.warning(
            "provider_failed",
            extra={
                "provider": name,
                "strategy": strategy,
                "latency_ms": latency_ms,
                "reason": reason[:300],
            },
        )
        return ProviderAttempt(name, ProviderStatus.FAILED, error_reason=reason, latency_ms=latency_ms)

    def _log_skips(self, attempts: Iterable[ProviderAttempt], strategy: str) -> None:
        for attempt in attempts:
            if attempt.status is ProviderStatus.SKIPPED:
                logger.info(
                    "provider_skipped",
                    extra={
                        "provider": attempt.provider_name,
                        "strategy": strategy,
                        "reason": attempt.error_reason,
                    },
                )

    @staticmethod
    def _validate(message: Any, image: Any, timeout_ms: Optional[int]) -> None:
        if not isinstance(message, str):
            raise TypeError("message must be a string")
        if not message.strip():
            raise ValueError("message must not be blank")
        if image is not None and not isinstance(image, str):
            raise TypeError("image must be a data URL string or None")
        if timeout_ms is not None and timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
