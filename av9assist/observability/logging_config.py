"""
Structured logging for av9Assist.

Modules log with plain `logging.getLogger(__name__)` and snake_case
event names; structured fields go in `extra`. configure_logging()
decides how records are rendered:

    AV9ASSIST_ENV=production   one JSON object per line on stdout
    anything else              coloured single-line text on stderr

Every record emitted while a chat request is being handled carries that
request's id, so the concurrent provider calls of one race can be
grouped together.

Usage:
    from av9assist.observability.logging_config import configure_logging

    configure_logging()

    logger = logging.getLogger(__name__)
    logger.info("provider_succeeded", extra={"provider": "gemini", "latency_ms": 812.4})
"""

from __future__ import annotations

import contextvars
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")

# ─── Request Id ───────────────────────────────────────────────────────

# ContextVar, not thread-local: concurrent chat requests share one thread.
_request_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "av9assist_request_id", default=None
)


def set_request_id(request_id: str) -> contextvars.Token:
    """Bind a request id to the current context; keep the token for reset."""
    return _request_id.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id.get()


def reset_request_id(token: contextvars.Token) -> None:
    """Restore whatever id was bound before the matching set_request_id()."""
    _request_id.reset(token)


def clear_request_id() -> None:
    _request_id.set(None)


class ContextFilter(logging.Filter):
    """Stamps the current request id onto records; never drops one."""

    def filter(self, record: logging.LogRecord) -> bool:
        request_id = _request_id.get()
        if request_id:
            record.request_id = request_id  # type: ignore[attr-defined]
        return True


# ─── Record Helpers ───────────────────────────────────────────────────

# Attributes every LogRecord has; anything else came in through `extra`.
_RESERVED = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


def _extra_fields(record: logging.LogRecord) -> Iterator[tuple[str, Any]]:
    for key, value in vars(record).items():
        if key in _RESERVED or key.startswith("_"):
            continue
        yield key, value


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


# ─── Formatters ───────────────────────────────────────────────────────


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    Always present: timestamp (UTC, ISO 8601), level, logger, message.
    request_id follows when set, then every `extra` field. Values that
    json cannot encode are stringified.
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "timestamp": created.isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update((key, _jsonable(value)) for key, value in _extra_fields(record))

        if record.exc_info and record.exc_info[1] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class DevFormatter(logging.Formatter):
    """
    Readable one-liners for local development:

        12:04:31 WARNING  av9assist.llm.router: provider_failed [provider=gemini]
    """

    _LEVEL_COLOURS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    _RESET = "\033[0m"

    # Shown in this order when present on the record
    FIELDS = (
        "request_id", "provider", "strategy", "credential",
        "status_code", "latency_ms", "reason",
    )

    def format(self, record: logging.LogRecord) -> str:
        colour = self._LEVEL_COLOURS.get(record.levelname, "")
        level = f"{colour}{record.levelname:<8}{self._RESET}"
        line = (
            f"{self.formatTime(record, '%H:%M:%S')} {level} "
            f"{record.name}: {record.getMessage()}"
        )

        pairs = [
            f"{name}={getattr(record, name)}"
            for name in self.FIELDS
            if getattr(record, name, None) is not None
        ]
        if pairs:
            line += " [" + " ".join(pairs) + "]"

        if record.exc_info and record.exc_info[1] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


# ─── Setup ────────────────────────────────────────────────────────────


def _build_handler(env: str) -> logging.Handler:
    if env == "production":
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(DevFormatter())
    handler.addFilter(ContextFilter())
    return handler


def configure_logging(env: Optional[str] = None, level: int = logging.INFO) -> None:
    """
    Replace the root logger's handlers with a single configured one.

    Args:
        env: "production" for JSON output; anything else for dev text.
             Read from AV9ASSIST_ENV when omitted (default "development").
        level: Root log level.
    """
    if env is None:
        env = os.environ.get("AV9ASSIST_ENV", "development")
    env = env.strip().lower()

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(_build_handler(env))
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
