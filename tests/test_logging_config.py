"""
Tests for the structured logging configuration.

Validates:
- JSONFormatter produces valid JSON with required fields
- DevFormatter produces human-readable colored text
- ContextFilter injects request_id from the current context
- configure_logging() switches mode based on AV9ASSIST_ENV
- Extra fields (provider, strategy, latency_ms) appear in output
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from unittest.mock import patch

import pytest

from av9assist.observability.logging_config import (
    ContextFilter,
    DevFormatter,
    JSONFormatter,
    clear_request_id,
    configure_logging,
    get_request_id,
    reset_request_id,
    set_request_id,
)


# ─── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _cleanup_request_id():
    """Clear request_id before and after each test."""
    clear_request_id()
    yield
    clear_request_id()


@pytest.fixture
def root_logger():
    """Root logger with its handlers and level restored afterwards."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield root
    for h in root.handlers[:]:
        root.removeHandler(h)
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)


@pytest.fixture
def json_formatter():
    return JSONFormatter()


@pytest.fixture
def dev_formatter():
    return DevFormatter()


@pytest.fixture
def context_filter():
    return ContextFilter()


def _make_record(
    msg: str = "test message",
    level: int = logging.INFO,
    name: str = "test.logger",
    extra: dict | None = None,
) -> logging.LogRecord:
    """Create a LogRecord with optional extra fields."""
    record = logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )
    if extra:
        for key, value in extra.items():
            setattr(record, key, value)
    return record


# ─── JSONFormatter Tests ──────────────────────────────────────────────


class TestJSONFormatter:
    """Tests for the production JSON formatter."""

    def test_output_is_valid_json(self, json_formatter):
        """Every formatted record parses as a JSON object."""
        output = json_formatter.format(_make_record())
        assert isinstance(json.loads(output), dict)

    def test_required_fields(self, json_formatter):
        """timestamp, level, logger and message are always present."""
        entry = json.loads(json_formatter.format(_make_record("provider_attempt")))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "test.logger"
        assert entry["message"] == "provider_attempt"
        assert "timestamp" in entry

    def test_extra_fields_included(self, json_formatter):
        """Fields passed via extra= appear at the top level."""
        record = _make_record(
            "provider_succeeded",
            extra={"provider": "gemini", "strategy": "race", "latency_ms": 812.4},
        )
        entry = json.loads(json_formatter.format(record))
        assert entry["provider"] == "gemini"
        assert entry["strategy"] == "race"
        assert entry["latency_ms"] == 812.4

    def test_request_id_included(self, json_formatter):
        """request_id set by the filter is serialized."""
        record = _make_record(extra={"request_id": "abc123"})
        entry = json.loads(json_formatter.format(record))
        assert entry["request_id"] == "abc123"

    def test_unserializable_extra_is_stringified(self, json_formatter):
        """Values json can't encode fall back to str()."""
        record = _make_record(extra={"obj": object()})
        entry = json.loads(json_formatter.format(record))
        assert entry["obj"].startswith("<object object")

    def test_exception_included(self, json_formatter):
        """exc_info renders as an 'exception' field."""
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _make_record(level=logging.ERROR)
            record.exc_info = sys.exc_info()
        entry = json.loads(json_formatter.format(record))
        assert "RuntimeError: boom" in entry["exception"]


# ─── DevFormatter Tests ───────────────────────────────────────────────


class TestDevFormatter:
    """Tests for the development text formatter."""

    def test_contains_message_and_logger(self, dev_formatter):
        output = dev_formatter.format(_make_record("hello", name="av9assist.llm.router"))
        assert "hello" in output
        assert "av9assist.llm.router" in output

    def test_known_extras_rendered(self, dev_formatter):
        """Orchestration fields are appended as key=value pairs."""
        record = _make_record(
            "provider_failed",
            extra={"provider": "sambanova", "reason": "HTTP 500"},
        )
        output = dev_formatter.format(record)
        assert "provider=sambanova" in output
        assert "reason=HTTP 500" in output

    def test_no_brackets_without_extras(self, dev_formatter):
        output = dev_formatter.format(_make_record("plain"))
        assert output.rstrip().endswith("plain")

    def test_color_codes_present_for_warning(self, dev_formatter):
        """Warning level should have yellow color codes."""
        output = dev_formatter.format(_make_record("careful", level=logging.WARNING))
        assert "\033[33m" in output


# ─── ContextFilter Tests ──────────────────────────────────────────────


class TestContextFilter:
    """Tests for the request_id injection filter."""

    def test_injects_request_id_when_set(self, context_filter):
        set_request_id("req-123")
        record = _make_record()
        context_filter.filter(record)
        assert record.request_id == "req-123"  # type: ignore[attr-defined]

    def test_no_request_id_when_not_set(self, context_filter):
        record = _make_record()
        context_filter.filter(record)
        assert not hasattr(record, "request_id")

    def test_always_returns_true(self, context_filter):
        """ContextFilter never suppresses log records."""
        assert context_filter.filter(_make_record()) is True


# ─── Request Context Helpers ──────────────────────────────────────────


class TestRequestContext:
    """Tests for set/get/reset/clear_request_id."""

    def test_set_and_get(self):
        set_request_id("my-request")
        assert get_request_id() == "my-request"

    def test_reset_restores_previous(self):
        outer = set_request_id("outer")
        inner = set_request_id("inner")
        reset_request_id(inner)
        assert get_request_id() == "outer"
        reset_request_id(outer)

    def test_clear(self):
        set_request_id("to-clear")
        clear_request_id()
        assert get_request_id() is None

    @pytest.mark.asyncio
    async def test_concurrent_tasks_are_isolated(self):
        """Each asyncio task sees only its own request_id."""
        seen = {}

        async def handle(request_id: str):
            set_request_id(request_id)
            await asyncio.sleep(0.01)
            seen[request_id] = get_request_id()

        await asyncio.gather(handle("a"), handle("b"))
        assert seen == {"a": "a", "b": "b"}


# ─── configure_logging Tests ──────────────────────────────────────────


class TestConfigureLogging:
    """Tests for the configure_logging() entry point."""

    def test_production_uses_json_formatter(self, root_logger):
        configure_logging(env="production")
        assert isinstance(root_logger.handlers[0].formatter, JSONFormatter)

    def test_development_uses_dev_formatter(self, root_logger):
        configure_logging(env="development")
        assert isinstance(root_logger.handlers[0].formatter, DevFormatter)

    def test_reads_env_var(self, root_logger):
        """configure_logging reads AV9ASSIST_ENV when no arg given."""
        with patch.dict(os.environ, {"AV9ASSIST_ENV": "production"}):
            configure_logging()
        assert isinstance(root_logger.handlers[0].formatter, JSONFormatter)

    def test_defaults_to_development(self, root_logger):
        with patch.dict(os.environ, {}, clear=True):
            configure_logging()
        assert isinstance(root_logger.handlers[0].formatter, DevFormatter)

    def test_removes_existing_handlers(self, root_logger):
        """No duplicate handlers after reconfiguring."""
        root_logger.addHandler(logging.StreamHandler())
        configure_logging(env="development")
        assert len(root_logger.handlers) == 1

    def test_context_filter_attached(self, root_logger):
        configure_logging(env="development")
        filter_types = [type(f) for f in root_logger.handlers[0].filters]
        assert ContextFilter in filter_types

    def test_sets_level(self, root_logger):
        configure_logging(env="development", level=logging.DEBUG)
        assert root_logger.level == logging.DEBUG

    def test_quiets_http_client_logs(self, root_logger):
        configure_logging(env="development")
        assert logging.getLogger("httpx").level == logging.WARNING
