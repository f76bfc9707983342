"""
Tests for the structured logging configuration.

Validates:
- JSONFormatter produces valid JSON with required fields
- DevFormatter produces human-readable colored text
- ContextFilter injects correlation_id from the current context
- correlation_scope binds and restores ids, and isolates asyncio tasks
- configure_logging() switches mode based on SWITCHBOARD_ENV
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from io import StringIO
from unittest.mock import patch

import pytest

from switchboard.observability.logging_config import (
    ContextFilter,
    DevFormatter,
    JSONFormatter,
    clear_correlation_id,
    configure_logging,
    correlation_scope,
    get_correlation_id,
    new_correlation_id,
    set_correlation_id,
)


# ─── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _cleanup_correlation_id():
    """Clear correlation_id before and after each test."""
    clear_correlation_id()
    yield
    clear_correlation_id()


@pytest.fixture
def root_logger():
    """Root logger, stripped of handlers after the test."""
    root = logging.getLogger()
    yield root
    for h in root.handlers[:]:
        root.removeHandler(h)


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
    """Tests for the production JSON log formatter."""

    def test_includes_required_fields(self):
        record = _make_record("test", level=logging.WARNING, name="switchboard.llm")
        parsed = json.loads(JSONFormatter().format(record))

        assert "T" in parsed["timestamp"]
        assert parsed["level"] == "WARNING"
        assert parsed["logger"] == "switchboard.llm"
        assert parsed["message"] == "test"

    def test_includes_extra_fields(self):
        record = _make_record(
            "backend_resolved",
            extra={"provider": "OpenRouter", "model": "openai/gpt-4o-mini"},
        )
        parsed = json.loads(JSONFormatter().format(record))

        assert parsed["provider"] == "OpenRouter"
        assert parsed["model"] == "openai/gpt-4o-mini"

    def test_includes_correlation_id(self):
        record = _make_record("test", extra={"correlation_id": "abc123"})
        parsed = json.loads(JSONFormatter().format(record))
        assert parsed["correlation_id"] == "abc123"

    def test_handles_exception_info(self):
        import sys

        try:
            raise ValueError("test error")
        except ValueError:
            record = _make_record("error occurred")
            record.exc_info = sys.exc_info()

        parsed = json.loads(JSONFormatter().format(record))
        assert "ValueError" in parsed["exception"]

    def test_non_serializable_extra_becomes_string(self):
        record = _make_record("test", extra={"complex_obj": object()})
        parsed = json.loads(JSONFormatter().format(record))
        assert isinstance(parsed["complex_obj"], str)


# ─── DevFormatter Tests ───────────────────────────────────────────────


class TestDevFormatter:
    """Tests for the local development colored formatter."""

    def test_includes_message_level_and_name(self):
        record = _make_record("hello dev", level=logging.WARNING, name="switchboard.llm.retry")
        output = DevFormatter().format(record)
        assert "hello dev" in output
        assert "WARNING" in output
        assert "switchboard.llm.retry" in output

    def test_includes_known_extra_fields_inline(self):
        record = _make_record(
            "test",
            extra={"provider": "Ollama", "correlation_id": "cid-1", "attempt": 2},
        )
        output = DevFormatter().format(record)
        assert "provider=Ollama" in output
        assert "correlation_id=cid-1" in output
        assert "attempt=2" in output

    def test_color_codes_present_for_error(self):
        record = _make_record("error!", level=logging.ERROR)
        assert "\033[31m" in DevFormatter().format(record)


# ─── ContextFilter Tests ──────────────────────────────────────────────


class TestContextFilter:
    """Tests for the correlation_id injection filter."""

    def test_injects_correlation_id_when_set(self):
        set_correlation_id("cid-123")
        record = _make_record("test")
        ContextFilter().filter(record)
        assert record.correlation_id == "cid-123"  # type: ignore[attr-defined]

    def test_no_correlation_id_when_not_set(self):
        record = _make_record("test")
        ContextFilter().filter(record)
        assert not hasattr(record, "correlation_id")

    def test_explicit_correlation_id_wins(self):
        set_correlation_id("context-id")
        record = _make_record("test", extra={"correlation_id": "explicit-id"})
        ContextFilter().filter(record)
        assert record.correlation_id == "explicit-id"  # type: ignore[attr-defined]

    def test_always_returns_true(self):
        assert ContextFilter().filter(_make_record("test")) is True


# ─── Correlation Context ──────────────────────────────────────────────


class TestCorrelationContext:

    def test_set_get_clear(self):
        set_correlation_id("my-id")
        assert get_correlation_id() == "my-id"
        clear_correlation_id()
        assert get_correlation_id() is None

    def test_new_ids_are_unique(self):
        assert new_correlation_id() != new_correlation_id()

    def test_scope_generates_and_restores(self):
        with correlation_scope() as cid:
            assert cid
            assert get_correlation_id() == cid
        assert get_correlation_id() is None

    def test_scopes_nest(self):
        with correlation_scope("outer"):
            with correlation_scope("inner"):
                assert get_correlation_id() == "inner"
            assert get_correlation_id() == "outer"

    @pytest.mark.asyncio
    async def test_concurrent_tasks_are_isolated(self):
        async def worker(cid: str) -> str:
            with correlation_scope(cid):
                await asyncio.sleep(0)
                return get_correlation_id()

        results = await asyncio.gather(*(worker(f"id-{i}") for i in range(5)))
        assert results == [f"id-{i}" for i in range(5)]


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
        with patch.dict(os.environ, {"SWITCHBOARD_ENV": "production"}):
            configure_logging()
        assert isinstance(root_logger.handlers[0].formatter, JSONFormatter)

    def test_removes_existing_handlers(self, root_logger):
        root_logger.addHandler(logging.StreamHandler())
        configure_logging(env="development")
        assert len(root_logger.handlers) == 1

    def test_context_filter_attached(self, root_logger):
        configure_logging(env="development")
        filter_types = [type(f) for f in root_logger.handlers[0].filters]
        assert ContextFilter in filter_types

    def test_json_output_carries_correlation_id(self, root_logger):
        configure_logging(env="production")
        stream = StringIO()
        root_logger.handlers[0].stream = stream

        with correlation_scope("e2e-cid"):
            logging.getLogger("test.e2e").info(
                "operation_started", extra={"operation": "send_orchestrated"}
            )

        parsed = json.loads(stream.getvalue().strip())
        assert parsed["message"] == "operation_started"
        assert parsed["operation"] == "send_orchestrated"
        assert parsed["correlation_id"] == "e2e-cid"
