"""Tests for structured logging helpers."""

import json
import logging

import pytest

from services.logging_config import (
    JsonFormatter,
    ReadableFormatter,
    get_logger,
    idempotency_key_var,
    log_performance,
)


def _record(msg="hello", **extra):
    record = logging.LogRecord("delivery", logging.INFO, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    """Tests for JsonFormatter and ReadableFormatter."""

    def test_json_includes_extras(self):
        output = json.loads(JsonFormatter().format(_record(attempt_number=2)))

        assert output["message"] == "hello"
        assert output["level"] == "INFO"
        assert output["attempt_number"] == 2

    def test_json_includes_idempotency_key(self):
        token = idempotency_key_var.set("abc123")
        try:
            output = json.loads(JsonFormatter().format(_record()))
        finally:
            idempotency_key_var.reset(token)

        assert output["idempotency_key"] == "abc123"

    def test_extra_data_merged(self):
        output = json.loads(JsonFormatter().format(_record(extra_data={"duration_ms": 5})))
        assert output["duration_ms"] == 5

    def test_readable_appends_extras(self):
        line = ReadableFormatter().format(_record(recipient="a@b.com"))

        assert "[delivery] hello" in line
        assert "recipient=a@b.com" in line


class TestContextLogger:
    """Tests for get_logger context."""

    def test_fixed_context_added(self, caplog):
        logger = get_logger("delivery.test", component="sweeper")

        with caplog.at_level(logging.INFO, logger="delivery.test"):
            logger.info("swept", extra={"extra_data": {"deleted": 3}})

        record = caplog.records[-1]
        assert record.extra_data == {"deleted": 3, "component": "sweeper"}


class TestLogPerformance:
    """Tests for the log_performance decorator."""

    @pytest.mark.asyncio
    async def test_logs_duration(self, caplog):
        @log_performance("sweep")
        async def sweep():
            return 7

        with caplog.at_level(logging.INFO, logger="performance"):
            assert await sweep() == 7

        record = caplog.records[-1]
        assert record.getMessage() == "sweep completed"
        assert "duration_ms" in record.extra_data

    @pytest.mark.asyncio
    async def test_logs_and_reraises(self, caplog):
        @log_performance()
        async def broken():
            raise RuntimeError("nope")

        with caplog.at_level(logging.INFO, logger="performance"):
            with pytest.raises(RuntimeError):
                await broken()

        assert caplog.records[-1].getMessage() == "broken failed"
        assert caplog.records[-1].extra_data["error"] == "nope"

    def test_rejects_sync_functions(self):
        with pytest.raises(TypeError):
            log_performance()(lambda: None)
