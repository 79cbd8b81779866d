"""Tests for structured logging configuration."""

import json
import logging

from profile_tuner.logging_config import (
    JsonFormatter,
    TextFormatter,
    analysis_run_ctx,
    get_logger,
)


def make_record(msg: str = "Test message", **fields) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )
    if fields:
        record.fields = fields
    return record


class TestJsonFormatter:
    """Tests for JSON log formatting."""

    def test_json_format_basic(self):
        formatter = JsonFormatter(service_name="test-service")

        parsed = json.loads(formatter.format(make_record()))

        assert parsed["level"] == "INFO"
        assert parsed["service"] == "test-service"
        assert parsed["message"] == "Test message"
        assert parsed["logger"] == "test.logger"
        assert "timestamp" in parsed
        assert "run_id" not in parsed

    def test_json_format_with_run_id_and_fields(self):
        """Test the active run id and structured fields are included."""
        formatter = JsonFormatter()
        token = analysis_run_ctx.set("run-123")
        try:
            parsed = json.loads(formatter.format(make_record(analyzer="isf", corrections=4)))
        finally:
            analysis_run_ctx.reset(token)

        assert parsed["run_id"] == "run-123"
        assert parsed["analyzer"] == "isf"
        assert parsed["corrections"] == 4


class TestTextFormatter:
    """Tests for text log formatting."""

    def test_text_format_with_fields(self):
        formatter = TextFormatter(service_name="test-service")
        token = analysis_run_ctx.set("run-123")
        try:
            output = formatter.format(make_record(hour=3))
        finally:
            analysis_run_ctx.reset(token)

        assert "test-service" in output
        assert "[run-123]" in output
        assert "Test message" in output
        assert "hour=3" in output

    def test_text_format_without_run(self):
        output = TextFormatter().format(make_record())
        assert "[-]" in output


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_bound_fields_are_attached(self, caplog):
        log = get_logger("test.structured").bind(analyzer="basal")

        with caplog.at_level(logging.INFO, logger="test.structured"):
            log.info("Basal analysis complete", hours_adjusted=2)

        record = caplog.records[-1]
        assert record.getMessage() == "Basal analysis complete"
        assert record.fields == {"analyzer": "basal", "hours_adjusted": 2}

    def test_call_fields_override_bound_fields(self, caplog):
        log = get_logger("test.structured").bind(analyzer="basal")

        with caplog.at_level(logging.INFO, logger="test.structured"):
            log.info("override", analyzer="icr")

        assert caplog.records[-1].fields == {"analyzer": "icr"}

    def test_disabled_level_is_skipped(self, caplog):
        log = get_logger("test.structured")

        with caplog.at_level(logging.WARNING, logger="test.structured"):
            log.debug("hidden", hour=1)

        assert not [r for r in caplog.records if r.getMessage() == "hidden"]

    def test_name(self):
        assert get_logger("profile_tuner.test").name == "profile_tuner.test"
