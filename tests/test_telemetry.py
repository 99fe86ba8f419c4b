"""Tests for logging setup and trace correlation."""

import logging
import sys

import pytest
from opentelemetry.sdk.trace import TracerProvider

from skywalking_mcp.errors import ConfigurationError
from skywalking_mcp.telemetry import (
    TraceContextFilter,
    add_span_attributes,
    configure_logging,
    get_logger,
    parse_log_level,
)


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def make_record():
    return logging.LogRecord("test", logging.INFO, __file__, 1, "message", None, None)


class TestParseLogLevel:
    @pytest.mark.parametrize(
        "name, level",
        [
            ("debug", logging.DEBUG),
            ("INFO", logging.INFO),
            ("warn", logging.WARNING),
            ("warning", logging.WARNING),
            ("error", logging.ERROR),
        ],
    )
    def test_known_levels(self, name, level):
        assert parse_log_level(name) == level

    @pytest.mark.parametrize("name", [None, "", "verbose"])
    def test_unknown_falls_back_to_info(self, name):
        assert parse_log_level(name) == logging.INFO


class TestTraceContextFilter:
    def test_without_span(self):
        record = make_record()
        assert TraceContextFilter().filter(record) is True
        assert record.otelTraceID == "0"
        assert record.otelSpanID == "0"

    def test_with_span(self):
        tracer = TracerProvider().get_tracer(__name__)
        record = make_record()

        with tracer.start_as_current_span("work") as span:
            TraceContextFilter().filter(record)
            ctx = span.get_span_context()

        assert record.otelTraceID == format(ctx.trace_id, "032x")
        assert record.otelSpanID == format(ctx.span_id, "016x")


class TestConfigureLogging:
    def test_log_file_appends(self, tmp_path, restore_root_logger):
        path = tmp_path / "server.log"
        path.write_text("existing\n")

        handler = configure_logging("debug", str(path))
        get_logger("test").debug("hello")
        handler.flush()

        content = path.read_text()
        assert content.startswith("existing\n")
        assert "skywalking_mcp.test - DEBUG - [trace_id=0 span_id=0] - hello" in content
        assert restore_root_logger.level == logging.DEBUG

    def test_unwritable_log_file(self, tmp_path, restore_root_logger):
        with pytest.raises(ConfigurationError, match="failed to open log file"):
            configure_logging("info", str(tmp_path / "missing" / "server.log"))

    def test_defaults_to_stderr(self, restore_root_logger):
        handler = configure_logging("warn")
        assert isinstance(handler, logging.StreamHandler)
        assert handler.stream is sys.stderr
        assert restore_root_logger.level == logging.WARNING


class TestAddSpanAttributes:
    def test_skips_none_and_stringifies(self):
        tracer = TracerProvider().get_tracer(__name__)
        with tracer.start_as_current_span("work") as span:
            add_span_attributes(span, a=None, b=1, c=["x"])
            attributes = dict(span.attributes)

        assert "a" not in attributes
        assert attributes["b"] == 1
        assert attributes["c"] == "['x']"
