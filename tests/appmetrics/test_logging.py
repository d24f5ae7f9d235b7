"""Tests for appmetrics.logging module."""

from __future__ import annotations

import io
import json
from collections.abc import Iterator

import pytest

from appmetrics.logging import (
    JSONFormatter,
    LoggerRegistry,
    LogHandler,
    LogLevel,
    LogRecord,
    MetricsLogger,
    NullHandler,
    StreamHandler,
    TextFormatter,
    configure_logging,
    get_logger,
)


class ListHandler:
    """Handler collecting records in memory."""

    def __init__(self) -> None:
        self.records: list[LogRecord] = []

    def handle(self, record: LogRecord) -> None:
        self.records.append(record)


@pytest.fixture
def reset_logging() -> Iterator[None]:
    yield
    configure_logging(level=LogLevel.INFO)


class TestLogLevel:
    """Tests for LogLevel."""

    def test_from_string(self) -> None:
        assert LogLevel.from_string("debug") is LogLevel.DEBUG
        assert LogLevel.from_string("WARNING") is LogLevel.WARNING

    def test_unknown_falls_back_to_info(self) -> None:
        assert LogLevel.from_string("verbose") is LogLevel.INFO


class TestFormatters:
    """Tests for TextFormatter and JSONFormatter."""

    def test_text(self) -> None:
        record = LogRecord(
            level=LogLevel.INFO,
            message="Registered metric",
            logger_name="appmetrics.registry",
            extra={"key": "Server.requests"},
        )
        line = TextFormatter().format(record)
        assert "[INFO] appmetrics.registry: Registered metric" in line
        assert line.endswith("| key=Server.requests")

    def test_json(self) -> None:
        record = LogRecord(
            level=LogLevel.ERROR,
            message="Reporter failed",
            logger_name="appmetrics.lifecycle",
            extra={"reporter": "Console"},
            exc_info=RuntimeError("boom"),
        )
        data = json.loads(JSONFormatter().format(record))
        assert data["level"] == "ERROR"
        assert data["logger"] == "appmetrics.lifecycle"
        assert data["reporter"] == "Console"
        assert data["exception"] == "boom"
        assert data["exception_type"] == "RuntimeError"


class TestHandlers:
    """Tests for StreamHandler and NullHandler."""

    def test_stream_handler_level(self) -> None:
        stream = io.StringIO()
        handler = StreamHandler(stream=stream, level=LogLevel.WARNING)
        handler.handle(LogRecord(LogLevel.INFO, "quiet", "test"))
        handler.handle(LogRecord(LogLevel.ERROR, "loud", "test"))
        lines = stream.getvalue().splitlines()
        assert len(lines) == 1
        assert "loud" in lines[0]

    def test_protocol(self) -> None:
        assert isinstance(StreamHandler(io.StringIO()), LogHandler)
        assert isinstance(NullHandler(), LogHandler)


class TestMetricsLogger:
    """Tests for MetricsLogger."""

    def test_level_filtering(self) -> None:
        handler = ListHandler()
        logger = MetricsLogger("test", LogLevel.WARNING, [handler])
        logger.debug("dropped")
        logger.info("dropped")
        logger.warning("kept", key="x")
        logger.error("kept too")
        assert [r.message for r in handler.records] == ["kept", "kept too"]
        assert handler.records[0].extra == {"key": "x"}

    def test_exception_captures_current_error(self) -> None:
        handler = ListHandler()
        logger = MetricsLogger("test", LogLevel.DEBUG, [handler])
        try:
            raise ValueError("bad")
        except ValueError:
            logger.exception("Failed")
        assert isinstance(handler.records[0].exc_info, ValueError)
        assert handler.records[0].level is LogLevel.ERROR


class TestLoggerRegistry:
    """Tests for LoggerRegistry and module functions."""

    def test_same_logger_per_name(self) -> None:
        registry = LoggerRegistry()
        assert registry.get_logger("a") is registry.get_logger("a")
        assert registry.get_logger("a") is not registry.get_logger("b")

    def test_configure_updates_existing_loggers(self) -> None:
        registry = LoggerRegistry()
        logger = registry.get_logger("early")
        handler = ListHandler()
        registry.configure(level=LogLevel.DEBUG, handlers=[handler])
        logger.debug("now visible")
        assert logger.level is LogLevel.DEBUG
        assert [r.message for r in handler.records] == ["now visible"]

    def test_configure_json_format(self) -> None:
        registry = LoggerRegistry()
        registry.configure(format="json")
        handler = registry.get_logger("x").handlers[0]
        assert isinstance(handler, StreamHandler)
        assert isinstance(handler._formatter, JSONFormatter)

    def test_configure_logging_accepts_string(self, reset_logging: None) -> None:
        handler = ListHandler()
        configure_logging(level="debug", handlers=[handler])
        get_logger("appmetrics.tests").debug("hello", n=1)
        assert handler.records[0].extra == {"n": 1}
