"""Structured logging for appmetrics.

Loggers take a message plus keyword fields, so registry events can be read
by people (text format) or shipped to a log pipeline (JSON format) without
string formatting at the call site.

Example:
    >>> from appmetrics.logging import get_logger, configure_logging
    >>> configure_logging(level="DEBUG", format="json")
    >>> logger = get_logger(__name__)
    >>> logger.debug("Registered metric", key="Server.requests", kind="COUNTER")
"""

from __future__ import annotations

import json
import sys
import threading
from abc import abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Protocol, TextIO, runtime_checkable


class LogLevel(Enum):
    """Log severity levels, numerically compatible with stdlib logging."""

    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @classmethod
    def from_string(cls, level: str) -> LogLevel:
        """Parse a level name, falling back to INFO for unknown names."""
        try:
            return cls[level.upper()]
        except KeyError:
            return cls.INFO


@dataclass(slots=True)
class LogRecord:
    """A single structured log event."""

    level: LogLevel
    message: str
    logger_name: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    extra: dict[str, Any] = field(default_factory=dict)
    exc_info: BaseException | None = None

    def to_dict(self) -> dict[str, Any]:
        result = {
            "level": self.level.name,
            "message": self.message,
            "logger": self.logger_name,
            "timestamp": self.timestamp.isoformat(),
            **self.extra,
        }
        if self.exc_info:
            result["exception"] = str(self.exc_info)
            result["exception_type"] = type(self.exc_info).__name__
        return result


# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class LogHandler(Protocol):
    """Receives log records and writes them somewhere."""

    @abstractmethod
    def handle(self, record: LogRecord) -> None:
        ...


@runtime_checkable
class LogFormatter(Protocol):
    """Turns a log record into a line of text."""

    @abstractmethod
    def format(self, record: LogRecord) -> str:
        ...


# =============================================================================
# Formatters and Handlers
# =============================================================================


class TextFormatter:
    """Human-readable single-line format.

    Example output:
        2026-01-15T10:30:45.123456+00:00 [DEBUG] appmetrics.registry: Registered metric | key=Server.requests
    """

    def format(self, record: LogRecord) -> str:
        parts = [
            record.timestamp.isoformat(),
            f"[{record.level.name}]",
            f"{record.logger_name}:",
            record.message,
        ]
        if record.extra:
            parts.append("| " + " ".join(f"{k}={v}" for k, v in record.extra.items()))
        if record.exc_info:
            parts.append(f"| exception={record.exc_info!r}")
        return " ".join(parts)


class JSONFormatter:
    """One JSON object per record."""

    def __init__(self, indent: int | None = None) -> None:
        self._indent = indent

    def format(self, record: LogRecord) -> str:
        return json.dumps(record.to_dict(), indent=self._indent, default=str)


class StreamHandler:
    """Writes formatted records to a stream (stderr by default)."""

    def __init__(
        self,
        stream: TextIO | None = None,
        formatter: LogFormatter | None = None,
        level: LogLevel = LogLevel.DEBUG,
    ) -> None:
        self._stream = stream or sys.stderr
        self._formatter = formatter or TextFormatter()
        self._level = level
        self._lock = threading.Lock()

    def handle(self, record: LogRecord) -> None:
        if record.level.value < self._level.value:
            return
        line = self._formatter.format(record)
        with self._lock:
            self._stream.write(line + "\n")


class NullHandler:
    """Discards every record."""

    def handle(self, record: LogRecord) -> None:
        pass


# =============================================================================
# Logger
# =============================================================================


class MetricsLogger:
    """Logger accepting a message and structured keyword fields.

    Example:
        >>> logger = MetricsLogger("appmetrics.registry")
        >>> logger.warning("Kind mismatch", key="Server.requests")
    """

    def __init__(
        self,
        name: str,
        level: LogLevel = LogLevel.INFO,
        handlers: list[LogHandler] | None = None,
    ) -> None:
        self.name = name
        self.level = level
        self.handlers: list[LogHandler] = handlers if handlers is not None else []

    def is_enabled_for(self, level: LogLevel) -> bool:
        return level.value >= self.level.value

    def _log(
        self,
        level: LogLevel,
        message: str,
        exc_info: BaseException | None = None,
        **kwargs: Any,
    ) -> None:
        if not self.is_enabled_for(level):
            return
        record = LogRecord(
            level=level,
            message=message,
            logger_name=self.name,
            extra=kwargs,
            exc_info=exc_info,
        )
        for handler in self.handlers:
            handler.handle(record)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, exc_info: BaseException | None = None, **kwargs: Any) -> None:
        self._log(LogLevel.ERROR, message, exc_info=exc_info, **kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log at ERROR level with the exception currently being handled."""
        self._log(LogLevel.ERROR, message, exc_info=sys.exc_info()[1], **kwargs)


class LoggerRegistry:
    """Hands out one MetricsLogger per name and applies global settings.

    Loggers obtained before configure() are updated in place, so modules
    can create their logger at import time.
    """

    def __init__(self) -> None:
        self._loggers: dict[str, MetricsLogger] = {}
        self._level = LogLevel.INFO
        self._handlers: list[LogHandler] = [StreamHandler()]
        self._lock = threading.Lock()

    def get_logger(self, name: str) -> MetricsLogger:
        with self._lock:
            logger = self._loggers.get(name)
            if logger is None:
                logger = MetricsLogger(name, self._level, list(self._handlers))
                self._loggers[name] = logger
            return logger

    def configure(
        self,
        level: LogLevel = LogLevel.INFO,
        handlers: list[LogHandler] | None = None,
        format: str = "text",
    ) -> None:
        """Set level and handlers for all current and future loggers.

        Args:
            level: Minimum level to emit.
            handlers: Handlers to use; a stderr StreamHandler when omitted.
            format: ``text`` or ``json`` for the default handler.
        """
        if handlers is None:
            formatter: LogFormatter = JSONFormatter() if format == "json" else TextFormatter()
            handlers = [StreamHandler(formatter=formatter, level=level)]
        with self._lock:
            self._level = level
            self._handlers = handlers
            for logger in self._loggers.values():
                logger.level = level
                logger.handlers = list(handlers)


_registry = LoggerRegistry()


def get_logger(name: str) -> MetricsLogger:
    """Get the logger for ``name`` (typically ``__name__``)."""
    return _registry.get_logger(name)


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    handlers: list[LogHandler] | None = None,
    format: str = "text",
) -> None:
    """Configure global logging settings.

    Example:
        >>> configure_logging(level="DEBUG", format="json")
    """
    if isinstance(level, str):
        level = LogLevel.from_string(level)
    _registry.configure(level=level, handlers=handlers, format=format)
