"""Structured logging with context for the MCP host.

This module provides a logging system with:
- Structured logging using structlog
- Context propagation (server id, correlation id) through a ContextVar
- Global context applied to every entry
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, TextIO

import structlog
from structlog.types import Processor


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    def to_int(self) -> int:
        """Convert to logging module integer level."""
        return {
            LogLevel.DEBUG: logging.DEBUG,
            LogLevel.INFO: logging.INFO,
            LogLevel.WARNING: logging.WARNING,
            LogLevel.ERROR: logging.ERROR,
            LogLevel.CRITICAL: logging.CRITICAL,
        }[self]


@dataclass
class LogContext:
    """Context for structured logging.

    Holds contextual data that should be included in all log entries
    within the current execution scope.

    Attributes:
        correlation_id: ID for tracking related requests/operations.
        server_id: ID of the MCP server the work concerns.
        turn_id: ID of the chat turn being relayed.
        extra: Additional context data.
    """

    correlation_id: Optional[str] = None
    server_id: Optional[str] = None
    turn_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary for logging."""
        result: Dict[str, Any] = {}
        if self.correlation_id:
            result["correlation_id"] = self.correlation_id
        if self.server_id:
            result["server_id"] = self.server_id
        if self.turn_id:
            result["turn_id"] = self.turn_id
        result.update(self.extra)
        return result

    def with_extra(self, **kwargs: Any) -> "LogContext":
        """Create a new context with additional data."""
        return LogContext(
            correlation_id=self.correlation_id,
            server_id=self.server_id,
            turn_id=self.turn_id,
            extra={**self.extra, **kwargs},
        )


_log_context: ContextVar[Optional[LogContext]] = ContextVar(
    "log_context", default=None
)

_global_context: Dict[str, Any] = {}


def set_context(context: Optional[LogContext]) -> None:
    """Set the current log context."""
    _log_context.set(context)


def get_context() -> Optional[LogContext]:
    """Get the current log context."""
    return _log_context.get()


def clear_context() -> None:
    """Clear the current log context."""
    _log_context.set(None)


@contextmanager
def log_context(**kwargs: Any) -> Iterator[LogContext]:
    """Scope a log context to a block, restoring the previous one on exit."""
    current = get_context() or LogContext()
    known = {k: kwargs.pop(k) for k in ("correlation_id", "server_id", "turn_id") if k in kwargs}
    scoped = LogContext(
        correlation_id=known.get("correlation_id", current.correlation_id),
        server_id=known.get("server_id", current.server_id),
        turn_id=known.get("turn_id", current.turn_id),
        extra={**current.extra, **kwargs},
    )
    token = _log_context.set(scoped)
    try:
        yield scoped
    finally:
        _log_context.reset(token)


def set_global_context(**kwargs: Any) -> None:
    """Set global context that applies to all log entries."""
    _global_context.update(kwargs)


def clear_global_context() -> None:
    """Clear all global context."""
    _global_context.clear()


@dataclass
class LogConfig:
    """Configuration for the logging system.

    Attributes:
        level: Minimum log level.
        include_timestamp: Whether to include timestamps.
        include_caller: Whether to include caller info.
        json_format: Render entries as JSON lines instead of console text.
        stream: Where rendered entries are written.
    """

    level: LogLevel = LogLevel.INFO
    include_timestamp: bool = True
    include_caller: bool = False
    json_format: bool = False
    stream: TextIO = field(default_factory=lambda: sys.stderr)


_active_config: Optional[LogConfig] = None


def _setup_structlog(config: LogConfig) -> None:
    """Configure structlog with processors."""
    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
    ]
    if config.include_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso"))
    processors.extend([
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ])

    if config.include_caller:
        processors.append(structlog.processors.CallsiteParameterAdder())

    if config.json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(config.level.to_int()),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=config.stream),
        cache_logger_on_first_use=False,
    )


class HostLogger:
    """Structured logger with context support.

    Every entry carries the logger name, the global context, the scoped
    LogContext and the keyword arguments of the call.
    """

    def __init__(self, name: str, bound: Optional[Dict[str, Any]] = None):
        """Initialize the logger.

        Args:
            name: Logger name (usually module name).
            bound: Context permanently attached to this logger.
        """
        self.name = name
        self._bound = dict(bound or {})
        if _active_config is None:
            configure_logging(LogConfig())
        self._logger = structlog.get_logger(name)

    def _get_merged_context(self, **extra: Any) -> Dict[str, Any]:
        """Merge all context sources into a single dict."""
        context: Dict[str, Any] = {"logger": self.name, **_global_context, **self._bound}
        scoped = get_context()
        if scoped:
            context.update(scoped.to_dict())
        context.update(extra)
        return context

    def bind(self, **kwargs: Any) -> "HostLogger":
        """Create a new logger with bound context."""
        return HostLogger(self.name, {**self._bound, **kwargs})

    def debug(self, msg: str, **kwargs: Any) -> None:
        """Log a debug message."""
        self._logger.debug(msg, **self._get_merged_context(**kwargs))

    def info(self, msg: str, **kwargs: Any) -> None:
        """Log an info message."""
        self._logger.info(msg, **self._get_merged_context(**kwargs))

    def warning(self, msg: str, **kwargs: Any) -> None:
        """Log a warning message."""
        self._logger.warning(msg, **self._get_merged_context(**kwargs))

    def error(self, msg: str, **kwargs: Any) -> None:
        """Log an error message."""
        self._logger.error(msg, **self._get_merged_context(**kwargs))

    def critical(self, msg: str, **kwargs: Any) -> None:
        """Log a critical message."""
        self._logger.critical(msg, **self._get_merged_context(**kwargs))

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log an exception with traceback."""
        self._logger.exception(msg, **self._get_merged_context(**kwargs))

    def log(self, level: LogLevel, msg: str, **kwargs: Any) -> None:
        """Log a message at the specified level."""
        getattr(self, level.value)(msg, **kwargs)


_loggers: Dict[str, HostLogger] = {}


def get_logger(name: str = "mcp_host") -> HostLogger:
    """Get or create a logger instance.

    Args:
        name: Logger name.

    Returns:
        HostLogger instance.
    """
    if name not in _loggers:
        _loggers[name] = HostLogger(name)
    return _loggers[name]


def configure_logging(config: LogConfig) -> None:
    """Configure the global logging system.

    Args:
        config: Logging configuration to apply.
    """
    global _active_config
    _active_config = config
    _setup_structlog(config)
    logging.getLogger("mcp_host").setLevel(config.level.to_int())
