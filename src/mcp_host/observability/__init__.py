"""Observability for the MCP host: structured logging with context."""

from .logging import (
    HostLogger,
    LogConfig,
    LogContext,
    LogLevel,
    clear_context,
    clear_global_context,
    configure_logging,
    get_context,
    get_logger,
    log_context,
    set_context,
    set_global_context,
)

__all__ = [
    "HostLogger",
    "LogConfig",
    "LogContext",
    "LogLevel",
    "clear_context",
    "clear_global_context",
    "configure_logging",
    "get_context",
    "get_logger",
    "log_context",
    "set_context",
    "set_global_context",
]
