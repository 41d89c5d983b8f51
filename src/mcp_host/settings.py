"""Runtime settings for the MCP host.

Settings come from keyword arguments, from ``MCP_HOST_*`` environment
variables via :meth:`HostSettings.from_env`, or from CLI flags layered on
top of the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .observability.logging import LogConfig, LogLevel


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class HostSettings:
    """Settings for the HTTP host, the registry and the chat engine.

    Attributes:
        host: Interface the HTTP API binds to.
        port: Port the HTTP API listens on.
        state_dir: Directory holding the server catalog and connection states.
        handshake_timeout: Seconds allowed for the initialize handshake.
        request_timeout: Default seconds allowed for one protocol request.
        close_timeout: Seconds a pipe server gets to exit before it is killed.
        log_level: Minimum log level.
        json_logs: Render logs as JSON lines.
        model: Chat model used by the tool loop.
        api_key: API key for the chat provider.
        base_url: Optional base URL of an OpenAI-compatible endpoint.
        max_tool_rounds: Upper bound on model/tool round trips per turn.
    """

    host: str = "127.0.0.1"
    port: int = 3000
    state_dir: Path = Path.home() / ".mcp-host"
    handshake_timeout: float = 10.0
    request_timeout: float = 30.0
    close_timeout: float = 5.0
    log_level: LogLevel = LogLevel.INFO
    json_logs: bool = False
    model: str = "gpt-4o-mini"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    max_tool_rounds: int = 8

    def __post_init__(self) -> None:
        """Normalize and validate settings."""
        self.state_dir = Path(self.state_dir).expanduser()
        if not isinstance(self.log_level, LogLevel):
            try:
                self.log_level = LogLevel(str(self.log_level).lower())
            except ValueError:
                raise ValueError(f"Invalid log level: {self.log_level}") from None
        if not 0 < int(self.port) < 65536:
            raise ValueError(f"Invalid port: {self.port}")
        for name in ("handshake_timeout", "request_timeout", "close_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.max_tool_rounds < 1:
            raise ValueError("max_tool_rounds must be at least 1")

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        prefix: str = "MCP_HOST_",
        **overrides: Any,
    ) -> "HostSettings":
        """Build settings from environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``.
            prefix: Variable name prefix, e.g. ``MCP_HOST_PORT``.
            **overrides: Explicit values that win over the environment.
                ``None`` values are ignored.

        Returns:
            A validated HostSettings instance.
        """
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for f in fields(cls):
            raw = env.get(prefix + f.name.upper())
            if raw is None:
                continue
            if f.name in ("port", "max_tool_rounds"):
                values[f.name] = int(raw)
            elif f.name.endswith("_timeout"):
                values[f.name] = float(raw)
            elif f.name == "json_logs":
                values[f.name] = _as_bool(raw)
            else:
                values[f.name] = raw

        if "api_key" not in values and env.get("OPENAI_API_KEY"):
            values["api_key"] = env["OPENAI_API_KEY"]

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def catalog_path(self) -> Path:
        """JSON file backing the server catalog and connection states."""
        return self.state_dir / "state.json"

    def log_config(self) -> LogConfig:
        """Logging configuration derived from these settings."""
        return LogConfig(level=self.log_level, json_format=self.json_logs)
