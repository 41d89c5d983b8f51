"""Error taxonomy for the MCP host.

Every failure raised by the host derives from MCPError so callers at the
HTTP surface and in the reconnection supervisor can map them uniformly:

- ValidationError: a server configuration or request body is malformed.
- TransportError: the channel could not be opened or failed mid-flight.
- HandshakeError: the initialize exchange failed or timed out.
- NotConnectedError: an operation addressed a server id with no live entry.
- CapabilityUnsupportedError: the server does not implement a capability.
- StreamDecodeError: a relay line could not be decoded into an event.
"""

from __future__ import annotations

from typing import Any, Optional


class MCPError(Exception):
    """Base exception for MCP host errors."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        data: Optional[Any] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data


class ValidationError(MCPError):
    """Malformed server configuration or request."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class TransportError(MCPError):
    """Transport layer error."""
    pass


class HandshakeError(TransportError):
    """The initialize handshake failed or timed out."""
    pass


class NotConnectedError(MCPError):
    """No live connection exists for the requested server."""

    def __init__(self, server_id: str, message: Optional[str] = None):
        super().__init__(message or f"Server {server_id} is not connected")
        self.server_id = server_id


class CapabilityUnsupportedError(MCPError):
    """The server does not implement the requested capability."""

    def __init__(self, capability: str, message: Optional[str] = None):
        super().__init__(message or f"Server does not support {capability}")
        self.capability = capability


class StreamDecodeError(MCPError):
    """A line of the streaming relay could not be decoded."""

    def __init__(self, message: str, line: str = ""):
        super().__init__(message)
        self.line = line
