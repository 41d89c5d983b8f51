"""MCP Host - connection management and streaming chat relay for MCP servers.

This package provides:
- Stdio and streamable HTTP transports speaking the Model Context Protocol
- A connection registry owning one protocol client per server id
- A client-side reconnection state machine with bounded retries
- A line-delimited streaming relay for chat turns with tool invocations
- An aiohttp HTTP API and the ``mcp-host`` command line

Example:
    from mcp_host.mcp import ConnectionRegistry, parse_server_config

    async with ConnectionRegistry() as registry:
        config = parse_server_config({
            "id": "echo",
            "name": "Echo",
            "type": "stdio",
            "command": "python",
            "args": ["echo_server.py"],
        })
        await registry.connect(config)
        tools = await registry.list_tools("echo")
        content = await registry.call_tool("echo", "echo", {"text": "hi"})
"""

__version__ = "0.1.0"

from .errors import (
    CapabilityUnsupportedError,
    HandshakeError,
    MCPError,
    NotConnectedError,
    StreamDecodeError,
    TransportError,
    ValidationError,
)
from .mcp import (
    CapabilitySet,
    ConnectionRegistry,
    HttpServerConfig,
    MCPClient,
    StdioServerConfig,
    parse_server_config,
)
from .reconnect import (
    MAX_RETRY,
    ConnectionObservation,
    ConnectionStatus,
    ConnectionSupervisor,
    ServerCatalog,
)
from .settings import HostSettings
from .streaming import (
    CallEvent,
    NDJSONDecoder,
    ResultEvent,
    TextEvent,
    Transcript,
    relay_events,
)

__all__ = [
    "__version__",
    # Errors
    "CapabilityUnsupportedError",
    "HandshakeError",
    "MCPError",
    "NotConnectedError",
    "StreamDecodeError",
    "TransportError",
    "ValidationError",
    # MCP
    "CapabilitySet",
    "ConnectionRegistry",
    "HttpServerConfig",
    "MCPClient",
    "StdioServerConfig",
    "parse_server_config",
    # Reconnection
    "MAX_RETRY",
    "ConnectionObservation",
    "ConnectionStatus",
    "ConnectionSupervisor",
    "ServerCatalog",
    # Settings
    "HostSettings",
    # Streaming
    "CallEvent",
    "NDJSONDecoder",
    "ResultEvent",
    "TextEvent",
    "Transcript",
    "relay_events",
]
