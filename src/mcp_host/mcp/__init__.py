"""MCP (Model Context Protocol) connectivity.

This module provides:
- Stdio and streamable HTTP transports
- The protocol client with handshake and capability operations
- Server configuration models
- The connection registry owning one client per server id
"""

from .client import (
    CapabilitySet,
    MCPCapability,
    MCPClient,
    MCPClientConfig,
    MCPPrompt,
    MCPPromptArgument,
    MCPResource,
    MCPServerInfo,
    MCPTool,
)
from .config import (
    EXPORT_VERSION,
    ExportDocument,
    HttpServerConfig,
    ServerConfig,
    StdioServerConfig,
    parse_export_document,
    parse_server_config,
    replace_server_config,
)
from .registry import ConnectionEntry, ConnectionRegistry
from .tools import MCPToolBinding, RegistryToolset
from .transport import (
    HTTPTransportConfig,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    StdioTransport,
    StdioTransportConfig,
    StreamableHTTPTransport,
    Transport,
    TransportType,
    create_transport,
)

__all__ = [
    # Transport
    "HTTPTransportConfig",
    "JSONRPCNotification",
    "JSONRPCRequest",
    "JSONRPCResponse",
    "StdioTransport",
    "StdioTransportConfig",
    "StreamableHTTPTransport",
    "Transport",
    "TransportType",
    "create_transport",
    # Client
    "CapabilitySet",
    "MCPCapability",
    "MCPClient",
    "MCPClientConfig",
    "MCPPrompt",
    "MCPPromptArgument",
    "MCPResource",
    "MCPServerInfo",
    "MCPTool",
    # Config
    "EXPORT_VERSION",
    "ExportDocument",
    "HttpServerConfig",
    "ServerConfig",
    "StdioServerConfig",
    "parse_export_document",
    "parse_server_config",
    "replace_server_config",
    # Registry
    "ConnectionEntry",
    "ConnectionRegistry",
    "MCPToolBinding",
    "RegistryToolset",
]
