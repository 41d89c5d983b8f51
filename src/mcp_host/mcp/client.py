"""MCP (Model Context Protocol) client implementation.

This module provides the protocol client for one MCP server:
- The initialize handshake, bounded by a timeout
- Correlated requests for tools, prompts and resources
- Pagination of list operations via ``nextCursor``

Capabilities are fetched fresh on every call and never cached.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..errors import (
    CapabilityUnsupportedError,
    HandshakeError,
    MCPError,
    NotConnectedError,
    TransportError,
)
from ..observability.logging import get_logger
from .transport import (
    METHOD_NOT_FOUND,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    Transport,
)

logger = get_logger(__name__)

PROTOCOL_VERSION = "2025-03-26"


class MCPCapability(str, Enum):
    """MCP server capabilities."""

    TOOLS = "tools"
    RESOURCES = "resources"
    PROMPTS = "prompts"
    LOGGING = "logging"


@dataclass
class MCPTool:
    """Represents an MCP tool.

    Attributes:
        name: Tool name.
        description: Tool description.
        input_schema: JSON Schema for tool input. Advisory only.
    """

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MCPTool":
        """Create from dictionary."""
        return cls(
            name=data.get("name", ""),
            description=data.get("description") or "",
            input_schema=data.get("inputSchema") or {},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


@dataclass
class MCPPromptArgument:
    """Argument accepted by a prompt template."""

    name: str
    description: str = ""
    required: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MCPPromptArgument":
        return cls(
            name=data.get("name", ""),
            description=data.get("description") or "",
            required=bool(data.get("required", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "required": self.required}


@dataclass
class MCPPrompt:
    """Represents an MCP prompt template.

    Attributes:
        name: Prompt name.
        description: Prompt description.
        arguments: Argument definitions.
    """

    name: str
    description: str = ""
    arguments: List[MCPPromptArgument] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MCPPrompt":
        """Create from dictionary."""
        return cls(
            name=data.get("name", ""),
            description=data.get("description") or "",
            arguments=[MCPPromptArgument.from_dict(a) for a in data.get("arguments") or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "arguments": [a.to_dict() for a in self.arguments],
        }


@dataclass
class MCPResource:
    """Represents an MCP resource.

    Attributes:
        uri: Resource URI.
        name: Resource name.
        description: Resource description.
        mime_type: MIME type of the resource.
    """

    uri: str
    name: str
    description: str = ""
    mime_type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MCPResource":
        """Create from dictionary."""
        return cls(
            uri=data.get("uri", ""),
            name=data.get("name", ""),
            description=data.get("description") or "",
            mime_type=data.get("mimeType"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "uri": self.uri,
            "name": self.name,
            "description": self.description,
        }
        if self.mime_type is not None:
            data["mimeType"] = self.mime_type
        return data


@dataclass
class CapabilitySet:
    """Tools, prompts and resources of one server, fetched together."""

    tools: List[MCPTool] = field(default_factory=list)
    prompts: List[MCPPrompt] = field(default_factory=list)
    resources: List[MCPResource] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tools": [t.to_dict() for t in self.tools],
            "prompts": [p.to_dict() for p in self.prompts],
            "resources": [r.to_dict() for r in self.resources],
        }


@dataclass
class MCPServerInfo:
    """Information about an MCP server.

    Attributes:
        name: Server name.
        version: Server version.
        protocol_version: Protocol version the server agreed to.
        capabilities: Capabilities advertised in the initialize result.
    """

    name: str
    version: str
    protocol_version: str = PROTOCOL_VERSION
    capabilities: List[MCPCapability] = field(default_factory=list)

    def supports(self, capability: MCPCapability) -> bool:
        return capability in self.capabilities


@dataclass
class MCPClientConfig:
    """Configuration for MCP client.

    Attributes:
        name: Client name sent to server.
        version: Client version sent to server.
        handshake_timeout: Seconds allowed for the initialize exchange.
        request_timeout: Default seconds allowed for any other request.
    """

    name: str = "mcp-host-client"
    version: str = "1.0.0"
    handshake_timeout: float = 10.0
    request_timeout: float = 30.0


class MCPClient:
    """Client for communicating with one MCP server.

    The client owns its transport: ``connect`` opens it and performs the
    handshake, ``close`` releases it. Operations before a successful
    handshake or after ``close`` raise NotConnectedError.
    """

    def __init__(
        self,
        transport: Transport,
        config: Optional[MCPClientConfig] = None,
    ):
        """Initialize the MCP client.

        Args:
            transport: Transport for server communication.
            config: Optional client configuration.
        """
        self.transport = transport
        self.config = config or MCPClientConfig()
        self._ids = itertools.count(1)
        self._server_info: Optional[MCPServerInfo] = None
        self._initialized = False
        self._notification_task: Optional[asyncio.Task[None]] = None

    @property
    def is_connected(self) -> bool:
        """Check if the handshake completed and the transport is alive."""
        return self._initialized and self.transport.is_connected

    @property
    def server_info(self) -> Optional[MCPServerInfo]:
        """Get server information."""
        return self._server_info

    async def connect(self) -> MCPServerInfo:
        """Open the transport and perform the initialize handshake.

        Returns:
            Information the server reported about itself.

        Raises:
            TransportError: If the transport cannot be opened.
            HandshakeError: If initialize fails or times out.
        """
        await self.transport.connect()
        try:
            self._server_info = await self._initialize()
        except BaseException:
            await self._release_transport()
            raise

        self._initialized = True
        self._notification_task = asyncio.create_task(self._log_notifications())
        return self._server_info

    async def close(self) -> None:
        """Close the connection. Pending requests fail with TransportError."""
        self._initialized = False
        try:
            await self.transport.disconnect()
        finally:
            if self._notification_task is not None:
                self._notification_task.cancel()
                try:
                    await self._notification_task
                except asyncio.CancelledError:
                    pass
                self._notification_task = None

    async def _release_transport(self) -> None:
        try:
            await self.transport.disconnect()
        except Exception as e:
            logger.debug("Transport cleanup after failed handshake raised", error=str(e))

    async def _initialize(self) -> MCPServerInfo:
        """Perform MCP initialization handshake."""
        request = JSONRPCRequest(
            method="initialize",
            params={
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {
                    "name": self.config.name,
                    "version": self.config.version,
                },
            },
            id=next(self._ids),
        )

        timeout = self.config.handshake_timeout
        try:
            response = await asyncio.wait_for(
                self.transport.send_request(request, timeout=timeout),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            raise HandshakeError(f"Initialize timed out after {timeout}s") from None
        except TransportError as e:
            raise HandshakeError(f"Initialize failed: {e}", code=e.code) from e

        if response.is_error:
            raise HandshakeError(
                f"Initialize failed: {response.get_error_message()}",
                code=response.get_error_code(),
            )

        result = response.result or {}
        server_info = result.get("serverInfo") or {}
        capabilities = result.get("capabilities") or {}
        known = {c.value for c in MCPCapability}
        info = MCPServerInfo(
            name=server_info.get("name", "unknown"),
            version=server_info.get("version", "unknown"),
            protocol_version=result.get("protocolVersion", PROTOCOL_VERSION),
            capabilities=[MCPCapability(cap) for cap in capabilities if cap in known],
        )

        try:
            await self.transport.send_notification(
                JSONRPCNotification(method="notifications/initialized")
            )
        except TransportError as e:
            raise HandshakeError(f"Initialized notification failed: {e}") from e

        logger.debug(
            "MCP handshake completed",
            server_name=info.name,
            server_version=info.version,
            capabilities=[c.value for c in info.capabilities],
        )
        return info

    async def _log_notifications(self) -> None:
        async for notification in self.transport.receive_notifications():
            logger.debug("MCP server notification", method=notification.method)

    async def _request(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        capability: Optional[MCPCapability] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Send a correlated request and return its result.

        Raises:
            NotConnectedError: Before the handshake or after close.
            CapabilityUnsupportedError: If the server lacks the capability.
            TransportError: On timeout or channel failure.
            MCPError: If the server answers with any other error.
        """
        if not self.is_connected or self._server_info is None:
            raise NotConnectedError(
                self._server_info.name if self._server_info else "unknown",
                "Client not connected",
            )
        if capability is not None and not self._server_info.supports(capability):
            raise CapabilityUnsupportedError(capability.value)

        request = JSONRPCRequest(method=method, params=params, id=next(self._ids))
        response: JSONRPCResponse = await self.transport.send_request(
            request,
            timeout=timeout if timeout is not None else self.config.request_timeout,
        )

        if response.is_error:
            code = response.get_error_code()
            message = response.get_error_message() or "Unknown error"
            if code == METHOD_NOT_FOUND:
                raise CapabilityUnsupportedError(method, f"Method not found: {method}")
            raise MCPError(f"{method} failed: {message}", code=code, data=response.error)

        result = response.result
        return result if isinstance(result, dict) else {}

    async def _list_all(
        self,
        method: str,
        key: str,
        capability: MCPCapability,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """Collect every page of a list operation."""
        items: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            params = {"cursor": cursor} if cursor else None
            result = await self._request(method, params, capability, timeout)
            items.extend(item for item in result.get(key) or [] if isinstance(item, dict))
            cursor = result.get("nextCursor")
            if not cursor:
                return items

    async def list_tools(self, timeout: Optional[float] = None) -> List[MCPTool]:
        """List the tools the server currently exposes."""
        data = await self._list_all("tools/list", "tools", MCPCapability.TOOLS, timeout)
        return [MCPTool.from_dict(d) for d in data]

    async def list_prompts(self, timeout: Optional[float] = None) -> List[MCPPrompt]:
        """List the prompt templates the server currently exposes."""
        data = await self._list_all("prompts/list", "prompts", MCPCapability.PROMPTS, timeout)
        return [MCPPrompt.from_dict(d) for d in data]

    async def list_resources(self, timeout: Optional[float] = None) -> List[MCPResource]:
        """List the resources the server currently exposes."""
        data = await self._list_all(
            "resources/list", "resources", MCPCapability.RESOURCES, timeout
        )
        return [MCPResource.from_dict(d) for d in data]

    async def call_tool(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """Call a tool on the MCP server.

        Arguments are forwarded as given; the tool's input schema is not
        enforced here.

        Args:
            name: Tool name.
            arguments: Tool arguments.
            timeout: Optional deadline in seconds for this call.

        Returns:
            The ``content`` list of the tool result, untouched.

        Raises:
            MCPError: If the tool call fails at the protocol level.
        """
        result = await self._request(
            "tools/call",
            {"name": name, "arguments": arguments or {}},
            MCPCapability.TOOLS,
            timeout,
        )
        content = result.get("content") or []
        if result.get("isError"):
            logger.warning("Tool reported an error result", tool=name)
        return content

    async def get_prompt(
        self,
        name: str,
        arguments: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """Get the messages of a prompt template.

        Args:
            name: Prompt name.
            arguments: Prompt arguments.
            timeout: Optional deadline in seconds.

        Returns:
            List of message dictionaries.
        """
        params: Dict[str, Any] = {"name": name}
        if arguments:
            params["arguments"] = arguments
        result = await self._request("prompts/get", params, MCPCapability.PROMPTS, timeout)
        return result.get("messages") or []

    async def read_resource(
        self,
        uri: str,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """Read a resource; returns its ``contents`` list."""
        result = await self._request(
            "resources/read", {"uri": uri}, MCPCapability.RESOURCES, timeout
        )
        return result.get("contents") or []
