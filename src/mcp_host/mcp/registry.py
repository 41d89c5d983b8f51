"""Connection registry for MCP servers.

The registry owns at most one live protocol client per server id. Connect
and disconnect for the same id are serialized by a per-id lock; operations
on different ids run concurrently. The registry's map is only written by
``connect`` and ``disconnect``.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Union

from ..errors import MCPError, NotConnectedError
from ..observability.logging import get_logger, log_context
from .client import (
    CapabilitySet,
    MCPClient,
    MCPClientConfig,
    MCPPrompt,
    MCPResource,
    MCPTool,
)
from .config import HttpServerConfig, StdioServerConfig
from .transport import Transport, TransportConfig, create_transport

logger = get_logger(__name__)

AnyServerConfig = Union[StdioServerConfig, HttpServerConfig]
TransportFactory = Callable[[TransportConfig], Transport]


@dataclass
class ConnectionEntry:
    """A live connection owned by the registry.

    Attributes:
        config: The configuration the connection was opened with.
        client: The protocol client, which owns the transport.
        connected_at: When the handshake completed.
    """

    config: AnyServerConfig
    client: MCPClient
    connected_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def server_id(self) -> str:
        return self.config.id


class ConnectionRegistry:
    """Owns one protocol client per logical server id.

    Use as an async context manager, or call ``start`` and ``shutdown``
    explicitly. ``shutdown`` closes every connection.
    """

    def __init__(
        self,
        client_config: Optional[MCPClientConfig] = None,
        transport_factory: TransportFactory = create_transport,
        close_timeout: float = 5.0,
    ):
        """Initialize the registry.

        Args:
            client_config: Configuration shared by every protocol client.
            transport_factory: Builds a transport from a transport config.
            close_timeout: Seconds a pipe server gets to exit on disconnect.
        """
        self.client_config = client_config or MCPClientConfig()
        self._transport_factory = transport_factory
        self._close_timeout = close_timeout
        self._entries: Dict[str, ConnectionEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start accepting connections."""
        self._running = True
        logger.debug("Connection registry started")

    async def shutdown(self) -> None:
        """Close every connection and stop accepting new ones."""
        self._running = False
        await self.disconnect_all()
        logger.debug("Connection registry shut down")

    async def __aenter__(self) -> "ConnectionRegistry":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Any,
    ) -> None:
        await self.shutdown()

    def __len__(self) -> int:
        return len(self.list_connected_ids())

    @contextlib.asynccontextmanager
    async def _locked(self, server_id: str) -> AsyncIterator[None]:
        """Serialize connect and disconnect for one id.

        The lock is forgotten once no caller holds or waits on it.
        """
        lock = self._locks.get(server_id)
        if lock is None:
            lock = self._locks[server_id] = asyncio.Lock()
        self._lock_users[server_id] = self._lock_users.get(server_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[server_id] -= 1
            if not self._lock_users[server_id]:
                del self._lock_users[server_id]
                del self._locks[server_id]

    async def connect(self, config: AnyServerConfig) -> ConnectionEntry:
        """Connect to a server, replacing any existing connection for its id.

        Args:
            config: Validated server configuration.

        Returns:
            The new connection entry.

        Raises:
            TransportError: If the channel cannot be opened.
            HandshakeError: If the initialize exchange fails.
        """
        if not self._running:
            raise MCPError("Connection registry is not running")

        with log_context(server_id=config.id):
            async with self._locked(config.id):
                await self._teardown(config.id)

                transport = self._transport_factory(
                    config.to_transport_config(
                        timeout=self.client_config.request_timeout,
                        close_timeout=self._close_timeout,
                    )
                )
                client = MCPClient(transport, self.client_config)
                logger.info("Connecting to MCP server", name=config.name, transport=config.type)
                try:
                    await client.connect()
                except Exception as e:
                    logger.warning("Failed to connect to MCP server", error=str(e))
                    raise

                entry = ConnectionEntry(config=config, client=client)
                self._entries[config.id] = entry
                logger.info("Connected to MCP server", name=config.name)
                return entry

    async def disconnect(self, server_id: str) -> bool:
        """Disconnect a server. Disconnecting an absent id is a no-op.

        Returns:
            True if a connection was closed.
        """
        with log_context(server_id=server_id):
            async with self._locked(server_id):
                return await self._teardown(server_id)

    async def _teardown(self, server_id: str) -> bool:
        """Close and forget an entry; close errors are logged, never raised."""
        entry = self._entries.pop(server_id, None)
        if entry is None:
            return False
        try:
            await entry.client.close()
        except Exception as e:
            logger.error("Error closing MCP connection", error=str(e))
        logger.info("Disconnected from MCP server")
        return True

    async def disconnect_all(self) -> None:
        """Disconnect every server concurrently."""
        ids = list(self._entries)
        if ids:
            await asyncio.gather(*(self.disconnect(server_id) for server_id in ids))

    def is_connected(self, server_id: str) -> bool:
        entry = self._entries.get(server_id)
        return entry is not None and entry.client.is_connected

    def list_connected_ids(self) -> List[str]:
        """Ids with a live, handshaken connection."""
        return [sid for sid, entry in self._entries.items() if entry.client.is_connected]

    def get_entry(self, server_id: str) -> ConnectionEntry:
        entry = self._entries.get(server_id)
        if entry is None or not entry.client.is_connected:
            raise NotConnectedError(server_id)
        return entry

    def get_client(self, server_id: str) -> MCPClient:
        """Get the live client for a server id.

        Raises:
            NotConnectedError: If the id has no live connection.
        """
        return self.get_entry(server_id).client

    async def list_tools(self, server_id: str, timeout: Optional[float] = None) -> List[MCPTool]:
        return await self.get_client(server_id).list_tools(timeout=timeout)

    async def list_prompts(self, server_id: str, timeout: Optional[float] = None) -> List[MCPPrompt]:
        return await self.get_client(server_id).list_prompts(timeout=timeout)

    async def list_resources(
        self, server_id: str, timeout: Optional[float] = None
    ) -> List[MCPResource]:
        return await self.get_client(server_id).list_resources(timeout=timeout)

    async def call_tool(
        self,
        server_id: str,
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """Invoke a tool on a connected server and return its content list."""
        return await self.get_client(server_id).call_tool(name, arguments, timeout=timeout)

    async def get_prompt(
        self,
        server_id: str,
        name: str,
        arguments: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        return await self.get_client(server_id).get_prompt(name, arguments, timeout=timeout)

    async def read_resource(
        self,
        server_id: str,
        uri: str,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        return await self.get_client(server_id).read_resource(uri, timeout=timeout)

    async def get_capabilities(
        self,
        server_id: str,
        timeout: Optional[float] = None,
    ) -> CapabilitySet:
        """Fetch tools, prompts and resources of a server concurrently.

        A kind that fails or is unsupported comes back as an empty list.

        Raises:
            NotConnectedError: If the id has no live connection.
        """
        client = self.get_client(server_id)
        tools, prompts, resources = await asyncio.gather(
            client.list_tools(timeout=timeout),
            client.list_prompts(timeout=timeout),
            client.list_resources(timeout=timeout),
            return_exceptions=True,
        )

        def settle(kind: str, value: Any) -> List[Any]:
            if isinstance(value, BaseException):
                if isinstance(value, asyncio.CancelledError):
                    raise value
                logger.debug(
                    "Capability listing failed",
                    server_id=server_id,
                    kind=kind,
                    error=str(value),
                )
                return []
            return value

        return CapabilitySet(
            tools=settle("tools", tools),
            prompts=settle("prompts", prompts),
            resources=settle("resources", resources),
        )
