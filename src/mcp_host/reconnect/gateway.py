"""How the supervisor reaches the connection registry.

The registry may live in the same process or behind the HTTP API; the
supervisor only needs these four operations either way.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Dict, List, Optional, Protocol, Union, runtime_checkable

import httpx

from ..errors import NotConnectedError, TransportError, ValidationError
from ..mcp.client import CapabilitySet, MCPPrompt, MCPResource, MCPTool
from ..mcp.config import HttpServerConfig, StdioServerConfig
from ..mcp.registry import ConnectionRegistry

AnyServerConfig = Union[StdioServerConfig, HttpServerConfig]


@runtime_checkable
class RegistryGateway(Protocol):
    """Operations the supervisor performs against the registry."""

    @abstractmethod
    async def list_connected_ids(self) -> List[str]:
        """Ids the registry currently holds live connections for."""
        ...

    @abstractmethod
    async def connect(self, config: AnyServerConfig) -> None:
        """Connect a server; raises on failure."""
        ...

    @abstractmethod
    async def disconnect(self, server_id: str) -> bool:
        """Disconnect a server; an absent connection is not an error."""
        ...

    @abstractmethod
    async def get_capabilities(self, server_id: str) -> CapabilitySet:
        """Fetch tools, prompts and resources of a connected server."""
        ...


class LocalRegistryGateway:
    """Gateway to a registry in the same process."""

    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry

    async def list_connected_ids(self) -> List[str]:
        return self.registry.list_connected_ids()

    async def connect(self, config: AnyServerConfig) -> None:
        await self.registry.connect(config)

    async def disconnect(self, server_id: str) -> bool:
        return await self.registry.disconnect(server_id)

    async def get_capabilities(self, server_id: str) -> CapabilitySet:
        return await self.registry.get_capabilities(server_id)


class HttpRegistryGateway:
    """Gateway to a registry served by the host's HTTP API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=http_transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpRegistryGateway":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def _call(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"Host API unreachable: {e}") from e

    @staticmethod
    def _body(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def _error(self, response: httpx.Response) -> str:
        return str(self._body(response).get("error") or f"HTTP {response.status_code}")

    async def list_connected_ids(self) -> List[str]:
        response = await self._call("GET", "/api/mcp/status")
        if response.status_code != 200:
            raise TransportError(self._error(response), code=response.status_code)
        return list(self._body(response).get("connectedServers") or [])

    async def connect(self, config: AnyServerConfig) -> None:
        response = await self._call("POST", "/api/mcp/connect", json={"config": config.dump()})
        if response.status_code == 400:
            raise ValidationError(self._error(response))
        if response.status_code != 200 or not self._body(response).get("success"):
            raise TransportError(self._error(response), code=response.status_code)

    async def disconnect(self, server_id: str) -> bool:
        response = await self._call("POST", "/api/mcp/disconnect", json={"serverId": server_id})
        if response.status_code == 400:
            return False
        if response.status_code != 200:
            raise TransportError(self._error(response), code=response.status_code)
        return True

    async def get_capabilities(self, server_id: str) -> CapabilitySet:
        response = await self._call(
            "GET", "/api/mcp/capabilities", params={"serverId": server_id}
        )
        if response.status_code == 400:
            raise NotConnectedError(server_id, self._error(response))
        if response.status_code != 200:
            raise TransportError(self._error(response), code=response.status_code)
        body = self._body(response)
        return CapabilitySet(
            tools=[MCPTool.from_dict(t) for t in body.get("tools") or []],
            prompts=[MCPPrompt.from_dict(p) for p in body.get("prompts") or []],
            resources=[MCPResource.from_dict(r) for r in body.get("resources") or []],
        )
