"""Expose tools of connected MCP servers to the chat model.

A toolset is built per chat turn from the servers the user has enabled.
Characters outside ``[a-zA-Z0-9_-]`` become underscores. A sanitized name
unique across those servers is used as-is; colliding names are qualified
as ``<server_id>__<tool>`` and numbered if they still clash.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from ..errors import MCPError
from ..llm.base import ToolDefinition
from ..observability.logging import get_logger
from .client import MCPTool
from .registry import ConnectionRegistry

logger = get_logger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


@dataclass
class MCPToolBinding:
    """A tool of a specific server under the name shown to the model."""

    exposed_name: str
    server_id: str
    tool: MCPTool

    def to_definition(self) -> ToolDefinition:
        """Convert to ToolDefinition for LLM consumption."""
        return ToolDefinition(
            name=self.exposed_name,
            description=self.tool.description,
            parameters=self.tool.input_schema or {"type": "object", "properties": {}},
        )


class RegistryToolset:
    """Tools of a set of connected servers, callable through the registry."""

    def __init__(self, registry: ConnectionRegistry, bindings: Iterable[MCPToolBinding] = ()):
        self.registry = registry
        self._bindings: Dict[str, MCPToolBinding] = {b.exposed_name: b for b in bindings}

    @classmethod
    async def build(
        cls,
        registry: ConnectionRegistry,
        server_ids: Iterable[str],
    ) -> "RegistryToolset":
        """List tools of every live server in ``server_ids``.

        Servers that are not connected or fail to list are skipped.
        """
        listed: List[tuple] = []
        for server_id in dict.fromkeys(server_ids):
            if not registry.is_connected(server_id):
                continue
            try:
                tools = await registry.list_tools(server_id)
            except MCPError as e:
                logger.warning("Could not list tools", server_id=server_id, error=str(e))
                continue
            listed.extend((server_id, tool) for tool in tools)

        counts: Dict[str, int] = {}
        for _, tool in listed:
            safe = _UNSAFE_NAME_CHARS.sub("_", tool.name)
            counts[safe] = counts.get(safe, 0) + 1

        bindings = []
        taken: set = set()
        for server_id, tool in listed:
            name = _UNSAFE_NAME_CHARS.sub("_", tool.name)
            if counts[name] > 1:
                name = _UNSAFE_NAME_CHARS.sub("_", f"{server_id}__{tool.name}")
            # Distinct names on one server can still sanitize to the same string.
            unique, n = name, 2
            while unique in taken:
                unique, n = f"{name}_{n}", n + 1
            taken.add(unique)
            bindings.append(MCPToolBinding(unique, server_id, tool))
        return cls(registry, bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    def get(self, name: str) -> Optional[MCPToolBinding]:
        return self._bindings.get(name)

    def definitions(self) -> List[ToolDefinition]:
        return [b.to_definition() for b in self._bindings.values()]

    async def call(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """Invoke a tool by its exposed name.

        Raises:
            MCPError: If the tool is unknown or the call fails.
        """
        binding = self._bindings.get(name)
        if binding is None:
            raise MCPError(f"Tool '{name}' not found")
        return await self.registry.call_tool(
            binding.server_id, binding.tool.name, arguments, timeout=timeout
        )
