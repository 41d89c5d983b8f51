"""The user's list of configured MCP servers.

The catalog is ordered, keyed by server id, and persisted under the
``mcp_servers`` key. Importing merges by id: existing servers are replaced,
new ones appended, and nothing is ever deleted or reconnected by an import.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from ..errors import ValidationError
from ..mcp.config import (
    ExportDocument,
    HttpServerConfig,
    StdioServerConfig,
    parse_export_document,
    parse_server_config,
    replace_server_config,
)
from ..observability.logging import get_logger
from .store import SERVERS_KEY, KeyValueStore

logger = get_logger(__name__)

AnyServerConfig = Union[StdioServerConfig, HttpServerConfig]


class ServerCatalog:
    """Ordered, persisted collection of server configurations."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store
        self._servers: Dict[str, AnyServerConfig] = {}
        self._loaded = False

    async def load(self) -> List[AnyServerConfig]:
        """Read the catalog from the store. Invalid entries are skipped."""
        if self._loaded:
            return self.list()
        raw = await self._store.get(SERVERS_KEY) or []
        servers: Dict[str, AnyServerConfig] = {}
        for item in raw if isinstance(raw, list) else []:
            try:
                config = parse_server_config(item)
            except ValidationError as e:
                logger.warning("Skipping invalid stored server", error=e.message)
                continue
            servers.setdefault(config.id, config)
        self._servers = servers
        self._loaded = True
        return self.list()

    async def _save(self) -> None:
        await self._store.set(SERVERS_KEY, [c.dump() for c in self._servers.values()])

    def list(self) -> List[AnyServerConfig]:
        return list(self._servers.values())

    def get(self, server_id: str) -> Optional[AnyServerConfig]:
        return self._servers.get(server_id)

    def __contains__(self, server_id: object) -> bool:
        return server_id in self._servers

    def __len__(self) -> int:
        return len(self._servers)

    async def add(self, config: Union[AnyServerConfig, Dict[str, Any]]) -> bool:
        """Add a server. A duplicate id is ignored.

        Returns:
            True if the server was added.
        """
        await self.load()
        config = parse_server_config(config)
        if config.id in self._servers:
            logger.debug("Ignoring duplicate server id", server_id=config.id)
            return False
        self._servers[config.id] = config
        await self._save()
        return True

    async def update(self, server_id: str, **changes: Any) -> AnyServerConfig:
        """Replace fields of a server, re-validating the result.

        Raises:
            ValidationError: If the id is unknown or the result is invalid.
        """
        await self.load()
        current = self._servers.get(server_id)
        if current is None:
            raise ValidationError(f"Unknown server: {server_id}", field="id")
        updated = replace_server_config(current, **changes)
        self._servers[server_id] = updated
        await self._save()
        return updated

    async def remove(self, server_id: str) -> bool:
        await self.load()
        if self._servers.pop(server_id, None) is None:
            return False
        await self._save()
        return True

    def export_document(self) -> ExportDocument:
        return ExportDocument(servers=self.list())

    def export_json(self) -> str:
        """Serialize the catalog as an export document."""
        return self.export_document().to_json()

    async def import_json(self, text: str) -> List[str]:
        """Merge servers from an export document.

        Servers with a known id replace the stored config in place; new ids
        are appended. No server is removed.

        Returns:
            Ids of the imported servers, in document order.

        Raises:
            ValidationError: If the document is malformed.
        """
        await self.load()
        document = parse_export_document(text)
        imported: List[str] = []
        for config in document.servers:
            self._servers[config.id] = config
            imported.append(config.id)
        await self._save()
        logger.info("Imported servers", count=len(imported))
        return imported
