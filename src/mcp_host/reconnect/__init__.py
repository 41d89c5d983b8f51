"""Client-side connection supervision.

This module provides:
- Durable storage of the server catalog and connection states
- The server catalog with export/import
- The reconnection state machine and its reconciliation pass
- Selection of the servers active in a chat turn
"""

from .catalog import ServerCatalog
from .gateway import HttpRegistryGateway, LocalRegistryGateway, RegistryGateway
from .selection import ActiveServerSelection
from .state import MAX_RETRY, ConnectionObservation, ConnectionStatus
from .store import (
    CONNECTION_STATES_KEY,
    SERVERS_KEY,
    FileKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStore,
)
from .supervisor import EXHAUSTED_MESSAGE, ConnectionSupervisor, ReconciliationReport

__all__ = [
    "ActiveServerSelection",
    "CONNECTION_STATES_KEY",
    "ConnectionObservation",
    "ConnectionStatus",
    "ConnectionSupervisor",
    "EXHAUSTED_MESSAGE",
    "FileKeyValueStore",
    "HttpRegistryGateway",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "LocalRegistryGateway",
    "MAX_RETRY",
    "ReconciliationReport",
    "RegistryGateway",
    "SERVERS_KEY",
    "ServerCatalog",
]
