"""Client-side view of a server's connection."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

MAX_RETRY = 3


class ConnectionStatus(str, Enum):
    """Connection status as believed by the client."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class ConnectionObservation:
    """What the client believes about one server.

    Attributes:
        server_id: The server this observation is about.
        status: Believed connection status.
        error: Last user-visible failure message.
        was_connected: The user intends this server to be connected. Stays
            set across failures; cleared by an explicit disconnect or when
            automatic retries are exhausted.
        retry_count: Consecutive failed automatic reconnection attempts.
    """

    server_id: str
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    error: Optional[str] = None
    was_connected: bool = False
    retry_count: int = 0

    def durable_state(self) -> Dict[str, Any]:
        """The part of the observation that survives a restart."""
        return {"wasConnected": self.was_connected, "retryCount": self.retry_count}

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "serverId": self.server_id,
            "status": self.status.value,
            **self.durable_state(),
        }
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_durable(cls, server_id: str, data: Dict[str, Any]) -> "ConnectionObservation":
        """Restore an observation after a restart; status starts disconnected."""
        retry_count = data.get("retryCount", 0)
        return cls(
            server_id=server_id,
            was_connected=bool(data.get("wasConnected", False)),
            retry_count=retry_count if isinstance(retry_count, int) and retry_count >= 0 else 0,
        )
