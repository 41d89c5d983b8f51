"""Which connected servers take part in the next chat turn."""

from __future__ import annotations

from typing import Iterable, List, Set


class ActiveServerSelection:
    """Tracks the user's selection of active servers by id.

    ``sync`` compares the connected id set against the previous one: newly
    connected servers become active, servers that went away drop out, and a
    server the user deselected stays deselected while it remains connected.
    """

    def __init__(self) -> None:
        self._connected: Set[str] = set()
        self._active: Set[str] = set()

    def sync(self, connected_ids: Iterable[str]) -> List[str]:
        """Reconcile with the currently connected ids; returns the active ids."""
        connected = set(connected_ids)
        added = connected - self._connected
        self._active = (self._active & connected) | added
        self._connected = connected
        return self.active_ids

    def toggle(self, server_id: str) -> bool:
        """Flip a connected server's selection; returns whether it is now active."""
        if server_id not in self._connected:
            return False
        if server_id in self._active:
            self._active.discard(server_id)
            return False
        self._active.add(server_id)
        return True

    def set_active(self, server_id: str, active: bool) -> None:
        if active and server_id in self._connected:
            self._active.add(server_id)
        else:
            self._active.discard(server_id)

    def is_active(self, server_id: str) -> bool:
        return server_id in self._active

    @property
    def active_ids(self) -> List[str]:
        return sorted(self._active)
