"""Reconnection state machine.

The supervisor keeps one ConnectionObservation per catalog server and
reconciles it against the registry's live connections. A reconciliation
pass runs only when a caller asks for it (at startup, on a timer, after a
user action); there is no hidden scheduling.

Automatic reconnection is bounded: after ``max_retry`` consecutive failed
attempts a server settles in the error state with ``was_connected`` cleared
and is left alone until the user connects it again.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from ..errors import MCPError, ValidationError
from ..mcp.client import CapabilitySet
from ..mcp.config import HttpServerConfig, StdioServerConfig
from ..observability.logging import get_logger, log_context
from .catalog import ServerCatalog
from .gateway import RegistryGateway
from .state import MAX_RETRY, ConnectionObservation, ConnectionStatus
from .store import CONNECTION_STATES_KEY, KeyValueStore

logger = get_logger(__name__)

AnyServerConfig = Union[StdioServerConfig, HttpServerConfig]

EXHAUSTED_MESSAGE = "Automatic reconnection failed (maximum retries exceeded)"


@dataclass
class ReconciliationReport:
    """What one reconciliation pass did.

    Attributes:
        skipped: Another pass was already running; nothing was done.
        live_ids: Ids the registry reported as connected.
        attempted: Ids an automatic reconnection was attempted for, in order.
        reconnected: Ids that reconnected successfully.
        failed: Failure message per id that did not reconnect.
        exhausted: Ids that reached the retry limit during this pass.
    """

    skipped: bool = False
    live_ids: List[str] = field(default_factory=list)
    attempted: List[str] = field(default_factory=list)
    reconnected: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    exhausted: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "skipped": self.skipped,
            "liveIds": self.live_ids,
            "attempted": self.attempted,
            "reconnected": self.reconnected,
            "failed": self.failed,
            "exhausted": self.exhausted,
        }


class ConnectionSupervisor:
    """Tracks believed connection state and drives bounded reconnection."""

    def __init__(
        self,
        catalog: ServerCatalog,
        gateway: RegistryGateway,
        store: KeyValueStore,
        max_retry: int = MAX_RETRY,
    ) -> None:
        """
        Args:
            catalog: The configured servers.
            gateway: Access to the connection registry.
            store: Where durable connection state is kept.
            max_retry: Automatic attempts allowed before a server settles.
        """
        if max_retry < 1:
            raise ValueError("max_retry must be at least 1")
        self.catalog = catalog
        self.gateway = gateway
        self.store = store
        self.max_retry = max_retry
        self._observations: Dict[str, ConnectionObservation] = {}
        self._reconciling = False

    async def load(self) -> None:
        """Load the catalog and the persisted connection state."""
        await self.catalog.load()
        saved = await self.store.get(CONNECTION_STATES_KEY) or {}
        if not isinstance(saved, dict):
            saved = {}
        self._observations = {
            config.id: ConnectionObservation.from_durable(config.id, saved.get(config.id) or {})
            for config in self.catalog.list()
        }

    async def _persist(self) -> None:
        await self.store.set(
            CONNECTION_STATES_KEY,
            {sid: obs.durable_state() for sid, obs in self._observations.items()},
        )

    def _observation(self, server_id: str) -> ConnectionObservation:
        obs = self._observations.get(server_id)
        if obs is None:
            obs = self._observations[server_id] = ConnectionObservation(server_id=server_id)
        return obs

    def _require_config(self, server_id: str) -> AnyServerConfig:
        config = self.catalog.get(server_id)
        if config is None:
            raise ValidationError(f"Unknown server: {server_id}", field="id")
        return config

    def get(self, server_id: str) -> Optional[ConnectionObservation]:
        return self._observations.get(server_id)

    def observations(self) -> List[ConnectionObservation]:
        """Observations in catalog order."""
        return [self._observation(config.id) for config in self.catalog.list()]

    @property
    def is_reconciling(self) -> bool:
        return self._reconciling

    async def add_server(self, config: Union[AnyServerConfig, Dict[str, Any]]) -> bool:
        """Add a server to the catalog; a duplicate id is ignored."""
        added = await self.catalog.add(config)
        if added:
            server_id = self.catalog.list()[-1].id
            self._observations[server_id] = ConnectionObservation(server_id=server_id)
            await self._persist()
        return added

    async def import_servers(self, text: str) -> List[str]:
        """Merge an export document into the catalog without reconnecting."""
        imported = await self.catalog.import_json(text)
        for server_id in imported:
            self._observation(server_id)
        await self._persist()
        return imported

    async def connect(self, server_id: str) -> ConnectionObservation:
        """Connect a server on the user's behalf.

        A manual connect starts a fresh retry budget. A failure is reported
        in the observation and does not count against automatic retries.
        """
        config = self._require_config(server_id)
        obs = self._observation(server_id)
        obs.status = ConnectionStatus.CONNECTING
        obs.error = None
        obs.retry_count = 0
        await self._persist()

        with log_context(server_id=server_id):
            try:
                await self.gateway.connect(config)
            except Exception as e:
                logger.warning("Manual connect failed", error=str(e))
                obs.status = ConnectionStatus.ERROR
                obs.error = str(e) or type(e).__name__
            else:
                obs.status = ConnectionStatus.CONNECTED
                obs.was_connected = True
                obs.retry_count = 0
        await self._persist()
        return obs

    async def disconnect(self, server_id: str) -> ConnectionObservation:
        """Disconnect a server on the user's behalf and drop the intent to reconnect."""
        self._require_config(server_id)
        obs = self._observation(server_id)
        await self.gateway.disconnect(server_id)
        obs.status = ConnectionStatus.DISCONNECTED
        obs.error = None
        obs.was_connected = False
        obs.retry_count = 0
        await self._persist()
        return obs

    async def remove(self, server_id: str) -> bool:
        """Remove a server, disconnecting it first if connected."""
        obs = self._observations.get(server_id)
        if obs is not None and obs.status == ConnectionStatus.CONNECTED:
            try:
                await self.gateway.disconnect(server_id)
            except MCPError as e:
                logger.warning("Disconnect before removal failed", server_id=server_id, error=str(e))
        self._observations.pop(server_id, None)
        removed = await self.catalog.remove(server_id)
        await self._persist()
        return removed

    async def update_server(self, server_id: str, **changes: Any) -> AnyServerConfig:
        """Change a server's configuration. Takes effect on its next connect."""
        return await self.catalog.update(server_id, **changes)

    async def get_capabilities(self, server_id: str) -> CapabilitySet:
        return await self.gateway.get_capabilities(server_id)

    def _is_candidate(self, config: AnyServerConfig, live: bool) -> bool:
        obs = self._observation(config.id)
        if live or obs.status == ConnectionStatus.CONNECTING:
            return False
        if obs.retry_count >= self.max_retry:
            return False
        if obs.was_connected:
            return True
        return config.auto_connect

    async def reconcile(self) -> ReconciliationReport:
        """Run one reconciliation pass.

        A pass that starts while another is running does nothing and
        reports ``skipped``.
        """
        if self._reconciling:
            return ReconciliationReport(skipped=True)
        self._reconciling = True
        try:
            return await self._reconcile()
        finally:
            self._reconciling = False

    async def _reconcile(self) -> ReconciliationReport:
        report = ReconciliationReport()
        try:
            live = set(await self.gateway.list_connected_ids())
        except Exception as e:
            logger.error("Could not fetch connection status", error=str(e))
            report.failed["*"] = str(e)
            return report
        report.live_ids = sorted(live)

        configs = self.catalog.list()
        candidates = [c for c in configs if self._is_candidate(c, c.id in live)]

        for config in configs:
            obs = self._observation(config.id)
            if config.id in live:
                obs.status = ConnectionStatus.CONNECTED
                obs.error = None
                obs.retry_count = 0
            elif obs.status == ConnectionStatus.CONNECTED:
                obs.status = ConnectionStatus.DISCONNECTED
        await self._persist()

        for config in candidates:
            report.attempted.append(config.id)
            with log_context(server_id=config.id):
                try:
                    await self._attempt(config, report)
                except Exception as e:
                    logger.exception("Reconnection attempt raised unexpectedly")
                    report.failed[config.id] = str(e)

        if report.attempted:
            logger.info(
                "Reconciliation pass finished",
                attempted=len(report.attempted),
                reconnected=len(report.reconnected),
                failed=len(report.failed),
            )
        return report

    async def _attempt(self, config: AnyServerConfig, report: ReconciliationReport) -> None:
        obs = self._observation(config.id)
        obs.status = ConnectionStatus.CONNECTING
        await self._persist()
        try:
            await self.gateway.connect(config)
        except Exception as e:
            obs.retry_count = min(obs.retry_count + 1, self.max_retry)
            if obs.retry_count >= self.max_retry:
                obs.was_connected = False
                obs.error = EXHAUSTED_MESSAGE
                report.exhausted.append(config.id)
                logger.warning("Giving up automatic reconnection", error=str(e))
            else:
                obs.error = f"Reconnection failed ({obs.retry_count}/{self.max_retry})"
                logger.info("Reconnection attempt failed", attempt=obs.retry_count, error=str(e))
            obs.status = ConnectionStatus.ERROR
            report.failed[config.id] = str(e)
        else:
            obs.status = ConnectionStatus.CONNECTED
            obs.error = None
            obs.was_connected = True
            obs.retry_count = 0
            report.reconnected.append(config.id)
            logger.info("Reconnected MCP server")
        finally:
            await self._persist()

    async def run_periodic(
        self,
        interval: float,
        stop: Optional[asyncio.Event] = None,
    ) -> None:
        """Reconcile every ``interval`` seconds until ``stop`` is set."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            await self.reconcile()
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
