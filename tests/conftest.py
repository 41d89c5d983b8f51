"""Common test fixtures and configuration for mcp_host tests."""

from __future__ import annotations

import io
from typing import AsyncIterator

import pytest

from mcp_host.mcp.client import MCPClientConfig
from mcp_host.mcp.registry import ConnectionRegistry
from mcp_host.observability.logging import LogConfig, LogLevel, configure_logging
from mcp_host.reconnect.catalog import ServerCatalog
from mcp_host.reconnect.store import InMemoryKeyValueStore

from tests.fakes import FakeGateway, FakeTransportFactory


@pytest.fixture(autouse=True)
def quiet_logging() -> io.StringIO:
    """Route logs into a buffer so tests can inspect them."""
    stream = io.StringIO()
    configure_logging(LogConfig(level=LogLevel.DEBUG, json_format=True, stream=stream))
    return stream


# ============================================================================
# Registry Fixtures
# ============================================================================


@pytest.fixture
def client_config() -> MCPClientConfig:
    """Client configuration with short deadlines."""
    return MCPClientConfig(handshake_timeout=1.0, request_timeout=1.0)


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    """Factory building scripted in-memory transports."""
    return FakeTransportFactory()


@pytest.fixture
async def registry(
    client_config: MCPClientConfig,
    transport_factory: FakeTransportFactory,
) -> AsyncIterator[ConnectionRegistry]:
    """A running registry backed by fake transports."""
    async with ConnectionRegistry(
        client_config=client_config,
        transport_factory=transport_factory,
    ) as reg:
        yield reg


# ============================================================================
# Supervisor Fixtures
# ============================================================================


@pytest.fixture
def store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def catalog(store: InMemoryKeyValueStore) -> ServerCatalog:
    return ServerCatalog(store)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()
